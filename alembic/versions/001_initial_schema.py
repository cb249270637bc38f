"""initial schema: parceiros, processos, distribuições, publicações, API de clientes

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _criado_em(nome: str = 'created_at'):
    return sa.Column(nome, sa.TIMESTAMP(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)


def _fk(nome: str, tabela: str, nullable: bool = False, ondelete: str = 'CASCADE'):
    return sa.Column(nome, postgresql.UUID(as_uuid=True), sa.ForeignKey(f'{tabela}.id', ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        'partners',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'partner_services',
        _id(),
        _fk('partner_id', 'partners'),
        sa.Column('service_name', sa.String(200), nullable=False),
        sa.Column('service_type', sa.String(20), nullable=False, comment='processes | distributions | publications | terms'),
        sa.Column('service_url', sa.String(500), nullable=False),
        sa.Column('nome_relacional', sa.String(200), nullable=False),
        sa.Column('token_encrypted', sa.String(1000), nullable=False),
        sa.Column('cod_escritorio', sa.Integer(), nullable=True, comment='Código do escritório no parceiro'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('last_sync_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
        comment='Serviços de parceiros (SOAP/REST) sincronizados pelo orquestrador'
    )
    op.create_index('idx_partner_services_type_active', 'partner_services', ['service_type', 'is_active'])

    op.create_table(
        'client_systems',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'client_system_services',
        _id(),
        _fk('client_system_id', 'client_systems'),
        _fk('partner_service_id', 'partner_services'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_system_id', 'partner_service_id', name='uq_client_system_service'),
    )

    op.create_table(
        'processes',
        _id(),
        sa.Column('process_number', sa.String(25), nullable=False, comment='Número CNJ formatado'),
        sa.Column('cod_processo', sa.Integer(), nullable=True, comment='Código do processo no parceiro'),
        _fk('partner_service_id', 'partner_services', nullable=True, ondelete='SET NULL'),
        sa.Column('tribunal', sa.String(50), nullable=True),
        sa.Column('uf', sa.String(2), nullable=True),
        sa.Column('instance', sa.String(10), nullable=True),
        sa.Column('status_code', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('status_description', sa.Text(), nullable=True),
        sa.Column('error_category', sa.String(30), nullable=True, comment='invalid_instance | already_registered | generic'),
        sa.Column('partner_status_code', sa.Integer(), nullable=True),
        sa.Column('solucionare_status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        _criado_em(),
        _criado_em('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('process_number'),
        sa.UniqueConstraint('cod_processo'),
        comment='Processos monitorados junto aos parceiros'
    )
    op.create_index('idx_processes_status', 'processes', ['status_code'])

    op.create_table(
        'client_processes',
        _id(),
        _fk('client_system_id', 'client_systems'),
        _fk('process_id', 'processes'),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_system_id', 'process_id', name='uq_client_process'),
    )

    op.create_table(
        'process_movements',
        _id(),
        sa.Column('cod_andamento', sa.BigInteger(), nullable=False),
        sa.Column('cod_processo', sa.Integer(), nullable=False),
        _fk('process_id', 'processes', nullable=True),
        sa.Column('data_andamento', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('descricao', sa.Text(), nullable=True),
        sa.Column('tipo', sa.String(100), nullable=True),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cod_andamento'),
    )
    op.create_index('idx_process_movements_process', 'process_movements', ['process_id'])

    op.create_table(
        'process_documents',
        _id(),
        sa.Column('cod_documento', sa.BigInteger(), nullable=False),
        sa.Column('cod_processo', sa.Integer(), nullable=False),
        sa.Column('cod_andamento', sa.BigInteger(), nullable=True),
        _fk('process_id', 'processes', nullable=True),
        sa.Column('nome_arquivo', sa.String(500), nullable=True),
        sa.Column('tipo_documento', sa.String(100), nullable=True),
        sa.Column('documento_url', sa.Text(), nullable=True, comment='URL externa (pode expirar) ou URL pública do storage'),
        sa.Column('storage_path', sa.String(500), nullable=True),
        sa.Column('tamanho_bytes', sa.BigInteger(), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        _criado_em(),
        _criado_em('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cod_processo', 'cod_documento', name='uq_process_document_code'),
    )
    op.create_index(
        'idx_process_documents_pending',
        'process_documents',
        ['created_at'],
        postgresql_where=sa.text('storage_path IS NULL'),
    )

    op.create_table(
        'process_covers',
        _id(),
        sa.Column('cod_processo', sa.Integer(), nullable=False),
        _fk('process_id', 'processes', nullable=True),
        sa.Column('classe', sa.String(255), nullable=True),
        sa.Column('assunto', sa.Text(), nullable=True),
        sa.Column('juiz', sa.String(255), nullable=True),
        sa.Column('valor_causa', sa.String(50), nullable=True),
        sa.Column('data_distribuicao', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cod_processo'),
    )

    op.create_table(
        'process_parties',
        _id(),
        sa.Column('cod_parte', sa.BigInteger(), nullable=False),
        sa.Column('cod_processo', sa.Integer(), nullable=False),
        _fk('process_id', 'processes', nullable=True),
        sa.Column('nome', sa.String(500), nullable=False),
        sa.Column('tipo_parte', sa.String(100), nullable=True),
        sa.Column('documento', sa.String(20), nullable=True),
        sa.Column('advogados', postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cod_parte'),
    )

    op.create_table(
        'distributions',
        _id(),
        _fk('partner_service_id', 'partner_services'),
        sa.Column('cod_distribuicao', sa.BigInteger(), nullable=False),
        sa.Column('term', sa.String(255), nullable=True, comment='Nome pesquisado que gerou a distribuição'),
        sa.Column('process_number', sa.String(25), nullable=True),
        sa.Column('tribunal', sa.String(50), nullable=True),
        sa.Column('orgao_julgador', sa.String(255), nullable=True),
        sa.Column('distribution_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('partner_service_id', 'cod_distribuicao', name='uq_distribution_code'),
    )
    op.create_index('idx_distributions_term', 'distributions', ['term'])

    op.create_table(
        'search_terms',
        _id(),
        sa.Column('term', sa.String(255), nullable=False),
        sa.Column('term_type', sa.String(20), nullable=False, comment='name | office | distributions | publications'),
        _fk('partner_service_id', 'partner_services', nullable=True, ondelete='SET NULL'),
        sa.Column('cod_nome', sa.Integer(), nullable=True, comment='Código do nome no parceiro'),
        sa.Column('cod_escritorio', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('solucionare_status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_search_terms_type_active', 'search_terms', ['term_type', 'is_active'])

    op.create_table(
        'client_search_terms',
        _id(),
        _fk('client_system_id', 'client_systems'),
        _fk('search_term_id', 'search_terms'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_system_id', 'search_term_id', name='uq_client_search_term'),
    )

    op.create_table(
        'publications',
        _id(),
        _fk('partner_service_id', 'partner_services'),
        sa.Column('cod_publicacao', sa.BigInteger(), nullable=False),
        sa.Column('gazette_name', sa.String(255), nullable=True, comment='Nome do diário'),
        sa.Column('publication_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('process_number', sa.String(25), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('matched_terms', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('partner_service_id', 'cod_publicacao', name='uq_publication_code'),
    )
    op.create_index('idx_publications_date', 'publications', ['publication_date'])

    op.create_table(
        'publication_term_matches',
        _id(),
        _fk('publication_id', 'publications'),
        _fk('search_term_id', 'search_terms'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('publication_id', 'search_term_id', name='uq_publication_term_match'),
    )

    op.create_table(
        'sync_logs',
        _id(),
        sa.Column('sync_type', sa.String(50), nullable=False),
        _fk('partner_service_id', 'partner_services', nullable=True, ondelete='SET NULL'),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('records_synced', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        _criado_em('started_at'),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_sync_logs_type_started', 'sync_logs', ['sync_type', 'started_at'])

    op.create_table(
        'api_tokens',
        _id(),
        sa.Column('token', sa.String(255), nullable=False),
        _fk('client_system_id', 'client_systems'),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_blocked', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('blocked_reason', sa.Text(), nullable=True),
        sa.Column('blocked_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('rate_limit_override', sa.Integer(), nullable=True, comment='Requisições/hora; NULL usa o padrão do sistema'),
        sa.Column('allowed_ips', postgresql.JSONB(), nullable=True),
        sa.Column('last_used_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
    )

    op.create_table(
        'api_ip_rules',
        _id(),
        sa.Column('ip_address', sa.String(64), nullable=False),
        sa.Column('rule_type', sa.String(10), nullable=False, comment='block | allow'),
        _fk('client_system_id', 'client_systems', nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'security_logs',
        _id(),
        sa.Column('block_reason', sa.String(50), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('token_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('client_system_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('endpoint', sa.String(255), nullable=True),
        sa.Column('details', postgresql.JSONB(), nullable=True),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_security_logs_created', 'security_logs', ['created_at'])

    op.create_table(
        'api_requests',
        _id(),
        sa.Column('token_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('client_system_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('endpoint', sa.String(255), nullable=False),
        sa.Column('method', sa.String(10), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_api_requests_token_created', 'api_requests', ['token_id', 'created_at'])

    op.create_table(
        'api_delivery_cursors',
        _id(),
        _fk('client_system_id', 'client_systems'),
        sa.Column('service_type', sa.String(20), nullable=False),
        sa.Column('pending_confirmation', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('total_delivered', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('batch_size', sa.Integer(), nullable=True),
        sa.Column('last_delivered_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_system_id', 'service_type', name='uq_delivery_cursor'),
    )

    op.create_table(
        'client_webhooks',
        _id(),
        _fk('client_system_id', 'client_systems'),
        sa.Column('webhook_url', sa.String(1000), nullable=False),
        sa.Column('secret', sa.String(255), nullable=False),
        sa.Column('events', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('last_triggered_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _criado_em(),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    for tabela in (
        'client_webhooks',
        'api_delivery_cursors',
        'api_requests',
        'security_logs',
        'api_ip_rules',
        'api_tokens',
        'sync_logs',
        'publication_term_matches',
        'publications',
        'client_search_terms',
        'search_terms',
        'distributions',
        'process_parties',
        'process_covers',
        'process_documents',
        'process_movements',
        'client_processes',
        'processes',
        'client_system_services',
        'client_systems',
        'partner_services',
        'partners',
    ):
        op.drop_table(tabela)
