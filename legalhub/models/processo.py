"""
Models SQLAlchemy para processos monitorados e seus sub-recursos
(andamentos, documentos, capa e partes)
"""
from sqlalchemy import Column, String, Text, Integer, BigInteger, Boolean, TIMESTAMP, ForeignKey, Index, UniqueConstraint, Uuid, text
import uuid

from ..database import Base, JSONType
from ..utils import agora_utc


class Process(Base):
    """
    Processo monitorado, identificado pelo número CNJ.

    ``status_code`` segue a máquina de estados de cadastro
    (ver ``services.lifecycle``). Códigos do parceiro sem significado conhecido
    ficam apenas em ``partner_status_code`` para exibição.
    """
    __tablename__ = "processes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    process_number = Column(String(25), nullable=False, unique=True, comment="Número CNJ formatado")
    cod_processo = Column(Integer, nullable=True, unique=True, comment="Código do processo no parceiro")
    partner_service_id = Column(Uuid(as_uuid=True), ForeignKey("partner_services.id", ondelete="SET NULL"), nullable=True)
    tribunal = Column(String(50), nullable=True)
    uf = Column(String(2), nullable=True)
    instance = Column(String(10), nullable=True)

    status_code = Column(Integer, nullable=False, default=1, server_default=text("1"))
    status_description = Column(Text, nullable=True)
    error_category = Column(String(30), nullable=True, comment="invalid_instance | already_registered | generic")
    partner_status_code = Column(Integer, nullable=True)
    solucionare_status = Column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
        comment="pending | registered | error: se o parceiro conhece o número atual",
    )
    raw_data = Column(JSONType, nullable=True, comment="Último payload recebido do parceiro")

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index('idx_processes_status', 'status_code'),
        {'comment': 'Processos monitorados junto aos parceiros'},
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "process_number": self.process_number,
            "cod_processo": self.cod_processo,
            "tribunal": self.tribunal,
            "uf": self.uf,
            "instance": self.instance,
            "status_code": self.status_code,
            "status_description": self.status_description,
            "error_category": self.error_category,
            "partner_status_code": self.partner_status_code,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Process(id={self.id}, numero={self.process_number}, status={self.status_code})>"


class ProcessMovement(Base):
    __tablename__ = "process_movements"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cod_andamento = Column(BigInteger, nullable=False, unique=True)
    cod_processo = Column(Integer, nullable=False)
    process_id = Column(Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="CASCADE"), nullable=True)
    data_andamento = Column(TIMESTAMP(timezone=True), nullable=True)
    descricao = Column(Text, nullable=True)
    tipo = Column(String(100), nullable=True)
    raw_data = Column(JSONType, nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index('idx_process_movements_process', 'process_id'),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "cod_andamento": self.cod_andamento,
            "data_andamento": self.data_andamento.isoformat() if self.data_andamento else None,
            "descricao": self.descricao,
            "tipo": self.tipo,
        }


class ProcessDocument(Base):
    """
    Documento de um processo.

    Disponível quando ``storage_path`` está preenchido; expirado quando não há
    nem URL externa nem caminho no storage. ``storage_path`` nunca é limpo pela
    sincronização.
    """
    __tablename__ = "process_documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cod_documento = Column(BigInteger, nullable=False)
    cod_processo = Column(Integer, nullable=False)
    cod_andamento = Column(BigInteger, nullable=True)
    process_id = Column(Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="CASCADE"), nullable=True)
    nome_arquivo = Column(String(500), nullable=True)
    tipo_documento = Column(String(100), nullable=True)
    documento_url = Column(Text, nullable=True, comment="URL externa (pode expirar) ou URL pública do storage")
    storage_path = Column(String(500), nullable=True)
    tamanho_bytes = Column(BigInteger, nullable=True)
    mime_type = Column(String(100), nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint('cod_processo', 'cod_documento', name='uq_process_document_code'),
        Index('idx_process_documents_pending', 'created_at', postgresql_where=text("storage_path IS NULL")),
    )

    @property
    def disponivel(self) -> bool:
        return self.storage_path is not None

    @property
    def expirado(self) -> bool:
        return not self.documento_url and not self.storage_path

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "cod_documento": self.cod_documento,
            "nome_arquivo": self.nome_arquivo,
            "tipo_documento": self.tipo_documento,
            "documento_url": self.documento_url,
            "tamanho_bytes": self.tamanho_bytes,
            "mime_type": self.mime_type,
        }


class ProcessCover(Base):
    """Capa do processo (dados de autuação)"""
    __tablename__ = "process_covers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cod_processo = Column(Integer, nullable=False, unique=True)
    process_id = Column(Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="CASCADE"), nullable=True)
    classe = Column(String(255), nullable=True)
    assunto = Column(Text, nullable=True)
    juiz = Column(String(255), nullable=True)
    valor_causa = Column(String(50), nullable=True)
    data_distribuicao = Column(TIMESTAMP(timezone=True), nullable=True)
    raw_data = Column(JSONType, nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    def to_dict(self) -> dict:
        return {
            "classe": self.classe,
            "assunto": self.assunto,
            "juiz": self.juiz,
            "valor_causa": self.valor_causa,
            "data_distribuicao": self.data_distribuicao.isoformat() if self.data_distribuicao else None,
        }


class ProcessParty(Base):
    __tablename__ = "process_parties"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cod_parte = Column(BigInteger, nullable=False, unique=True)
    cod_processo = Column(Integer, nullable=False)
    process_id = Column(Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="CASCADE"), nullable=True)
    nome = Column(String(500), nullable=False)
    tipo_parte = Column(String(100), nullable=True, comment="Polo: autor, réu, terceiro...")
    documento = Column(String(20), nullable=True)
    advogados = Column(JSONType, nullable=True, default=list)

    def to_dict(self) -> dict:
        return {
            "nome": self.nome,
            "tipo_parte": self.tipo_parte,
            "documento": self.documento,
            "advogados": self.advogados or [],
        }
