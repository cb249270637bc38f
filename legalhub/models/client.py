"""
Models SQLAlchemy para sistemas clientes, vínculos e webhooks
"""
from sqlalchemy import Column, String, Boolean, TIMESTAMP, ForeignKey, UniqueConstraint, Uuid, text
import uuid

from ..database import Base, JSONType
from ..utils import agora_utc


class ClientSystem(Base):
    """Sistema consumidor da API de dados"""
    __tablename__ = "client_systems"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self):
        return f"<ClientSystem(id={self.id}, name={self.name})>"


class ClientSystemService(Base):
    """Direito de acesso (entitlement) de um cliente a um serviço de parceiro"""
    __tablename__ = "client_system_services"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=False)
    partner_service_id = Column(Uuid(as_uuid=True), ForeignKey("partner_services.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))

    __table_args__ = (
        UniqueConstraint('client_system_id', 'partner_service_id', name='uq_client_system_service'),
    )


class ClientProcess(Base):
    __tablename__ = "client_processes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=False)
    process_id = Column(Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint('client_system_id', 'process_id', name='uq_client_process'),
    )


class ClientSearchTerm(Base):
    __tablename__ = "client_search_terms"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=False)
    search_term_id = Column(Uuid(as_uuid=True), ForeignKey("search_terms.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint('client_system_id', 'search_term_id', name='uq_client_search_term'),
    )


class ClientWebhook(Base):
    """Destino de notificações de um cliente, assinado com HMAC-SHA256"""
    __tablename__ = "client_webhooks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=False)
    webhook_url = Column(String(1000), nullable=False)
    secret = Column(String(255), nullable=False)
    events = Column(JSONType, nullable=False, default=list, comment="Categorias assinadas: processes, distributions, publications")
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    last_triggered_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def assina(self, categoria: str) -> bool:
        return categoria in (self.events or [])

    def __repr__(self):
        return f"<ClientWebhook(id={self.id}, url={self.webhook_url})>"
