"""
Models SQLAlchemy para parceiros e seus serviços
"""
from sqlalchemy import Column, String, Boolean, Integer, TIMESTAMP, ForeignKey, Index, Uuid, text
import uuid

from ..database import Base
from ..utils import agora_utc


SERVICE_TYPES = ("processes", "distributions", "publications", "terms")


class Partner(Base):
    """Provedor externo de dados de tribunais"""
    __tablename__ = "partners"

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
        return f"<Partner(id={self.id}, name={self.name})>"


class PartnerService(Base):
    """
    Um endpoint de parceiro (URL base + credenciais) de um tipo de serviço.

    O token estático fica cifrado com Fernet; as credenciais só mudam por
    reconfiguração explícita.
    """
    __tablename__ = "partner_services"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    partner_id = Column(Uuid(as_uuid=True), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False)
    service_name = Column(String(200), nullable=False)
    service_type = Column(String(20), nullable=False, comment="processes | distributions | publications | terms")
    service_url = Column(String(500), nullable=False)
    nome_relacional = Column(String(200), nullable=False)
    token_encrypted = Column(String(1000), nullable=False)
    cod_escritorio = Column(Integer, nullable=True, comment="Código do escritório no parceiro")
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    last_sync_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index('idx_partner_services_type_active', 'service_type', 'is_active'),
        {'comment': 'Serviços de parceiros (SOAP/REST) sincronizados pelo orquestrador'},
    )

    def __repr__(self):
        return f"<PartnerService(id={self.id}, type={self.service_type}, name={self.service_name})>"
