"""
Models SQLAlchemy do controle de acesso da API de clientes
"""
from sqlalchemy import Column, String, Text, Integer, Boolean, TIMESTAMP, ForeignKey, Index, Uuid, text
import uuid

from ..database import Base, JSONType
from ..utils import agora_utc, como_utc


class ApiToken(Base):
    """
    Credencial bearer de um sistema cliente.

    ``is_blocked`` nega o acesso incondicionalmente, antes de qualquer outra
    verificação.
    """
    __tablename__ = "api_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token = Column(String(255), nullable=False, unique=True)
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    is_blocked = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    blocked_reason = Column(Text, nullable=True)
    blocked_at = Column(TIMESTAMP(timezone=True), nullable=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    rate_limit_override = Column(Integer, nullable=True, comment="Requisições/hora; NULL usa o padrão do sistema")
    allowed_ips = Column(JSONType, nullable=True, default=list)
    last_used_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def expirado(self, agora) -> bool:
        return self.expires_at is not None and como_utc(self.expires_at) <= agora

    def bloquear(self, motivo: str) -> None:
        self.is_blocked = True
        self.blocked_reason = motivo
        self.blocked_at = agora_utc()

    def __repr__(self):
        return f"<ApiToken(id={self.id}, client={self.client_system_id}, blocked={self.is_blocked})>"


class IpRule(Base):
    """Regra de IP (endereço ou CIDR). Sem ``client_system_id`` vale para todos."""
    __tablename__ = "api_ip_rules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ip_address = Column(String(64), nullable=False)
    rule_type = Column(String(10), nullable=False, comment="block | allow")
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=True)
    reason = Column(Text, nullable=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class SecurityLogEntry(Base):
    """Auditoria (somente inserção) de requisições negadas"""
    __tablename__ = "security_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    block_reason = Column(String(50), nullable=False)
    ip_address = Column(String(64), nullable=True)
    token_id = Column(Uuid(as_uuid=True), nullable=True)
    client_system_id = Column(Uuid(as_uuid=True), nullable=True)
    endpoint = Column(String(255), nullable=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index('idx_security_logs_created', 'created_at'),
    )


class ApiRequest(Base):
    """
    Uma linha por requisição à API de clientes. Também é a janela deslizante
    do rate limit (contagem por token na última hora).
    """
    __tablename__ = "api_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token_id = Column(Uuid(as_uuid=True), nullable=True)
    client_system_id = Column(Uuid(as_uuid=True), nullable=True)
    endpoint = Column(String(255), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index('idx_api_requests_token_created', 'token_id', 'created_at'),
    )
