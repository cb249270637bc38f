"""
Model SQLAlchemy do registro de execuções de sincronização
"""
from sqlalchemy import Column, String, Text, Integer, TIMESTAMP, ForeignKey, Index, Uuid, text
import uuid

from ..database import Base, JSONType
from ..utils import agora_utc


class SyncLog(Base):
    """Uma passada de sincronização. Imutável depois de concluída."""
    __tablename__ = "sync_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sync_type = Column(String(50), nullable=False)
    partner_service_id = Column(Uuid(as_uuid=True), ForeignKey("partner_services.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="pending", server_default=text("'pending'"), comment="pending | running | success | error")
    records_synced = Column(Integer, nullable=False, default=0, server_default=text("0"))
    error_message = Column(Text, nullable=True)
    # "metadata" é reservado no Declarative
    metadata_ = Column("metadata", JSONType, nullable=True)
    started_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_sync_logs_type_started', 'sync_type', 'started_at'),
    )

    @property
    def concluido(self) -> bool:
        return self.status in ("success", "error")

    def __repr__(self):
        return f"<SyncLog(id={self.id}, type={self.sync_type}, status={self.status})>"
