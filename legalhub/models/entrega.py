"""
Model SQLAlchemy do cursor de entrega por cliente e domínio
"""
from sqlalchemy import Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, UniqueConstraint, Uuid, text
import uuid

from ..database import Base


class ApiDeliveryCursor(Base):
    """
    Lote entregue a um cliente aguardando confirmação.

    Enquanto ``pending_confirmation`` for verdadeiro a listagem não entrega
    dados novos daquele domínio.
    """
    __tablename__ = "api_delivery_cursors"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_system_id = Column(Uuid(as_uuid=True), ForeignKey("client_systems.id", ondelete="CASCADE"), nullable=False)
    service_type = Column(String(20), nullable=False)
    pending_confirmation = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    total_delivered = Column(Integer, nullable=False, default=0, server_default=text("0"))
    batch_size = Column(Integer, nullable=True)
    last_delivered_at = Column(TIMESTAMP(timezone=True), nullable=True)
    confirmed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('client_system_id', 'service_type', name='uq_delivery_cursor'),
    )
