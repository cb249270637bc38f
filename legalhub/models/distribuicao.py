"""
Model SQLAlchemy para distribuições de novos processos
"""
from sqlalchemy import Column, String, BigInteger, Boolean, TIMESTAMP, ForeignKey, Index, UniqueConstraint, Uuid, text
import uuid

from ..database import Base, JSONType
from ..utils import agora_utc


class Distribution(Base):
    __tablename__ = "distributions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    partner_service_id = Column(Uuid(as_uuid=True), ForeignKey("partner_services.id", ondelete="CASCADE"), nullable=False)
    cod_distribuicao = Column(BigInteger, nullable=False)
    term = Column(String(255), nullable=True, comment="Nome pesquisado que gerou a distribuição")
    process_number = Column(String(25), nullable=True)
    tribunal = Column(String(50), nullable=True)
    orgao_julgador = Column(String(255), nullable=True)
    distribution_date = Column(TIMESTAMP(timezone=True), nullable=True)
    raw_data = Column(JSONType, nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint('partner_service_id', 'cod_distribuicao', name='uq_distribution_code'),
        Index('idx_distributions_term', 'term'),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "cod_distribuicao": self.cod_distribuicao,
            "term": self.term,
            "process_number": self.process_number,
            "tribunal": self.tribunal,
            "orgao_julgador": self.orgao_julgador,
            "distribution_date": self.distribution_date.isoformat() if self.distribution_date else None,
        }

    def __repr__(self):
        return f"<Distribution(cod={self.cod_distribuicao}, term={self.term})>"
