"""
Model SQLAlchemy para termos pesquisados (nomes e escritórios)
"""
from sqlalchemy import Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, Index, Uuid, text
import uuid

from ..database import Base
from ..utils import agora_utc


class SearchTerm(Base):
    __tablename__ = "search_terms"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    term = Column(String(255), nullable=False)
    term_type = Column(String(20), nullable=False, comment="name | office | distributions | publications")
    partner_service_id = Column(Uuid(as_uuid=True), ForeignKey("partner_services.id", ondelete="SET NULL"), nullable=True)
    cod_nome = Column(Integer, nullable=True, comment="Código do nome no parceiro")
    cod_escritorio = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    solucionare_status = Column(String(20), nullable=False, default="pending", server_default=text("'pending'"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index('idx_search_terms_type_active', 'term_type', 'is_active'),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "term": self.term,
            "term_type": self.term_type,
            "cod_nome": self.cod_nome,
            "cod_escritorio": self.cod_escritorio,
            "is_active": self.is_active,
            "solucionare_status": self.solucionare_status,
        }

    def __repr__(self):
        return f"<SearchTerm(term={self.term}, type={self.term_type})>"
