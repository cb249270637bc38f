"""
Models SQLAlchemy para publicações em diários oficiais
"""
from sqlalchemy import Column, String, Text, BigInteger, Boolean, TIMESTAMP, ForeignKey, Index, UniqueConstraint, Uuid, text
import uuid

from ..database import Base, JSONType
from ..utils import agora_utc


class Publication(Base):
    __tablename__ = "publications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    partner_service_id = Column(Uuid(as_uuid=True), ForeignKey("partner_services.id", ondelete="CASCADE"), nullable=False)
    cod_publicacao = Column(BigInteger, nullable=False)
    gazette_name = Column(String(255), nullable=True, comment="Nome do diário")
    publication_date = Column(TIMESTAMP(timezone=True), nullable=True)
    process_number = Column(String(25), nullable=True)
    content = Column(Text, nullable=True)
    matched_terms = Column(JSONType, nullable=False, default=list)
    raw_data = Column(JSONType, nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=agora_utc,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint('partner_service_id', 'cod_publicacao', name='uq_publication_code'),
        Index('idx_publications_date', 'publication_date'),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "cod_publicacao": self.cod_publicacao,
            "gazette_name": self.gazette_name,
            "publication_date": self.publication_date.isoformat() if self.publication_date else None,
            "process_number": self.process_number,
            "content": self.content,
            "matched_terms": self.matched_terms or [],
        }


class PublicationTermMatch(Base):
    """Vínculo publicação ↔ termo pesquisado que casou com o conteúdo"""
    __tablename__ = "publication_term_matches"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    publication_id = Column(Uuid(as_uuid=True), ForeignKey("publications.id", ondelete="CASCADE"), nullable=False)
    search_term_id = Column(Uuid(as_uuid=True), ForeignKey("search_terms.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint('publication_id', 'search_term_id', name='uq_publication_term_match'),
    )
