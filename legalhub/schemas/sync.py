"""
Schemas Pydantic para as rotas de sincronização
"""
import logging
from datetime import date
from enum import Enum
from typing import Any, List, Literal, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class SyncDomain(str, Enum):
    PROCESSES = "processes"
    DISTRIBUTIONS = "distributions"
    PUBLICATIONS = "publications"


DOMINIOS_PADRAO = [SyncDomain.PROCESSES, SyncDomain.DISTRIBUTIONS, SyncDomain.PUBLICATIONS]


class SyncRequest(BaseModel):
    services: List[SyncDomain] = Field(default_factory=lambda: list(DOMINIOS_PADRAO))
    service_ids: Optional[List[UUID]] = Field(None, description="Restringe a passada a estes serviços")
    force: bool = Field(False, description="Ignora o intervalo mínimo entre sincronizações")
    parallel: bool = True
    notify: bool = Field(False, description="Dispara webhooks dos domínios com registros novos")
    download_documents: bool = False
    start_date: Optional[date] = Field(None, description="Publicações: busca por período em vez das novas")
    end_date: Optional[date] = None

    @field_validator("services", mode="before")
    @classmethod
    def descartar_desconhecidos(cls, valor: Any):
        if valor is None:
            return list(DOMINIOS_PADRAO)
        if isinstance(valor, str):
            valor = [valor]
        validos = {d.value for d in SyncDomain}
        aceitos = []
        for nome in valor:
            if nome in validos and nome not in aceitos:
                aceitos.append(nome)
            elif nome not in validos:
                logger.warning(f"Domínio de sincronização desconhecido ignorado: {nome}")
        return aceitos

    @model_validator(mode="after")
    def validar_periodo(self):
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("start_date e end_date devem ser informados juntos")
        if self.start_date and self.start_date > self.end_date:
            raise ValueError("start_date posterior a end_date")
        return self

    @property
    def periodo(self) -> Optional[Tuple[date, date]]:
        if self.start_date is None:
            return None
        return self.start_date, self.end_date


class RevertConfirmationsRequest(BaseModel):
    service_type: Literal["movements", "documents", "covers", "distributions", "publications"]
    partner_service_id: UUID
    codes: List[int] = Field(..., min_length=1)
