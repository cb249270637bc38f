"""
Passada de sincronização do domínio "distributions"
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import insert_for
from ..models import Distribution, PartnerService
from ..partner import PartnerClient
from ..schemas.parceiro import DistribuicaoParceiro
from ..normalization import formatar_numero_cnj
from .confirmacao import DISTRIBUICOES, ConfirmationProtocol
from .sync_processos import DomainPassResult

logger = logging.getLogger(__name__)


async def gravar_distribuicoes(db: AsyncSession, service: PartnerService, registros: list[DistribuicaoParceiro]) -> list[int]:
    linhas = [
        {
            "id": uuid.uuid4(),
            "partner_service_id": service.id,
            "cod_distribuicao": r.cod_distribuicao,
            "term": r.termo,
            "process_number": formatar_numero_cnj(r.numero_processo) if r.numero_processo else None,
            "tribunal": r.tribunal,
            "orgao_julgador": r.orgao_julgador,
            "distribution_date": r.data_distribuicao,
            "raw_data": r.bruto,
        }
        for r in registros
    ]
    stmt = insert_for(db, Distribution).values(linhas)
    stmt = stmt.on_conflict_do_update(
        index_elements=["partner_service_id", "cod_distribuicao"],
        set_={
            "term": stmt.excluded.term,
            "process_number": stmt.excluded.process_number,
            "tribunal": stmt.excluded.tribunal,
            "orgao_julgador": stmt.excluded.orgao_julgador,
            "distribution_date": stmt.excluded.distribution_date,
            "raw_data": stmt.excluded.raw_data,
        },
    )
    await db.execute(stmt)
    return [r.codigo for r in registros]


async def sincronizar_distribuicoes(db: AsyncSession, client: PartnerClient, service: PartnerService) -> DomainPassResult:
    protocolo = ConfirmationProtocol(client, db)
    params = {"codEscritorio": service.cod_escritorio} if service.cod_escritorio else None
    ciclo = await protocolo.ciclo(
        DISTRIBUICOES,
        lambda registros: gravar_distribuicoes(db, service, registros),
        params=params,
    )
    return DomainPassResult(
        records_synced=ciclo.persisted,
        errors=list(ciclo.errors),
        details={DISTRIBUICOES.nome: ciclo.to_dict()},
    )
