"""
Passada de sincronização do domínio "publications"

Cada publicação é comparada (substring, sem diferenciar maiúsculas) com os
termos ativos; por isso este domínio roda depois dos demais. Com período
informado a passada usa a busca por datas em vez da fila de novas.
"""
import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import insert_for
from ..models import PartnerService, Publication, PublicationTermMatch, SearchTerm
from ..normalization import formatar_numero_cnj
from ..partner import PartnerClient
from ..schemas.parceiro import PublicacaoParceiro, parse_lote
from .confirmacao import PUBLICACOES, ConfirmationProtocol
from .sync_processos import DomainPassResult

logger = logging.getLogger(__name__)

TIPOS_TERMO_PUBLICACAO = ("publications", "name", "office")


async def termos_ativos(db: AsyncSession) -> list[SearchTerm]:
    result = await db.execute(
        select(SearchTerm).where(
            SearchTerm.is_active.is_(True),
            SearchTerm.term_type.in_(TIPOS_TERMO_PUBLICACAO),
        )
    )
    return list(result.scalars().all())


def casar_termos(conteudo: str | None, termos: list[SearchTerm]) -> list[SearchTerm]:
    if not conteudo:
        return []
    texto = conteudo.lower()
    return [t for t in termos if t.term and t.term.lower() in texto]


async def gravar_publicacoes(db: AsyncSession, service: PartnerService, registros: list[PublicacaoParceiro]) -> list[int]:
    termos = await termos_ativos(db)
    gravados = []
    for r in registros:
        casados = casar_termos(r.conteudo, termos)
        stmt = insert_for(db, Publication).values(
            id=uuid.uuid4(),
            partner_service_id=service.id,
            cod_publicacao=r.cod_publicacao,
            gazette_name=r.nome_diario,
            publication_date=r.data_publicacao,
            process_number=formatar_numero_cnj(r.numero_processo) if r.numero_processo else None,
            content=r.conteudo,
            matched_terms=[t.term for t in casados],
            raw_data=r.bruto,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["partner_service_id", "cod_publicacao"],
            set_={
                "gazette_name": stmt.excluded.gazette_name,
                "publication_date": stmt.excluded.publication_date,
                "process_number": stmt.excluded.process_number,
                "content": stmt.excluded.content,
                "matched_terms": stmt.excluded.matched_terms,
                "raw_data": stmt.excluded.raw_data,
            },
        ).returning(Publication.id)
        publication_id = (await db.execute(stmt)).scalar_one()

        if casados:
            match = insert_for(db, PublicationTermMatch).values(
                [{"id": uuid.uuid4(), "publication_id": publication_id, "search_term_id": t.id} for t in casados]
            )
            await db.execute(match.on_conflict_do_nothing(index_elements=["publication_id", "search_term_id"]))
        gravados.append(r.codigo)
    return gravados


async def _buscar_periodo(
    db: AsyncSession, client: PartnerClient, service: PartnerService, inicio: date, fim: date,
) -> DomainPassResult:
    """
    Busca por período: reprocessa publicações já entregues, por isso grava
    (upsert) sem confirmar nada no parceiro.
    """
    dados = await client.get(
        "/BuscaPublicacoesPorPeriodo",
        params={"dataInicio": inicio.isoformat(), "dataFim": fim.isoformat()},
    )
    registros, erros = parse_lote(PublicacaoParceiro, dados)
    gravados = await gravar_publicacoes(db, service, registros) if registros else []
    logger.info(f"Publicações de {inicio} a {fim}: {len(registros)} recebida(s), {len(gravados)} gravada(s)")
    return DomainPassResult(
        records_synced=len(gravados),
        errors=erros,
        details={PUBLICACOES.nome: {
            "mode": "period",
            "start_date": inicio.isoformat(),
            "end_date": fim.isoformat(),
            "pulled": len(registros) + len(erros),
            "persisted": len(gravados),
        }},
    )


async def sincronizar_publicacoes(
    db: AsyncSession,
    client: PartnerClient,
    service: PartnerService,
    periodo: Optional[tuple[date, date]] = None,
) -> DomainPassResult:
    if periodo is not None:
        return await _buscar_periodo(db, client, service, *periodo)

    protocolo = ConfirmationProtocol(client, db)
    ciclo = await protocolo.ciclo(
        PUBLICACOES,
        lambda registros: gravar_publicacoes(db, service, registros),
    )
    return DomainPassResult(
        records_synced=ciclo.persisted,
        errors=list(ciclo.errors),
        details={PUBLICACOES.nome: ciclo.to_dict()},
    )
