"""
API de dados para sistemas clientes

Toda requisição passa pelo SecurityGate antes de ler dados. Cada cliente só
enxerga o que está vinculado a ele: processos via ``client_processes``,
distribuições pelos termos do cliente e publicações pelos termos casados.
Listagens entregam lotes que o cliente confirma com ``POST ?action=confirm``.
"""
import logging
import time
from datetime import date, datetime, time as dtime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import RedisCache, gerar_chave_detalhe
from ..config import settings
from ..database import get_db
from ..dependencies import get_cache, ip_cliente, token_bearer
from ..errors import ErrorType
from ..models import (
    ApiDeliveryCursor,
    ClientProcess,
    ClientSearchTerm,
    Distribution,
    Process,
    ProcessCover,
    ProcessDocument,
    ProcessMovement,
    ProcessParty,
    Publication,
    PublicationTermMatch,
    SearchTerm,
)
from ..services.security import GateResult, SecurityGate
from ..utils import agora_utc
from .erros import http_error

router = APIRouter()
logger = logging.getLogger(__name__)

INCLUDES_PROCESSO = ("movements", "documents", "parties", "cover")


# --------------- Helpers ---------------

def exigir_acesso(service_type: str):
    """Dependency que roda o gate para o domínio da rota"""
    async def dependencia(request: Request, db: AsyncSession = Depends(get_db)) -> GateResult:
        request.state.inicio = time.monotonic()
        gate = SecurityGate(db)
        return await gate.avaliar(
            token_bearer(request),
            ip_cliente(request),
            request.url.path,
            service_type,
            request.method,
        )
    return dependencia


async def _registrar(db: AsyncSession, request: Request, acesso: GateResult, status_code: int) -> None:
    inicio = getattr(request.state, "inicio", time.monotonic())
    await SecurityGate(db).registrar_requisicao(
        request.url.path,
        request.method,
        status_code,
        acesso.ip,
        acesso.token.id,
        acesso.client_system_id,
        int((time.monotonic() - inicio) * 1000),
    )


async def _falha(db: AsyncSession, request: Request, acesso: GateResult, status_code: int, tipo: ErrorType, mensagem: str) -> HTTPException:
    """Registra a requisição antes do rollback da sessão e monta o erro com os headers de rate limit"""
    await _registrar(db, request, acesso, status_code)
    await db.commit()
    erro = http_error(status_code, tipo, mensagem)
    erro.headers = acesso.headers()
    return erro


def _limite(limit: int) -> int:
    return max(1, min(limit, settings.MAX_PAGE_SIZE))


def _inicio_do_dia(dia: Optional[date]) -> Optional[datetime]:
    return datetime.combine(dia, dtime.min, tzinfo=timezone.utc) if dia else None


def _fim_do_dia(dia: Optional[date]) -> Optional[datetime]:
    return datetime.combine(dia, dtime.max, tzinfo=timezone.utc) if dia else None


async def _cursor(db: AsyncSession, client_system_id: UUID, service_type: str) -> Optional[ApiDeliveryCursor]:
    result = await db.execute(
        select(ApiDeliveryCursor).where(
            ApiDeliveryCursor.client_system_id == client_system_id,
            ApiDeliveryCursor.service_type == service_type,
        )
    )
    return result.scalar_one_or_none()


async def _marcar_entrega(db: AsyncSession, client_system_id: UUID, service_type: str, entregues: int, total_entregue: int) -> None:
    cursor = await _cursor(db, client_system_id, service_type)
    if cursor is None:
        cursor = ApiDeliveryCursor(client_system_id=client_system_id, service_type=service_type)
        db.add(cursor)
    cursor.pending_confirmation = True
    cursor.batch_size = entregues
    cursor.total_delivered = total_entregue
    cursor.last_delivered_at = agora_utc()
    await db.flush()


async def _listar(
    db: AsyncSession,
    request: Request,
    response: Response,
    acesso: GateResult,
    service_type: str,
    query,
    ordem,
    limit: int,
    offset: int,
) -> dict:
    """Paginação com cursor de entrega; lote pendente devolve página vazia"""
    response.headers.update(acesso.headers())

    cursor = await _cursor(db, acesso.client_system_id, service_type)
    if cursor is not None and cursor.pending_confirmation:
        await _registrar(db, request, acesso, 200)
        return {
            "data": [],
            "pagination": {"total": 0, "limit": limit, "offset": offset, "has_more": False},
            "batch": {
                "pending_confirmation": True,
                "message": f"Confirme o lote anterior antes de pedir novos dados: POST {request.url.path}?action=confirm",
                "total_delivered": cursor.total_delivered,
            },
            "rate_limit": acesso.rate_limit.to_dict(),
        }

    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    result = await db.execute(query.order_by(ordem).offset(offset).limit(limit))
    registros = list(result.scalars().all())

    total_entregue = min(offset + limit, total)
    if registros:
        await _marcar_entrega(db, acesso.client_system_id, service_type, len(registros), total_entregue)

    await _registrar(db, request, acesso, 200)
    return {
        "data": [r.to_dict() for r in registros],
        "pagination": {"total": total, "limit": limit, "offset": offset, "has_more": offset + limit < total},
        "batch": {
            "pending_confirmation": bool(registros),
            "records_in_batch": len(registros),
            "total_delivered": total_entregue,
        },
        "rate_limit": acesso.rate_limit.to_dict(),
    }


async def _confirmar_lote(db: AsyncSession, request: Request, response: Response, acesso: GateResult, service_type: str, action: str) -> dict:
    response.headers.update(acesso.headers())
    if action != "confirm":
        raise await _falha(db, request, acesso, 400, ErrorType.VALIDATION_ERROR, f"Ação desconhecida: {action}")

    cursor = await _cursor(db, acesso.client_system_id, service_type)
    if cursor is None or not cursor.pending_confirmation:
        raise await _falha(db, request, acesso, 400, ErrorType.VALIDATION_ERROR, "Nenhum lote pendente")

    cursor.pending_confirmation = False
    cursor.confirmed_at = agora_utc()
    await _registrar(db, request, acesso, 200)
    logger.info(f"Lote de {service_type} confirmado pelo cliente {acesso.client_system_id}")
    return {"message": "Lote confirmado", "total_delivered": cursor.total_delivered}


def _termos_do_cliente(client_system_id: UUID):
    return (
        select(SearchTerm.term)
        .join(ClientSearchTerm, ClientSearchTerm.search_term_id == SearchTerm.id)
        .where(ClientSearchTerm.client_system_id == client_system_id)
    )


async def _detalhe_processo(db: AsyncSession, process: Process, includes: list[str]) -> dict:
    dados = process.to_dict()
    if "movements" in includes:
        result = await db.execute(
            select(ProcessMovement)
            .where(ProcessMovement.process_id == process.id)
            .order_by(ProcessMovement.data_andamento.desc())
        )
        dados["movements"] = [m.to_dict() for m in result.scalars().all()]
    if "documents" in includes:
        # só documentos já gravados no storage
        result = await db.execute(
            select(ProcessDocument).where(
                ProcessDocument.process_id == process.id,
                ProcessDocument.storage_path.is_not(None),
            )
        )
        dados["documents"] = [d.to_dict() for d in result.scalars().all()]
    if "parties" in includes:
        result = await db.execute(select(ProcessParty).where(ProcessParty.process_id == process.id))
        dados["parties"] = [p.to_dict() for p in result.scalars().all()]
    if "cover" in includes:
        result = await db.execute(select(ProcessCover).where(ProcessCover.process_id == process.id))
        capa = result.scalar_one_or_none()
        dados["cover"] = capa.to_dict() if capa else None
    return dados


async def _detalhe_em_cache(cache: RedisCache, chave: str, carregar) -> Optional[dict]:
    em_cache = await cache.get(chave)
    if em_cache is not None:
        return em_cache
    dados = await carregar()
    if dados is not None:
        await cache.set(chave, dados, settings.DETAIL_CACHE_TTL)
    return dados


# --------------- Processos ---------------

@router.get(
    "/processes",
    response_model=dict,
    summary="Listar processos do cliente ou detalhar um processo",
)
async def listar_processos(
    request: Request,
    response: Response,
    id: Optional[UUID] = Query(None, description="Detalhe de um processo"),
    include: Optional[str] = Query(None, description="movements,documents,parties,cover"),
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    numero: Optional[str] = Query(None),
    tribunal: Optional[str] = Query(None),
    instancia: Optional[str] = Query(None),
    status: Optional[int] = Query(None),
    uf: Optional[str] = Query(None),
    acesso: GateResult = Depends(exigir_acesso("processes")),
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
):
    try:
        vinculados = select(ClientProcess.process_id).where(ClientProcess.client_system_id == acesso.client_system_id)

        if id is not None:
            response.headers.update(acesso.headers())
            includes = sorted({i.strip() for i in (include or "").split(",") if i.strip() in INCLUDES_PROCESSO})

            async def carregar():
                result = await db.execute(select(Process).where(Process.id == id, Process.id.in_(vinculados)))
                process = result.scalar_one_or_none()
                return await _detalhe_processo(db, process, includes) if process else None

            chave = gerar_chave_detalhe("processes", acesso.client_system_id, id, ",".join(includes))
            dados = await _detalhe_em_cache(cache, chave, carregar)
            if dados is None:
                raise await _falha(db, request, acesso, 404, ErrorType.NOT_FOUND, "Processo não encontrado ou não vinculado ao cliente")
            await _registrar(db, request, acesso, 200)
            return {"data": dados, "rate_limit": acesso.rate_limit.to_dict()}

        query = select(Process).where(Process.id.in_(vinculados))
        if numero:
            query = query.where(Process.process_number == numero)
        if tribunal:
            query = query.where(Process.tribunal == tribunal)
        if instancia:
            query = query.where(Process.instance == instancia)
        if status is not None:
            query = query.where(Process.status_code == status)
        if uf:
            query = query.where(Process.uf == uf.upper())

        return await _listar(
            db, request, response, acesso, "processes", query, Process.created_at.desc(), _limite(limit), offset,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Erro ao listar processos: {e}")
        raise http_error(500, ErrorType.PROCESSING_ERROR, "Erro ao listar processos", {"error": str(e)})


@router.post("/processes", response_model=dict, summary="Confirmar o lote de processos entregue")
async def confirmar_processos(
    request: Request,
    response: Response,
    action: str = Query(..., description="confirm"),
    acesso: GateResult = Depends(exigir_acesso("processes")),
    db: AsyncSession = Depends(get_db),
):
    return await _confirmar_lote(db, request, response, acesso, "processes", action)


# --------------- Distribuições ---------------

@router.get(
    "/distributions",
    response_model=dict,
    summary="Listar distribuições dos termos do cliente",
)
async def listar_distribuicoes(
    request: Request,
    response: Response,
    id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    termo: Optional[str] = Query(None),
    tribunal: Optional[str] = Query(None),
    data_inicial: Optional[date] = Query(None),
    data_final: Optional[date] = Query(None),
    acesso: GateResult = Depends(exigir_acesso("distributions")),
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
):
    try:
        do_cliente = Distribution.term.in_(_termos_do_cliente(acesso.client_system_id))

        if id is not None:
            response.headers.update(acesso.headers())

            async def carregar():
                result = await db.execute(select(Distribution).where(Distribution.id == id, do_cliente))
                distribuicao = result.scalar_one_or_none()
                return distribuicao.to_dict() if distribuicao else None

            dados = await _detalhe_em_cache(cache, gerar_chave_detalhe("distributions", acesso.client_system_id, id), carregar)
            if dados is None:
                raise await _falha(db, request, acesso, 404, ErrorType.NOT_FOUND, "Distribuição não encontrada")
            await _registrar(db, request, acesso, 200)
            return {"data": dados, "rate_limit": acesso.rate_limit.to_dict()}

        query = select(Distribution).where(do_cliente)
        if termo:
            query = query.where(Distribution.term.ilike(f"%{termo}%"))
        if tribunal:
            query = query.where(Distribution.tribunal == tribunal)
        if data_inicial:
            query = query.where(Distribution.distribution_date >= _inicio_do_dia(data_inicial))
        if data_final:
            query = query.where(Distribution.distribution_date <= _fim_do_dia(data_final))

        return await _listar(
            db, request, response, acesso, "distributions", query, Distribution.distribution_date.desc(), _limite(limit), offset,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Erro ao listar distribuições: {e}")
        raise http_error(500, ErrorType.PROCESSING_ERROR, "Erro ao listar distribuições", {"error": str(e)})


@router.post("/distributions", response_model=dict, summary="Confirmar o lote de distribuições entregue")
async def confirmar_distribuicoes(
    request: Request,
    response: Response,
    action: str = Query(...),
    acesso: GateResult = Depends(exigir_acesso("distributions")),
    db: AsyncSession = Depends(get_db),
):
    return await _confirmar_lote(db, request, response, acesso, "distributions", action)


# --------------- Publicações ---------------

@router.get(
    "/publications",
    response_model=dict,
    summary="Listar publicações que casaram com termos do cliente",
)
async def listar_publicacoes(
    request: Request,
    response: Response,
    id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    termo: Optional[str] = Query(None),
    diario: Optional[str] = Query(None),
    data_inicial: Optional[date] = Query(None),
    data_final: Optional[date] = Query(None),
    acesso: GateResult = Depends(exigir_acesso("publications")),
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
):
    try:
        casadas = (
            select(PublicationTermMatch.publication_id)
            .join(ClientSearchTerm, ClientSearchTerm.search_term_id == PublicationTermMatch.search_term_id)
            .where(ClientSearchTerm.client_system_id == acesso.client_system_id)
        )
        do_cliente = Publication.id.in_(casadas)

        if id is not None:
            response.headers.update(acesso.headers())

            async def carregar():
                result = await db.execute(select(Publication).where(Publication.id == id, do_cliente))
                publicacao = result.scalar_one_or_none()
                return publicacao.to_dict() if publicacao else None

            dados = await _detalhe_em_cache(cache, gerar_chave_detalhe("publications", acesso.client_system_id, id), carregar)
            if dados is None:
                raise await _falha(db, request, acesso, 404, ErrorType.NOT_FOUND, "Publicação não encontrada")
            await _registrar(db, request, acesso, 200)
            return {"data": dados, "rate_limit": acesso.rate_limit.to_dict()}

        query = select(Publication).where(do_cliente)
        if termo:
            query = query.where(
                Publication.id.in_(
                    select(PublicationTermMatch.publication_id)
                    .join(SearchTerm, SearchTerm.id == PublicationTermMatch.search_term_id)
                    .where(SearchTerm.term.ilike(f"%{termo}%"))
                )
            )
        if diario:
            query = query.where(Publication.gazette_name.ilike(f"%{diario}%"))
        if data_inicial:
            query = query.where(Publication.publication_date >= _inicio_do_dia(data_inicial))
        if data_final:
            query = query.where(Publication.publication_date <= _fim_do_dia(data_final))

        return await _listar(
            db, request, response, acesso, "publications", query, Publication.publication_date.desc(), _limite(limit), offset,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Erro ao listar publicações: {e}")
        raise http_error(500, ErrorType.PROCESSING_ERROR, "Erro ao listar publicações", {"error": str(e)})


@router.post("/publications", response_model=dict, summary="Confirmar o lote de publicações entregue")
async def confirmar_publicacoes(
    request: Request,
    response: Response,
    action: str = Query(...),
    acesso: GateResult = Depends(exigir_acesso("publications")),
    db: AsyncSession = Depends(get_db),
):
    return await _confirmar_lote(db, request, response, acesso, "publications", action)
