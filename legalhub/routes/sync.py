"""
Rotas operacionais de sincronização com os parceiros
"""
from typing import Optional
from uuid import UUID
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import RedisCache
from ..database import get_db
from ..dependencies import get_cache, get_connector, get_http_client, get_storage
from ..errors import ErrorType
from ..models import PartnerService
from ..partner import PartnerConnector
from ..schemas.sync import RevertConfirmationsRequest, SyncRequest
from ..services.confirmacao import DOMINIOS, ConfirmationProtocol
from ..services.documentos import DocumentMaterializer
from ..services.orchestrator import SyncOrchestrator
from ..storage import DocumentStorage
from .erros import http_error, traduzir_erro

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/run",
    response_model=dict,
    summary="Executar uma rodada de sincronização",
    description="Chamado pelo agendador externo; cada serviço roda em sessão própria",
)
async def executar_sincronizacao(
    pedido: SyncRequest,
    request: Request,
    connector: PartnerConnector = Depends(get_connector),
    http: httpx.AsyncClient = Depends(get_http_client),
    storage: Optional[DocumentStorage] = Depends(get_storage),
    cache: RedisCache = Depends(get_cache),
):
    try:
        orchestrator = SyncOrchestrator(
            request.app.state.session_factory,
            connector,
            http=http,
            storage=storage,
            cache=cache,
        )
        resultado = await orchestrator.executar(pedido)
        return {"status": "success", "data": resultado}
    except HTTPException:
        raise
    except Exception as e:
        raise traduzir_erro(e, "executar sincronização")


@router.post(
    "/revert-confirmations",
    response_model=dict,
    summary="Reverter confirmações de recebimento",
    description="Envia confirmar=false ao parceiro para que os códigos sejam entregues de novo",
)
async def reverter_confirmacoes(
    pedido: RevertConfirmationsRequest,
    db: AsyncSession = Depends(get_db),
    connector: PartnerConnector = Depends(get_connector),
):
    try:
        service = await db.get(PartnerService, pedido.partner_service_id)
        if service is None or not service.is_active:
            raise http_error(404, ErrorType.NOT_FOUND, "Serviço do parceiro não encontrado ou inativo")

        client = await connector.conectar(service)
        protocolo = ConfirmationProtocol(client, db)
        resultado = await protocolo.reverter(DOMINIOS[pedido.service_type], pedido.codes)
        logger.info(f"Reversão de {pedido.service_type}: {resultado.success}/{resultado.total} código(s)")
        return {"status": "success", "data": resultado.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        raise traduzir_erro(e, "reverter confirmações")


@router.post(
    "/documents",
    response_model=dict,
    summary="Materializar documentos pendentes no storage",
    description="Sem filtros processa o próximo lote; document_id ou process_id restringem o lote",
)
async def materializar_documentos(
    batch_size: Optional[int] = Query(None, ge=1, le=100),
    document_id: Optional[UUID] = Query(None),
    process_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http_client),
    storage: Optional[DocumentStorage] = Depends(get_storage),
):
    try:
        if storage is None:
            raise http_error(503, ErrorType.EXTERNAL_SERVICE_ERROR, "Storage de documentos não configurado")
        materializer = DocumentMaterializer(db, http, storage, batch_size)
        resultado = await materializer.executar(document_id=document_id, process_id=process_id)
        return {"status": "success", "data": resultado.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        raise traduzir_erro(e, "materializar documentos")
