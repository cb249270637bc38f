"""
Disparo manual de webhooks dos sistemas clientes
"""
from typing import Any, List, Optional
from uuid import UUID
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_http_client
from ..services.webhooks import WebhookNotifier
from .erros import traduzir_erro

router = APIRouter()
logger = logging.getLogger(__name__)


class WebhookTrigger(BaseModel):
    event: str = Field(..., examples=["publication.new"])
    data: Any = None
    client_ids: Optional[List[UUID]] = None


@router.post(
    "/trigger",
    response_model=dict,
    summary="Disparar um evento para os webhooks inscritos",
)
async def disparar_webhook(
    pedido: WebhookTrigger,
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    try:
        resultado = await WebhookNotifier(db, http).disparar(pedido.event, pedido.data, pedido.client_ids)
        return {"status": "success", "data": resultado}
    except HTTPException:
        raise
    except Exception as e:
        raise traduzir_erro(e, "disparar webhooks")
