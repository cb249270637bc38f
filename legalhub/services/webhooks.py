"""
Notificação de sistemas clientes por webhook

O corpo é serializado uma única vez e assinado com HMAC-SHA256 (hex) no
header ``X-Webhook-Signature``. Uma tentativa por webhook, sem reenvio.
"""
import asyncio
import hashlib
import hmac
import logging
from typing import Any, Iterable, Optional
from uuid import UUID

import httpx
import orjson
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import UnknownEventError
from ..models import ClientWebhook
from ..utils import agora_utc

logger = logging.getLogger(__name__)

# substring do evento → categoria assinada
CATEGORIAS_EVENTO = (
    ("process", "processes"),
    ("distribution", "distributions"),
    ("publication", "publications"),
)


def categoria_do_evento(evento: str) -> str:
    """
    Raises:
        UnknownEventError: evento sem categoria conhecida
    """
    for trecho, categoria in CATEGORIAS_EVENTO:
        if trecho in evento:
            return categoria
    raise UnknownEventError(evento)


def assinar(secret: str, corpo: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), corpo, hashlib.sha256).hexdigest()


def verificar_assinatura(secret: str, corpo: bytes, assinatura: Optional[str]) -> bool:
    """Para o lado receptor: recalcula o HMAC sobre os bytes recebidos"""
    if not assinatura:
        return False
    return hmac.compare_digest(assinar(secret, corpo), assinatura)


class WebhookNotifier:
    def __init__(self, db: AsyncSession, http: httpx.AsyncClient):
        self.db = db
        self.http = http

    async def destinos(self, categoria: str, client_ids: Optional[Iterable[UUID]] = None) -> list[ClientWebhook]:
        query = select(ClientWebhook).where(ClientWebhook.is_active.is_(True))
        if client_ids:
            query = query.where(ClientWebhook.client_system_id.in_(list(client_ids)))
        result = await self.db.execute(query)
        # filtro em Python: events é JSON e o operador de contém muda por dialeto
        return [w for w in result.scalars().all() if w.assina(categoria)]

    async def _entregar(self, webhook: ClientWebhook, corpo: bytes) -> dict:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": settings.WEBHOOK_USER_AGENT,
            "X-Webhook-Signature": assinar(webhook.secret, corpo),
        }
        try:
            response = await self.http.post(
                webhook.webhook_url,
                content=corpo,
                headers=headers,
                timeout=settings.WEBHOOK_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Webhook {webhook.id} ({webhook.webhook_url}) falhou: {e}")
            return {"webhook_id": str(webhook.id), "success": False, "status": None, "error": str(e)}

        return {
            "webhook_id": str(webhook.id),
            "success": response.is_success,
            "status": response.status_code,
        }

    async def disparar(self, evento: str, dados: Any, client_ids: Optional[Iterable[UUID]] = None) -> dict:
        """
        Entrega o evento a todos os webhooks ativos que assinam a categoria.

        Returns:
            {sent, total, results[{webhook_id, success, status}]}
        """
        categoria = categoria_do_evento(evento)
        webhooks = await self.destinos(categoria, client_ids)
        if not webhooks:
            return {"sent": 0, "total": 0, "results": []}

        corpo = orjson.dumps({"event": evento, "data": dados, "timestamp": agora_utc().isoformat()})
        resultados = await asyncio.gather(*(self._entregar(w, corpo) for w in webhooks))

        agora = agora_utc()
        por_id = {str(w.id): w for w in webhooks}
        for resultado in resultados:
            if resultado["success"]:
                por_id[resultado["webhook_id"]].last_triggered_at = agora
        await self.db.flush()

        enviados = sum(1 for r in resultados if r["success"])
        logger.info(f"Evento {evento}: {enviados}/{len(webhooks)} webhook(s) entregue(s)")
        return {"sent": enviados, "total": len(webhooks), "results": list(resultados)}
