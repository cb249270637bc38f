"""
Rotas administrativas do cache de detalhes da API de clientes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..cache import RedisCache
from ..dependencies import get_cache
from ..errors import ErrorType
from .erros import http_error

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/cache/status", summary="Estado do Redis usado no cache de detalhes")
async def cache_status(cache: RedisCache = Depends(get_cache)):
    if not await cache.is_available():
        return {
            "status": "unavailable",
            "connected": False,
            "message": "Redis fora do ar; detalhes são lidos direto do banco",
        }
    return {"status": "ok", "connected": True, "info": await cache.get_info()}


@router.delete("/cache/{pattern}", summary="Invalidar chaves de detalhe por padrão")
async def clear_cache(pattern: str, cache: RedisCache = Depends(get_cache)):
    """
    Remove as chaves que casam com o padrão, ex.: ``detalhe:processes:*``
    ou ``detalhe:*:{client_system_id}:*``.
    """
    try:
        if not await cache.is_available():
            raise http_error(503, ErrorType.EXTERNAL_SERVICE_ERROR, "Redis não está disponível")

        removidas = await cache.clear_pattern(pattern)
        logger.info(f"Invalidação manual do cache: {pattern} ({removidas} chave(s))")
        return {"status": "success", "pattern": pattern, "deleted": removidas}
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(500, ErrorType.PROCESSING_ERROR, "Erro ao limpar cache", {"error": str(e)})
