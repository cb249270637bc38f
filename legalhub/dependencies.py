"""
Dependencies FastAPI para os recursos criados no lifespan (``app.state``)
"""
from typing import Optional

import httpx
from fastapi import Request

from .cache import RedisCache
from .crypto import SecretCipher
from .partner import PartnerConnector
from .storage import DocumentStorage


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_cache(request: Request) -> RedisCache:
    return request.app.state.cache


def get_storage(request: Request) -> Optional[DocumentStorage]:
    return getattr(request.app.state, "storage", None)


def get_connector(request: Request) -> PartnerConnector:
    """Conector novo por requisição: cada uso autentica no parceiro de novo"""
    cipher: SecretCipher = request.app.state.cipher
    return PartnerConnector(request.app.state.http, cipher)


def ip_cliente(request: Request) -> Optional[str]:
    """Primeiro IP de X-Forwarded-For (atrás do proxy) ou o peer da conexão"""
    encaminhado = request.headers.get("x-forwarded-for")
    if encaminhado:
        return encaminhado.split(",")[0].strip()
    real = request.headers.get("x-real-ip")
    if real:
        return real.strip()
    return request.client.host if request.client else None


def token_bearer(request: Request) -> Optional[str]:
    autorizacao = request.headers.get("authorization", "")
    if autorizacao.lower().startswith("bearer "):
        return autorizacao[7:].strip() or None
    return request.headers.get("x-api-key") or None
