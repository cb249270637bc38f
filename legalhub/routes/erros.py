"""
Tradução das exceções de domínio para HTTPException com ErrorDetail
"""
import logging
from typing import Optional

from fastapi import HTTPException

from ..errors import (
    ErrorDetail,
    ErrorType,
    InvalidProcessNumberError,
    InvalidTransitionError,
    NoActiveServicesError,
    PartnerAuthError,
    PartnerError,
    UnknownActionError,
    UnknownEventError,
)

logger = logging.getLogger(__name__)


def http_error(status_code: int, tipo: ErrorType, mensagem: str, details: Optional[dict] = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(type=tipo, message=mensagem, details=details).model_dump(mode="json"),
    )


def traduzir_erro(e: Exception, contexto: str) -> HTTPException:
    """HTTPException adequada para uma exceção de domínio; o resto vira 500"""
    if isinstance(e, (InvalidProcessNumberError, UnknownActionError, UnknownEventError)):
        return http_error(400, ErrorType.VALIDATION_ERROR, str(e))
    if isinstance(e, InvalidTransitionError):
        return http_error(409, ErrorType.VALIDATION_ERROR, str(e), {"current": e.atual, "target": e.destino})
    if isinstance(e, NoActiveServicesError):
        return http_error(404, ErrorType.NOT_FOUND, str(e) or "Nenhum serviço ativo")
    if isinstance(e, LookupError):
        return http_error(404, ErrorType.NOT_FOUND, str(e))
    if isinstance(e, PartnerAuthError):
        return http_error(502, ErrorType.AUTHENTICATION_ERROR, "Parceiro recusou as credenciais", {"error": str(e)})
    if isinstance(e, PartnerError):
        return http_error(502, ErrorType.EXTERNAL_SERVICE_ERROR, "Falha na comunicação com o parceiro", {"error": str(e)})

    logger.error(f"Erro ao {contexto}: {e}", exc_info=True)
    return http_error(500, ErrorType.PROCESSING_ERROR, f"Erro ao {contexto}", {"error": str(e)})
