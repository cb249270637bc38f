"""
Tipos de erro da aplicação

``ErrorType``/``ErrorDetail`` formam o corpo padrão de erro da API; as
exceções abaixo cobrem a taxonomia de falhas da sincronização com parceiros
(autenticação, transporte, dados) e as negações do gate de segurança.
"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ErrorType(str, Enum):
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    PROCESSING_ERROR = "processing_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"
    DATABASE_ERROR = "database_error"


class ErrorDetail(BaseModel):
    type: ErrorType
    message: str
    details: Optional[dict[str, Any]] = None


class PartnerError(Exception):
    """Falha ao conversar com um parceiro"""


class PartnerAuthError(PartnerError):
    """Credenciais do parceiro inválidas ou expiradas; aborta a passada do serviço"""


class PartnerHTTPError(PartnerError):
    """Resposta não-2xx do parceiro"""

    def __init__(self, status_code: int, body: str, url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"HTTP {status_code}: {body[:500]}")


class PartnerTransportError(PartnerError):
    """Erro de rede ou timeout"""


class PartnerDataError(PartnerError):
    """Payload do parceiro malformado ou inesperado"""


class InvalidProcessNumberError(ValueError):
    def __init__(self, numero: str):
        self.numero = numero
        super().__init__(f"Número de processo fora do padrão CNJ: {numero!r}")


class InvalidTransitionError(Exception):
    def __init__(self, atual: int, destino: int):
        self.atual = atual
        self.destino = destino
        super().__init__(f"Transição de status inválida: {atual} -> {destino}")


class UnknownActionError(ValueError):
    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Ação desconhecida: {action}")


class UnknownEventError(ValueError):
    def __init__(self, event: str):
        self.event = event
        super().__init__(f"Evento sem categoria conhecida: {event}")


class NoActiveServicesError(Exception):
    """Nenhum serviço ativo para sincronizar"""


class SyncLogClosedError(Exception):
    """Tentativa de alterar um log de sincronização já concluído"""


class SecurityDenied(Exception):
    """Requisição negada pelo gate de segurança"""

    def __init__(self, reason: str, status_code: int, message: str, headers: Optional[dict] = None):
        self.reason = reason
        self.status_code = status_code
        self.message = message
        self.headers = headers or {}
        super().__init__(f"{reason}: {message}")

    def to_detail(self) -> ErrorDetail:
        if self.status_code == 429:
            error_type = ErrorType.RATE_LIMIT_ERROR
        elif self.status_code == 401:
            error_type = ErrorType.AUTHENTICATION_ERROR
        else:
            error_type = ErrorType.AUTHORIZATION_ERROR
        return ErrorDetail(type=error_type, message=self.message, details={"reason": self.reason})
