"""
Gate de segurança da API de clientes

Ordem fixa das verificações: token → IP → rate limit → direito ao serviço.
Um token bloqueado é negado antes de qualquer outra regra. Toda negação é
auditada em ``security_logs`` e toda requisição entra em ``api_requests``,
que também é a janela deslizante do rate limit.
"""
import ipaddress
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import SecurityDenied
from ..models import ApiRequest, ApiToken, ClientSystemService, IpRule, PartnerService, SecurityLogEntry
from ..normalization import mascarar_token
from ..utils import agora_utc, como_utc

logger = logging.getLogger(__name__)

JANELA_RATE_LIMIT = timedelta(hours=1)


def ip_casa(ip: Optional[str], padrao: str) -> bool:
    """Endereço exato ou dentro do bloco CIDR"""
    if not ip or not padrao:
        return False
    try:
        return ipaddress.ip_address(ip) in ipaddress.ip_network(padrao.strip(), strict=False)
    except ValueError:
        return ip == padrao.strip()


@dataclass
class RateLimitState:
    limit: int
    remaining: int
    reset_at: datetime

    def headers(self) -> dict:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(int(self.reset_at.timestamp())),
        }

    def to_dict(self) -> dict:
        return {"limit": self.limit, "remaining": max(0, self.remaining), "reset_at": self.reset_at.isoformat()}


@dataclass
class GateResult:
    token: ApiToken
    client_system_id: UUID
    rate_limit: RateLimitState
    ip: Optional[str] = None

    def headers(self) -> dict:
        return self.rate_limit.headers()


class SecurityGate:
    def __init__(self, db: AsyncSession, limite_padrao: Optional[int] = None):
        self.db = db
        self.limite_padrao = limite_padrao or settings.RATE_LIMIT_PER_HOUR

    # --------------- Auditoria ---------------

    async def registrar_requisicao(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        ip: Optional[str] = None,
        token_id: Optional[UUID] = None,
        client_system_id: Optional[UUID] = None,
        response_time_ms: Optional[int] = None,
    ) -> None:
        self.db.add(ApiRequest(
            token_id=token_id,
            client_system_id=client_system_id,
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            ip_address=ip,
            response_time_ms=response_time_ms,
        ))
        await self.db.flush()

    async def _negar(
        self,
        reason: str,
        status_code: int,
        message: str,
        ip: Optional[str],
        endpoint: str,
        method: str,
        token: Optional[ApiToken] = None,
        details: Optional[dict] = None,
        headers: Optional[dict] = None,
    ):
        token_id = token.id if token is not None else None
        client_id = token.client_system_id if token is not None else None
        self.db.add(SecurityLogEntry(
            block_reason=reason,
            ip_address=ip,
            token_id=token_id,
            client_system_id=client_id,
            endpoint=endpoint,
            details=details,
        ))
        await self.registrar_requisicao(endpoint, method, status_code, ip, token_id, client_id)
        # a sessão da requisição é desfeita quando a exceção sobe
        await self.db.commit()
        logger.warning(f"[SECURITY] {reason} em {endpoint} (ip={ip})")
        raise SecurityDenied(reason, status_code, message, headers)

    # --------------- Verificações ---------------

    async def _token(self, valor: Optional[str], ip, endpoint, method) -> ApiToken:
        if not valor:
            await self._negar("token_missing", 401, "Token de acesso não informado", ip, endpoint, method)

        result = await self.db.execute(select(ApiToken).where(ApiToken.token == valor))
        token = result.scalar_one_or_none()
        if token is None:
            await self._negar(
                "token_invalid", 401, "Token de acesso inválido", ip, endpoint, method,
                details={"token": mascarar_token(valor)},
            )
        if token.is_blocked:
            await self._negar(
                "token_blocked", 403, "Token bloqueado", ip, endpoint, method, token,
                details={"blocked_reason": token.blocked_reason},
            )
        if not token.is_active:
            await self._negar("token_inactive", 401, "Token inativo", ip, endpoint, method, token)
        if token.expirado(agora_utc()):
            await self._negar("token_expired", 401, "Token expirado", ip, endpoint, method, token)
        return token

    async def _regras_ip(self, client_system_id: UUID) -> list[IpRule]:
        agora = agora_utc()
        result = await self.db.execute(
            select(IpRule).where(
                IpRule.is_active.is_(True),
                or_(IpRule.client_system_id == client_system_id, IpRule.client_system_id.is_(None)),
            )
        )
        return [r for r in result.scalars().all() if r.expires_at is None or como_utc(r.expires_at) > agora]

    async def _ip(self, token: ApiToken, ip: Optional[str], endpoint, method) -> None:
        permitidos = token.allowed_ips or []
        if permitidos and not any(ip_casa(ip, p) for p in permitidos):
            await self._negar(
                "ip_not_whitelisted", 403, "IP não autorizado para este token", ip, endpoint, method, token,
            )

        regras = await self._regras_ip(token.client_system_id)
        do_cliente = [r for r in regras if r.client_system_id is not None and ip_casa(ip, r.ip_address)]
        globais = [r for r in regras if r.client_system_id is None and ip_casa(ip, r.ip_address)]

        # escopo do cliente decide primeiro; dentro do escopo, block vence allow
        for escopo in (do_cliente, globais):
            bloqueio = next((r for r in escopo if r.rule_type == "block"), None)
            if bloqueio is not None:
                await self._negar(
                    "ip_blocked", 403, "IP bloqueado", ip, endpoint, method, token,
                    details={"rule_id": str(bloqueio.id), "reason": bloqueio.reason},
                )
            if any(r.rule_type == "allow" for r in escopo):
                return

    async def _rate_limit(self, token: ApiToken, ip, endpoint, method) -> RateLimitState:
        agora = agora_utc()
        inicio_janela = agora - JANELA_RATE_LIMIT
        limite = token.rate_limit_override or self.limite_padrao

        result = await self.db.execute(
            select(func.count(ApiRequest.id), func.min(ApiRequest.created_at)).where(
                ApiRequest.token_id == token.id,
                ApiRequest.created_at > inicio_janela,
                ApiRequest.status_code != 429,
            )
        )
        usados, mais_antigo = result.one()
        mais_antigo = como_utc(mais_antigo) or agora
        reset_at = mais_antigo + JANELA_RATE_LIMIT

        if usados >= limite:
            retry_after = max(1, math.ceil((reset_at - agora).total_seconds()))
            estado = RateLimitState(limite, 0, reset_at)
            await self._negar(
                "rate_limit", 429, "Limite de requisições excedido", ip, endpoint, method, token,
                details={"limit": limite, "used": usados},
                headers={**estado.headers(), "Retry-After": str(retry_after)},
            )
        return RateLimitState(limite, limite - usados - 1, reset_at)

    async def _servico(self, token: ApiToken, service_type: str, ip, endpoint, method) -> None:
        result = await self.db.execute(
            select(func.count(ClientSystemService.id))
            .join(PartnerService, PartnerService.id == ClientSystemService.partner_service_id)
            .where(
                ClientSystemService.client_system_id == token.client_system_id,
                ClientSystemService.is_active.is_(True),
                PartnerService.is_active.is_(True),
                PartnerService.service_type == service_type,
            )
        )
        if not result.scalar_one():
            await self._negar(
                "service_denied", 403, f"Cliente sem acesso ao serviço {service_type}", ip, endpoint, method, token,
            )

    async def avaliar(
        self,
        token: Optional[str],
        ip: Optional[str],
        endpoint: str,
        service_type: Optional[str] = None,
        method: str = "GET",
    ) -> GateResult:
        """
        Avalia a requisição na ordem token → IP → rate limit → serviço.

        Raises:
            SecurityDenied: com o motivo da primeira verificação que falhou
        """
        api_token = await self._token(token, ip, endpoint, method)
        await self._ip(api_token, ip, endpoint, method)
        estado = await self._rate_limit(api_token, ip, endpoint, method)
        if service_type:
            await self._servico(api_token, service_type, ip, endpoint, method)

        api_token.last_used_at = agora_utc()
        await self.db.flush()
        return GateResult(token=api_token, client_system_id=api_token.client_system_id, rate_limit=estado, ip=ip)
