"""
Orquestração das passadas de sincronização

Para cada serviço ativo dos domínios pedidos: sessão própria, autenticação
única, SyncLog e atualização de ``last_sync_at``. Processos e distribuições
podem rodar em paralelo; publicações rodam sempre por último porque casam o
conteúdo com os termos cadastrados.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..cache import RedisCache, padrao_detalhes
from ..config import settings
from ..errors import NoActiveServicesError, PartnerError
from ..models import PartnerService
from ..partner import PartnerConnector
from ..schemas.sync import SyncDomain, SyncRequest
from ..storage import DocumentStorage
from ..utils import agora_utc, como_utc
from .documentos import DocumentMaterializer
from .sync_distribuicoes import sincronizar_distribuicoes
from .sync_log import SyncLogger
from .sync_processos import DomainPassResult, sincronizar_processos
from .sync_publicacoes import sincronizar_publicacoes
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)

MAX_ERROS = 10

# (db, client, service, **opcoes)
Passada = Callable[..., Awaitable[DomainPassResult]]

PASSADAS: dict[SyncDomain, Passada] = {
    SyncDomain.PROCESSES: sincronizar_processos,
    SyncDomain.DISTRIBUTIONS: sincronizar_distribuicoes,
    SyncDomain.PUBLICATIONS: sincronizar_publicacoes,
}

EVENTOS = {
    SyncDomain.PROCESSES: "process.updated",
    SyncDomain.DISTRIBUTIONS: "distribution.new",
    SyncDomain.PUBLICATIONS: "publication.new",
}


@dataclass
class ServiceResult:
    service_id: str
    service_name: str
    success: bool = False
    records_synced: int = 0
    new_documents: int = 0
    errors: list[str] = field(default_factory=list)
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "service_id": self.service_id,
            "service_name": self.service_name,
            "success": self.success,
            "records_synced": self.records_synced,
            "new_documents": self.new_documents,
            "errors": self.errors[:MAX_ERROS],
            "details": self.details,
        }


@dataclass
class DomainResult:
    domain: SyncDomain
    services: list[ServiceResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def records_synced(self) -> int:
        return sum(s.records_synced for s in self.services)

    @property
    def success(self) -> bool:
        return not self.errors and all(s.success for s in self.services)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "records_synced": self.records_synced,
            "services": [s.to_dict() for s in self.services],
            "errors": self.errors[:MAX_ERROS],
        }


class SyncOrchestrator:
    """
    Executa uma rodada de sincronização.

    Recebe a session factory e o conector já montados (lifespan da API ou
    ``run_sync.py``); nenhum estado sobrevive entre rodadas.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        connector: PartnerConnector,
        http: Optional[httpx.AsyncClient] = None,
        storage: Optional[DocumentStorage] = None,
        cache: Optional[RedisCache] = None,
        min_interval_minutes: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.connector = connector
        self.http = http or connector.http
        self.storage = storage
        self.cache = cache
        self.min_interval = timedelta(
            minutes=min_interval_minutes if min_interval_minutes is not None else settings.MIN_SYNC_INTERVAL_MINUTES
        )

    # --------------- Seleção de serviços ---------------

    async def _servicos(self, pedido: SyncRequest) -> list[PartnerService]:
        if not pedido.services:
            raise NoActiveServicesError("Nenhum domínio de sincronização válido informado")

        async with self.session_factory() as db:
            query = select(PartnerService).where(
                PartnerService.is_active.is_(True),
                PartnerService.service_type.in_([d.value for d in pedido.services]),
            )
            if pedido.service_ids:
                query = query.where(PartnerService.id.in_(pedido.service_ids))
            result = await db.execute(query.order_by(PartnerService.created_at))
            servicos = list(result.scalars().all())

        if not servicos:
            raise NoActiveServicesError("Nenhum serviço ativo para os domínios informados")
        return servicos

    def _recente(self, service: PartnerService, agora) -> bool:
        ultimo = como_utc(service.last_sync_at)
        return ultimo is not None and agora - ultimo < self.min_interval

    # --------------- Passadas ---------------

    async def _passada(
        self, domain: SyncDomain, service_id: UUID, service_name: str, opcoes: Optional[dict] = None,
    ) -> ServiceResult:
        """Um serviço, uma sessão, um SyncLog"""
        resultado = ServiceResult(service_id=str(service_id), service_name=service_name)
        async with self.session_factory() as db:
            service = await db.get(PartnerService, service_id)
            if service is None or not service.is_active:
                resultado.errors.append(f"{service_name}: serviço removido ou desativado antes da passada")
                logger.warning(f"[{domain.value}] {service_name} não está mais ativo; pulando")
                return resultado

            sync_log = SyncLogger(db, f"{domain.value}_sync", service.id)
            log = await sync_log.iniciar()
            await db.commit()

            try:
                client = await self.connector.conectar(service)
                passada = await PASSADAS[domain](db, client, service, **(opcoes or {}))
            except PartnerError as e:
                # o que já foi gravado e confirmado no parceiro fica
                resultado.errors.append(f"{service.service_name}: {e}")
                await sync_log.erro(str(e))
                await db.commit()
                logger.error(f"[{domain.value}] {service.service_name} falhou: {e}")
                return resultado
            except Exception as e:
                await db.rollback()
                await db.refresh(log)
                resultado.errors.append(f"{resultado.service_name}: erro interno: {e}")
                await sync_log.erro(f"Erro interno: {e}")
                await db.commit()
                logger.exception(f"[{domain.value}] erro inesperado em {resultado.service_name}")
                return resultado

            service.last_sync_at = agora_utc()
            await sync_log.sucesso(
                passada.records_synced,
                {"errors": passada.errors[:MAX_ERROS], "details": passada.details},
            )
            await db.commit()

        resultado.success = True
        resultado.records_synced = passada.records_synced
        resultado.new_documents = passada.new_documents
        resultado.errors = list(passada.errors)
        resultado.details = passada.details
        return resultado

    async def _dominio(
        self, domain: SyncDomain, servicos: list[PartnerService], opcoes: Optional[dict] = None,
    ) -> DomainResult:
        resultado = DomainResult(domain=domain)
        for service in servicos:
            try:
                passada = await self._passada(domain, service.id, service.service_name, opcoes)
            except Exception as e:
                # falha fora da passada (sessão, commit do log): só este serviço é perdido
                logger.exception(f"[{domain.value}] {service.service_name} abortado")
                passada = ServiceResult(
                    service_id=str(service.id),
                    service_name=service.service_name,
                    errors=[f"{service.service_name}: erro interno: {e}"],
                )
            resultado.services.append(passada)
            resultado.errors.extend(passada.errors)
        return resultado

    async def _etapa(self, nome: str, etapa: Awaitable[dict]) -> dict:
        """Pós-processamento que falha não derruba o resultado da sincronização"""
        try:
            return await etapa
        except Exception as e:
            logger.exception(f"Etapa {nome} falhou")
            return {"success": False, "error": str(e)}

    # --------------- Pós-processamento ---------------

    async def _materializar(self, batch_size: Optional[int] = None) -> dict:
        if self.storage is None:
            return {"skipped": True, "reason": "Storage não configurado"}
        async with self.session_factory() as db:
            materializer = DocumentMaterializer(db, self.http, self.storage, batch_size)
            resultado = await materializer.executar()
            await db.commit()
        return resultado.to_dict()

    async def _notificar(self, resultados: dict[SyncDomain, DomainResult]) -> dict:
        notificacoes = {}
        async with self.session_factory() as db:
            notifier = WebhookNotifier(db, self.http)
            for domain, resultado in resultados.items():
                if resultado.records_synced <= 0:
                    continue
                notificacoes[domain.value] = await notifier.disparar(
                    EVENTOS[domain],
                    {
                        "records_synced": resultado.records_synced,
                        "services": [s.service_id for s in resultado.services if s.success],
                    },
                )
            await db.commit()
        return notificacoes

    # --------------- Execução ---------------

    async def executar(self, pedido: SyncRequest) -> dict:
        inicio = time.monotonic()
        servicos = await self._servicos(pedido)

        agora = agora_utc()
        if pedido.force:
            elegiveis, pulados = servicos, []
        else:
            elegiveis = [s for s in servicos if not self._recente(s, agora)]
            pulados = [s for s in servicos if self._recente(s, agora)]
        for service in pulados:
            logger.info(f"{service.service_name} sincronizado há menos de {self.min_interval}; pulando")

        por_dominio = {d: [s for s in elegiveis if s.service_type == d.value] for d in pedido.services}
        resultados: dict[SyncDomain, DomainResult] = {}
        erros: list[str] = []

        primeiros = [d for d in (SyncDomain.PROCESSES, SyncDomain.DISTRIBUTIONS) if por_dominio.get(d)]
        if pedido.parallel and len(primeiros) > 1:
            saidas = await asyncio.gather(
                *(self._dominio(d, por_dominio[d]) for d in primeiros),
                return_exceptions=True,
            )
            for domain, saida in zip(primeiros, saidas):
                if isinstance(saida, BaseException):
                    logger.error(f"[{domain.value}] domínio abortado: {saida}")
                    resultados[domain] = DomainResult(domain=domain, errors=[f"{domain.value}: {saida}"])
                else:
                    resultados[domain] = saida
        else:
            for domain in primeiros:
                resultados[domain] = await self._dominio(domain, por_dominio[domain])

        if por_dominio.get(SyncDomain.PUBLICATIONS):
            resultados[SyncDomain.PUBLICATIONS] = await self._dominio(
                SyncDomain.PUBLICATIONS,
                por_dominio[SyncDomain.PUBLICATIONS],
                {"periodo": pedido.periodo} if pedido.periodo else None,
            )

        for resultado in resultados.values():
            erros.extend(resultado.errors)

        saida = {
            "success": not erros,
            "results": {d.value: r.to_dict() for d, r in resultados.items()},
            "errors": erros[:MAX_ERROS],
            "summary": {
                "total_services": len(servicos),
                "synced_services": sum(1 for r in resultados.values() for s in r.services if s.success),
                "skipped_services": len(pulados),
                "total_errors": len(erros),
                "processes_synced": resultados[SyncDomain.PROCESSES].records_synced if SyncDomain.PROCESSES in resultados else 0,
                "distributions_synced": resultados[SyncDomain.DISTRIBUTIONS].records_synced if SyncDomain.DISTRIBUTIONS in resultados else 0,
                "publications_synced": resultados[SyncDomain.PUBLICATIONS].records_synced if SyncDomain.PUBLICATIONS in resultados else 0,
            },
        }

        if pedido.download_documents:
            saida["documents"] = await self._etapa("documents", self._materializar())
        if pedido.notify:
            saida["notifications"] = await self._etapa("notifications", self._notificar(resultados))
        if self.cache is not None:
            for domain, resultado in resultados.items():
                if resultado.records_synced:
                    await self.cache.clear_pattern(padrao_detalhes(domain.value))

        saida["duration_ms"] = int((time.monotonic() - inicio) * 1000)
        logger.info(
            f"Sincronização concluída: {saida['summary']['synced_services']}/{len(servicos)} serviço(s), "
            f"{len(erros)} erro(s) em {saida['duration_ms']}ms"
        )
        return saida
