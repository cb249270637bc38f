"""
Registro das passadas de sincronização em ``sync_logs``
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import SyncLogClosedError
from ..models import SyncLog
from ..utils import agora_utc

logger = logging.getLogger(__name__)


class SyncLogger:
    """
    Abre um SyncLog como ``running`` e o conclui uma única vez com sucesso
    ou erro. Depois de concluído o registro não é mais alterado.
    """

    def __init__(self, db: AsyncSession, sync_type: str, partner_service_id: Optional[UUID] = None):
        self.db = db
        self.sync_type = sync_type
        self.partner_service_id = partner_service_id
        self.log: Optional[SyncLog] = None

    async def iniciar(self, metadata: Optional[dict] = None) -> SyncLog:
        self.log = SyncLog(
            sync_type=self.sync_type,
            partner_service_id=self.partner_service_id,
            status="running",
            records_synced=0,
            metadata_=metadata,
            started_at=agora_utc(),
        )
        self.db.add(self.log)
        await self.db.flush()
        logger.info(f"[{self.sync_type}] iniciado (log={self.log.id})")
        return self.log

    def _verificar_aberto(self) -> SyncLog:
        if self.log is None:
            raise SyncLogClosedError("SyncLog não iniciado")
        if self.log.concluido:
            raise SyncLogClosedError(f"SyncLog {self.log.id} já concluído como {self.log.status}")
        return self.log

    async def sucesso(self, records_synced: int, metadata: Optional[dict] = None) -> SyncLog:
        log = self._verificar_aberto()
        log.status = "success"
        log.records_synced = records_synced
        log.completed_at = agora_utc()
        if metadata is not None:
            log.metadata_ = {**(log.metadata_ or {}), **metadata}
        await self.db.flush()
        logger.info(f"[{self.sync_type}] concluído: {records_synced} registro(s)")
        return log

    async def erro(self, mensagem: str, records_synced: int = 0) -> SyncLog:
        log = self._verificar_aberto()
        log.status = "error"
        log.error_message = mensagem[:2000]
        log.records_synced = records_synced
        log.completed_at = agora_utc()
        await self.db.flush()
        logger.error(f"[{self.sync_type}] falhou: {mensagem}")
        return log
