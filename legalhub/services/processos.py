"""
Gerenciamento do cadastro de processos no parceiro

Ações fechadas (register, delete, status, list, sync, update_number),
validadas na borda por um union discriminado em ``schemas.processo``.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import RedisCache, padrao_detalhes
from ..errors import (
    InvalidTransitionError,
    NoActiveServicesError,
    PartnerAuthError,
    PartnerError,
    PartnerHTTPError,
    UnknownActionError,
)
from ..models import ClientProcess, PartnerService, Process
from ..normalization import formatar_numero_cnj, numero_cnj_valido, validar_numero_cnj
from ..partner import PartnerClient, PartnerConnector, mensagem_parceiro
from ..schemas.parceiro import StatusProcessoParceiro, parse_lote
from ..schemas.processo import (
    CheckProcessStatus,
    DeleteProcess,
    ListPartnerProcesses,
    ProcessResponse,
    RegisterProcess,
    SyncProcessStatuses,
    UpdateProcessNumber,
)
from . import lifecycle
from .lifecycle import ProcessStatus
from .sync_log import SyncLogger

logger = logging.getLogger(__name__)


# --------------- Helpers ---------------

async def buscar_processo(db: AsyncSession, numero: str) -> Optional[Process]:
    result = await db.execute(select(Process).where(Process.process_number == numero))
    return result.scalar_one_or_none()


async def vincular_cliente(db: AsyncSession, process_id: UUID, client_system_id: Optional[UUID]) -> bool:
    if client_system_id is None:
        return False
    existente = await db.execute(
        select(ClientProcess).where(
            ClientProcess.process_id == process_id,
            ClientProcess.client_system_id == client_system_id,
        )
    )
    if existente.scalar_one_or_none():
        return False
    db.add(ClientProcess(process_id=process_id, client_system_id=client_system_id))
    await db.flush()
    return True


async def cadastrar_no_parceiro(client: PartnerClient, process: Process, cod_escritorio: Optional[int]) -> bool:
    """
    Envia ``CadastraNovoProcesso``. Rejeições 4xx do parceiro levam o processo
    para ``error`` com a mensagem classificada.

    Returns:
        True se o parceiro aceitou o pedido
    """
    corpo = {
        "numProcesso": process.process_number,
        "codEscritorio": cod_escritorio,
        "uf": process.uf,
        "instancia": process.instance or "1",
    }
    if process.status_code == ProcessStatus.ERROR or process.status_code == ProcessStatus.PENDING:
        lifecycle.transitar(process, ProcessStatus.VALIDATING)

    try:
        resposta = await client.post("/CadastraNovoProcesso", json=corpo)
    except PartnerAuthError:
        raise
    except PartnerHTTPError as e:
        if 400 <= e.status_code < 500:
            categoria = lifecycle.rejeitar(process, mensagem_parceiro(e))
            logger.warning(f"Cadastro de {process.process_number} rejeitado ({categoria.value}): {e}")
            return False
        raise

    lifecycle.submeter_registro(process)
    if isinstance(resposta, dict):
        codigo = resposta.get("codProcesso") or resposta.get("cod")
        if codigo:
            process.cod_processo = int(codigo)
    return True


async def aplicar_lote_status(db: AsyncSession, service: PartnerService, brutos) -> tuple[int, list[str]]:
    """
    Aplica a lista de BuscaProcessos ao cadastro local. Processos desconhecidos
    com número CNJ válido são importados.
    """
    registros, erros = parse_lote(StatusProcessoParceiro, brutos)
    atualizados = 0
    for registro in registros:
        process = None
        if registro.cod_processo:
            result = await db.execute(select(Process).where(Process.cod_processo == registro.cod_processo))
            process = result.scalar_one_or_none()
        if process is None and registro.numero_processo:
            process = await buscar_processo(db, formatar_numero_cnj(registro.numero_processo))
        if process is None:
            numero = formatar_numero_cnj(registro.numero_processo or "")
            if not numero_cnj_valido(numero):
                erros.append(f"Processo {registro.cod_processo}: número inválido {registro.numero_processo!r}")
                continue
            process = Process(
                process_number=numero,
                partner_service_id=service.id,
                status_code=int(ProcessStatus.VALIDATING),
                solucionare_status="registered",
            )
            db.add(process)

        try:
            if lifecycle.aplicar_status_parceiro(process, registro):
                atualizados += 1
        except InvalidTransitionError as e:
            erros.append(f"Processo {process.process_number}: {e}")

    await db.flush()
    return atualizados, erros


# --------------- Ações ---------------

class ProcessManager:
    def __init__(self, db: AsyncSession, connector: PartnerConnector, cache: Optional[RedisCache] = None):
        self.db = db
        self.connector = connector
        self.cache = cache

    async def _invalidar_detalhes(self) -> None:
        """
        Detalhes de processo em cache (qualquer cliente, qualquer include) ficam
        velhos. Commita antes de limpar para que uma leitura concorrente não
        recoloque no cache a versão anterior.
        """
        if self.cache is not None:
            await self.db.commit()
            await self.cache.clear_pattern(padrao_detalhes("processes"))

    async def executar(self, acao) -> dict:
        handlers = {
            RegisterProcess: self.registrar,
            DeleteProcess: self.excluir,
            CheckProcessStatus: self.consultar_status,
            ListPartnerProcesses: self.listar,
            SyncProcessStatuses: self.sincronizar,
            UpdateProcessNumber: self.alterar_numero,
        }
        handler = handlers.get(type(acao))
        if handler is None:
            raise UnknownActionError(getattr(acao, "action", type(acao).__name__))
        return await handler(acao)

    async def _servico(self, partner_service_id: Optional[UUID]) -> PartnerService:
        query = select(PartnerService).where(
            PartnerService.service_type == "processes",
            PartnerService.is_active.is_(True),
        )
        if partner_service_id is not None:
            query = query.where(PartnerService.id == partner_service_id)
        result = await self.db.execute(query.order_by(PartnerService.created_at).limit(1))
        service = result.scalar_one_or_none()
        if service is None:
            raise NoActiveServicesError("Nenhum serviço de processos ativo")
        return service

    async def registrar(self, acao: RegisterProcess) -> dict:
        # valida antes de qualquer chamada externa
        numero = validar_numero_cnj(acao.process_number)

        existente = await buscar_processo(self.db, numero)
        if existente is not None:
            vinculado = await vincular_cliente(self.db, existente.id, acao.client_system_id)
            return {
                "registered_in_partner": False,
                "linked": vinculado,
                "message": "Processo já monitorado; vínculo com o cliente atualizado",
                "process": ProcessResponse.model_validate(existente),
            }

        service = await self._servico(acao.partner_service_id)
        process = Process(
            process_number=numero,
            partner_service_id=service.id,
            uf=acao.uf,
            instance=acao.instancia,
            tribunal=acao.tribunal,
            status_code=int(ProcessStatus.PENDING),
            solucionare_status="pending",
        )
        self.db.add(process)
        await self.db.flush()

        client = await self.connector.conectar(service)
        aceito = await cadastrar_no_parceiro(client, process, service.cod_escritorio)
        await vincular_cliente(self.db, process.id, acao.client_system_id)
        await self.db.flush()

        return {
            "registered_in_partner": aceito,
            "linked": acao.client_system_id is not None,
            "message": "Processo enviado para validação" if aceito else "Cadastro rejeitado pelo parceiro",
            "process": ProcessResponse.model_validate(process),
        }

    async def excluir(self, acao: DeleteProcess) -> dict:
        numero = validar_numero_cnj(acao.process_number)
        process = await buscar_processo(self.db, numero)
        if process is None:
            raise LookupError(f"Processo não encontrado: {numero}")

        if acao.client_system_id is not None:
            await self.db.execute(
                delete(ClientProcess).where(
                    ClientProcess.process_id == process.id,
                    ClientProcess.client_system_id == acao.client_system_id,
                )
            )
            restantes = await self.db.scalar(
                select(func.count()).select_from(ClientProcess).where(ClientProcess.process_id == process.id)
            )
            if restantes:
                await self._invalidar_detalhes()
                return {"removed_from_partner": False, "remaining_clients": restantes}

        removido = False
        if process.cod_processo:
            service = await self._servico(acao.partner_service_id or process.partner_service_id)
            client = await self.connector.conectar(service)
            await client.delete("/ExcluirProcesso", json={"codProcesso": process.cod_processo})
            removido = True

        lifecycle.transitar(process, ProcessStatus.ARCHIVED, "Excluído")
        await self.db.flush()
        await self._invalidar_detalhes()
        return {"removed_from_partner": removido, "remaining_clients": 0}

    async def consultar_status(self, acao: CheckProcessStatus) -> dict:
        numero = validar_numero_cnj(acao.process_number)
        process = await buscar_processo(self.db, numero)
        if process is None or not process.cod_processo:
            raise LookupError(f"Processo não encontrado ou sem código no parceiro: {numero}")

        service = await self._servico(acao.partner_service_id or process.partner_service_id)
        client = await self.connector.conectar(service)
        dados = await client.get("/BuscaStatusProcesso", params={"codProcesso": process.cod_processo})
        registro = StatusProcessoParceiro.parse(dados)
        mudou = lifecycle.aplicar_status_parceiro(process, registro)
        await self.db.flush()
        if mudou:
            await self._invalidar_detalhes()
        return {"changed": mudou, "process": ProcessResponse.model_validate(process)}

    async def listar(self, acao: ListPartnerProcesses) -> dict:
        service = await self._servico(acao.partner_service_id)
        client = await self.connector.conectar(service)
        dados = await client.get("/BuscaProcessosCadastrados", params={"codEscritorio": service.cod_escritorio})
        processos = dados if isinstance(dados, list) else []
        return {"processes": processos, "count": len(processos)}

    async def sincronizar(self, acao: SyncProcessStatuses) -> dict:
        service = await self._servico(acao.partner_service_id)
        sync_log = SyncLogger(self.db, "process_sync", service.id)
        await sync_log.iniciar()
        try:
            client = await self.connector.conectar(service)
            dados = await client.get("/BuscaProcessos", params={"codEscritorio": service.cod_escritorio})
            atualizados, erros = await aplicar_lote_status(self.db, service, dados)
        except PartnerError as e:
            await sync_log.erro(str(e))
            raise
        await sync_log.sucesso(atualizados, {"errors": erros[:10]})
        if atualizados:
            await self._invalidar_detalhes()
        return {"updated": atualizados, "errors": erros[:10]}

    async def alterar_numero(self, acao: UpdateProcessNumber) -> dict:
        process = await self.db.get(Process, acao.process_id)
        if process is None:
            raise LookupError(f"Processo não encontrado: {acao.process_id}")
        mudou = lifecycle.alterar_numero(process, acao.new_number)
        await self.db.flush()
        if mudou:
            await self._invalidar_detalhes()
        return {"changed": mudou, "process": ProcessResponse.model_validate(process)}
