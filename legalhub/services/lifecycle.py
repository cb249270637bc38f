"""
Máquina de estados do cadastro de processos junto ao parceiro

pending(1) → validating(2) → registered(4), com error(7) e archived(8).
Códigos do parceiro fora da tabela são guardados só para exibição.
"""
import logging
import unicodedata
from enum import Enum, IntEnum
from typing import Optional

from ..errors import InvalidTransitionError
from ..models import Process
from ..normalization import validar_numero_cnj
from ..schemas.parceiro import StatusProcessoParceiro
from ..utils import agora_utc

logger = logging.getLogger(__name__)


class ProcessStatus(IntEnum):
    PENDING = 1
    VALIDATING = 2
    REGISTERED = 4
    ERROR = 7
    ARCHIVED = 8


DESCRICOES_STATUS = {
    ProcessStatus.PENDING: "Pendente",
    ProcessStatus.VALIDATING: "Validando",
    ProcessStatus.REGISTERED: "Cadastrado",
    ProcessStatus.ERROR: "Erro na Validação",
    ProcessStatus.ARCHIVED: "Arquivado",
}

TRANSICOES = {
    ProcessStatus.PENDING: {ProcessStatus.VALIDATING, ProcessStatus.ARCHIVED},
    ProcessStatus.VALIDATING: {ProcessStatus.REGISTERED, ProcessStatus.ERROR, ProcessStatus.ARCHIVED},
    ProcessStatus.REGISTERED: {ProcessStatus.ARCHIVED},
    ProcessStatus.ERROR: {ProcessStatus.VALIDATING, ProcessStatus.ARCHIVED},
    ProcessStatus.ARCHIVED: set(),
}

# codStatus do parceiro → estado local
CODIGOS_PARCEIRO = {
    2: ProcessStatus.VALIDATING,
    4: ProcessStatus.REGISTERED,
    5: ProcessStatus.ARCHIVED,
    7: ProcessStatus.ERROR,
    8: ProcessStatus.ARCHIVED,
}


class ErrorCategory(str, Enum):
    INVALID_INSTANCE = "invalid_instance"
    ALREADY_REGISTERED = "already_registered"
    GENERIC = "generic"


def _sem_acentos(texto: str) -> str:
    decomposto = unicodedata.normalize("NFKD", texto)
    return "".join(c for c in decomposto if not unicodedata.combining(c)).lower()


def classificar_erro(mensagem: Optional[str]) -> ErrorCategory:
    """Classifica a mensagem de rejeição do parceiro"""
    texto = _sem_acentos(mensagem or "")
    if "instancia" in texto:
        return ErrorCategory.INVALID_INSTANCE
    if "ja cadastrad" in texto or "ja existe" in texto or "duplicad" in texto:
        return ErrorCategory.ALREADY_REGISTERED
    return ErrorCategory.GENERIC


def pode_transitar(atual: int, destino: int) -> bool:
    if atual == destino:
        return True
    try:
        return ProcessStatus(destino) in TRANSICOES[ProcessStatus(atual)]
    except (ValueError, KeyError):
        return False


def transitar(process: Process, destino: ProcessStatus, descricao: Optional[str] = None) -> bool:
    """
    Aplica uma transição da tabela.

    Returns:
        True se o status mudou, False para transição para o mesmo estado

    Raises:
        InvalidTransitionError: transição fora da tabela
    """
    atual = process.status_code
    if not pode_transitar(atual, destino):
        raise InvalidTransitionError(atual, int(destino))

    mudou = atual != destino
    process.status_code = int(destino)
    process.status_description = descricao or DESCRICOES_STATUS[destino]
    if destino != ProcessStatus.ERROR:
        process.error_category = None
    process.updated_at = agora_utc()
    if mudou:
        logger.info(f"Processo {process.process_number}: status {atual} -> {int(destino)}")
    return mudou


def submeter_registro(process: Process) -> None:
    """Pedido de cadastro enviado ao parceiro"""
    transitar(process, ProcessStatus.VALIDATING)
    process.solucionare_status = "registered"


def rejeitar(process: Process, mensagem: Optional[str]) -> ErrorCategory:
    categoria = classificar_erro(mensagem)
    transitar(process, ProcessStatus.ERROR, mensagem or DESCRICOES_STATUS[ProcessStatus.ERROR])
    process.error_category = categoria.value
    process.solucionare_status = "error"
    return categoria


def aceita_sincronizacao(process: Process) -> bool:
    """Processos arquivados não recebem mais escrita da sincronização"""
    return process.status_code != ProcessStatus.ARCHIVED


def aplicar_status_parceiro(process: Process, registro: StatusProcessoParceiro) -> bool:
    """
    Aplica o codStatus informado pelo parceiro.

    Returns:
        True se o status local mudou

    Raises:
        InvalidTransitionError: o parceiro pediu uma transição fora da tabela
    """
    if not aceita_sincronizacao(process):
        logger.debug(f"Processo {process.process_number} arquivado; status do parceiro ignorado")
        return False

    destino = CODIGOS_PARCEIRO.get(registro.cod_status)
    # transição recusada não deixa nenhum campo do parceiro aplicado
    if destino is not None and not pode_transitar(process.status_code, destino):
        raise InvalidTransitionError(process.status_code, int(destino))

    process.raw_data = registro.bruto
    process.partner_status_code = registro.cod_status
    if registro.cod_processo:
        process.cod_processo = registro.cod_processo
    if registro.tribunal:
        process.tribunal = registro.tribunal
    if registro.uf:
        process.uf = registro.uf
    if registro.instancia:
        process.instance = registro.instancia

    if destino is None:
        # "outros": só exibição
        process.status_description = registro.mensagem or f"Código {registro.cod_status}"
        return False

    if destino == ProcessStatus.ERROR:
        if process.status_code == ProcessStatus.ERROR:
            return False
        rejeitar(process, registro.mensagem)
        return True

    mudou = transitar(process, destino, registro.descricao_status or DESCRICOES_STATUS[destino])
    if destino == ProcessStatus.REGISTERED:
        process.solucionare_status = "registered"
    return mudou


def alterar_numero(process: Process, novo_numero: str) -> bool:
    """
    Troca o número do processo e força o retorno a "validando".

    Vale para qualquer estado atual: o parceiro precisa validar de novo o
    identificador alterado.

    Returns:
        True se o número mudou
    """
    novo_numero = validar_numero_cnj(novo_numero)
    if novo_numero == process.process_number:
        return False

    antigo = process.process_number
    process.process_number = novo_numero
    process.status_code = int(ProcessStatus.VALIDATING)
    process.status_description = None
    process.error_category = None
    process.partner_status_code = None
    process.solucionare_status = "pending"
    process.cod_processo = None
    process.updated_at = agora_utc()
    logger.info(f"Número do processo alterado: {antigo} -> {novo_numero}; recadastro pendente")
    return True
