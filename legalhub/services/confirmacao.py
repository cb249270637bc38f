"""
Protocolo puxar → persistir → confirmar com os parceiros

Cada busca devolve no máximo ``PULL_LIMIT`` registros ainda não confirmados.
Depois de gravados localmente (upsert pelo código do parceiro), os códigos
são confirmados em lotes de ``CONFIRM_CHUNK_SIZE``; a confirmação com
``confirmar=false`` é a reversão, que faz o parceiro entregar os códigos de
novo na próxima busca.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import PartnerAuthError, PartnerError
from ..models import Distribution, ProcessCover, ProcessDocument, ProcessMovement, Publication
from ..partner import PartnerClient
from ..schemas.parceiro import (
    AndamentoParceiro,
    CapaParceiro,
    DistribuicaoParceiro,
    DocumentoParceiro,
    PublicacaoParceiro,
    RegistroParceiro,
    parse_lote,
)

logger = logging.getLogger(__name__)

MAX_ERROS = 10


@dataclass(frozen=True)
class Dominio:
    """Endpoints e tabela local de um tipo de registro entregue pelo parceiro"""
    nome: str
    busca: str
    confirmacao: str
    registro: type[RegistroParceiro]
    modelo: Any
    coluna_codigo: str
    por_servico: bool = False


ANDAMENTOS = Dominio(
    "movements", "/BuscaNovosAndamentos", "/ConfirmaRecebimentoAndamento",
    AndamentoParceiro, ProcessMovement, "cod_andamento",
)
DOCUMENTOS = Dominio(
    "documents", "/BuscaNovosDocumentos", "/ConfirmaRecebimentoDocumento",
    DocumentoParceiro, ProcessDocument, "cod_documento",
)
CAPAS = Dominio(
    "covers", "/BuscaProcessosComCapaAtualizada", "/ConfirmaRecebimentoProcessosComCapaAtualizada",
    CapaParceiro, ProcessCover, "cod_processo",
)
DISTRIBUICOES = Dominio(
    "distributions", "/BuscaNovasDistribuicoes", "/ConfirmaRecebimentoDistribuicoes",
    DistribuicaoParceiro, Distribution, "cod_distribuicao", por_servico=True,
)
PUBLICACOES = Dominio(
    "publications", "/BuscaNovasPublicacoes", "/ConfirmaRecebimentoPublicacoes",
    PublicacaoParceiro, Publication, "cod_publicacao", por_servico=True,
)

DOMINIOS = {d.nome: d for d in (ANDAMENTOS, DOCUMENTOS, CAPAS, DISTRIBUICOES, PUBLICACOES)}


@dataclass
class ConfirmationResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": self.errors[:MAX_ERROS],
        }


@dataclass
class CycleResult:
    dominio: str
    pulled: int = 0
    persisted: int = 0
    confirmation: ConfirmationResult = field(default_factory=ConfirmationResult)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "domain": self.dominio,
            "pulled": self.pulled,
            "persisted": self.persisted,
            "confirmation": self.confirmation.to_dict(),
            "errors": self.errors[:MAX_ERROS],
        }


# recebe os registros válidos e devolve os códigos efetivamente gravados
Persistir = Callable[[list], Awaitable[list[int]]]


def _lotes(codigos: Sequence[int], tamanho: int):
    for inicio in range(0, len(codigos), tamanho):
        yield inicio, codigos[inicio:inicio + tamanho]


class ConfirmationProtocol:
    def __init__(
        self,
        client: PartnerClient,
        db: AsyncSession,
        chunk_size: Optional[int] = None,
        pull_limit: Optional[int] = None,
    ):
        self.client = client
        self.db = db
        self.chunk_size = chunk_size or settings.CONFIRM_CHUNK_SIZE
        self.pull_limit = pull_limit or settings.PULL_LIMIT

    async def puxar(self, dominio: Dominio, params: Optional[dict] = None) -> list:
        dados = await self.client.get(dominio.busca, params=params)
        if dados is None:
            return []
        if isinstance(dados, dict):
            dados = dados.get("data", dados.get("itens", []))
        if not isinstance(dados, list):
            logger.warning(f"{dominio.busca} retornou {type(dados).__name__}; lote ignorado")
            return []
        if len(dados) > self.pull_limit:
            logger.warning(f"{dominio.busca} retornou {len(dados)} registros; usando os {self.pull_limit} primeiros")
            dados = dados[:self.pull_limit]
        return dados

    async def confirmar(self, dominio: Dominio, codigos: Sequence[int], confirmar: bool = True) -> ConfirmationResult:
        """
        Confirma (ou reverte) códigos em lotes isolados.

        A falha de um lote não impede os demais; só os lotes aceitos pelo
        parceiro atualizam ``is_confirmed`` localmente.
        """
        codigos = list(dict.fromkeys(int(c) for c in codigos))
        resultado = ConfirmationResult(total=len(codigos))
        acao = "Confirmando" if confirmar else "Revertendo"

        for inicio, lote in _lotes(codigos, self.chunk_size):
            faixa = f"{inicio + 1}-{inicio + len(lote)}"
            try:
                await self.client.confirmar(dominio.confirmacao, lote, confirmar=confirmar)
            except PartnerAuthError:
                raise
            except PartnerError as e:
                resultado.failed += len(lote)
                resultado.errors.append(f"Lote {faixa}: {e}")
                logger.error(f"{acao} {dominio.nome} lote {faixa}: {e}")
                continue

            resultado.success += len(lote)
            await self._marcar(dominio, lote, confirmar)
            logger.info(f"{acao} {dominio.nome} lote {faixa}: {len(lote)} código(s)")

        return resultado

    async def reverter(self, dominio: Dominio, codigos: Sequence[int]) -> ConfirmationResult:
        return await self.confirmar(dominio, codigos, confirmar=False)

    async def _marcar(self, dominio: Dominio, codigos: list[int], confirmado: bool) -> None:
        coluna = getattr(dominio.modelo, dominio.coluna_codigo)
        stmt = update(dominio.modelo).where(coluna.in_(codigos)).values(is_confirmed=confirmado)
        if dominio.por_servico and self.client.credenciais.service_id is not None:
            stmt = stmt.where(dominio.modelo.partner_service_id == self.client.credenciais.service_id)
        await self.db.execute(stmt.execution_options(synchronize_session=False))
        await self.db.flush()

    async def ciclo(
        self,
        dominio: Dominio,
        persistir: Persistir,
        params: Optional[dict] = None,
        brutos: Optional[list] = None,
    ) -> CycleResult:
        """
        Uma rodada completa: busca (ou usa ``brutos``), valida, grava e confirma.

        Registros inválidos ou não gravados não são confirmados e voltam na
        próxima busca. A transação é commitada antes da confirmação: o parceiro
        tira da fila o que foi confirmado, então o registro local precisa
        sobreviver a qualquer falha posterior da passada.
        """
        resultado = CycleResult(dominio=dominio.nome)
        if brutos is None:
            brutos = await self.puxar(dominio, params=params)
        resultado.pulled = len(brutos)
        if not brutos:
            return resultado

        registros, erros = parse_lote(dominio.registro, brutos)
        resultado.errors.extend(erros)

        gravados = await persistir(registros) if registros else []
        resultado.persisted = len(gravados)

        if gravados:
            await self.db.commit()
            resultado.confirmation = await self.confirmar(dominio, gravados)
            await self.db.commit()
            resultado.errors.extend(resultado.confirmation.errors)

        logger.info(
            f"{dominio.nome}: {resultado.pulled} recebido(s), {resultado.persisted} gravado(s), "
            f"{resultado.confirmation.success} confirmado(s)"
        )
        return resultado
