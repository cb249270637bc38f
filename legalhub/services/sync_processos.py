"""
Passada de sincronização do domínio "processes" para um serviço

1. atualiza o status de cadastro (BuscaProcessos) pela máquina de estados
2. recadastra processos cujo número foi alterado
3. puxa e confirma andamentos, documentos e capas (com partes e advogados)
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import PartnerAuthError, PartnerError
from ..database import insert_for
from ..models import PartnerService, Process, ProcessCover, ProcessDocument, ProcessMovement, ProcessParty
from ..partner import PartnerClient
from ..schemas.parceiro import AndamentoParceiro, CapaParceiro, DocumentoParceiro
from ..utils import agora_utc
from .confirmacao import ANDAMENTOS, CAPAS, DOCUMENTOS, ConfirmationProtocol
from .lifecycle import ProcessStatus, aceita_sincronizacao
from .processos import aplicar_lote_status, cadastrar_no_parceiro

logger = logging.getLogger(__name__)


@dataclass
class DomainPassResult:
    """Resultado da passada de um serviço em um domínio"""
    records_synced: int = 0
    errors: list[str] = field(default_factory=list)
    details: dict = field(default_factory=dict)
    new_documents: int = 0


async def _processos_por_codigo(db: AsyncSession, codigos: Iterable[int]) -> dict[int, Process]:
    codigos = set(codigos)
    if not codigos:
        return {}
    result = await db.execute(select(Process).where(Process.cod_processo.in_(codigos)))
    return {p.cod_processo: p for p in result.scalars().all()}


def _filtrar_arquivados(registros: list, processos: dict[int, Process]) -> tuple[list, list[int]]:
    """
    Separa registros de processos arquivados. Eles são confirmados para sair
    da fila do parceiro, mas nada é gravado.
    """
    ativos, ignorados = [], []
    for registro in registros:
        process = processos.get(registro.cod_processo)
        if process is not None and not aceita_sincronizacao(process):
            ignorados.append(registro.codigo)
        else:
            ativos.append(registro)
    return ativos, ignorados


async def gravar_andamentos(db: AsyncSession, registros: list[AndamentoParceiro]) -> list[int]:
    processos = await _processos_por_codigo(db, (r.cod_processo for r in registros))
    ativos, ignorados = _filtrar_arquivados(registros, processos)
    if ativos:
        linhas = [
            {
                "id": uuid.uuid4(),
                "cod_andamento": r.cod_andamento,
                "cod_processo": r.cod_processo,
                "process_id": processos[r.cod_processo].id if r.cod_processo in processos else None,
                "data_andamento": r.data_andamento,
                "descricao": r.descricao,
                "tipo": r.tipo,
                "raw_data": r.bruto,
            }
            for r in ativos
        ]
        stmt = insert_for(db, ProcessMovement).values(linhas)
        stmt = stmt.on_conflict_do_update(
            index_elements=["cod_andamento"],
            set_={
                "process_id": stmt.excluded.process_id,
                "data_andamento": stmt.excluded.data_andamento,
                "descricao": stmt.excluded.descricao,
                "tipo": stmt.excluded.tipo,
                "raw_data": stmt.excluded.raw_data,
            },
        )
        await db.execute(stmt)
    return [r.codigo for r in ativos] + ignorados


async def gravar_documentos(db: AsyncSession, registros: list[DocumentoParceiro]) -> list[int]:
    """
    Upsert por (cod_processo, cod_documento). ``storage_path`` nunca é tocado
    e a URL só é trocada enquanto o documento não foi materializado.
    """
    processos = await _processos_por_codigo(db, (r.cod_processo for r in registros))
    ativos, ignorados = _filtrar_arquivados(registros, processos)
    if ativos:
        agora = agora_utc()
        linhas = [
            {
                "id": uuid.uuid4(),
                "cod_documento": r.cod_documento,
                "cod_processo": r.cod_processo,
                "cod_andamento": r.cod_andamento,
                "process_id": processos[r.cod_processo].id if r.cod_processo in processos else None,
                "nome_arquivo": r.nome_arquivo,
                "tipo_documento": r.tipo_documento,
                "documento_url": r.url_documento,
                "created_at": agora,
                "updated_at": agora,
            }
            for r in ativos
        ]
        stmt = insert_for(db, ProcessDocument).values(linhas)
        stmt = stmt.on_conflict_do_update(
            index_elements=["cod_processo", "cod_documento"],
            set_={
                "process_id": stmt.excluded.process_id,
                "cod_andamento": stmt.excluded.cod_andamento,
                "nome_arquivo": stmt.excluded.nome_arquivo,
                "tipo_documento": stmt.excluded.tipo_documento,
                "documento_url": case(
                    (ProcessDocument.storage_path.is_(None), stmt.excluded.documento_url),
                    else_=ProcessDocument.documento_url,
                ),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)
    return [r.codigo for r in ativos] + ignorados


async def gravar_capas(db: AsyncSession, registros: list[CapaParceiro]) -> list[int]:
    processos = await _processos_por_codigo(db, (r.cod_processo for r in registros))
    ativos, ignorados = _filtrar_arquivados(registros, processos)
    for capa in ativos:
        process = processos.get(capa.cod_processo)
        process_id = process.id if process else None

        stmt = insert_for(db, ProcessCover).values(
            id=uuid.uuid4(),
            cod_processo=capa.cod_processo,
            process_id=process_id,
            classe=capa.classe,
            assunto=capa.assunto,
            juiz=capa.juiz,
            valor_causa=capa.valor_causa,
            data_distribuicao=capa.data_distribuicao,
            raw_data=capa.bruto,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["cod_processo"],
            set_={
                "process_id": stmt.excluded.process_id,
                "classe": stmt.excluded.classe,
                "assunto": stmt.excluded.assunto,
                "juiz": stmt.excluded.juiz,
                "valor_causa": stmt.excluded.valor_causa,
                "data_distribuicao": stmt.excluded.data_distribuicao,
                "raw_data": stmt.excluded.raw_data,
            },
        )
        await db.execute(stmt)

        for polo in capa.polos:
            stmt = insert_for(db, ProcessParty).values(
                id=uuid.uuid4(),
                cod_parte=polo.cod_parte,
                cod_processo=capa.cod_processo,
                process_id=process_id,
                nome=polo.nome,
                tipo_parte=polo.tipo_polo,
                documento=polo.documento,
                advogados=[adv.model_dump() for adv in polo.advogados],
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["cod_parte"],
                set_={
                    "process_id": stmt.excluded.process_id,
                    "nome": stmt.excluded.nome,
                    "tipo_parte": stmt.excluded.tipo_parte,
                    "documento": stmt.excluded.documento,
                    "advogados": stmt.excluded.advogados,
                },
            )
            await db.execute(stmt)

    return [c.codigo for c in ativos] + ignorados


async def _recadastrar_pendentes(db: AsyncSession, client: PartnerClient, service: PartnerService) -> tuple[int, list[str]]:
    result = await db.execute(
        select(Process).where(
            Process.solucionare_status == "pending",
            Process.status_code == int(ProcessStatus.VALIDATING),
            (Process.partner_service_id == service.id) | Process.partner_service_id.is_(None),
        )
    )
    enviados, erros = 0, []
    for process in result.scalars().all():
        try:
            if await cadastrar_no_parceiro(client, process, service.cod_escritorio):
                process.partner_service_id = service.id
                enviados += 1
        except PartnerAuthError:
            raise
        except PartnerError as e:
            erros.append(f"Recadastro de {process.process_number}: {e}")
    await db.flush()
    return enviados, erros


async def _buscar_capas(client: PartnerClient, protocolo: ConfirmationProtocol) -> list:
    """Capas atualizadas chegam em duas etapas: códigos, depois os dados"""
    pendentes = await protocolo.puxar(CAPAS)
    codigos = []
    for item in pendentes:
        codigo = item.get("codProcesso") if isinstance(item, dict) else item
        if codigo is not None:
            codigos.append(int(codigo))
    if not codigos:
        return []
    dados = await client.post("/BuscaDadosCapaEStatusVariosProcessos", json=codigos)
    return dados if isinstance(dados, list) else []


async def sincronizar_processos(db: AsyncSession, client: PartnerClient, service: PartnerService) -> DomainPassResult:
    """
    Executa a passada completa. Falhas de um sub-domínio são coletadas e não
    impedem os demais; ``PartnerAuthError`` aborta a passada.
    """
    resultado = DomainPassResult()
    protocolo = ConfirmationProtocol(client, db)

    try:
        dados = await client.get("/BuscaProcessos", params={"codEscritorio": service.cod_escritorio})
        atualizados, erros = await aplicar_lote_status(db, service, dados)
        resultado.details["status_updates"] = atualizados
        resultado.errors.extend(erros)
    except PartnerAuthError:
        raise
    except PartnerError as e:
        resultado.errors.append(f"Status: {e}")

    enviados, erros = await _recadastrar_pendentes(db, client, service)
    resultado.details["re_registered"] = enviados
    resultado.errors.extend(erros)

    for dominio, persistir in ((ANDAMENTOS, gravar_andamentos), (DOCUMENTOS, gravar_documentos)):
        try:
            ciclo = await protocolo.ciclo(dominio, lambda registros, p=persistir: p(db, registros))
        except PartnerAuthError:
            raise
        except PartnerError as e:
            resultado.errors.append(f"{dominio.nome}: {e}")
            continue
        resultado.details[dominio.nome] = ciclo.to_dict()
        resultado.records_synced += ciclo.persisted
        resultado.errors.extend(ciclo.errors)
        if dominio is DOCUMENTOS:
            resultado.new_documents = ciclo.persisted

    try:
        brutos = await _buscar_capas(client, protocolo)
        ciclo = await protocolo.ciclo(CAPAS, lambda registros: gravar_capas(db, registros), brutos=brutos)
        resultado.details[CAPAS.nome] = ciclo.to_dict()
        resultado.records_synced += ciclo.persisted
        resultado.errors.extend(ciclo.errors)
    except PartnerAuthError:
        raise
    except PartnerError as e:
        resultado.errors.append(f"{CAPAS.nome}: {e}")

    await db.flush()
    return resultado
