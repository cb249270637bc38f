"""Testes da passada do domínio de processos"""
from unittest.mock import AsyncMock

import orjson
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from legalhub.models import ProcessCover, ProcessDocument, ProcessMovement, ProcessParty
from legalhub.schemas.parceiro import DocumentoParceiro
from legalhub.schemas.sync import SyncRequest
from legalhub.services import sync_processos
from legalhub.services.lifecycle import ProcessStatus
from legalhub.services.orchestrator import SyncOrchestrator
from legalhub.services.sync_processos import gravar_documentos, sincronizar_processos

URL_PUBLICA = "https://storage.test/storage/v1/object/public/process-documents/10/1.pdf"

CAPA = {
    "codProcesso": 10,
    "classe": "Procedimento Comum Cível",
    "assunto": "Indenização por Dano Moral",
    "juiz": "Dra. Maria",
    "valorCausa": 15000.5,
    "dataDistribuicao": "10/01/2024",
    "polos": [
        {
            "codProcessoPolo": 301,
            "nome": "Fulano de Tal",
            "tipoPolo": "Ativo",
            "cpf": "12345678900",
            "advogados": [{"nomeAdvogado": "Beltrana Advogada", "numOAB": 12345, "uf": "SP"}],
        },
        {"codProcessoPolo": 302, "nome": "Empresa S.A.", "tipoPolo": "Passivo"},
    ],
}


def _documento_parceiro(url: str, nome: str = "peticao.pdf") -> DocumentoParceiro:
    return DocumentoParceiro.parse({
        "codDocumento": 1,
        "codProcesso": 10,
        "codAndamento": 5,
        "nomeArquivo": nome,
        "tipoDocumento": "Petição",
        "urlDocumento": url,
    })


class TestPassadaCompleta:

    async def test_status_recadastro_e_capas(self, db, connector, fabrica, parceiro) -> None:
        service = await fabrica.servico("processes", cod_escritorio=55)
        monitorado = await fabrica.processo(
            "1234567-89.2024.8.26.0100",
            cod_processo=10,
            status_code=int(ProcessStatus.VALIDATING),
            solucionare_status="registered",
            partner_service_id=service.id,
        )
        renumerado = await fabrica.processo(
            "7654321-00.2023.8.26.0001",
            status_code=int(ProcessStatus.VALIDATING),
            solucionare_status="pending",
        )
        parceiro.responder("GET", "/BuscaProcessos", json=[{"codProcesso": 10, "codStatus": 4, "tribunal": "TJSP", "uf": "SP"}])
        parceiro.responder("POST", "/CadastraNovoProcesso", json={"codProcesso": 20})
        parceiro.responder("GET", "/BuscaNovosAndamentos", json=[])
        parceiro.responder("GET", "/BuscaNovosDocumentos", json=[])
        parceiro.responder("GET", "/BuscaProcessosComCapaAtualizada", json=[{"codProcesso": 10}])
        parceiro.responder("POST", "/BuscaDadosCapaEStatusVariosProcessos", json=[CAPA])
        parceiro.responder("POST", "/ConfirmaRecebimentoProcessosComCapaAtualizada", json=True)

        client = await connector.conectar(service)
        resultado = await sincronizar_processos(db, client, service)
        await db.commit()

        assert resultado.errors == []
        assert resultado.details["status_updates"] == 1
        assert resultado.details["re_registered"] == 1
        assert resultado.details["covers"]["persisted"] == 1
        assert resultado.records_synced == 1

        assert parceiro.chamadas("/BuscaProcessos")[0].url.params["codEscritorio"] == "55"
        assert monitorado.status_code == ProcessStatus.REGISTERED
        assert monitorado.tribunal == "TJSP"

        corpo = orjson.loads(parceiro.chamadas("/CadastraNovoProcesso")[0].content)
        assert corpo["numProcesso"] == "7654321-00.2023.8.26.0001"
        assert corpo["codEscritorio"] == 55
        assert renumerado.solucionare_status == "registered"
        assert renumerado.cod_processo == 20
        assert renumerado.partner_service_id == service.id

        assert orjson.loads(parceiro.chamadas("/BuscaDadosCapaEStatusVariosProcessos")[0].content) == [10]
        assert orjson.loads(parceiro.chamadas("/ConfirmaRecebimentoProcessosComCapaAtualizada")[0].content) == [10]

        capa = (await db.execute(select(ProcessCover))).scalar_one()
        assert capa.process_id == monitorado.id
        assert capa.classe == "Procedimento Comum Cível"
        assert capa.valor_causa == "15000.5"
        assert capa.is_confirmed is True

        partes = (await db.execute(select(ProcessParty).order_by(ProcessParty.cod_parte))).scalars().all()
        assert [(p.nome, p.tipo_parte, p.documento) for p in partes] == [
            ("Fulano de Tal", "Ativo", "12345678900"),
            ("Empresa S.A.", "Passivo", None),
        ]
        assert partes[0].advogados[0]["nome"] == "Beltrana Advogada"
        assert partes[0].advogados[0]["num_oab"] == "12345"
        assert partes[1].advogados == []

    async def test_sem_capas_atualizadas_nao_busca_dados(self, db, connector, fabrica, parceiro) -> None:
        service = await fabrica.servico("processes")
        parceiro.responder("GET", "/BuscaProcessos", json=[])
        parceiro.responder("GET", "/BuscaNovosAndamentos", json=[])
        parceiro.responder("GET", "/BuscaNovosDocumentos", json=[])
        parceiro.responder("GET", "/BuscaProcessosComCapaAtualizada", json=[])

        client = await connector.conectar(service)
        resultado = await sincronizar_processos(db, client, service)

        assert resultado.errors == []
        assert parceiro.chamadas("/BuscaDadosCapaEStatusVariosProcessos") == []

    async def test_falha_no_status_nao_impede_os_andamentos(self, db, connector, fabrica, parceiro) -> None:
        service = await fabrica.servico("processes")
        parceiro.responder("GET", "/BuscaProcessos", status=500, json={"mensagem": "indisponível"})
        parceiro.responder("GET", "/BuscaNovosAndamentos", json=[{"codAndamento": 1, "codProcesso": 10, "descricao": "Juntada"}])
        parceiro.responder("POST", "/ConfirmaRecebimentoAndamento", json=True)
        parceiro.responder("GET", "/BuscaNovosDocumentos", json=[])
        parceiro.responder("GET", "/BuscaProcessosComCapaAtualizada", json=[])

        client = await connector.conectar(service)
        resultado = await sincronizar_processos(db, client, service)

        assert any(erro.startswith("Status:") for erro in resultado.errors)
        assert resultado.details["movements"]["persisted"] == 1


class TestReentregaDeDocumentos:

    async def test_documento_materializado_mantem_storage(self, db) -> None:
        materializado = ProcessDocument(
            cod_documento=1,
            cod_processo=10,
            nome_arquivo="peticao.pdf",
            documento_url=URL_PUBLICA,
            storage_path="10/1.pdf",
        )
        db.add(materializado)
        await db.commit()

        gravados = await gravar_documentos(db, [_documento_parceiro("https://docs.test/arquivos/1-novo.pdf", "peticao-v2.pdf")])
        await db.commit()
        await db.refresh(materializado)

        assert gravados == [1]
        assert materializado.storage_path == "10/1.pdf"
        assert materializado.documento_url == URL_PUBLICA
        assert materializado.nome_arquivo == "peticao-v2.pdf"

    async def test_documento_pendente_recebe_a_url_nova(self, db) -> None:
        pendente = ProcessDocument(cod_documento=1, cod_processo=10, documento_url="https://docs.test/arquivos/1.pdf")
        db.add(pendente)
        await db.commit()

        await gravar_documentos(db, [_documento_parceiro("https://docs.test/arquivos/1-novo.pdf")])
        await db.commit()
        await db.refresh(pendente)

        assert pendente.storage_path is None
        assert pendente.documento_url == "https://docs.test/arquivos/1-novo.pdf"


class TestConfirmacaoDuravel:

    async def test_andamentos_confirmados_sobrevivem_a_falha_posterior(
        self, session_factory, connector, http, fabrica, parceiro, monkeypatch,
    ) -> None:
        """O parceiro já tirou da fila o que foi confirmado; o registro local precisa ficar"""
        await fabrica.servico("processes")
        parceiro.responder("GET", "/BuscaProcessos", json=[])
        parceiro.responder("GET", "/BuscaNovosAndamentos", json=[
            {"codAndamento": 1, "codProcesso": 10, "descricao": "Juntada"},
            {"codAndamento": 2, "codProcesso": 10, "descricao": "Conclusos"},
        ])
        parceiro.responder("POST", "/ConfirmaRecebimentoAndamento", json=True)
        parceiro.responder("GET", "/BuscaNovosDocumentos", json=[
            {"codDocumento": 7, "codProcesso": 10, "urlDocumento": "https://docs.test/arquivos/7.pdf"},
        ])

        async def gravar_com_falha(db, registros):
            raise OperationalError("INSERT INTO process_documents", {}, Exception("database is locked"))

        monkeypatch.setattr(sync_processos, "gravar_documentos", gravar_com_falha)
        orchestrator = SyncOrchestrator(session_factory, connector, http=http, cache=AsyncMock())

        resultado = await orchestrator.executar(SyncRequest(services=["processes"], parallel=False))

        assert resultado["results"]["processes"]["services"][0]["success"] is False
        assert orjson.loads(parceiro.chamadas("/ConfirmaRecebimentoAndamento")[0].content) == [1, 2]
        assert parceiro.chamadas("/ConfirmaRecebimentoDocumento") == []

        async with session_factory() as db:
            andamentos = (await db.execute(select(ProcessMovement).order_by(ProcessMovement.cod_andamento))).scalars().all()
        assert [(a.cod_andamento, a.is_confirmed) for a in andamentos] == [(1, True), (2, True)]
