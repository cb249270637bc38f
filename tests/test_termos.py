"""Testes do gerenciamento de nomes e escritórios no parceiro"""
import httpx
import orjson
import pytest
from sqlalchemy import select

from legalhub.errors import NoActiveServicesError
from legalhub.models import ClientSearchTerm, SearchTerm
from legalhub.schemas.termo import (
    ActivateOffice,
    DeleteName,
    DeletePublicationTerm,
    ListNames,
    ListPublicationTerms,
    RegisterName,
    RegisterPublicationTerm,
    UpdatePublicationTerm,
)
from legalhub.services.termos import TermManager


@pytest.fixture
def manager(db, connector) -> TermManager:
    return TermManager(db, connector)


class TestNomes:

    async def test_cadastrar_nome(self, manager, db, fabrica, parceiro) -> None:
        await fabrica.servico("distributions", cod_escritorio=55)
        cliente = await fabrica.cliente()
        parceiro.responder("POST", "/CadastrarNome", json={"codNome": 321})

        resultado = await manager.executar(RegisterName(
            action="register", nome="Fulano de Tal", abrangencias=["SP"], client_system_id=cliente.id,
        ))

        assert resultado["registered_in_partner"] is True
        assert resultado["linked"] is True
        corpo = orjson.loads(parceiro.chamadas("/CadastrarNome")[0].content)
        assert corpo == {
            "codEscritorio": 55,
            "nome": "Fulano de Tal",
            "codTipoConsulta": 1,
            "listInstancias": [1],
            "listAbrangencias": ["SP"],
        }
        termo = (await db.execute(select(SearchTerm))).scalar_one()
        assert (termo.cod_nome, termo.solucionare_status) == (321, "synced")

    async def test_nome_ja_cadastrado_so_vincula(self, manager, db, fabrica, parceiro) -> None:
        service = await fabrica.servico("distributions")
        cliente = await fabrica.cliente()
        await fabrica.termo("Fulano de Tal", partner_service_id=service.id, cod_nome=321)

        resultado = await manager.executar(RegisterName(action="register", nome="Fulano de Tal", client_system_id=cliente.id))

        assert resultado["registered_in_partner"] is False
        assert resultado["linked"] is True
        assert parceiro.chamadas("/CadastrarNome") == []
        vinculos = (await db.execute(select(ClientSearchTerm))).scalars().all()
        assert len(vinculos) == 1

    async def test_exclusao_espera_o_ultimo_cliente(self, manager, db, fabrica, parceiro) -> None:
        service = await fabrica.servico("distributions")
        cliente_a = await fabrica.cliente("Cliente A")
        cliente_b = await fabrica.cliente("Cliente B")
        termo = await fabrica.termo("Fulano de Tal", cliente_a, partner_service_id=service.id, cod_nome=321)
        db.add(ClientSearchTerm(client_system_id=cliente_b.id, search_term_id=termo.id))
        await db.commit()
        parceiro.responder("DELETE", "/ExcluirNome", json=True)

        primeira = await manager.executar(DeleteName(action="delete", cod_nome=321, client_system_id=cliente_a.id))

        assert primeira == {"removed_from_partner": False, "remaining_clients": 1}
        assert parceiro.chamadas("/ExcluirNome") == []
        assert termo.is_active is True

        segunda = await manager.executar(DeleteName(action="delete", cod_nome=321, client_system_id=cliente_b.id))

        assert segunda["removed_from_partner"] is True
        assert orjson.loads(parceiro.chamadas("/ExcluirNome")[0].content) == {"codNome": 321}
        assert termo.is_active is False
        assert termo.solucionare_status == "deleted"

    async def test_listar_nomes(self, manager, fabrica, parceiro) -> None:
        await fabrica.servico("distributions", cod_escritorio=55)
        parceiro.responder("GET", "/BuscaNomesCadastrados", json={"data": [{"codNome": 1}, {"codNome": 2}]})

        resultado = await manager.executar(ListNames(action="list_names"))

        assert resultado["count"] == 2
        assert parceiro.chamadas("/BuscaNomesCadastrados")[0].url.params["codEscritorio"] == "55"


class TestEscritorios:

    async def test_ativar_escritorio(self, manager, fabrica, parceiro) -> None:
        await fabrica.servico("distributions")
        parceiro.responder("PUT", "/AtivarEscritorio", json=True)

        resultado = await manager.executar(ActivateOffice(action="activate_office", cod_escritorio=77))

        assert resultado["is_active"] is True
        chamada = parceiro.chamadas("/AtivarEscritorio", "PUT")[0]
        assert chamada.url.params["codEscritorio"] == "77"
        assert chamada.headers["Authorization"] == "Bearer bearer-teste"


class TestServico:

    async def test_sem_servico_de_termos(self, manager, fabrica) -> None:
        await fabrica.servico("publications")
        with pytest.raises(NoActiveServicesError):
            await manager.executar(ListNames(action="list_names"))

    async def test_rota_com_acao_invalida(self, api) -> None:
        response = await api.post("/terms/actions", json={"action": "register", "nome": "ab"})
        assert response.status_code == 422


def _servidor_soap(retornos: dict):
    """Responde pelo método do cabeçalho SOAPAction; sem entrada devolve ``ok``"""
    def handler(request: httpx.Request) -> httpx.Response:
        metodo = request.headers["SOAPAction"].rsplit("#", 1)[1]
        xml = (
            '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">'
            f'<SOAP-ENV:Body><ns1:{metodo}Response xmlns:ns1="urn:termos">'
            f'<retorno>{retornos.get(metodo, "ok")}</retorno>'
            f'</ns1:{metodo}Response></SOAP-ENV:Body></SOAP-ENV:Envelope>'
        )
        return httpx.Response(200, content=xml.encode("utf-8"), headers={"content-type": "text/xml; charset=utf-8"})
    return handler


def _metodos_soap(parceiro) -> list[str]:
    return [r.headers["SOAPAction"].rsplit("#", 1)[1] for r in parceiro.chamadas("/", "POST")]


class TestTermosDePublicacao:

    async def test_cadastro_pelo_soap(self, manager, db, fabrica, parceiro) -> None:
        await fabrica.servico("publications")
        cliente = await fabrica.cliente()
        parceiro.responder("POST", "/", handler=_servidor_soap({}))

        resultado = await manager.executar(RegisterPublicationTerm(
            action="register_publication_term", term="Fulano de Tal", client_system_id=cliente.id,
        ))

        assert resultado["registered_in_partner"] is True
        assert resultado["linked"] is True
        assert _metodos_soap(parceiro) == ["cadastrar", "setNomePesquisa"]
        envelope = parceiro.chamadas("/", "POST")[1].content
        assert b"<nomePesquisa" in envelope
        assert b"Fulano de Tal" in envelope
        assert b"escritorio-teste" in envelope
        assert parceiro.chamadas("/AutenticaAPI") == []
        termo = (await db.execute(select(SearchTerm))).scalar_one()
        assert (termo.term_type, termo.is_active) == ("name", True)

    async def test_escritorio_usa_set_escritorio(self, manager, fabrica, parceiro) -> None:
        await fabrica.servico("publications")
        parceiro.responder("POST", "/", handler=_servidor_soap({}))

        await manager.executar(RegisterPublicationTerm(
            action="register_publication_term", term="Silva Advogados", term_type="office",
        ))

        assert _metodos_soap(parceiro) == ["cadastrar", "setEscritorio"]

    async def test_termo_existente_nao_vai_ao_parceiro(self, manager, fabrica, parceiro) -> None:
        service = await fabrica.servico("publications")
        await fabrica.termo("Fulano de Tal", term_type="name", partner_service_id=service.id)

        resultado = await manager.executar(RegisterPublicationTerm(action="register_publication_term", term="Fulano de Tal"))

        assert resultado["registered_in_partner"] is False
        assert parceiro.chamadas("/", "POST") == []

    async def test_alteracao_remove_e_cadastra_de_novo(self, manager, fabrica, parceiro) -> None:
        service = await fabrica.servico("publications")
        termo = await fabrica.termo("Fulano de Tal", term_type="name", partner_service_id=service.id)
        parceiro.responder("POST", "/", handler=_servidor_soap({}))

        resultado = await manager.executar(UpdatePublicationTerm(
            action="update_publication_term", term_id=termo.id, term="Fulano de Tal Junior",
        ))

        assert resultado["changed"] is True
        assert _metodos_soap(parceiro) == ["remover", "cadastrar", "setNomePesquisa"]
        assert termo.term == "Fulano de Tal Junior"

    async def test_exclusao_espera_o_ultimo_cliente(self, manager, db, fabrica, parceiro) -> None:
        service = await fabrica.servico("publications")
        cliente_a = await fabrica.cliente("Cliente A")
        cliente_b = await fabrica.cliente("Cliente B")
        termo = await fabrica.termo("Fulano de Tal", cliente_a, term_type="name", partner_service_id=service.id)
        db.add(ClientSearchTerm(client_system_id=cliente_b.id, search_term_id=termo.id))
        await db.commit()
        parceiro.responder("POST", "/", handler=_servidor_soap({}))

        primeira = await manager.executar(DeletePublicationTerm(
            action="delete_publication_term", term_id=termo.id, client_system_id=cliente_a.id,
        ))
        assert primeira == {"removed_from_partner": False, "remaining_clients": 1}
        assert parceiro.chamadas("/", "POST") == []

        await manager.executar(DeletePublicationTerm(
            action="delete_publication_term", term_id=termo.id, client_system_id=cliente_b.id,
        ))
        assert _metodos_soap(parceiro) == ["remover"]
        assert termo.is_active is False

    async def test_termo_de_outro_servico(self, manager, fabrica) -> None:
        await fabrica.servico("publications")
        outro = await fabrica.servico("distributions")
        termo = await fabrica.termo("Fulano de Tal", partner_service_id=outro.id)

        with pytest.raises(LookupError):
            await manager.executar(DeletePublicationTerm(action="delete_publication_term", term_id=termo.id))

    async def test_listagem_junta_local_e_parceiro(self, manager, fabrica, parceiro) -> None:
        service = await fabrica.servico("publications")
        await fabrica.termo("Silva Advogados", term_type="office", partner_service_id=service.id)
        parceiro.responder("POST", "/", handler=_servidor_soap({
            "buscarEscritorios": "<item><escritorio>Silva Advogados</escritorio></item>",
        }))

        resultado = await manager.executar(ListPublicationTerms(action="list_publication_terms", term_type="office"))

        assert [t["term"] for t in resultado["local"]] == ["Silva Advogados"]
        assert resultado["partner"] == [{"escritorio": "Silva Advogados"}]
        assert _metodos_soap(parceiro) == ["buscarEscritorios"]
