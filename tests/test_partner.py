"""Testes do cliente dos parceiros: autenticação, repetição, confirmação e SOAP"""
import httpx
import orjson
import pytest

from legalhub.errors import PartnerAuthError, PartnerDataError, PartnerHTTPError, PartnerTransportError
from legalhub.partner import (
    PartnerClient,
    PartnerCredentials,
    autenticar,
    mensagem_parceiro,
    montar_envelope_soap,
    parse_resposta_soap,
)

URL_PARCEIRO = "https://parceiro.test"

CREDENCIAIS = PartnerCredentials(
    service_url=URL_PARCEIRO,
    nome_relacional="escritorio-teste",
    token="token-estatico",
    nome="Parceiro Teste",
)


def _cliente(http, **kwargs) -> PartnerClient:
    kwargs.setdefault("max_tentativas", 3)
    kwargs.setdefault("backoff", 0)
    return PartnerClient(http, CREDENCIAIS, bearer="bearer-teste", **kwargs)


class TestAutenticacao:

    async def test_troca_credenciais_por_bearer(self, http, parceiro) -> None:
        """AutenticaAPI recebe nome relacional + token e devolve o bearer"""
        token = await autenticar(http, CREDENCIAIS)

        assert token == "bearer-teste"
        chamada = parceiro.chamadas("/AutenticaAPI")[0]
        assert orjson.loads(chamada.content) == {"nomeRelacional": "escritorio-teste", "token": "token-estatico"}

    async def test_aceita_token_em_texto(self, http, parceiro) -> None:
        parceiro.responder("POST", "/AutenticaAPI", content=b'"abc123"', headers={"content-type": "text/plain"})
        assert await autenticar(http, CREDENCIAIS) == "abc123"

    async def test_credenciais_recusadas(self, http, parceiro) -> None:
        parceiro.responder("POST", "/AutenticaAPI", status=401, json={"mensagem": "token inválido"})
        with pytest.raises(PartnerAuthError):
            await autenticar(http, CREDENCIAIS)

    async def test_resposta_sem_token(self, http, parceiro) -> None:
        parceiro.responder("POST", "/AutenticaAPI", json={"ok": True})
        with pytest.raises(PartnerAuthError):
            await autenticar(http, CREDENCIAIS)

    async def test_conectar_guarda_o_bearer(self, http, parceiro) -> None:
        parceiro.responder("GET", "/BuscaProcessos", json=[])
        client = await PartnerClient.conectar(http, CREDENCIAIS, backoff=0)
        await client.get("/BuscaProcessos")

        assert client.bearer == "bearer-teste"
        assert parceiro.chamadas("/BuscaProcessos")[0].headers["Authorization"] == "Bearer bearer-teste"


class TestRepeticao:

    async def test_repete_5xx_ate_sucesso(self, http, parceiro) -> None:
        respostas = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json=[{"codAndamento": 1}])])
        parceiro.responder("GET", "/BuscaNovosAndamentos", handler=lambda request: next(respostas))

        dados = await _cliente(http).get("/BuscaNovosAndamentos")

        assert dados == [{"codAndamento": 1}]
        assert len(parceiro.chamadas("/BuscaNovosAndamentos")) == 3

    async def test_esgota_tentativas(self, http, parceiro) -> None:
        parceiro.responder("GET", "/BuscaNovosAndamentos", status=500, json={"erro": "falha"})

        with pytest.raises(PartnerHTTPError) as exc:
            await _cliente(http, max_tentativas=2).get("/BuscaNovosAndamentos")

        assert exc.value.status_code == 500
        assert len(parceiro.chamadas("/BuscaNovosAndamentos")) == 2

    async def test_401_nao_e_repetido(self, http, parceiro) -> None:
        parceiro.responder("GET", "/BuscaNovosAndamentos", status=401)

        with pytest.raises(PartnerAuthError):
            await _cliente(http).get("/BuscaNovosAndamentos")

        assert len(parceiro.chamadas("/BuscaNovosAndamentos")) == 1

    async def test_4xx_nao_e_repetido(self, http, parceiro) -> None:
        parceiro.responder("GET", "/BuscaNovosAndamentos", status=404)

        with pytest.raises(PartnerHTTPError):
            await _cliente(http).get("/BuscaNovosAndamentos")

        assert len(parceiro.chamadas("/BuscaNovosAndamentos")) == 1

    async def test_falha_de_rede(self) -> None:
        def recusar(request):
            raise httpx.ConnectError("conexão recusada", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(recusar)) as http:
            with pytest.raises(PartnerTransportError):
                await _cliente(http, max_tentativas=2).get("/BuscaNovosAndamentos")

    async def test_json_invalido(self, http, parceiro) -> None:
        parceiro.responder("GET", "/BuscaNovosAndamentos", content=b"{nao e json", headers={"content-type": "application/json"})
        with pytest.raises(PartnerDataError):
            await _cliente(http).get("/BuscaNovosAndamentos")


class TestConfirmacao:

    async def test_corpo_e_parametros(self, http, parceiro) -> None:
        parceiro.responder("POST", "/ConfirmaRecebimentoAndamento", json=True)

        await _cliente(http).confirmar("/ConfirmaRecebimentoAndamento", ["1", 2, 3])

        chamada = parceiro.chamadas("/ConfirmaRecebimentoAndamento")[0]
        assert orjson.loads(chamada.content) == [1, 2, 3]
        assert chamada.url.params["confirmar"] == "true"
        assert chamada.url.params["nomeRelacional"] == "escritorio-teste"
        assert chamada.url.params["token"] == "token-estatico"

    async def test_reversao_envia_confirmar_false(self, http, parceiro) -> None:
        parceiro.responder("POST", "/ConfirmaRecebimentoAndamento", json=True)

        await _cliente(http).confirmar("/ConfirmaRecebimentoAndamento", [1], confirmar=False)

        assert parceiro.chamadas("/ConfirmaRecebimentoAndamento")[0].url.params["confirmar"] == "false"


class TestSoap:

    def test_envelope_leva_credenciais(self) -> None:
        envelope = montar_envelope_soap("getProcessos", {"codEscritorio": 55}, CREDENCIAIS, "urn:processos")

        assert b"<nomeRelacional" in envelope
        assert b"escritorio-teste" in envelope
        assert b"xsd:int" in envelope
        assert b"getProcessos" in envelope

    def test_retorno_com_itens(self) -> None:
        resposta = (
            b'<?xml version="1.0" encoding="UTF-8"?>'
            b'<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/" xmlns:ns1="urn:processos">'
            b'<SOAP-ENV:Body><ns1:getProcessosResponse><retorno>'
            b'<item><codProcesso>10</codProcesso><numProcesso>1234567-89.2024.8.26.0100</numProcesso></item>'
            b'<item><codProcesso>11</codProcesso><numProcesso>7654321-00.2023.8.26.0001</numProcesso></item>'
            b'</retorno></ns1:getProcessosResponse></SOAP-ENV:Body></SOAP-ENV:Envelope>'
        )

        assert parse_resposta_soap(resposta) == [
            {"codProcesso": "10", "numProcesso": "1234567-89.2024.8.26.0100"},
            {"codProcesso": "11", "numProcesso": "7654321-00.2023.8.26.0001"},
        ]

    def test_fault_vira_erro_http(self) -> None:
        resposta = (
            '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">'
            '<SOAP-ENV:Body><SOAP-ENV:Fault><faultcode>SOAP-ENV:Server</faultcode>'
            '<faultstring>Token inválido</faultstring></SOAP-ENV:Fault></SOAP-ENV:Body></SOAP-ENV:Envelope>'
        ).encode("utf-8")

        with pytest.raises(PartnerHTTPError) as exc:
            parse_resposta_soap(resposta)
        assert "Token inválido" in str(exc.value)

    def test_xml_invalido(self) -> None:
        with pytest.raises(PartnerDataError):
            parse_resposta_soap(b"<nao-fecha>")


class TestMensagemParceiro:

    def test_extrai_mensagem_json(self) -> None:
        erro = PartnerHTTPError(400, '{"mensagem": "Instância inválida"}')
        assert mensagem_parceiro(erro) == "Instância inválida"

    def test_texto_puro(self) -> None:
        assert mensagem_parceiro(PartnerHTTPError(400, "Processo já cadastrado")) == "Processo já cadastrado"
