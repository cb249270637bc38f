"""
Cliente dos parceiros (provedores de dados de tribunais)

Autenticação via ``AutenticaAPI`` e chamadas REST/SOAP com erros tipados:
401 é falha de autenticação (não repetida), 5xx/429/rede são repetidos um
número limitado de vezes e os demais não-2xx viram ``PartnerHTTPError``.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from uuid import UUID

import httpx
import orjson
from lxml import etree

from .config import settings
from .crypto import SecretCipher
from .errors import PartnerAuthError, PartnerDataError, PartnerHTTPError, PartnerTransportError
from .normalization import mascarar_token

logger = logging.getLogger(__name__)

SOAPENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NS = "http://www.w3.org/2001/XMLSchema"
SOAP_ENCODING = "http://schemas.xmlsoap.org/soap/encoding/"

_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


@dataclass(frozen=True)
class PartnerCredentials:
    """Credenciais já decifradas de um serviço de parceiro"""
    service_url: str
    nome_relacional: str
    token: str
    service_id: Optional[UUID] = None
    cod_escritorio: Optional[int] = None
    nome: str = ""

    @classmethod
    def from_service(cls, service, cipher: SecretCipher) -> "PartnerCredentials":
        return cls(
            service_url=service.service_url,
            nome_relacional=service.nome_relacional,
            token=cipher.decrypt(service.token_encrypted),
            service_id=service.id,
            cod_escritorio=service.cod_escritorio,
            nome=service.service_name,
        )

    @property
    def base_url(self) -> str:
        return self.service_url.rstrip("/")

    @property
    def soap_url(self) -> str:
        """URL do serviço SOAP sem o sufixo do WSDL"""
        url = self.service_url
        if url.endswith(".wsdl"):
            url = url[:-5]
        if "?wsdl" in url:
            url = url.split("?wsdl")[0]
        return url


def _texto_token(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return payload.strip().strip('"') or None
    if isinstance(payload, dict):
        if payload.get("token"):
            return str(payload["token"])
        dados = payload.get("data")
        if isinstance(dados, dict) and dados.get("token"):
            return str(dados["token"])
    return None


async def autenticar(http: httpx.AsyncClient, credenciais: PartnerCredentials) -> str:
    """
    Troca nome relacional + token estático por um token bearer.

    Chamado uma vez por execução; o token não é reaproveitado entre execuções.

    Raises:
        PartnerAuthError: credenciais recusadas ou resposta sem token
        PartnerHTTPError: outro status não-2xx
        PartnerTransportError: falha de rede/timeout
    """
    url = f"{credenciais.base_url}/AutenticaAPI"
    logger.info(f"Autenticando em {credenciais.nome or url} (token={mascarar_token(credenciais.token)})")
    try:
        response = await http.post(
            url,
            json={"nomeRelacional": credenciais.nome_relacional, "token": credenciais.token},
        )
    except httpx.HTTPError as e:
        raise PartnerTransportError(f"Falha ao autenticar em {url}: {e}") from e

    if response.status_code in (401, 403):
        raise PartnerAuthError(f"Credenciais recusadas por {url} (HTTP {response.status_code})")
    if not response.is_success:
        raise PartnerHTTPError(response.status_code, response.text, url)

    token = _texto_token(decodificar_resposta(response))
    if not token:
        raise PartnerAuthError(f"Resposta de autenticação sem token: {url}")
    return token


def decodificar_resposta(response: httpx.Response) -> Any:
    """JSON, XML ou texto conforme o content-type da resposta"""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "").lower()
    if "json" in content_type:
        try:
            return response.json()
        except ValueError as e:
            raise PartnerDataError(f"JSON inválido: {e}") from e
    if "xml" in content_type:
        try:
            return etree.fromstring(response.content, parser=_XML_PARSER)
        except etree.XMLSyntaxError as e:
            raise PartnerDataError(f"XML inválido: {e}") from e
    return response.text


def _nome_local(elemento) -> str:
    return etree.QName(elemento).localname


def _filhos(elemento) -> list:
    # ignora comentários e instruções de processamento
    return [filho for filho in elemento if isinstance(filho.tag, str)]


def _elemento_para_valor(elemento) -> Any:
    filhos = _filhos(elemento)
    if not filhos:
        return (elemento.text or "").strip()
    if all(_nome_local(filho) == "item" for filho in filhos):
        return [_elemento_para_valor(filho) for filho in filhos]
    return {_nome_local(filho): _elemento_para_valor(filho) for filho in filhos}


def montar_envelope_soap(metodo: str, parametros: dict, credenciais: PartnerCredentials, namespace: str) -> bytes:
    envelope = etree.Element(
        f"{{{SOAPENV_NS}}}Envelope",
        nsmap={"soapenv": SOAPENV_NS, "xsi": XSI_NS, "xsd": XSD_NS, "nom": namespace},
    )
    etree.SubElement(envelope, f"{{{SOAPENV_NS}}}Header")
    corpo = etree.SubElement(envelope, f"{{{SOAPENV_NS}}}Body")
    chamada = etree.SubElement(corpo, f"{{{namespace}}}{metodo}")
    chamada.set(f"{{{SOAPENV_NS}}}encodingStyle", SOAP_ENCODING)

    valores = {"nomeRelacional": credenciais.nome_relacional, "token": credenciais.token, **parametros}
    for nome, valor in valores.items():
        elemento = etree.SubElement(chamada, nome)
        inteiro = isinstance(valor, int) and not isinstance(valor, bool)
        elemento.set(f"{{{XSI_NS}}}type", "xsd:int" if inteiro else "xsd:string")
        elemento.text = str(valor)

    return etree.tostring(envelope, xml_declaration=True, encoding="utf-8")


def parse_resposta_soap(conteudo: bytes) -> Any:
    """
    Extrai o retorno de uma resposta SOAP.

    ``<retorno>`` com ``<item>`` vira lista de dicts, arrays de ``<string>``
    viram lista de str e o resto vira texto.
    """
    try:
        raiz = etree.fromstring(conteudo, parser=_XML_PARSER)
    except etree.XMLSyntaxError as e:
        raise PartnerDataError(f"Resposta SOAP inválida: {e}") from e

    corpo = next((el for el in raiz.iter() if isinstance(el.tag, str) and _nome_local(el) == "Body"), None)
    if corpo is None:
        raise PartnerDataError("Resposta SOAP sem Body")

    for elemento in corpo.iter():
        if isinstance(elemento.tag, str) and _nome_local(elemento) == "Fault":
            mensagem = next(
                (el.text for el in elemento.iter() if isinstance(el.tag, str) and _nome_local(el) == "faultstring"),
                "SOAP Fault",
            )
            raise PartnerHTTPError(500, mensagem or "SOAP Fault")

    retorno = next((el for el in corpo.iter() if isinstance(el.tag, str) and _nome_local(el) == "retorno"), None)
    if retorno is not None:
        itens = [filho for filho in _filhos(retorno) if _nome_local(filho) == "item"]
        if itens:
            return [_elemento_para_valor(item) for item in itens]
        return _elemento_para_valor(retorno)

    strings = [el for el in corpo.iter() if isinstance(el.tag, str) and _nome_local(el) == "string"]
    if strings:
        return [(el.text or "").strip() for el in strings]

    resposta = _filhos(corpo)
    return _elemento_para_valor(resposta[0]) if resposta else None


class PartnerClient:
    """
    Chamadas autenticadas a um serviço de parceiro.

    Recebe o ``httpx.AsyncClient`` (com timeout limitado) de quem o cria; não
    guarda estado entre execuções.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        credenciais: PartnerCredentials,
        bearer: Optional[str] = None,
        max_tentativas: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.http = http
        self.credenciais = credenciais
        self.bearer = bearer
        self.max_tentativas = max(1, max_tentativas if max_tentativas is not None else settings.PARTNER_MAX_RETRIES)
        self.backoff = backoff if backoff is not None else settings.PARTNER_RETRY_BACKOFF

    @classmethod
    async def conectar(cls, http: httpx.AsyncClient, credenciais: PartnerCredentials, **kwargs) -> "PartnerClient":
        """Autentica e devolve um cliente pronto para a execução corrente"""
        bearer = await autenticar(http, credenciais)
        return cls(http, credenciais, bearer=bearer, **kwargs)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.credenciais.base_url}/{endpoint.lstrip('/')}"

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {"Accept": "application/json"}
        if self.bearer:
            headers["Authorization"] = f"Bearer {self.bearer}"
        if extra:
            headers.update(extra)
        return headers

    async def _requisicao(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        url = self._url(endpoint)
        headers = self._headers(kwargs.pop("headers", None))
        ultimo_erro: Exception = PartnerTransportError(f"Nenhuma tentativa realizada: {url}")

        for tentativa in range(self.max_tentativas):
            try:
                response = await self.http.request(method, url, headers=headers, **kwargs)
            except httpx.HTTPError as e:
                logger.warning(f"Tentativa {tentativa + 1}/{self.max_tentativas} falhou em {method} {url}: {e}")
                ultimo_erro = PartnerTransportError(f"{method} {url}: {e}")
            else:
                if response.status_code == 401:
                    raise PartnerAuthError(f"Token recusado em {method} {url}")
                if response.is_success:
                    return response
                erro = PartnerHTTPError(response.status_code, response.text, url)
                if response.status_code != 429 and response.status_code < 500:
                    raise erro
                logger.warning(f"Tentativa {tentativa + 1}/{self.max_tentativas} em {method} {url}: HTTP {response.status_code}")
                ultimo_erro = erro

            if tentativa < self.max_tentativas - 1:
                await asyncio.sleep(self.backoff * (tentativa + 1))

        raise ultimo_erro

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        response = await self._requisicao("GET", endpoint, params=params)
        return decodificar_resposta(response)

    async def post(self, endpoint: str, json: Any = None, params: Optional[dict] = None) -> Any:
        response = await self._requisicao("POST", endpoint, json=json, params=params)
        return decodificar_resposta(response)

    async def put(self, endpoint: str, json: Any = None, params: Optional[dict] = None) -> Any:
        response = await self._requisicao("PUT", endpoint, json=json, params=params)
        return decodificar_resposta(response)

    async def patch(self, endpoint: str, json: Any = None, params: Optional[dict] = None) -> Any:
        response = await self._requisicao("PATCH", endpoint, json=json, params=params)
        return decodificar_resposta(response)

    async def delete(self, endpoint: str, json: Any = None, params: Optional[dict] = None) -> Any:
        response = await self._requisicao("DELETE", endpoint, json=json, params=params)
        return decodificar_resposta(response)

    async def confirmar(self, endpoint: str, codigos: Iterable[int], confirmar: bool = True) -> Any:
        """
        Confirma (ou reverte, com ``confirmar=False``) o recebimento de códigos.

        POST {endpoint}?nomeRelacional=&token=&confirmar= com corpo = lista de inteiros
        """
        params = {
            "nomeRelacional": self.credenciais.nome_relacional,
            "token": self.credenciais.token,
            "confirmar": "true" if confirmar else "false",
        }
        return await self.post(endpoint, json=[int(c) for c in codigos], params=params)

    async def soap(self, metodo: str, parametros: Optional[dict] = None, namespace: Optional[str] = None) -> Any:
        namespace = namespace or self.credenciais.soap_url
        envelope = montar_envelope_soap(metodo, parametros or {}, self.credenciais, namespace)
        response = await self._requisicao(
            "POST",
            self.credenciais.soap_url,
            content=envelope,
            headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": f"{namespace}#{metodo}"},
        )
        return parse_resposta_soap(response.content)


class PartnerConnector:
    """
    Cria clientes autenticados para os serviços cadastrados.

    Cada chamada de ``conectar`` autentica de novo; instanciado por requisição
    ou por execução do worker.
    """

    def __init__(self, http: httpx.AsyncClient, cipher: SecretCipher, **client_kwargs):
        self.http = http
        self.cipher = cipher
        self.client_kwargs = client_kwargs

    def credenciais(self, service) -> PartnerCredentials:
        return PartnerCredentials.from_service(service, self.cipher)

    async def conectar(self, service) -> PartnerClient:
        return await PartnerClient.conectar(self.http, self.credenciais(service), **self.client_kwargs)

    def cliente_soap(self, service) -> PartnerClient:
        """Serviços SOAP levam nome relacional e token no envelope; sem AutenticaAPI"""
        return PartnerClient(self.http, self.credenciais(service), **self.client_kwargs)


def mensagem_parceiro(erro: PartnerHTTPError) -> str:
    """Mensagem legível de um erro do parceiro (JSON com message/mensagem/erro ou texto)"""
    try:
        corpo = orjson.loads(erro.body)
    except ValueError:
        return erro.body.strip() or str(erro)
    if isinstance(corpo, dict):
        for chave in ("mensagem", "message", "erro", "error", "descricao"):
            if corpo.get(chave):
                return str(corpo[chave])
    if isinstance(corpo, str):
        return corpo
    return erro.body.strip()
