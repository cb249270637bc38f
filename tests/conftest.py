"""
Fixtures compartilhadas dos testes do LegalHub.

Padrões:
- Testes assíncronos rodam em modo auto do pytest-asyncio (pyproject.toml)
- Banco SQLite (aiosqlite) em arquivo temporário, criado a partir dos models
- Parceiro, storage e webhooks são servidos por ``httpx.MockTransport``
- A aplicação recebe ``app.state`` montado à mão (o lifespan não roda no ASGITransport)
"""
import fnmatch
from typing import Optional

import httpx
import pytest
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import create_async_engine

import legalhub.models  # noqa: F401  registra as tabelas no metadata
from legalhub.config import Settings
from legalhub.crypto import SecretCipher
from legalhub.database import build_session_factory, init_db
from legalhub.main import create_app
from legalhub.models import (
    ApiToken,
    ClientProcess,
    ClientSearchTerm,
    ClientSystem,
    ClientSystemService,
    Partner,
    PartnerService,
    Process,
    SearchTerm,
)
from legalhub.partner import PartnerConnector
from legalhub.storage import DocumentStorage

URL_PARCEIRO = "https://parceiro.test"
URL_STORAGE = "https://storage.test/storage/v1"
BUCKET = "process-documents"


class ParceiroFalso:
    """Servidor HTTP falso: rotas por (método, caminho) e registro das requisições"""

    def __init__(self):
        self.rotas = {}
        self.requisicoes: list[httpx.Request] = []
        self.responder("POST", "/AutenticaAPI", json={"token": "bearer-teste"})

    def responder(self, method: str, path: str, json=None, status: int = 200, content: Optional[bytes] = None,
                  headers: Optional[dict] = None, handler=None):
        self.rotas[(method.upper(), path)] = (status, json, content, headers, handler)

    def chamadas(self, path: str, method: Optional[str] = None) -> list[httpx.Request]:
        return [
            r for r in self.requisicoes
            if r.url.path == path and (method is None or r.method == method.upper())
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requisicoes.append(request)
        rota = self.rotas.get((request.method, request.url.path))
        if rota is None:
            return httpx.Response(404, json={"mensagem": f"Rota não mapeada: {request.method} {request.url.path}"})
        status, json, content, headers, handler = rota
        if handler is not None:
            return handler(request)
        if content is not None:
            return httpx.Response(status, content=content, headers=headers)
        return httpx.Response(status, json=json, headers=headers)


class CacheEmMemoria:
    """Mesma interface assíncrona do RedisCache, guardando em dict"""

    def __init__(self):
        self.dados = {}

    async def connect(self):
        pass

    async def close(self):
        pass

    async def is_available(self) -> bool:
        return True

    async def get(self, key):
        return self.dados.get(key)

    async def set(self, key, value, ttl=None) -> bool:
        self.dados[key] = value
        return True

    async def clear_pattern(self, pattern: str) -> int:
        chaves = [k for k in self.dados if fnmatch.fnmatch(k, pattern)]
        for chave in chaves:
            del self.dados[chave]
        return len(chaves)

    async def get_info(self) -> dict:
        return {"total_keys": len(self.dados)}


class Fabrica:
    """Cria registros de apoio já gravados no banco"""

    def __init__(self, db, cipher: SecretCipher):
        self.db = db
        self.cipher = cipher

    async def servico(self, service_type: str = "processes", cod_escritorio: Optional[int] = 55,
                      nome_relacional: str = "escritorio-teste", **extra) -> PartnerService:
        partner = Partner(name="Parceiro Teste")
        self.db.add(partner)
        await self.db.flush()
        service = PartnerService(
            partner_id=partner.id,
            service_name=f"{service_type} - teste",
            service_type=service_type,
            service_url=URL_PARCEIRO,
            nome_relacional=nome_relacional,
            token_encrypted=self.cipher.encrypt("token-estatico"),
            cod_escritorio=cod_escritorio,
            **extra,
        )
        self.db.add(service)
        await self.db.commit()
        return service

    async def cliente(self, nome: str = "Cliente A") -> ClientSystem:
        cliente = ClientSystem(name=nome)
        self.db.add(cliente)
        await self.db.commit()
        return cliente

    async def token(self, cliente: ClientSystem, valor: str = "tok-cliente-a", **extra) -> ApiToken:
        token = ApiToken(token=valor, client_system_id=cliente.id, name=f"token {cliente.name}", **extra)
        self.db.add(token)
        await self.db.commit()
        return token

    async def direito(self, cliente: ClientSystem, service: PartnerService) -> ClientSystemService:
        direito = ClientSystemService(client_system_id=cliente.id, partner_service_id=service.id)
        self.db.add(direito)
        await self.db.commit()
        return direito

    async def processo(self, numero: str, cliente: Optional[ClientSystem] = None, **extra) -> Process:
        process = Process(process_number=numero, **extra)
        self.db.add(process)
        await self.db.flush()
        if cliente is not None:
            self.db.add(ClientProcess(client_system_id=cliente.id, process_id=process.id))
        await self.db.commit()
        return process

    async def termo(self, termo: str, cliente: Optional[ClientSystem] = None, term_type: str = "distributions", **extra) -> SearchTerm:
        search_term = SearchTerm(term=termo, term_type=term_type, **extra)
        self.db.add(search_term)
        await self.db.flush()
        if cliente is not None:
            self.db.add(ClientSearchTerm(client_system_id=cliente.id, search_term_id=search_term.id))
        await self.db.commit()
        return search_term


@pytest.fixture
def fernet_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def cipher(fernet_key) -> SecretCipher:
    return SecretCipher(fernet_key)


@pytest.fixture
def settings_teste(fernet_key) -> Settings:
    return Settings(
        FERNET_KEY=fernet_key,
        STORAGE_URL=URL_STORAGE,
        DOCUMENT_BUCKET=BUCKET,
        CORS_ORIGINS=["*"],
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'legalhub.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def parceiro() -> ParceiroFalso:
    return ParceiroFalso()


@pytest.fixture
async def http(parceiro):
    async with httpx.AsyncClient(transport=httpx.MockTransport(parceiro)) as client:
        yield client


@pytest.fixture
def connector(http, cipher) -> PartnerConnector:
    return PartnerConnector(http, cipher, max_tentativas=1, backoff=0)


@pytest.fixture
def storage(http) -> DocumentStorage:
    return DocumentStorage(http, URL_STORAGE, BUCKET, "chave-storage")


@pytest.fixture
def cache() -> CacheEmMemoria:
    return CacheEmMemoria()


@pytest.fixture
def fabrica(db, cipher) -> Fabrica:
    return Fabrica(db, cipher)


@pytest.fixture
def app(settings_teste, session_factory, http, cipher, cache, storage):
    app = create_app(settings_teste)
    app.state.session_factory = session_factory
    app.state.http = http
    app.state.cipher = cipher
    app.state.cache = cache
    app.state.storage = storage
    return app


@pytest.fixture
async def api(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        yield client
