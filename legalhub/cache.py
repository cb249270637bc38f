"""
Cache Redis dos detalhes servidos pela API de clientes

Chaves ``detalhe:{service_type}:{client_system_id}:{registro_id}[:{include}]``.
Sem Redis o cache fica desligado: leituras devolvem None, escritas e
limpezas não fazem nada e a API segue consultando o banco.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

import orjson
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import Settings

logger = logging.getLogger(__name__)

PREFIXO_DETALHE = "detalhe"


def gerar_chave_detalhe(service_type: str, client_system_id, registro_id, include: str = "") -> str:
    """O cliente faz parte da chave: o isolamento vale também para o cache"""
    chave = f"{PREFIXO_DETALHE}:{service_type}:{client_system_id}:{registro_id}"
    return f"{chave}:{include}" if include else chave


def padrao_detalhes(service_type: str = "*") -> str:
    return f"{PREFIXO_DETALHE}:{service_type}:*"


class RedisCache:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.redis_client: Optional[aioredis.Redis] = None

    @property
    def redis_url(self) -> str:
        s = self.settings
        credenciais = f"{s.REDIS_USERNAME}:{s.REDIS_PASSWORD}@" if s.REDIS_PASSWORD else ""
        return f"redis://{credenciais}{s.REDIS_HOST}:{s.REDIS_PORT}/{s.REDIS_DB}"

    async def connect(self) -> None:
        if self.redis_client is not None:
            return
        client = aioredis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            max_connections=20,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.warning(f"Redis indisponível em {self.settings.REDIS_HOST}:{self.settings.REDIS_PORT}, cache desligado: {e}")
            await client.aclose()
            return
        self.redis_client = client
        logger.info("Cache Redis conectado")

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None

    async def is_available(self) -> bool:
        return await self._executar("ping", lambda c: c.ping(), False)

    async def _executar(self, operacao: str, chamada: Callable[[aioredis.Redis], Awaitable[Any]], padrao: Any) -> Any:
        """Roda a chamada no Redis; sem conexão ou com erro devolve ``padrao``"""
        if self.redis_client is None:
            await self.connect()
        if self.redis_client is None:
            return padrao
        try:
            return await chamada(self.redis_client)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache: falha em {operacao}: {e}")
            return padrao

    async def get(self, key: str) -> Optional[Any]:
        valor = await self._executar(f"get {key}", lambda c: c.get(key), None)
        if valor is None:
            return None
        return orjson.loads(valor)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = ttl or self.settings.DETAIL_CACHE_TTL
        corpo = orjson.dumps(value).decode("utf-8")
        return bool(await self._executar(f"set {key}", lambda c: c.setex(key, ttl, corpo), False))

    async def clear_pattern(self, pattern: str) -> int:
        """Remove as chaves do padrão com SCAN, sem bloquear o servidor"""
        async def limpar(client: aioredis.Redis) -> int:
            removidas = 0
            async for chave in client.scan_iter(match=pattern, count=100):
                removidas += await client.delete(chave)
            return removidas

        removidas = await self._executar(f"limpeza de {pattern}", limpar, 0)
        if removidas:
            logger.info(f"Cache: {removidas} chave(s) removida(s) para {pattern}")
        return removidas

    async def get_info(self) -> dict:
        async def info(client: aioredis.Redis) -> dict:
            dados = await client.info()
            return {
                "redis_version": dados.get("redis_version", "unknown"),
                "used_memory_human": dados.get("used_memory_human", "0B"),
                "keyspace_hits": dados.get("keyspace_hits", 0),
                "keyspace_misses": dados.get("keyspace_misses", 0),
                "total_keys": await client.dbsize(),
            }

        return await self._executar("info", info, {})
