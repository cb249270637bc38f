"""
Configuração do banco de dados com SQLAlchemy

Engine e session factory são criados explicitamente (no lifespan da API ou
pelo worker de sincronização) e repassados a quem precisa deles.
"""
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from .config import Settings
import logging

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class para todos os models SQLAlchemy"""
    pass


# JSONB no PostgreSQL, JSON genérico nos demais dialetos
JSONType = JSON().with_variant(JSONB(), "postgresql")


def build_engine(settings: Settings) -> AsyncEngine:
    """Cria o engine assíncrono a partir das configurações"""
    url = settings.DATABASE_URL
    kwargs = {"echo": settings.DATABASE_ECHO, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return create_async_engine(url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency para obter sessão do banco de dados

    A session factory fica em ``app.state.session_factory``.

    Usage:
        @app.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def insert_for(db: AsyncSession, model):
    """
    Retorna um INSERT com suporte a ON CONFLICT para o dialeto da sessão

    Args:
        db: Sessão ativa
        model: Model SQLAlchemy alvo

    Returns:
        Statement de insert do dialeto (PostgreSQL ou SQLite)
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Dialeto sem suporte a upsert: {dialect}")


async def init_db(engine: AsyncEngine):
    """Inicializa o banco de dados criando todas as tabelas"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Banco de dados inicializado")


async def close_db(engine: AsyncEngine):
    """Fecha as conexões do banco de dados"""
    await engine.dispose()
    logger.info("Conexões do banco de dados fechadas")
