from contextlib import asynccontextmanager
from typing import Optional
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import RedisCache
from .config import Settings, settings as default_settings
from .crypto import SecretCipher
from .database import build_engine, build_session_factory, close_db
from .errors import ErrorDetail, ErrorType, SecurityDenied
from .routes import router
from .storage import DocumentStorage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cria engine, cliente HTTP e cache da aplicação; nada disso é global de módulo"""
    cfg: Settings = app.state.settings
    engine = build_engine(cfg)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.http = httpx.AsyncClient(timeout=httpx.Timeout(cfg.PARTNER_TIMEOUT))
    app.state.cipher = SecretCipher.from_settings(cfg)
    app.state.cache = RedisCache(cfg)
    app.state.storage = DocumentStorage.from_settings(app.state.http, cfg) if cfg.STORAGE_URL else None
    await app.state.cache.connect()
    logger.info(f"{cfg.API_TITLE} {cfg.API_VERSION} iniciada")
    try:
        yield
    finally:
        await app.state.cache.close()
        await app.state.http.aclose()
        await close_db(engine)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    app = FastAPI(
        title=settings.API_TITLE,
        description=settings.API_DESCRIPTION,
        version=settings.API_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def health_check():
        return {
            "status": "ok",
            "version": settings.API_VERSION,
        }

    @app.exception_handler(SecurityDenied)
    async def security_denied_handler(request: Request, exc: SecurityDenied):
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "error": exc.to_detail().model_dump(mode="json")},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Erro não tratado em {request.url.path}: {exc}", exc_info=exc)
        error_detail = ErrorDetail(
            type=ErrorType.PROCESSING_ERROR,
            message="Erro interno do servidor",
            details={"error": str(exc)}
        )
        return JSONResponse(
            status_code=500,
            content={"status": "error", "error": error_detail.model_dump(mode="json")}
        )

    app.include_router(router)
    return app


app = create_app()
