from fastapi import APIRouter
from .client_api import router as client_api_router
from .sync import router as sync_router
from .processos import router as processos_router
from .termos import router as termos_router
from .webhooks import router as webhooks_router
from .admin import router as admin_router

router = APIRouter()

router.include_router(client_api_router, prefix="/api", tags=["API de Clientes"])
router.include_router(sync_router, prefix="/sync", tags=["Sincronização"])
router.include_router(processos_router, prefix="/processes", tags=["Processos"])
router.include_router(termos_router, prefix="/terms", tags=["Termos"])
router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
router.include_router(admin_router, prefix="/admin", tags=["Admin"])
