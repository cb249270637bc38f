"""
Rotas de gerenciamento do cadastro de processos no parceiro
"""
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..cache import RedisCache
from ..database import get_db
from ..dependencies import get_cache, get_connector
from ..partner import PartnerConnector
from ..schemas.processo import ProcessAction
from ..services.processos import ProcessManager
from .erros import traduzir_erro

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/actions",
    response_model=dict,
    summary="Executar uma ação de cadastro de processo",
    description="register, delete, status, list, sync ou update_number",
)
async def executar_acao(
    acao: ProcessAction = Body(...),
    db: AsyncSession = Depends(get_db),
    connector: PartnerConnector = Depends(get_connector),
    cache: RedisCache = Depends(get_cache),
):
    try:
        manager = ProcessManager(db, connector, cache)
        resultado = await manager.executar(acao)
        return {"status": "success", "action": acao.action, "data": resultado}
    except HTTPException:
        raise
    except Exception as e:
        raise traduzir_erro(e, f"executar a ação {acao.action}")
