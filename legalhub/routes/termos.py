"""
Rotas de gerenciamento de termos pesquisados no parceiro
"""
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..database import get_db
from ..dependencies import get_connector
from ..partner import PartnerConnector
from ..schemas.termo import TermAction
from ..services.termos import TermManager
from .erros import traduzir_erro

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/actions",
    response_model=dict,
    summary="Executar uma ação sobre nomes ou escritórios",
)
async def executar_acao(
    acao: TermAction = Body(...),
    db: AsyncSession = Depends(get_db),
    connector: PartnerConnector = Depends(get_connector),
):
    try:
        resultado = await TermManager(db, connector).executar(acao)
        return {"status": "success", "action": acao.action, "data": resultado}
    except HTTPException:
        raise
    except Exception as e:
        raise traduzir_erro(e, f"executar a ação {acao.action}")
