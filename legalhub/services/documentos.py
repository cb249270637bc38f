"""
Materialização de documentos: baixa arquivos das URLs (que expiram) dos
parceiros e grava no storage durável
"""
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import parse_qsl, unquote, urlsplit
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import Process, ProcessDocument
from ..storage import DocumentStorage
from ..utils import agora_utc

logger = logging.getLogger(__name__)

MAX_ERROS = 10
LIMITE_SENTINELA = 1000

MIME_EXTENSOES = {
    "application/pdf": ".pdf",
    "text/html": ".html",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
    "application/xml": ".xml",
    "text/xml": ".xml",
}

_EXTENSAO = re.compile(r"\.([A-Za-z0-9]{2,5})$")
_PARAMETROS_EXTENSAO = ("ext", "extensao", "extension")


class DocumentDownloadError(Exception):
    pass


class DocumentExpiredError(DocumentDownloadError):
    """O parceiro devolveu a página de "arquivo inválido": a URL expirou"""


def _extensao_de(texto: Optional[str]) -> Optional[str]:
    if not texto:
        return None
    match = _EXTENSAO.search(texto.strip())
    return f".{match.group(1).lower()}" if match else None


def derivar_extensao(nome_arquivo: Optional[str], url: str, content_type: str) -> str:
    """
    Cadeia de fallback: nome do arquivo → caminho da URL → parâmetro de
    extensão da query → parâmetro ``c`` → content-type → ``.bin``
    """
    extensao = _extensao_de(nome_arquivo)
    if extensao:
        return extensao

    partes = urlsplit(url)
    extensao = _extensao_de(unquote(partes.path))
    if extensao:
        return extensao

    query = dict(parse_qsl(partes.query))
    for chave in _PARAMETROS_EXTENSAO:
        valor = query.get(chave, "").strip().lstrip(".")
        if re.fullmatch(r"[A-Za-z0-9]{2,5}", valor):
            return f".{valor.lower()}"

    extensao = _extensao_de(query.get("c"))
    if extensao:
        return extensao

    tipo = (content_type or "").split(";")[0].strip().lower()
    return MIME_EXTENSOES.get(tipo, ".bin")


def eh_sentinela_expirado(content_type: str, conteudo: bytes) -> bool:
    """Página HTML curta com a marca de arquivo inválido"""
    if "text/html" not in (content_type or "").lower() or len(conteudo) >= LIMITE_SENTINELA:
        return False
    texto = unicodedata.normalize("NFKD", conteudo.decode("utf-8", errors="ignore"))
    texto = "".join(c for c in texto if not unicodedata.combining(c)).lower()
    return "invalido" in texto


def chave_storage(documento: ProcessDocument, extensao: str) -> str:
    return f"{documento.cod_processo}/{documento.cod_documento}{extensao}"


@dataclass
class MaterializationResult:
    processed: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "success": self.success,
            "failed": self.failed,
            "errors": self.errors[:MAX_ERROS],
        }


class DocumentMaterializer:
    def __init__(
        self,
        db: AsyncSession,
        http: httpx.AsyncClient,
        storage: DocumentStorage,
        batch_size: Optional[int] = None,
    ):
        self.db = db
        self.http = http
        self.storage = storage
        self.batch_size = batch_size or settings.DOCUMENT_BATCH_SIZE

    async def pendentes(
        self,
        limite: int,
        document_id: Optional[UUID] = None,
        process_id: Optional[UUID] = None,
    ) -> list[ProcessDocument]:
        """
        Documentos com URL externa e ainda sem caminho no storage, opcionalmente
        restritos a um documento ou aos documentos de um processo.

        Raises:
            LookupError: ``process_id`` de processo inexistente
        """
        query = select(ProcessDocument).where(
            ProcessDocument.documento_url.is_not(None),
            ProcessDocument.documento_url != "",
            ProcessDocument.storage_path.is_(None),
        )
        if document_id is not None:
            query = query.where(ProcessDocument.id == document_id)
        elif process_id is not None:
            process = await self.db.get(Process, process_id)
            if process is None:
                raise LookupError(f"Processo não encontrado: {process_id}")
            if process.cod_processo:
                query = query.where(ProcessDocument.cod_processo == process.cod_processo)
            else:
                query = query.where(ProcessDocument.process_id == process.id)

        result = await self.db.execute(
            query.order_by(ProcessDocument.created_at)
            .limit(limite)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _baixar(self, url: str) -> tuple[bytes, str]:
        try:
            response = await self.http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise DocumentDownloadError(f"Falha de rede: {e}") from e
        if not response.is_success:
            raise DocumentDownloadError(f"HTTP {response.status_code}")
        return response.content, response.headers.get("content-type", "application/octet-stream")

    async def materializar(self, documento: ProcessDocument) -> str:
        """
        Baixa e grava um documento. Só altera o registro quando o upload termina.

        Raises:
            DocumentExpiredError: URL expirada (falha permanente)
            DocumentDownloadError: falha de download ou upload
        """
        conteudo, content_type = await self._baixar(documento.documento_url)
        if not conteudo:
            raise DocumentDownloadError("Arquivo vazio")
        if eh_sentinela_expirado(content_type, conteudo):
            raise DocumentExpiredError("Parceiro retornou \"Arquivo invalido\": URL expirada")

        extensao = derivar_extensao(documento.nome_arquivo, documento.documento_url, content_type)
        chave = chave_storage(documento, extensao)
        try:
            url_publica = await self.storage.upload(chave, conteudo, content_type.split(";")[0].strip())
        except Exception as e:
            raise DocumentDownloadError(str(e)) from e

        documento.storage_path = chave
        documento.documento_url = url_publica
        documento.tamanho_bytes = len(conteudo)
        documento.mime_type = content_type.split(";")[0].strip()
        documento.updated_at = agora_utc()
        await self.db.flush()
        return chave

    async def executar(
        self,
        batch_size: Optional[int] = None,
        document_id: Optional[UUID] = None,
        process_id: Optional[UUID] = None,
    ) -> MaterializationResult:
        resultado = MaterializationResult()
        documentos = await self.pendentes(batch_size or self.batch_size, document_id, process_id)
        logger.info(f"Materializando {len(documentos)} documento(s)")

        for documento in documentos:
            resultado.processed += 1
            try:
                chave = await self.materializar(documento)
            except DocumentDownloadError as e:
                resultado.failed += 1
                resultado.errors.append(f"Documento {documento.cod_documento}: {e}")
                nivel = logging.WARNING if isinstance(e, DocumentExpiredError) else logging.ERROR
                logger.log(nivel, f"Documento {documento.cod_documento} não materializado: {e}")
                continue
            resultado.success += 1
            logger.info(f"Documento {documento.cod_documento} gravado em {chave}")

        return resultado
