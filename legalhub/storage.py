"""
Storage durável dos documentos (API REST de object storage)

Upload com upsert em ``{STORAGE_URL}/object/{bucket}/{chave}``; a URL
pública é ``{STORAGE_URL}/object/public/{bucket}/{chave}``.
"""
import logging
from typing import Optional

import httpx

from .config import Settings
from .errors import PartnerTransportError

logger = logging.getLogger(__name__)


class StorageError(PartnerTransportError):
    """Falha ao gravar no storage"""


class DocumentStorage:
    def __init__(self, http: httpx.AsyncClient, base_url: str, bucket: str, api_key: Optional[str] = None):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.api_key = api_key

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "DocumentStorage":
        return cls(http, settings.STORAGE_URL, settings.DOCUMENT_BUCKET, settings.STORAGE_KEY)

    def public_url(self, chave: str) -> str:
        return f"{self.base_url}/object/public/{self.bucket}/{chave}"

    async def upload(self, chave: str, conteudo: bytes, content_type: str) -> str:
        """
        Grava (sobrescrevendo) o objeto e devolve a URL pública.

        Raises:
            StorageError: rede ou status não-2xx
        """
        headers = {"Content-Type": content_type or "application/octet-stream", "x-upsert": "true"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key

        url = f"{self.base_url}/object/{self.bucket}/{chave}"
        try:
            response = await self.http.post(url, content=conteudo, headers=headers)
        except httpx.HTTPError as e:
            raise StorageError(f"Upload de {chave}: {e}") from e
        if not response.is_success:
            raise StorageError(f"Upload de {chave}: HTTP {response.status_code} {response.text[:200]}")

        logger.debug(f"[STORAGE] {chave} ({len(conteudo)} bytes)")
        return self.public_url(chave)
