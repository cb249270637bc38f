from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    API_TITLE: str = "LegalHub API"
    API_DESCRIPTION: str = "Sincronização de processos, distribuições e publicações com parceiros e API para sistemas clientes"
    API_VERSION: str = "1.0.0"
    API_PORT: int = 8535
    API_HOST: str = "0.0.0.0"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Configurações Redis
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_USERNAME: str = "default"
    REDIS_PASSWORD: str = ""
    DETAIL_CACHE_TTL: int = 300

    # Configurações PostgreSQL
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = ""
    DATABASE_NAME: str = "postgres"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_URL_OVERRIDE: Optional[str] = None

    # Chave Fernet para tokens estáticos dos parceiros
    FERNET_KEY: str = ""

    # Parceiros
    PARTNER_TIMEOUT: float = 30.0
    PARTNER_MAX_RETRIES: int = 3
    PARTNER_RETRY_BACKOFF: float = 1.0
    PULL_LIMIT: int = 500
    CONFIRM_CHUNK_SIZE: int = 100
    MIN_SYNC_INTERVAL_MINUTES: int = 5

    # Documentos
    DOCUMENT_BATCH_SIZE: int = 20
    DOCUMENT_BUCKET: str = "process-documents"
    STORAGE_URL: str = "http://localhost:54321/storage/v1"
    STORAGE_KEY: str = ""

    # API de clientes
    RATE_LIMIT_PER_HOUR: int = 1000
    MAX_PAGE_SIZE: int = 500

    # Webhooks
    WEBHOOK_TIMEOUT: float = 10.0
    WEBHOOK_USER_AGENT: str = "LegalHub-Webhook/1.0"

    @property
    def DATABASE_URL(self) -> str:
        """Constrói a URL de conexão do PostgreSQL para asyncpg"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )


settings = Settings()
