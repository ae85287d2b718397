from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import os

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=os.getenv("ENV_FILE", ".env"), extra="ignore")

    APP_NAME: str = "isp-reseller-ledger"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str = "please-change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    DATABASE_URL: str

    REDIS_URL: str = "redis://localhost:6379/0"

    CORS_ORIGINS: str = ""  # comma separated

    # ledger unit-of-work retries on deadlock / serialization failure
    LEDGER_RETRY_ATTEMPTS: int = 3
    LEDGER_RETRY_BACKOFF_MS: int = 50

    DEFAULT_VALIDITY_DAYS: int = 30
    MAX_RESELLER_LEVEL: int = 3

    LEDGER_AUDIT_SECONDS: int = 3600
    LEDGER_AUDIT_BATCH_SIZE: int = 500

    @property
    def cors_origins_list(self) -> List[str]:
        if not self.CORS_ORIGINS:
            return []
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
