import os
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = "COD Back-Office API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Local database (settlement log, audit log, preferences)
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "3306"))
    DB_USER: str = os.getenv("DB_USER", "backoffice")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
    DB_NAME: str = os.getenv("DB_NAME", "backoffice")
    DATABASE_URL_OVERRIDE: Optional[str] = os.getenv("DATABASE_URL")

    # Tookan (delivery platform)
    TOOKAN_API_KEY: str = os.getenv("TOOKAN_API_KEY", "")
    TOOKAN_BASE_URL: str = os.getenv("TOOKAN_BASE_URL", "https://api.tookanapp.com/v2")
    TOOKAN_ORDER_TEMPLATE: str = os.getenv("TOOKAN_ORDER_TEMPLATE", "Order_editor")

    # Hosted database (PostgREST)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")

    # Remote call bounds
    REMOTE_TIMEOUT_SECONDS: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))

    # Reconciliation
    CONFLICT_POLL_SECONDS: float = float(os.getenv("CONFLICT_POLL_SECONDS", "30"))
    LEDGER_MAX_RANGE_DAYS: int = int(os.getenv("LEDGER_MAX_RANGE_DAYS", "366"))
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "BHD")

    # Redis cache
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    DIRECTORY_CACHE_TTL: int = int(os.getenv("DIRECTORY_CACHE_TTL", "300"))

    # CORS Settings
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def REDIS_ENABLED(self) -> bool:
        return bool(self.REDIS_URL)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
