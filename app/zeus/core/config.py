from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "ZEUS"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    DATABASE_URL: str = "sqlite+pysqlite:///./zeus.db"
    FEATURE_KEY_MAX_LENGTH: int = 50
    FEATURE_CACHE_TTL_SECONDS: float = 60.0
    FEATURE_CACHE_MAX_ENTRIES: int = 500
    FEATURE_EVALUATION_FALLBACK: Literal["deny", "allow", "error"] = "deny"
    ADMIN_ROLES: list[str] = ["ADMIN", "SUPERADMIN"]
    ADMIN_LIST_MAX_PAGE_SIZE: int = 200
    METRICS_ENABLED: bool = True

settings = Settings()
