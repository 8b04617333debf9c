from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from els_client import AsyncLogStoreConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    DATABASE_URL: str = Field(validation_alias=AliasChoices("DATABASE_URL", "LOG_DATABASE_URL"))
    LOG_TABLE_NAME: str = "game_logs_partitioned"
    DB_POOL_MAX: int = 20
    DB_CONNECT_TIMEOUT: float = 10.0
    DB_STATEMENT_TIMEOUT_MS: Optional[int] = None
    DB_WRITE_MODE: str = "auto"
    DB_COPY_MIN_ROWS: int = 5000
    PARTITION_MONTHS_AHEAD: int = 1
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL

    def store_config(self) -> AsyncLogStoreConfig:
        cfg: AsyncLogStoreConfig = {
            "dsn": self.DATABASE_URL,
            "table": self.LOG_TABLE_NAME,
            "pool_max": self.DB_POOL_MAX,
            "connect_timeout": self.DB_CONNECT_TIMEOUT,
            "write_mode": self.DB_WRITE_MODE,
            "copy_min_rows": self.DB_COPY_MIN_ROWS,
            "partition_months_ahead": self.PARTITION_MONTHS_AHEAD,
        }
        if self.DB_STATEMENT_TIMEOUT_MS:
            cfg["statement_timeout_ms"] = self.DB_STATEMENT_TIMEOUT_MS
        return cfg


@lru_cache()
def get_settings() -> Settings:
    return Settings()
