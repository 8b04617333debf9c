from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BufferRuntimeSettings(BaseSettings):
    """Environment-driven knobs for the log buffer.

    Every field can be set by its ``LOG_*`` variable; the two flush triggers
    also accept the bare ``BATCH_SIZE`` / ``FLUSH_INTERVAL_MS`` names.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    batch_size: int = Field(
        default=1000, ge=1, validation_alias=AliasChoices("LOG_BATCH_SIZE", "BATCH_SIZE")
    )
    flush_interval_ms: int = Field(
        default=60_000,
        ge=1,
        validation_alias=AliasChoices("LOG_FLUSH_INTERVAL_MS", "FLUSH_INTERVAL_MS"),
    )
    max_retries: int = Field(default=3, ge=0, validation_alias="LOG_MAX_RETRIES")
    persist_timeout_ms: int = Field(default=5000, ge=1, validation_alias="LOG_PERSIST_TIMEOUT_MS")
    drain_max_attempts: int = Field(default=10, ge=1, validation_alias="LOG_DRAIN_MAX_ATTEMPTS")
    drain_poll_ms: int = Field(default=100, ge=0, validation_alias="LOG_DRAIN_POLL_MS")
    shutdown_wait_ms: int = Field(default=30_000, ge=0, validation_alias="LOG_SHUTDOWN_WAIT_MS")
    buffer_id: str = Field(default="default", validation_alias="LOG_BUFFER_ID")

    @property
    def flush_interval(self) -> float:
        return self.flush_interval_ms / 1000.0

    @property
    def persist_timeout(self) -> float:
        return self.persist_timeout_ms / 1000.0
