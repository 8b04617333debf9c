"""
Pydantic data models for the event log store client.

``LogEntry`` is the validated shape of a producer payload at the ingestion
boundary; the buffer itself accepts anything with ``type`` and ``message``.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from event_log_store.models import LogFilters, LogPage

__all__ = ["LogEntry", "LogFilters", "LogPage"]


class LogEntry(BaseModel):
    """Single producer log entry."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(max_length=50)
    message: str
    level: str = Field(default="info", max_length=10)
    metadata: Optional[Union[dict[str, Any], str]] = None
    timestamp: Optional[datetime] = None

    @field_validator("type", "message")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("level", mode="before")
    @classmethod
    def _default_level(cls, v):
        return v or "info"

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_kind(cls, v):
        if v is not None and not isinstance(v, (dict, str)):
            raise ValueError("metadata must be an object")
        return v
