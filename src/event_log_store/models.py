"""
Query and reporting models shared by the buffer and the storage client.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import parse_datetime

MAX_PAGE_LIMIT = 1000


class LogFilters(BaseModel):
    """Filters for paging through logs (buffer or database view).

    Accepts both snake_case names and the camelCase query-string names
    (``startDate``, ``endDate``).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Optional[str] = None
    level: Optional[str] = None
    message: Optional[str] = None  # case-insensitive substring
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _to_utc(cls, v):
        if v is None or v == "":
            return None
        try:
            return parse_datetime(v)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @field_validator("limit")
    @classmethod
    def _cap_limit(cls, v):
        return min(v, MAX_PAGE_LIMIT)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def matches(self, record: Any) -> bool:
        """In-memory equivalent of the database WHERE clause."""
        if self.type and record.type != self.type:
            return False
        if self.level and record.level != self.level:
            return False
        if self.message and self.message.lower() not in record.message.lower():
            return False
        if self.start_date and record.created_at < self.start_date:
            return False
        if self.end_date and record.created_at > self.end_date:
            return False
        return True


class LogPage(BaseModel):
    """One page of results."""

    records: List[dict]
    total: int
    page: int
    total_pages: int

    @classmethod
    def build(cls, records: List[dict], total: int, filters: LogFilters) -> "LogPage":
        return cls(
            records=records,
            total=total,
            page=filters.page,
            total_pages=math.ceil(total / filters.limit) if total else 0,
        )


@dataclass(frozen=True)
class BufferStats:
    """Point-in-time view of the log buffer."""

    buffer_size: int
    total_processed: int
    total_failed: int
    pending_count: int
    permanently_failed_count: int
    success_rate: float
    is_processing: bool
    last_processed_at: Optional[datetime]
    batch_size: int
    flush_interval_ms: int

    def to_dict(self) -> dict:
        d = asdict(self)
        if self.last_processed_at is not None:
            d["last_processed_at"] = self.last_processed_at.isoformat()
        return d
