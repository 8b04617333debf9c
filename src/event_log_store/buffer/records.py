"""
Staged log records and the normalizer that creates them.

``normalize`` runs on every producer call, so it only stamps fields and
resolves the metadata variant; validation belongs to the calling boundary.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from ..utils import generate_id, parse_datetime, utc_now

DEFAULT_LEVEL = "info"


@dataclass(frozen=True)
class NullMetadata:
    """No metadata supplied."""

    def to_db(self) -> Any:
        return None


@dataclass(frozen=True)
class StructuredMetadata:
    """JSON-compatible structured payload (object, array or scalar)."""

    value: Any

    def to_db(self) -> Any:
        return self.value


@dataclass(frozen=True)
class RawMetadata:
    """A string that did not decode to a JSON object or array."""

    text: str

    def to_db(self) -> Any:
        return self.text


Metadata = Union[NullMetadata, StructuredMetadata, RawMetadata]

NULL_METADATA = NullMetadata()


def resolve_metadata(value: Any) -> Metadata:
    """Pick the metadata variant once, at normalization time."""
    if value is None:
        return NULL_METADATA
    if isinstance(value, (NullMetadata, StructuredMetadata, RawMetadata)):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return RawMetadata(value)
        if isinstance(decoded, (dict, list)):
            return StructuredMetadata(decoded)
        return RawMetadata(value)
    return StructuredMetadata(value)


@dataclass
class LogRecord:
    """A normalized record while it lives in the buffer."""

    type: str
    message: str
    level: str = DEFAULT_LEVEL
    metadata: Metadata = NULL_METADATA
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    enqueued_at: Optional[datetime] = None
    retry_count: int = 0
    last_failure_reason: Optional[str] = None
    last_failure_at: Optional[datetime] = None

    def mark_failed(self, reason: str, at: datetime) -> None:
        self.retry_count += 1
        self.last_failure_reason = reason
        self.last_failure_at = at

    def reset_retries(self) -> None:
        self.retry_count = 0
        self.last_failure_reason = None
        self.last_failure_at = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata.to_db(),
            "created_at": self.created_at.isoformat(),
            "enqueued_at": self.enqueued_at.isoformat() if self.enqueued_at else None,
            "retry_count": self.retry_count,
            "last_failure_reason": self.last_failure_reason,
            "last_failure_at": (
                self.last_failure_at.isoformat() if self.last_failure_at else None
            ),
        }


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    if hasattr(raw, "model_dump"):
        return raw.model_dump()
    return vars(raw)


def normalize(raw: Any) -> LogRecord:
    """Stamp a raw producer payload into a ``LogRecord``.

    Accepts a mapping, a pydantic model or any object with attributes.
    ``created_at`` (or ``timestamp``) from the producer is kept when present.
    """
    data = _as_mapping(raw)
    now = utc_now()

    created_at = now
    produced_at = data.get("created_at") or data.get("timestamp")
    if produced_at:
        try:
            created_at = parse_datetime(produced_at)
        except (TypeError, ValueError):
            pass  # unparseable producer time: keep arrival time

    return LogRecord(
        type=str(data.get("type")),
        message=str(data.get("message")),
        level=data.get("level") or DEFAULT_LEVEL,
        metadata=resolve_metadata(data.get("metadata")),
        created_at=created_at,
    )
