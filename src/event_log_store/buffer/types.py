from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from .records import LogRecord


@runtime_checkable
class StorageBackend(Protocol):
    """Destination of flushed batches.

    ``ensure_partition`` must be idempotent. ``bulk_insert`` must be
    all-or-nothing; any exception it raises means the whole batch failed.
    """

    async def ensure_partition(self, for_date: datetime) -> None: ...

    async def bulk_insert(self, records: Sequence["LogRecord"]) -> int: ...


class LogBufferError(Exception):
    """Base error for the buffering engine."""


class PartitionUnavailableError(LogBufferError):
    """The destination partition could not be provisioned; batch not attempted."""


class PersistDeadlineExceeded(LogBufferError):
    """bulk_insert did not settle before the persistence deadline."""


class BufferClosedError(LogBufferError):
    """Raised when adding to a buffer that has been closed."""
