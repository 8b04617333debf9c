"""
Event Log Store Client Library

Async PostgreSQL backend used by the log buffer: monthly partition
provisioning, all-or-nothing bulk inserts and the paged database view.

Usage:
    from els_client import AsyncLogStore, LogEntry

    store = AsyncLogStore({"dsn": "postgresql://..."})
    page = await store.query_logs(LogFilters(type="user_action", limit=20))
"""

from .aclient import AsyncLogStore, AsyncLogStoreConfig
from .errors import (
    LogStoreOperationalError,
    RetryableError,
    ConstraintViolation,
    TimeoutExceeded,
    PartitionError,
    map_db_error,
)
from .models import LogEntry, LogFilters, LogPage

__version__ = "1.0.0"
__all__ = [
    "AsyncLogStore",
    "AsyncLogStoreConfig",
    "LogEntry",
    "LogFilters",
    "LogPage",
    "LogStoreOperationalError",
    "RetryableError",
    "ConstraintViolation",
    "TimeoutExceeded",
    "PartitionError",
    "map_db_error",
]
