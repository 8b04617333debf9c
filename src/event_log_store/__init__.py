"""
Event Log Store

In-memory buffering of untrusted event/log records with batched, retried
persistence into a month-partitioned PostgreSQL table.

Usage:
    from event_log_store import LogBuffer
    from els_client import AsyncLogStore

    store = AsyncLogStore({"dsn": "postgresql://..."})
    async with LogBuffer(store, batch_size=1000, flush_interval=60.0) as buf:
        await buf.add_log({"type": "user_action", "message": "login", "level": "info"})
"""

from .buffer import LogBuffer, LogRecord, BufferRuntimeSettings
from .models import BufferStats, LogFilters, LogPage

__version__ = "1.0.0"
__all__ = [
    "LogBuffer",
    "LogRecord",
    "BufferRuntimeSettings",
    "BufferStats",
    "LogFilters",
    "LogPage",
]
