"""
Composition root: settings → storage backend → log buffer, plus the
graceful-shutdown sequence used when the process is asked to stop.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

from loguru import logger

from els_client import AsyncLogStore
from event_log_store import BufferRuntimeSettings, LogBuffer
from event_log_store.buffer import DrainReport, StorageBackend

from .config import Settings


def configure_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_store(settings: Settings) -> AsyncLogStore:
    return AsyncLogStore(settings.store_config())


def build_log_buffer(
    backend: StorageBackend, buffer_settings: Optional[BufferRuntimeSettings] = None
) -> LogBuffer:
    return LogBuffer.from_settings(backend, buffer_settings or BufferRuntimeSettings())


def install_shutdown_signals(stop: asyncio.Event) -> None:
    """Set ``stop`` on SIGTERM/SIGINT (no-op where the loop can't handle signals)."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")


async def shutdown(buffer: LogBuffer, store: Optional[AsyncLogStore] = None) -> DrainReport:
    """Drain the buffer, then release the connection pool."""
    stats = buffer.get_stats()
    logger.info(
        f"Shutting down: buffer={stats.buffer_size} processing={stats.is_processing}"
    )
    report = await buffer.close()
    if store is not None:
        await store.aclose()

    final = buffer.get_stats()
    if report.complete:
        logger.success(
            f"All buffered logs persisted (processed={final.total_processed}, "
            f"failed={final.total_failed}, success_rate={final.success_rate}%)"
        )
    else:
        logger.warning(
            f"Shutdown finished with {report.dropped} logs discarded "
            f"(processed={final.total_processed}, failed={final.total_failed})"
        )
    return report
