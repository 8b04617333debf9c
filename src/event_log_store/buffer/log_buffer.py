"""
LogBuffer: the in-memory ingestion buffer exposed to the API layer.

Wires the staging queue, batch flusher, failure ledger and drain controller,
and owns the two flush triggers:

- size: checked after every ``add_log``
- time: a recurring asyncio task started by ``open()`` and cancelled by ``close()``

Example:
    backend = AsyncLogStore({"dsn": "postgresql://..."})
    async with LogBuffer(backend, batch_size=500, flush_interval=5.0) as buf:
        await buf.add_log({"type": "user_action", "message": "login"})
    # drained on exit
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, List, Optional

from loguru import logger

from ..metrics import metrics_registry
from ..models import BufferStats, LogFilters, LogPage
from .drain import DrainController, DrainReport
from .flusher import BatchFlusher, FlushResult, FlushState
from .ledger import FailureLedger, InFlightEntry, QuarantinedEntry
from .queue import StagingQueue
from .records import LogRecord, normalize
from .settings import BufferRuntimeSettings
from .types import BufferClosedError, StorageBackend


class LogBuffer:
    """Buffered, batch-flushing front of a ``StorageBackend``.

    Args:
        backend: Storage backend (ensure_partition + bulk_insert)
        batch_size: Size trigger and max records per flush
        flush_interval: Seconds between timer-driven flushes
        max_retries: Failed attempts before a record is quarantined
        persist_timeout: Deadline in seconds for each backend call
        drain_max_attempts: Flush budget for ``force_flush``
        drain_poll_interval: Sleep between drain checks while a flush runs
        shutdown_wait: Max seconds ``close()`` waits for an active flush
        buffer_id: Label for logs and metrics
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        batch_size: int = 1000,
        flush_interval: float = 60.0,
        max_retries: int = 3,
        persist_timeout: float = 5.0,
        drain_max_attempts: int = 10,
        drain_poll_interval: float = 0.1,
        shutdown_wait: float = 30.0,
        buffer_id: str = "default",
    ):
        if flush_interval <= 0:
            raise ValueError("flush_interval must be > 0")

        self._buffer_id = buffer_id
        self._flush_interval = flush_interval
        self._queue = StagingQueue()
        self._ledger = FailureLedger()
        self._flusher = BatchFlusher(
            self._queue,
            self._ledger,
            backend,
            batch_size=batch_size,
            max_retries=max_retries,
            persist_timeout=persist_timeout,
            buffer_id=buffer_id,
        )
        self._drain = DrainController(
            self._flusher,
            self._queue,
            self._ledger,
            max_attempts=drain_max_attempts,
            poll_interval=drain_poll_interval,
            shutdown_wait=shutdown_wait,
        )
        self._timer: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def from_settings(
        cls, backend: StorageBackend, settings: Optional[BufferRuntimeSettings] = None
    ) -> "LogBuffer":
        s = settings or BufferRuntimeSettings()
        return cls(
            backend,
            batch_size=s.batch_size,
            flush_interval=s.flush_interval,
            max_retries=s.max_retries,
            persist_timeout=s.persist_timeout,
            drain_max_attempts=s.drain_max_attempts,
            drain_poll_interval=s.drain_poll_ms / 1000.0,
            shutdown_wait=s.shutdown_wait_ms / 1000.0,
            buffer_id=s.buffer_id,
        )

    # ---------- lifecycle ----------

    async def open(self) -> None:
        """Start the flush timer. Safe to call more than once."""
        if self._closed:
            raise BufferClosedError("LogBuffer has been closed")
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.create_task(
            self._flush_loop(), name=f"log-buffer-{self._buffer_id}-timer"
        )
        logger.info(
            f"Log buffer '{self._buffer_id}' started "
            f"(batch_size={self.batch_size}, interval={self._flush_interval:.1f}s)"
        )

    async def close(self) -> DrainReport:
        """Stop the timer, drain what can be drained, discard the rest."""
        if self._closed:
            return DrainReport()
        self._closed = True
        report = await self._drain.shutdown(stop_triggers=self._stop_timer)
        logger.info(f"Log buffer '{self._buffer_id}' closed: {self.get_stats().to_dict()}")
        return report

    async def __aenter__(self) -> "LogBuffer":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _stop_timer(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        try:
            await self._timer
        except asyncio.CancelledError:
            pass
        self._timer = None

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            try:
                await self._flusher.flush()
            except Exception:
                logger.exception("Timer-driven flush failed")

    # ---------- producers ----------

    async def add_log(self, raw: Any) -> LogRecord:
        """Normalize and stage one record; flushes when the size trigger fires.

        Raises:
            BufferClosedError: the buffer was closed
            PartitionUnavailableError: the size-triggered flush could not
                provision a partition (the record stays buffered)
        """
        if self._closed:
            raise BufferClosedError("LogBuffer has been closed")

        record = normalize(raw)
        self._queue.append(record)
        metrics_registry.queue_depth.labels(self._buffer_id).set(len(self._queue))
        logger.debug(f"Log added (buffer {len(self._queue)}/{self.batch_size})")

        if len(self._queue) >= self.batch_size:
            await self._flusher.flush()
        return record

    async def add_logs(self, raws: Iterable[Any]) -> int:
        n = 0
        for raw in raws:
            await self.add_log(raw)
            n += 1
        return n

    # ---------- flushing ----------

    async def flush(self) -> FlushResult:
        """Single flush attempt; errors propagate to the caller."""
        return await self._flusher.flush()

    async def force_flush(self) -> DrainReport:
        return await self._drain.force_flush()

    async def retry_failed_logs(self) -> int:
        """Re-enqueue every quarantined record with a fresh retry budget."""
        entries = self._ledger.take_all_failed()
        if not entries:
            logger.info("No permanently failed logs to retry")
            return 0

        records = [e.record for e in entries]
        for r in records:
            r.reset_retries()
        n = self._queue.requeue(records)
        logger.info(f"Re-enqueued {n} permanently failed logs")

        await self._flusher.flush()
        return n

    def clear_buffer(self, include_failed: bool = False) -> int:
        """Discard staged records (and quarantined ones if asked). Returns count."""
        n = self._queue.clear()
        if include_failed:
            n += self._ledger.clear_failed()
        metrics_registry.queue_depth.labels(self._buffer_id).set(0)
        logger.warning(f"Buffer cleared: {n} logs discarded")
        return n

    # ---------- queries ----------

    def get_stored_logs(self, filters: Optional[LogFilters | dict] = None) -> LogPage:
        """Page through records still in memory, newest first."""
        if filters is None:
            filters = LogFilters()
        elif isinstance(filters, dict):
            filters = LogFilters(**filters)

        matched = [r for r in self._queue.snapshot() if filters.matches(r)]
        matched.sort(key=lambda r: r.created_at, reverse=True)
        window = matched[filters.offset : filters.offset + filters.limit]
        return LogPage.build([r.to_dict() for r in window], len(matched), filters)

    def get_failed_logs(self) -> List[QuarantinedEntry]:
        return self._ledger.list_permanently_failed()

    def get_pending_logs(self) -> List[InFlightEntry]:
        return self._ledger.list_in_flight()

    def get_stats(self) -> BufferStats:
        processed = self._flusher.total_processed
        failed = self._flusher.total_failed
        attempted = processed + failed
        return BufferStats(
            buffer_size=len(self._queue),
            total_processed=processed,
            total_failed=failed,
            pending_count=self._ledger.in_flight_count,
            permanently_failed_count=self._ledger.failed_count,
            success_rate=round(processed / attempted * 100.0, 2) if attempted else 100.0,
            is_processing=self._flusher.is_processing,
            last_processed_at=self._flusher.last_processed_at,
            batch_size=self.batch_size,
            flush_interval_ms=int(self._flush_interval * 1000),
        )

    # ---------- properties ----------

    @property
    def batch_size(self) -> int:
        return self._flusher.batch_size

    @property
    def buffer_size(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._flusher.is_processing

    @property
    def state(self) -> FlushState:
        return self._flusher.state

    @property
    def is_open(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def closed(self) -> bool:
        return self._closed
