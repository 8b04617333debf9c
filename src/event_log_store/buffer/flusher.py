"""
Batch flusher: the single consumer of the staging queue.

One flush walks IDLE -> CLAIMING -> PARTITION_CHECK -> PERSISTING ->
COMMITTING | ROLLING_BACK -> IDLE. Records are removed from the queue before
any I/O and explicitly re-queued or quarantined when the attempt fails.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import partial
from time import monotonic
from typing import Any, Awaitable, List, Optional, Sequence

from loguru import logger

from ..metrics import metrics_registry
from ..utils import generate_batch_id, utc_now
from .ledger import FailureLedger
from .queue import StagingQueue
from .records import LogRecord
from .types import PartitionUnavailableError, PersistDeadlineExceeded, StorageBackend


class FlushState(str, Enum):
    IDLE = "idle"
    CLAIMING = "claiming"
    PARTITION_CHECK = "partition_check"
    PERSISTING = "persisting"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"


class FlushOutcome(str, Enum):
    SKIPPED = "skipped"  # already running or nothing queued
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class FlushResult:
    """Summary of one flush call."""

    outcome: FlushOutcome
    batch_id: str | None = None
    size: int = 0
    requeued: int = 0
    quarantined: int = 0
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def skipped(self) -> bool:
        return self.outcome is FlushOutcome.SKIPPED


SKIPPED = FlushResult(FlushOutcome.SKIPPED)


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def _log_late_outcome(batch_id: str, task: "asyncio.Task[Any]") -> None:
    """Done-callback for an insert that lost the deadline race; result is ignored."""
    if task.cancelled():
        logger.debug(f"Late insert for batch {batch_id} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Late insert for batch {batch_id} failed after deadline: {_describe(exc)}")
    else:
        logger.warning(
            f"Late insert for batch {batch_id} succeeded after deadline; "
            "its records were already re-queued and may be persisted twice"
        )


async def call_with_deadline(
    aw: Awaitable[Any], timeout: float, *, batch_id: str, what: str
) -> Any:
    """Race ``aw`` against ``timeout`` seconds.

    On expiry the call is cancelled and ``PersistDeadlineExceeded`` raised.
    The loser is not awaited: if it still completes, the outcome is only logged.
    """
    task = asyncio.ensure_future(aw)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()

    task.add_done_callback(partial(_log_late_outcome, batch_id))
    task.cancel()
    raise PersistDeadlineExceeded(f"{what} exceeded {timeout:.3g}s deadline")


class BatchFlusher:
    """Claims a bounded prefix of the queue and persists it.

    Args:
        queue: Shared staging queue
        ledger: In-flight / quarantine maps
        backend: Storage backend (ensure_partition + bulk_insert)
        batch_size: Max records per attempt
        max_retries: Failed attempts before a record is quarantined
        persist_timeout: Deadline in seconds for each backend call
        buffer_id: Metrics label
    """

    def __init__(
        self,
        queue: StagingQueue,
        ledger: FailureLedger,
        backend: StorageBackend,
        *,
        batch_size: int = 1000,
        max_retries: int = 3,
        persist_timeout: float = 5.0,
        buffer_id: str = "default",
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._queue = queue
        self._ledger = ledger
        self._backend = backend
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.persist_timeout = persist_timeout
        self._buffer_id = buffer_id

        self._active = False  # single-flight flag
        self._state = FlushState.IDLE

        self.total_processed = 0
        self.total_failed = 0
        self.last_processed_at: Optional[datetime] = None

    @property
    def state(self) -> FlushState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._active

    async def flush(self) -> FlushResult:
        """Run one flush attempt.

        No-op if another flush is active or the queue is empty.

        Raises:
            PartitionUnavailableError: partition provisioning failed (batch
                rolled back, persistence not attempted)
        """
        # check-and-set happens before the first await
        if self._active or not len(self._queue):
            return SKIPPED

        self._active = True
        try:
            return await self._run()
        finally:
            self._active = False
            self._state = FlushState.IDLE

    async def _run(self) -> FlushResult:
        self._state = FlushState.CLAIMING
        batch = self._queue.claim_prefix(self.batch_size)
        batch_id = generate_batch_id()
        started_at = utc_now()
        t0 = monotonic()
        self._ledger.begin(batch, batch_id, started_at)
        logger.debug(
            f"Flush {batch_id}: claimed {len(batch)} logs ({len(self._queue)} still queued)"
        )

        try:
            self._state = FlushState.PARTITION_CHECK
            try:
                await call_with_deadline(
                    self._backend.ensure_partition(started_at),
                    self.persist_timeout,
                    batch_id=batch_id,
                    what="ensure_partition",
                )
            except Exception as exc:
                reason = f"partition unavailable: {_describe(exc)}"
                self._rollback(batch, batch_id, reason, t0)
                raise PartitionUnavailableError(reason) from exc

            self._state = FlushState.PERSISTING
            try:
                await call_with_deadline(
                    self._backend.bulk_insert(batch),
                    self.persist_timeout,
                    batch_id=batch_id,
                    what="bulk_insert",
                )
            except Exception as exc:
                return self._rollback(batch, batch_id, _describe(exc), t0)
        except asyncio.CancelledError:
            self._restore(batch, batch_id)
            raise

        return self._commit(batch, batch_id, t0)

    def _commit(self, batch: Sequence[LogRecord], batch_id: str, t0: float) -> FlushResult:
        self._state = FlushState.COMMITTING
        for r in batch:
            self._ledger.settle(r.id)
        self.total_processed += len(batch)
        self.last_processed_at = utc_now()

        duration_ms = (monotonic() - t0) * 1000.0
        metrics_registry.records_flushed_total.labels(self._buffer_id).inc(len(batch))
        metrics_registry.flush_total.labels(self._buffer_id, FlushOutcome.COMMITTED.value).inc()
        metrics_registry.flush_latency_ms.labels(self._buffer_id).observe(duration_ms)
        metrics_registry.queue_depth.labels(self._buffer_id).set(len(self._queue))

        logger.info(f"Flush {batch_id}: {len(batch)} logs persisted in {duration_ms:.1f}ms")
        return FlushResult(
            FlushOutcome.COMMITTED, batch_id=batch_id, size=len(batch), duration_ms=duration_ms
        )

    def _rollback(
        self, batch: Sequence[LogRecord], batch_id: str, reason: str, t0: float
    ) -> FlushResult:
        self._state = FlushState.ROLLING_BACK
        now = utc_now()
        survivors: List[LogRecord] = []
        quarantined = 0

        for r in batch:
            self._ledger.settle(r.id)
            r.mark_failed(reason, now)
            if r.retry_count >= self.max_retries:
                self._ledger.quarantine(r, reason, now, batch_id)
                quarantined += 1
            else:
                survivors.append(r)

        self.total_failed += quarantined
        requeued = self._queue.requeue(survivors)

        duration_ms = (monotonic() - t0) * 1000.0
        metrics_registry.records_requeued_total.labels(self._buffer_id).inc(requeued)
        metrics_registry.records_quarantined_total.labels(self._buffer_id).inc(quarantined)
        metrics_registry.flush_total.labels(self._buffer_id, FlushOutcome.ROLLED_BACK.value).inc()
        metrics_registry.flush_latency_ms.labels(self._buffer_id).observe(duration_ms)
        metrics_registry.queue_depth.labels(self._buffer_id).set(len(self._queue))

        logger.error(
            f"Flush {batch_id} failed ({reason}); requeued={requeued} "
            f"quarantined={quarantined} queue={len(self._queue)}"
        )
        return FlushResult(
            FlushOutcome.ROLLED_BACK,
            batch_id=batch_id,
            size=len(batch),
            requeued=requeued,
            quarantined=quarantined,
            error=reason,
            duration_ms=duration_ms,
        )

    def _restore(self, batch: Sequence[LogRecord], batch_id: str) -> None:
        """Put a cancelled batch back untouched; cancellation is not a failed attempt."""
        for r in batch:
            self._ledger.settle(r.id)
        n = self._queue.requeue(batch)
        logger.warning(f"Flush {batch_id} cancelled; {n} logs returned to the queue")
