from __future__ import annotations

import asyncio
from dataclasses import dataclass
from time import monotonic
from typing import Awaitable, Callable, Optional

from loguru import logger

from .flusher import BatchFlusher
from .ledger import FailureLedger
from .queue import StagingQueue


@dataclass(frozen=True)
class DrainReport:
    """Outcome of a drain.

    Attributes:
        attempts: Loop iterations used (flushes plus waits on an active flush)
        flushed: Records committed during the drain
        remaining: Records still queued when the drain stopped
        dropped: Records discarded at shutdown (0 for force_flush)
    """

    attempts: int = 0
    flushed: int = 0
    remaining: int = 0
    dropped: int = 0

    @property
    def complete(self) -> bool:
        return self.remaining == 0 and self.dropped == 0


class DrainController:
    """Repeats flushes until the queue is empty or the attempt budget runs out."""

    def __init__(
        self,
        flusher: BatchFlusher,
        queue: StagingQueue,
        ledger: FailureLedger,
        *,
        max_attempts: int = 10,
        poll_interval: float = 0.1,
        shutdown_wait: float = 30.0,
    ):
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._flusher = flusher
        self._queue = queue
        self._ledger = ledger
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self.shutdown_wait = shutdown_wait

    async def force_flush(self) -> DrainReport:
        """Flush repeatedly; errors from a flush propagate to the caller."""
        if not len(self._queue) and not self._flusher.is_processing:
            return DrainReport()

        logger.info(f"Force flush requested ({len(self._queue)} logs queued)")
        processed_before = self._flusher.total_processed
        attempts = 0

        while attempts < self.max_attempts and (
            len(self._queue) or self._flusher.is_processing
        ):
            attempts += 1
            if self._flusher.is_processing:
                await asyncio.sleep(self.poll_interval)
                continue
            await self._flusher.flush()

        report = DrainReport(
            attempts=attempts,
            flushed=self._flusher.total_processed - processed_before,
            remaining=len(self._queue),
        )
        if report.remaining:
            logger.warning(
                f"Force flush stopped after {attempts} attempts; {report.remaining} logs remain"
            )
        else:
            logger.success(f"Force flush drained the queue in {attempts} attempts")
        return report

    async def wait_idle(self, timeout: float) -> bool:
        """Wait (bounded) for an active flush to finish. Returns True when idle."""
        deadline = monotonic() + timeout
        while self._flusher.is_processing:
            if monotonic() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval or 0.01)
        return True

    async def shutdown(
        self, stop_triggers: Optional[Callable[[], Awaitable[None]]] = None
    ) -> DrainReport:
        """Graceful drain for process exit.

        Waits for an in-progress flush, stops the triggers, force-flushes,
        then discards whatever is still queued. Flush errors are logged, not
        raised, so the caller can always finish shutting down.

        Args:
            stop_triggers: Awaited after the wait and before the final drain.
                Cancelling a flush that outlived the wait returns its batch
                to the queue, so it must happen before the discard.
        """
        logger.info(
            f"Draining log buffer: queued={len(self._queue)} "
            f"processing={self._flusher.is_processing}"
        )
        if not await self.wait_idle(self.shutdown_wait):
            logger.warning(f"Flush still running after {self.shutdown_wait:.1f}s wait")

        if stop_triggers is not None:
            await stop_triggers()

        try:
            report = await self.force_flush()
        except Exception:
            logger.exception("Force flush failed during shutdown")
            report = DrainReport(remaining=len(self._queue))

        dropped = self._queue.clear()
        if dropped:
            logger.warning(f"{dropped} logs were not persisted and have been discarded")
        if self._flusher.is_processing:
            logger.warning(
                f"A flush of {self._ledger.in_flight_count} logs is still running; "
                "its outcome is not part of this shutdown report"
            )

        failed = self._ledger.list_permanently_failed()
        if failed:
            summary = [
                {
                    "id": e.record.id[:8],
                    "type": e.record.type,
                    "retry_count": e.record.retry_count,
                    "reason": e.final_failure_reason,
                }
                for e in failed
            ]
            logger.warning(f"{len(failed)} logs permanently failed: {summary}")

        return DrainReport(
            attempts=report.attempts,
            flushed=report.flushed,
            remaining=0,
            dropped=dropped,
        )
