"""
Failure ledger for the log buffer.

Tracks records that are part of an active flush (in-flight) and records that
exhausted their retry budget (quarantined). A record is never in both maps,
and never in either map while it also sits in the staging queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from loguru import logger

from .records import LogRecord


@dataclass(frozen=True)
class InFlightEntry:
    """A record claimed by the flush identified by ``batch_id``."""

    record: LogRecord
    batch_id: str
    started_at: datetime

    def to_dict(self) -> dict:
        return {
            **self.record.to_dict(),
            "batch_id": self.batch_id,
            "started_at": self.started_at.isoformat(),
        }


@dataclass(frozen=True)
class QuarantinedEntry:
    """A record that failed ``max_retries`` times.

    Attributes:
        record: The record, with ``retry_count >= max_retries``
        final_failure_reason: Error message of the last attempt
        final_failure_at: When the last attempt failed
        batch_id: Flush attempt that quarantined the record
    """

    record: LogRecord
    final_failure_reason: str
    final_failure_at: datetime
    batch_id: str

    def to_dict(self) -> dict:
        return {
            **self.record.to_dict(),
            "final_failure_reason": self.final_failure_reason,
            "final_failure_at": self.final_failure_at.isoformat(),
            "batch_id": self.batch_id,
        }


class FailureLedger:
    """In-flight and permanently-failed maps, keyed by record id."""

    def __init__(self) -> None:
        self._in_flight: Dict[str, InFlightEntry] = {}
        self._failed: Dict[str, QuarantinedEntry] = {}

    # ---------- in-flight ----------

    def begin(self, records: Iterable[LogRecord], batch_id: str, started_at: datetime) -> None:
        for r in records:
            self._in_flight[r.id] = InFlightEntry(r, batch_id, started_at)

    def settle(self, record_id: str) -> Optional[InFlightEntry]:
        """Remove a record from the in-flight map once its outcome is known."""
        return self._in_flight.pop(record_id, None)

    def list_in_flight(self) -> List[InFlightEntry]:
        return list(self._in_flight.values())

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # ---------- quarantine ----------

    def quarantine(
        self, record: LogRecord, reason: str, at: datetime, batch_id: str
    ) -> QuarantinedEntry:
        entry = QuarantinedEntry(record, reason, at, batch_id)
        self._failed[record.id] = entry
        logger.warning(
            f"Log {record.id[:8]} quarantined after {record.retry_count} attempts "
            f"(batch={batch_id}): {reason}"
        )
        return entry

    def list_permanently_failed(self) -> List[QuarantinedEntry]:
        return list(self._failed.values())

    @property
    def failed_count(self) -> int:
        return len(self._failed)

    def take_all_failed(self) -> List[QuarantinedEntry]:
        """Snapshot and empty the quarantine map in one step."""
        entries = list(self._failed.values())
        self._failed.clear()
        return entries

    def clear_failed(self) -> int:
        n = len(self._failed)
        self._failed.clear()
        return n
