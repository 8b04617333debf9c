from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator, List, Optional

from ..utils import utc_now
from .records import LogRecord


class StagingQueue:
    """FIFO of records awaiting flush, with an id index for de-duplication.

    None of the operations await, so on a single event loop ``append`` and
    ``claim_prefix`` never interleave mid-operation.
    """

    def __init__(self) -> None:
        self._q: deque[LogRecord] = deque()
        self._ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._q)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(self._q)

    @property
    def size(self) -> int:
        return len(self._q)

    def append(self, record: LogRecord) -> bool:
        """Append at the tail; returns False if the id is already queued."""
        if record.id in self._ids:
            return False
        if record.enqueued_at is None:
            record.enqueued_at = utc_now()
        self._q.append(record)
        self._ids.add(record.id)
        return True

    def requeue(self, records: Iterable[LogRecord]) -> int:
        """Tail-append previously claimed records. Returns how many were added."""
        added = 0
        now = utc_now()
        for r in records:
            if r.id in self._ids:
                continue
            r.enqueued_at = now
            self._q.append(r)
            self._ids.add(r.id)
            added += 1
        return added

    def claim_prefix(self, n: int) -> List[LogRecord]:
        """Pop up to ``n`` records from the head."""
        if n <= 0:
            return []
        out: List[LogRecord] = []
        while self._q and len(out) < n:
            r = self._q.popleft()
            self._ids.discard(r.id)
            out.append(r)
        return out

    def peek(self) -> Optional[LogRecord]:
        return self._q[0] if self._q else None

    def snapshot(self) -> List[LogRecord]:
        return list(self._q)

    def clear(self) -> int:
        """Drop everything; returns the number of records discarded."""
        n = len(self._q)
        self._q.clear()
        self._ids.clear()
        return n
