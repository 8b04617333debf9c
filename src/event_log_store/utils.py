"""
Utility functions for the event log store.

Includes id generation, UTC time helpers and month-partition arithmetic.
"""

import uuid
from datetime import datetime, timezone
from typing import Tuple, Union


def generate_id() -> str:
    """Generate a UUID string for record identification."""
    return str(uuid.uuid4())


def generate_batch_id() -> str:
    """Short id used to tag a single flush attempt in logs and the ledger."""
    return uuid.uuid4().hex[:8]


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(dt: Union[str, int, float, datetime]) -> datetime:
    """Parse datetime from an ISO string or epoch number, or return a datetime.

    Epoch values above 1e11 are taken as milliseconds, smaller ones as
    seconds. Naive values are interpreted as UTC.

    Raises:
        TypeError: ``dt`` is none of the accepted types
        ValueError: the string or number is not a valid time
    """
    if isinstance(dt, bool):
        raise TypeError("expected datetime, ISO string or epoch number, got bool")
    if isinstance(dt, (int, float)):
        seconds = dt / 1000 if abs(dt) > 1e11 else dt
        try:
            return datetime.fromtimestamp(seconds, timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"epoch value out of range: {dt}") from e
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt.strip().replace("Z", "+00:00"))
    if not isinstance(dt, datetime):
        raise TypeError(f"expected datetime, ISO string or epoch number, got {type(dt).__name__}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def month_start(dt: datetime) -> datetime:
    """First instant (UTC) of the month containing ``dt``."""
    dt = parse_datetime(dt).astimezone(timezone.utc)
    return datetime(dt.year, dt.month, 1, tzinfo=timezone.utc)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift a month-start datetime by ``months`` (may be negative)."""
    idx = dt.year * 12 + (dt.month - 1) + months
    return datetime(idx // 12, idx % 12 + 1, 1, tzinfo=timezone.utc)


def month_bounds(dt: datetime) -> Tuple[datetime, datetime]:
    """Half-open [start, end) range of the month containing ``dt``."""
    start = month_start(dt)
    return start, add_months(start, 1)
