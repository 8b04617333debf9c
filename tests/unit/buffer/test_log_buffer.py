"""
Unit tests for LogBuffer: triggers, queries, stats and manual retry.
"""

import asyncio

import pytest

from event_log_store.buffer import (
    BufferClosedError,
    LogBuffer,
    PartitionUnavailableError,
)
from event_log_store.models import LogFilters


def _raw(i, **extra):
    return {"type": "t", "message": f"m{i}", **extra}


# ---------- triggers ----------


@pytest.mark.asyncio
async def test_size_trigger_flushes_inside_add_log(make_buffer, backend):
    buf = make_buffer(backend, batch_size=3)

    await buf.add_log(_raw(0))
    await buf.add_log(_raw(1))
    assert backend.insert_calls == 0

    await buf.add_log(_raw(2))
    assert len(backend.batches) == 1
    assert buf.buffer_size == 0
    assert buf.get_stats().total_processed == 3


@pytest.mark.asyncio
async def test_size_trigger_propagates_partition_error(make_buffer, fake_backend):
    """The caller sees the escalation; the record stays buffered."""
    buf = make_buffer(fake_backend(fail_partition=True), batch_size=1)

    with pytest.raises(PartitionUnavailableError):
        await buf.add_log(_raw(0))

    assert buf.buffer_size == 1


@pytest.mark.asyncio
async def test_timer_flushes_below_threshold(make_buffer, backend):
    buf = make_buffer(backend, flush_interval=0.02)
    async with buf:
        assert buf.is_open
        await buf.add_log(_raw(0))
        await asyncio.sleep(0.1)
        assert backend.persisted_ids
        assert buf.buffer_size == 0


@pytest.mark.asyncio
async def test_timer_survives_partition_errors(make_buffer, fake_backend):
    """Timer-driven flush failures are logged and the timer keeps running."""
    backend = fake_backend(fail_partition=True)
    buf = make_buffer(backend, flush_interval=0.02, max_retries=100)
    await buf.open()
    await buf.add_log(_raw(0))

    await asyncio.sleep(0.1)

    assert len(backend.partition_calls) >= 2
    assert buf.is_open
    await buf.close()


@pytest.mark.asyncio
async def test_open_after_close_rejected(make_buffer, backend):
    buf = make_buffer(backend)
    await buf.close()
    with pytest.raises(BufferClosedError):
        await buf.open()


def test_invalid_flush_interval(backend):
    with pytest.raises(ValueError):
        LogBuffer(backend, flush_interval=0)


# ---------- retries ----------


@pytest.mark.asyncio
async def test_failed_record_visible_then_quarantined(make_buffer, fake_backend):
    """batch_size=2, max_retries=1, one failing insert."""
    buf = make_buffer(fake_backend(fail_inserts=1), batch_size=2, max_retries=1)
    a = await buf.add_log(_raw("A"))

    await buf.flush()
    await buf.flush()

    failed = buf.get_failed_logs()
    assert [e.record.id for e in failed] == [a.id]
    assert failed[0].record.retry_count == 1
    stats = buf.get_stats()
    assert stats.total_failed == 1
    assert stats.total_processed == 0
    assert stats.permanently_failed_count == 1
    assert stats.success_rate == 0.0


@pytest.mark.asyncio
async def test_retry_failed_logs_resets_budget(make_buffer, fake_backend):
    backend = fake_backend(fail_inserts=1)
    buf = make_buffer(backend, max_retries=1)
    a = await buf.add_log(_raw("A"))
    await buf.flush()
    assert buf.get_stats().permanently_failed_count == 1

    n = await buf.retry_failed_logs()

    assert n == 1
    assert a.retry_count == 0
    assert backend.persisted_ids == [a.id]
    assert buf.get_failed_logs() == []
    assert buf.buffer_size == 0


@pytest.mark.asyncio
async def test_retry_failed_logs_with_nothing_failed(make_buffer, backend):
    buf = make_buffer(backend)
    assert await buf.retry_failed_logs() == 0
    assert backend.insert_calls == 0


@pytest.mark.asyncio
async def test_pending_logs_during_flush(make_buffer, fake_backend):
    buf = make_buffer(fake_backend(insert_delay=0.05))
    for i in range(2):
        await buf.add_log(_raw(i))

    task = asyncio.create_task(buf.flush())
    await asyncio.sleep(0.01)
    pending = buf.get_pending_logs()
    stats = buf.get_stats()
    await task

    assert len(pending) == 2
    assert stats.pending_count == 2
    assert stats.is_processing
    assert stats.buffer_size == 0
    assert buf.get_pending_logs() == []


# ---------- queries ----------


@pytest.mark.asyncio
async def test_get_stored_logs_filters_and_pages(make_buffer, backend):
    buf = make_buffer(backend)
    await buf.add_log(_raw(1, type="error", level="error", timestamp="2025-06-01T00:00:00Z"))
    await buf.add_log(_raw(2, type="error", level="warn", timestamp="2025-06-02T00:00:00Z"))
    await buf.add_log(_raw(3, type="user_action", timestamp="2025-06-03T00:00:00Z"))
    await buf.add_log({"type": "error", "message": "Disk FULL", "timestamp": "2025-06-04T00:00:00Z"})

    everything = buf.get_stored_logs()
    assert everything.total == 4
    # newest first
    assert [r["message"] for r in everything.records] == ["Disk FULL", "m3", "m2", "m1"]

    errors = buf.get_stored_logs({"type": "error", "limit": 2})
    assert errors.total == 3
    assert errors.total_pages == 2
    assert len(errors.records) == 2

    page2 = buf.get_stored_logs({"type": "error", "limit": 2, "page": 2})
    assert [r["message"] for r in page2.records] == ["m1"]

    assert buf.get_stored_logs({"message": "disk"}).total == 1
    assert buf.get_stored_logs(LogFilters(level="warn")).total == 1

    ranged = buf.get_stored_logs(
        {"startDate": "2025-06-02T00:00:00Z", "endDate": "2025-06-03T00:00:00Z"}
    )
    assert [r["message"] for r in ranged.records] == ["m3", "m2"]


@pytest.mark.asyncio
async def test_get_stored_logs_excludes_in_flight_and_persisted(make_buffer, backend):
    buf = make_buffer(backend)
    await buf.add_log(_raw(0))
    await buf.flush()
    page = buf.get_stored_logs()
    assert page.total == 0
    assert page.total_pages == 0


def test_stats_before_any_attempt(make_buffer, backend):
    stats = make_buffer(backend, batch_size=7, flush_interval=2.5).get_stats()
    assert stats.success_rate == 100.0
    assert stats.batch_size == 7
    assert stats.flush_interval_ms == 2500
    assert stats.last_processed_at is None
    assert stats.to_dict()["last_processed_at"] is None


@pytest.mark.asyncio
async def test_stats_after_commit(make_buffer, backend):
    buf = make_buffer(backend)
    await buf.add_log(_raw(0))
    await buf.flush()
    d = buf.get_stats().to_dict()
    assert d["total_processed"] == 1
    assert d["success_rate"] == 100.0
    assert isinstance(d["last_processed_at"], str)


@pytest.mark.asyncio
async def test_clear_buffer(make_buffer, fake_backend):
    buf = make_buffer(fake_backend(fail_inserts=1), max_retries=1)
    await buf.add_log(_raw(0))
    await buf.flush()  # quarantines m0
    await buf.add_log(_raw(1))
    await buf.add_log(_raw(2))

    assert buf.clear_buffer() == 2
    assert buf.buffer_size == 0
    assert buf.get_stats().permanently_failed_count == 1

    assert buf.clear_buffer(include_failed=True) == 1
    assert buf.get_failed_logs() == []
