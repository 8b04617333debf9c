"""
Unit tests for SQL statement builders.
"""

from datetime import datetime, timezone

from psycopg import sql as psql

from els_client.sql import (
    LOG_COLUMNS,
    _where,
    create_partition_statement,
    insert_statement,
    logs_page_select,
    partition_name,
)
from event_log_store.models import LogFilters
from event_log_store.utils import add_months, month_bounds, month_start


def test_partition_name_is_zero_padded():
    assert (
        partition_name("game_logs_partitioned", datetime(2025, 6, 15, tzinfo=timezone.utc))
        == "game_logs_partitioned_2025_06"
    )


def test_month_arithmetic_crosses_year():
    start = month_start(datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc))
    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert add_months(start, 1) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert add_months(start, -12) == datetime(2024, 12, 1, tzinfo=timezone.utc)
    assert month_bounds(start) == (start, datetime(2026, 1, 1, tzinfo=timezone.utc))


def test_create_partition_statement_names_both_tables():
    start = datetime(2025, 6, 1, tzinfo=timezone.utc)
    stmt = create_partition_statement("logs", "logs_2025_06", start, add_months(start, 1))
    assert isinstance(stmt, psql.Composed)
    text = repr(stmt)
    assert "IF NOT EXISTS" in text
    assert "'logs_2025_06'" in text
    assert "'logs'" in text
    assert "2025-07-01" in text


def test_insert_statement_uses_named_placeholders():
    text = repr(insert_statement("logs"))
    for col in LOG_COLUMNS:
        assert f"Placeholder('{col}')" in text


def test_where_without_filters_is_empty():
    where, params = _where(LogFilters())
    assert params == {}
    assert where == psql.SQL("")


def test_where_params():
    f = LogFilters(
        type="error",
        level="error",
        message="Disk",
        startDate="2025-06-01T00:00:00Z",
    )
    _, params = _where(f)
    assert params["type"] == "error"
    assert params["level"] == "error"
    assert params["message"] == "%Disk%"
    assert params["start_date"] == datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert "end_date" not in params


def test_page_select_carries_limit_and_offset():
    q, params = logs_page_select("logs", LogFilters(page=3, limit=20))
    assert params == {"limit": 20, "offset": 40}
    assert "ORDER BY created_at DESC" in repr(q)


def test_filters_cap_limit():
    assert LogFilters(limit=5000).limit == 1000
