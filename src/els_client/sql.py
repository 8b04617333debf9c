from __future__ import annotations

from datetime import datetime
from typing import Sequence

from psycopg import sql as psql

from event_log_store.models import LogFilters

# Column set written by bulk inserts (matches the partitioned log table)
LOG_COLUMNS: list[str] = [
    "log_id",
    "created_at",
    "level",
    "type",
    "message",
    "metadata",
]

# Column the parent table is range-partitioned on
PARTITION_KEY = "created_at"

HEALTH = "SELECT 1"


def partition_name(table: str, month: datetime) -> str:
    """``<table>_YYYY_MM`` for the month containing ``month``."""
    return f"{table}_{month.year:04d}_{month.month:02d}"


def create_partition_statement(
    table: str, name: str, start: datetime, end: datetime
) -> psql.Composed:
    return psql.SQL(
        "CREATE TABLE IF NOT EXISTS {} PARTITION OF {} FOR VALUES FROM ({}) TO ({})"
    ).format(
        psql.Identifier(name),
        psql.Identifier(table),
        psql.Literal(start.isoformat()),
        psql.Literal(end.isoformat()),
    )


def insert_statement(table: str, cols: Sequence[str] = LOG_COLUMNS) -> psql.Composed:
    """Plain INSERT with named parameters (%(name)s)."""
    return psql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
        psql.Identifier(table),
        psql.SQL(", ").join(psql.Identifier(c) for c in cols),
        psql.SQL(", ").join(psql.Placeholder(c) for c in cols),
    )


def copy_into_temp_statement(temp: str, cols: Sequence[str] = LOG_COLUMNS) -> psql.Composed:
    return psql.SQL("COPY {} ({}) FROM STDIN").format(
        psql.Identifier(temp),
        psql.SQL(", ").join(psql.Identifier(c) for c in cols),
    )


def create_temp_statement(temp: str, table: str) -> psql.Composed:
    return psql.SQL("CREATE TEMP TABLE {} (LIKE {} INCLUDING DEFAULTS) ON COMMIT DROP").format(
        psql.Identifier(temp), psql.Identifier(table)
    )


def insert_from_temp_statement(
    table: str, temp: str, cols: Sequence[str] = LOG_COLUMNS
) -> psql.Composed:
    col_list = psql.SQL(", ").join(psql.Identifier(c) for c in cols)
    return psql.SQL("INSERT INTO {} ({cols}) SELECT {cols} FROM {}").format(
        psql.Identifier(table), psql.Identifier(temp), cols=col_list
    )


def _where(filters: LogFilters) -> tuple[psql.Composable, dict]:
    wh: list[psql.Composable] = []
    params: dict = {}
    if filters.type:
        wh.append(psql.SQL("type = %(type)s"))
        params["type"] = filters.type
    if filters.level:
        wh.append(psql.SQL("level = %(level)s"))
        params["level"] = filters.level
    if filters.message:
        wh.append(psql.SQL("message ILIKE %(message)s"))
        params["message"] = f"%{filters.message}%"
    if filters.start_date:
        wh.append(psql.SQL("created_at >= %(start_date)s"))
        params["start_date"] = filters.start_date
    if filters.end_date:
        wh.append(psql.SQL("created_at <= %(end_date)s"))
        params["end_date"] = filters.end_date
    if not wh:
        return psql.SQL(""), params
    return psql.SQL("WHERE ") + psql.SQL(" AND ").join(wh), params


def logs_page_select(table: str, filters: LogFilters) -> tuple[psql.Composed, dict]:
    """Page of logs, newest first, each row carrying the filtered total."""
    where, params = _where(filters)
    params.update(limit=filters.limit, offset=filters.offset)
    q = psql.SQL(
        "SELECT count(*) OVER () AS total_count, {cols} FROM {table} {where} "
        "ORDER BY created_at DESC LIMIT %(limit)s OFFSET %(offset)s"
    ).format(
        cols=psql.SQL(", ").join(psql.Identifier(c) for c in LOG_COLUMNS),
        table=psql.Identifier(table),
        where=where,
    )
    return q, params


def logs_count_select(table: str, filters: LogFilters) -> tuple[psql.Composed, dict]:
    where, params = _where(filters)
    q = psql.SQL("SELECT count(*) FROM {} {}").format(psql.Identifier(table), where)
    return q, params
