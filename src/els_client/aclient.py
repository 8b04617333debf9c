from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Sequence, TypedDict

import psycopg
from loguru import logger
from psycopg import sql as psql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from event_log_store.buffer.records import LogRecord
from event_log_store.models import LogFilters, LogPage
from event_log_store.utils import add_months, month_bounds, month_start

from .errors import LogStoreOperationalError, PartitionError, map_db_error
from .sql import (
    HEALTH,
    LOG_COLUMNS,
    copy_into_temp_statement,
    create_partition_statement,
    create_temp_statement,
    insert_from_temp_statement,
    insert_statement,
    logs_count_select,
    logs_page_select,
    partition_name,
)

WRITE_MODES = ("auto", "executemany", "copy")


class AsyncLogStoreConfig(TypedDict, total=False):
    dsn: str
    table: str
    app_name: str
    statement_timeout_ms: int
    connect_timeout: float
    pool_min: int
    pool_max: int
    write_mode: str  # "auto" | "executemany" | "copy"
    copy_min_rows: int
    partition_months_ahead: int


DEFAULTS: AsyncLogStoreConfig = {
    "table": "game_logs_partitioned",
    "app_name": "event_log_store",
    "connect_timeout": 10.0,
    "pool_min": 1,
    "pool_max": 20,
    "write_mode": "auto",
    "copy_min_rows": 5000,
    "partition_months_ahead": 1,
}


class AsyncLogStore:
    """Async PostgreSQL backend for the log buffer.

    Writes go to a table range-partitioned by month on ``created_at``. The
    parent table is managed outside this client; monthly partitions are
    created on demand by ``ensure_partition``.

    Usage:

        store = AsyncLogStore({"dsn": "postgresql://...", "pool_max": 10})
        async with store:
            await store.ensure_partition(utc_now())
            await store.bulk_insert(records)
    """

    def __init__(self, cfg: AsyncLogStoreConfig):
        self.cfg: AsyncLogStoreConfig = {**DEFAULTS, **(cfg or {})}
        if "dsn" not in self.cfg:
            raise ValueError("dsn required")
        if self.cfg["write_mode"] not in WRITE_MODES:
            raise ValueError(f"unknown write_mode {self.cfg['write_mode']}")

        self.pool = AsyncConnectionPool(
            conninfo=self.cfg["dsn"],
            min_size=self.cfg["pool_min"],
            max_size=self.cfg["pool_max"],
            timeout=self.cfg["connect_timeout"],
            kwargs={"autocommit": False},
            open=False,
        )
        self.table = self.cfg["table"]
        self.app_name = self.cfg.get("app_name")
        self.statement_timeout_ms = self.cfg.get("statement_timeout_ms")

        self._opened = False
        self._ensured_months: set[tuple[int, int]] = set()
        self._partition_lock = asyncio.Lock()

    async def open(self) -> None:
        if not self._opened:
            await self.pool.open()
            self._opened = True

    async def aclose(self) -> None:
        if self._opened:
            await self.pool.close()
            self._opened = False

    async def __aenter__(self) -> "AsyncLogStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    @asynccontextmanager
    async def _conn(self) -> AsyncIterator[psycopg.AsyncConnection]:
        await self.open()
        async with self.pool.connection() as conn:
            if self.app_name:
                await conn.execute(
                    psql.SQL("SET application_name = {}").format(psql.Literal(self.app_name))
                )
            if self.statement_timeout_ms:
                await conn.execute(
                    psql.SQL("SET statement_timeout = {}").format(
                        psql.Literal(int(self.statement_timeout_ms))
                    )
                )
            yield conn

    # ---------- health ----------

    async def health(self) -> bool:
        async with self._conn() as conn:
            await conn.execute(HEALTH)
            return True

    # ---------- partitions ----------

    async def ensure_partition(self, for_date: datetime) -> None:
        """Create the monthly partition for ``for_date`` (and the next months).

        Idempotent; months already ensured by this client are skipped without
        a round-trip.
        """
        first = month_start(for_date)
        months = [add_months(first, i) for i in range(self.cfg["partition_months_ahead"] + 1)]

        async with self._partition_lock:
            todo = [m for m in months if (m.year, m.month) not in self._ensured_months]
            if not todo:
                return
            try:
                async with self._conn() as conn:
                    for m in todo:
                        name = partition_name(self.table, m)
                        await conn.execute(
                            create_partition_statement(self.table, name, *month_bounds(m))
                        )
            except psycopg.Error as e:
                raise PartitionError(f"could not ensure partitions for {first:%Y-%m}: {e}") from e

            for m in todo:
                self._ensured_months.add((m.year, m.month))
            logger.debug(
                f"Partitions ensured: {', '.join(partition_name(self.table, m) for m in todo)}"
            )

    # ---------- writes ----------

    @staticmethod
    def _row(r: LogRecord) -> dict:
        meta = r.metadata.to_db()
        return {
            "log_id": r.id,
            "created_at": r.created_at,
            "level": r.level,
            "type": r.type,
            "message": r.message,
            "metadata": Jsonb(meta) if meta is not None else None,
        }

    def _write_mode(self, nrows: int) -> str:
        mode = self.cfg["write_mode"]
        if mode != "auto":
            return mode
        if nrows >= int(self.cfg["copy_min_rows"]):
            return "copy"
        return "executemany"

    async def bulk_insert(self, records: Sequence[LogRecord]) -> int:
        """Insert all records in one transaction; all-or-nothing."""
        rows = [self._row(r) for r in records]
        if not rows:
            return 0

        mode = self._write_mode(len(rows))
        try:
            async with self._conn() as conn:
                async with conn.cursor() as cur:
                    if mode == "executemany":
                        await cur.executemany(insert_statement(self.table), rows)
                    else:
                        temp = f"tmp_{self.table}_copy"
                        await cur.execute(create_temp_statement(temp, self.table))
                        async with cur.copy(copy_into_temp_statement(temp)) as cp:
                            for row in rows:
                                await cp.write_row([row[c] for c in LOG_COLUMNS])
                        await cur.execute(insert_from_temp_statement(self.table, temp))
        except LogStoreOperationalError:
            raise
        except psycopg.Error as e:
            raise map_db_error(e) from e
        return len(rows)

    # ---------- reads ----------

    async def query_logs(self, filters: LogFilters | None = None) -> LogPage:
        """Page through persisted logs, newest first."""
        filters = filters or LogFilters()
        q, params = logs_page_select(self.table, filters)
        try:
            async with self._conn() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(q, params)
                    rows = list(await cur.fetchall())
                    if rows:
                        total = int(rows[0]["total_count"])
                    else:
                        cq, cparams = logs_count_select(self.table, filters)
                        await cur.execute(cq, cparams)
                        total = int((await cur.fetchone())["count"])
        except psycopg.Error as e:
            raise map_db_error(e) from e

        records = [{k: v for k, v in r.items() if k != "total_count"} for r in rows]
        return LogPage.build(records, total, filters)
