from __future__ import annotations

import asyncio
import gzip
import io
import json
import sys
from typing import IO, List, Optional

import typer
from loguru import logger
from pydantic import ValidationError

from els_client import AsyncLogStore, LogEntry, LogFilters
from event_log_store import BufferRuntimeSettings
from event_log_store.buffer import PartitionUnavailableError

from .config import Settings, get_settings
from .runtime import (
    build_log_buffer,
    build_store,
    configure_logging,
    install_shutdown_signals,
    shutdown,
)

app = typer.Typer(help="Event log store CLI (ingest, query, health)")


# ---------------------------
# Common options
# ---------------------------


def dsn_opt() -> Optional[str]:
    return typer.Option(None, "--dsn", envvar="DATABASE_URL", help="PostgreSQL DSN")


def _store(dsn: Optional[str]) -> AsyncLogStore:
    settings = Settings(DATABASE_URL=dsn) if dsn else get_settings()
    configure_logging(settings.LOG_LEVEL)
    return build_store(settings)


def _open_ndjson(path: str) -> IO[str]:
    if path == "-":
        return sys.stdin
    if path.endswith(".gz"):
        return io.TextIOWrapper(gzip.open(path, "rb"), encoding="utf-8")
    return open(path, "r", encoding="utf-8")


def _read_chunk(f: IO[str], n: int) -> List[str]:
    lines = []
    for _ in range(n):
        line = f.readline()
        if not line:
            break
        lines.append(line)
    return lines


# ---------------------------
# Health
# ---------------------------


@app.command("ping")
def ping(dsn: Optional[str] = dsn_opt()):
    async def _run() -> bool:
        store = _store(dsn)
        try:
            return await store.health()
        finally:
            await store.aclose()

    ok = asyncio.run(_run())
    typer.echo(json.dumps({"ok": ok}, indent=2))


# ---------------------------
# NDJSON ingest
# ---------------------------


@app.command("ingest")
def ingest(
    path: str = typer.Argument(..., help="File path, .gz, or '-' for stdin"),
    dsn: Optional[str] = dsn_opt(),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Flush threshold"),
    flush_interval_ms: Optional[int] = typer.Option(
        None, "--flush-interval-ms", help="Timer period in ms"
    ),
    max_retries: Optional[int] = typer.Option(None, "--max-retries"),
):
    """Stream NDJSON log entries through the buffer into the database.

    SIGINT/SIGTERM stop reading and drain whatever is buffered.
    """
    overrides = {
        k: v
        for k, v in {
            "batch_size": batch_size,
            "flush_interval_ms": flush_interval_ms,
            "max_retries": max_retries,
        }.items()
        if v is not None
    }
    buffer_settings = BufferRuntimeSettings(**overrides)
    summary = asyncio.run(_ingest(path, dsn, buffer_settings))
    typer.echo(json.dumps(summary, default=str, indent=2))


async def _ingest(path: str, dsn: Optional[str], buffer_settings: BufferRuntimeSettings) -> dict:
    store = _store(dsn)
    buffer = build_log_buffer(store, buffer_settings)
    stop = asyncio.Event()
    install_shutdown_signals(stop)

    ingested = rejected = 0
    f = _open_ndjson(path)
    await buffer.open()
    try:
        while not stop.is_set():
            lines = await asyncio.to_thread(_read_chunk, f, 1000)
            if not lines:
                break
            for line in lines:
                if not line.strip():
                    continue
                try:
                    entry = LogEntry.model_validate_json(line)
                except ValidationError as e:
                    rejected += 1
                    logger.warning(f"Rejected log line: {e.errors()[0]['msg']}")
                    continue
                try:
                    await buffer.add_log(entry)
                except PartitionUnavailableError as e:
                    # record stays buffered; the timer retries the flush
                    logger.error(f"Size-triggered flush failed: {e}")
                ingested += 1
    finally:
        if f is not sys.stdin:
            f.close()
        report = await shutdown(buffer, store)

    return {
        "ingested": ingested,
        "rejected": rejected,
        "dropped": report.dropped,
        "stats": buffer.get_stats().to_dict(),
    }


# ---------------------------
# Database view
# ---------------------------


@app.command("query")
def query(
    dsn: Optional[str] = dsn_opt(),
    type_: Optional[str] = typer.Option(None, "--type", help="Log type"),
    level: Optional[str] = typer.Option(None, "--level", help="Log level"),
    message: Optional[str] = typer.Option(None, "--message", help="Message substring"),
    start: Optional[str] = typer.Option(None, "--start", help="Start time (ISO format)"),
    end: Optional[str] = typer.Option(None, "--end", help="End time (ISO format)"),
    page: int = typer.Option(1, "--page"),
    limit: int = typer.Option(50, "--limit"),
):
    """Page through persisted logs, newest first."""
    filters = LogFilters(
        type=type_,
        level=level,
        message=message,
        start_date=start,
        end_date=end,
        page=page,
        limit=limit,
    )

    async def _run():
        store = _store(dsn)
        try:
            return await store.query_logs(filters)
        finally:
            await store.aclose()

    result = asyncio.run(_run())
    typer.echo(json.dumps(result.model_dump(), default=str, indent=2))


if __name__ == "__main__":
    app()
