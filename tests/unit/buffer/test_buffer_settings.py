"""
Unit tests for BufferRuntimeSettings and LogBuffer.from_settings.
"""

import pytest
from pydantic import ValidationError

from event_log_store.buffer import BufferRuntimeSettings, LogBuffer

_VARS = [
    "LOG_BATCH_SIZE",
    "BATCH_SIZE",
    "LOG_FLUSH_INTERVAL_MS",
    "FLUSH_INTERVAL_MS",
    "LOG_MAX_RETRIES",
    "LOG_PERSIST_TIMEOUT_MS",
    "LOG_BUFFER_ID",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    s = BufferRuntimeSettings()
    assert s.batch_size == 1000
    assert s.flush_interval == 60.0
    assert s.max_retries == 3
    assert s.persist_timeout == 5.0
    assert s.buffer_id == "default"


def test_env_aliases(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "50")
    monkeypatch.setenv("FLUSH_INTERVAL_MS", "2500")
    monkeypatch.setenv("LOG_MAX_RETRIES", "5")

    s = BufferRuntimeSettings()
    assert s.batch_size == 50
    assert s.flush_interval == 2.5
    assert s.max_retries == 5


def test_prefixed_name_wins(monkeypatch):
    monkeypatch.setenv("LOG_BATCH_SIZE", "10")
    monkeypatch.setenv("BATCH_SIZE", "50")
    assert BufferRuntimeSettings().batch_size == 10


def test_rejects_non_positive_batch_size(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "0")
    with pytest.raises(ValidationError):
        BufferRuntimeSettings()


def test_from_settings(backend):
    s = BufferRuntimeSettings(batch_size=7, flush_interval_ms=1500, buffer_id="api")
    buf = LogBuffer.from_settings(backend, s)
    assert buf.batch_size == 7
    stats = buf.get_stats()
    assert stats.flush_interval_ms == 1500
