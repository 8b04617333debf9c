"""
Tests for psycopg error translation.
"""

import psycopg
import psycopg.errors as E

from els_client.errors import (
    ConstraintViolation,
    LogStoreOperationalError,
    PartitionError,
    RetryableError,
    TimeoutExceeded,
    map_db_error,
)


def test_timeout():
    assert isinstance(map_db_error(E.QueryCanceled("canceling statement")), TimeoutExceeded)


def test_missing_partition_beats_check_violation():
    """Postgres reports a missing partition as a check violation."""
    err = E.CheckViolation('no partition of relation "game_logs_partitioned" found for row')
    assert isinstance(map_db_error(err), PartitionError)


def test_retryable():
    assert isinstance(map_db_error(E.DeadlockDetected("deadlock")), RetryableError)
    assert isinstance(map_db_error(psycopg.OperationalError("conn reset")), RetryableError)


def test_constraint():
    assert isinstance(map_db_error(E.UniqueViolation("dup key")), ConstraintViolation)
    assert isinstance(map_db_error(E.NotNullViolation("null")), ConstraintViolation)


def test_passthrough_and_fallback():
    ours = PartitionError("x")
    assert map_db_error(ours) is ours
    mapped = map_db_error(ValueError("weird"))
    assert type(mapped) is LogStoreOperationalError
    assert str(mapped) == "weird"
