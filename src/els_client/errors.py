"""
Custom exceptions for the event log store client.

psycopg errors are translated once, at the client boundary, so callers can
tell transient failures from permanent ones without importing psycopg.
"""


class LogStoreOperationalError(Exception):
    """Base operational error for the log store client."""

    pass


class RetryableError(LogStoreOperationalError):
    """Temporary errors (connectivity, serialization, deadlock)."""

    pass


class ConstraintViolation(LogStoreOperationalError):
    """Database constraint violations (unique, check, not-null)."""

    pass


class TimeoutExceeded(LogStoreOperationalError):
    """Query or connection timeout errors."""

    pass


class PartitionError(LogStoreOperationalError):
    """A row had no matching partition, or a partition could not be created."""

    pass


def map_db_error(e: Exception) -> LogStoreOperationalError:
    import psycopg
    import psycopg.errors as E

    if isinstance(e, LogStoreOperationalError):
        return e
    if isinstance(e, E.QueryCanceled):
        return TimeoutExceeded(str(e))
    if "no partition of relation" in str(e).lower():
        return PartitionError(str(e))
    if isinstance(e, (E.SerializationFailure, E.DeadlockDetected, psycopg.OperationalError)):
        return RetryableError(str(e))
    if isinstance(e, (E.UniqueViolation, E.CheckViolation, E.NotNullViolation)):
        return ConstraintViolation(str(e))
    return LogStoreOperationalError(str(e))
