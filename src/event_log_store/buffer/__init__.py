"""Log Buffer

Buffered ingestion and batch-flush pipeline (producer → queue → flusher → backend):
- StagingQueue (deque + id index, tail re-queue)
- Record normalizer with tagged metadata
- BatchFlusher (single-flight, deadline-raced persistence, retry/quarantine)
- FailureLedger (in-flight + permanently failed maps)
- DrainController (force flush + graceful shutdown)
- LogBuffer orchestration with size and timer triggers
- Environment-based settings
"""

from .types import (
    StorageBackend,
    LogBufferError,
    PartitionUnavailableError,
    PersistDeadlineExceeded,
    BufferClosedError,
)
from .records import (
    LogRecord,
    Metadata,
    NullMetadata,
    StructuredMetadata,
    RawMetadata,
    normalize,
    resolve_metadata,
)
from .queue import StagingQueue
from .ledger import FailureLedger, InFlightEntry, QuarantinedEntry
from .flusher import BatchFlusher, FlushOutcome, FlushResult, FlushState, call_with_deadline
from .drain import DrainController, DrainReport
from .log_buffer import LogBuffer
from .settings import BufferRuntimeSettings

__all__ = [
    # types
    "StorageBackend",
    "LogBufferError",
    "PartitionUnavailableError",
    "PersistDeadlineExceeded",
    "BufferClosedError",
    "LogRecord",
    "Metadata",
    "NullMetadata",
    "StructuredMetadata",
    "RawMetadata",
    "InFlightEntry",
    "QuarantinedEntry",
    "FlushOutcome",
    "FlushResult",
    "FlushState",
    "DrainReport",
    # components
    "normalize",
    "resolve_metadata",
    "StagingQueue",
    "FailureLedger",
    "BatchFlusher",
    "call_with_deadline",
    "DrainController",
    # runtime
    "LogBuffer",
    "BufferRuntimeSettings",
]
