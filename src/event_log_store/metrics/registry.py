"""
Log buffer metrics, registered in the Prometheus global REGISTRY on import.
"""

from prometheus_client import Counter, Gauge, Histogram


# --- Buffer Metrics ---

BUFFER_RECORDS_FLUSHED_TOTAL = Counter(
    "log_buffer_records_flushed_total",
    "Records persisted by successful flushes",
    ["buffer_id"],
)

BUFFER_RECORDS_REQUEUED_TOTAL = Counter(
    "log_buffer_records_requeued_total",
    "Records appended back to the queue after a failed flush",
    ["buffer_id"],
)

BUFFER_RECORDS_QUARANTINED_TOTAL = Counter(
    "log_buffer_records_quarantined_total",
    "Records moved to the permanent-failure map",
    ["buffer_id"],
)

BUFFER_FLUSH_TOTAL = Counter(
    "log_buffer_flush_total",
    "Flush attempts by outcome",
    ["buffer_id", "outcome"],
)

BUFFER_FLUSH_LATENCY_MS = Histogram(
    "log_buffer_flush_latency_ms",
    "Time from claim to commit/rollback in milliseconds",
    ["buffer_id"],
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

BUFFER_QUEUE_DEPTH = Gauge(
    "log_buffer_queue_depth",
    "Records currently staged in the queue",
    ["buffer_id"],
)


class MetricsRegistry:
    """Centralized access to the buffer metrics."""

    records_flushed_total = BUFFER_RECORDS_FLUSHED_TOTAL
    records_requeued_total = BUFFER_RECORDS_REQUEUED_TOTAL
    records_quarantined_total = BUFFER_RECORDS_QUARANTINED_TOTAL
    flush_total = BUFFER_FLUSH_TOTAL
    flush_latency_ms = BUFFER_FLUSH_LATENCY_MS
    queue_depth = BUFFER_QUEUE_DEPTH


# Singleton instance
metrics_registry = MetricsRegistry()
