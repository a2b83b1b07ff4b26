"""
Prometheus metrics for the polling engine, registered in the global REGISTRY.
Expose them with prometheus_client.start_http_server() from the host process.
"""

from prometheus_client import Counter, Histogram


# --- Polling ---

RECORDS_FETCHED_TOTAL = Counter(
    "sqlrecords_records_fetched_total",
    "Rows fetched and encoded as records",
    ["query_id"],
)

QUERY_ERRORS_TOTAL = Counter(
    "sqlrecords_query_errors_total",
    "Per-query cycle failures by error kind",
    ["query_id", "kind"],
)

POLL_CYCLE_SECONDS = Histogram(
    "sqlrecords_poll_cycle_seconds",
    "Duration of one full polling cycle across all queries",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)

# --- Delivery ---

BATCHES_DELIVERED_TOTAL = Counter(
    "sqlrecords_batches_total",
    "Batches handed downstream by final outcome",
    ["query_id", "outcome"],
)

DELIVERY_RETRIES_TOTAL = Counter(
    "sqlrecords_delivery_retries_total",
    "Delivery retries after transient downstream failures",
    ["query_id"],
)

CHECKPOINT_ADVANCES_TOTAL = Counter(
    "sqlrecords_checkpoint_advances_total",
    "Checkpoint advances after confirmed delivery",
    ["query_id"],
)


class MetricsRegistry:
    """Centralized access to receiver metrics."""

    records_fetched_total = RECORDS_FETCHED_TOTAL
    query_errors_total = QUERY_ERRORS_TOTAL
    poll_cycle_seconds = POLL_CYCLE_SECONDS
    batches_delivered_total = BATCHES_DELIVERED_TOTAL
    delivery_retries_total = DELIVERY_RETRIES_TOTAL
    checkpoint_advances_total = CHECKPOINT_ADVANCES_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
