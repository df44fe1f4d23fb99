"""
Prometheus metrics for the ads warehouse ingestion engine

Metrics are a side channel for dashboards and alerts. Callers get the
authoritative numbers from the ProcessingResult returned by each load.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# INGESTION METRICS
# =======================

ingestion_records_total = Counter(
    name="ads_ingestion_records_total",
    documentation="Total number of rows inserted or updated in the target",
    labelnames=["table", "strategy"],  # strategy: DIRECT_BATCH, BULK_STAGED
    registry=REGISTRY,
)

ingestion_duration_seconds = Histogram(
    name="ads_ingestion_duration_seconds",
    documentation="Duration of ingestion calls in seconds",
    labelnames=["table", "strategy"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=REGISTRY,
)

ingestion_batch_size = Histogram(
    name="ads_ingestion_batch_size_records",
    documentation="Number of records submitted per ingestion call, before aggregation",
    labelnames=["table"],
    buckets=[10, 100, 500, 1000, 5000, 10000, 50000, 100000, 500000],
    registry=REGISTRY,
)

ingestion_failures_total = Counter(
    name="ads_ingestion_failures_total",
    documentation="Total number of failed ingestion calls",
    labelnames=["table", "strategy", "error_type"],
    registry=REGISTRY,
)

aggregation_duplicates_removed_total = Counter(
    name="ads_aggregation_duplicates_removed_total",
    documentation="Records collapsed into another record with the same composite key",
    labelnames=["table"],
    registry=REGISTRY,
)

# =======================
# AUDIT METRICS
# =======================

audit_duplicate_keys = Gauge(
    name="ads_audit_duplicate_keys",
    documentation="Persisted rows beyond one per composite key at last audit",
    labelnames=["table"],
    registry=REGISTRY,
)

audit_null_key_rows = Gauge(
    name="ads_audit_null_key_rows",
    documentation="Persisted rows with a null composite key component at last audit",
    labelnames=["table"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    gauge.labels(**labels).set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def record_ingestion(table: str, strategy: str, submitted: int, records_processed: int, duration_ms: int) -> None:
    """
    Record the outcome of a successful ingestion call.

    Args:
        table: Target table
        strategy: Load path used
        submitted: Records submitted by the caller
        records_processed: Rows written to the target
        duration_ms: Call duration in milliseconds
    """
    observe_histogram(ingestion_batch_size, submitted, table=table)
    increment_counter(ingestion_records_total, records_processed, table=table, strategy=strategy)
    observe_histogram(ingestion_duration_seconds, duration_ms / 1000.0, table=table, strategy=strategy)


def record_ingestion_failure(table: str, strategy: str, error_type: str) -> None:
    increment_counter(ingestion_failures_total, 1, table=table, strategy=strategy, error_type=error_type)


def record_audit(table: str, null_key_rows: int | None = None, duplicate_keys: int | None = None) -> None:
    if null_key_rows is not None:
        set_gauge(audit_null_key_rows, null_key_rows, table=table)
    if duplicate_keys is not None:
        set_gauge(audit_duplicate_keys, duplicate_keys, table=table)
