"""
Monitoring - Prometheus metrics for ingestion and retrieval

Metrics are created lazily by setup_prometheus_metrics(); until then every
tracker and recorder in this module is a no-op.

License: MIT
"""

from typing import Optional
import time
import logging
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, REGISTRY

logger = logging.getLogger(__name__)

_metrics_initialized = False
EMBEDDING_DURATION = None
EMBEDDING_BATCH_FAILURES = None
VECTOR_SEARCH_DURATION = None
RETRIEVAL_COUNT = None
PIPELINE_RUNS = None
PIPELINE_DURATION = None
VECTOR_STORE_SIZE = None
ERROR_COUNT = None


def setup_prometheus_metrics(registry: Optional[CollectorRegistry] = None) -> None:
    """
    Initialize Prometheus metrics for the context engine.

    Args:
        registry: Registry to register with (defaults to the global registry)
    """
    global _metrics_initialized
    global EMBEDDING_DURATION, EMBEDDING_BATCH_FAILURES, VECTOR_SEARCH_DURATION
    global RETRIEVAL_COUNT, PIPELINE_RUNS, PIPELINE_DURATION, VECTOR_STORE_SIZE, ERROR_COUNT

    if _metrics_initialized:
        return

    registry = registry or REGISTRY

    EMBEDDING_DURATION = Histogram(
        "context_embedding_duration_seconds",
        "Embedding provider call duration in seconds",
        ["operation"],
        registry=registry,
    )

    EMBEDDING_BATCH_FAILURES = Counter(
        "context_embedding_batch_failures_total",
        "Embedding batches dropped after exhausting retries",
        registry=registry,
    )

    VECTOR_SEARCH_DURATION = Histogram(
        "context_vector_search_duration_seconds",
        "Nearest-neighbor query duration in seconds",
        registry=registry,
    )

    RETRIEVAL_COUNT = Counter(
        "context_retrievals_total",
        "Context retrievals by the path that produced the result",
        ["path"],
        registry=registry,
    )

    PIPELINE_RUNS = Counter(
        "context_pipeline_runs_total",
        "Data source processing runs by outcome",
        ["outcome"],
        registry=registry,
    )

    PIPELINE_DURATION = Histogram(
        "context_pipeline_duration_seconds",
        "Data source processing duration in seconds",
        registry=registry,
    )

    VECTOR_STORE_SIZE = Gauge(
        "context_vector_store_records",
        "Records stored per vector store",
        ["vector_store_id"],
        registry=registry,
    )

    ERROR_COUNT = Counter(
        "context_errors_total", "Total errors", ["error_type", "component"], registry=registry
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


@contextmanager
def embedding_duration_tracker(operation: str = "batch"):
    """
    Context manager to track embedding provider call duration.

    Args:
        operation: 'batch' or 'query'
    """
    start_time = time.time()
    try:
        yield
    finally:
        if EMBEDDING_DURATION:
            EMBEDDING_DURATION.labels(operation=operation).observe(time.time() - start_time)


@contextmanager
def vector_search_duration_tracker():
    """Context manager to track vector search duration."""
    start_time = time.time()
    try:
        yield
    finally:
        if VECTOR_SEARCH_DURATION:
            VECTOR_SEARCH_DURATION.observe(time.time() - start_time)


@contextmanager
def pipeline_duration_tracker():
    """Context manager to track one data source processing run."""
    start_time = time.time()
    try:
        yield
    finally:
        if PIPELINE_DURATION:
            PIPELINE_DURATION.observe(time.time() - start_time)


def record_embedding_batch_failure():
    """Record an embedding batch dropped after its retries."""
    if EMBEDDING_BATCH_FAILURES:
        EMBEDDING_BATCH_FAILURES.inc()


def record_retrieval(path: str):
    """
    Record a completed retrieval.

    Args:
        path: 'semantic', 'fuzzy' or 'empty'
    """
    if RETRIEVAL_COUNT:
        RETRIEVAL_COUNT.labels(path=path).inc()


def record_pipeline_run(outcome: str):
    """Record a processing run outcome ('ready', 'error' or 'abandoned')."""
    if PIPELINE_RUNS:
        PIPELINE_RUNS.labels(outcome=outcome).inc()


def set_vector_store_size(vector_store_id: str, count: int):
    if VECTOR_STORE_SIZE:
        VECTOR_STORE_SIZE.labels(vector_store_id=vector_store_id).set(count)


def record_error(error_type: str, component: str):
    """
    Record an error occurrence.

    Args:
        error_type: Type of error (e.g., 'CollectionNotFoundError')
        component: Component where error occurred (e.g., 'embedding', 'vector_store')
    """
    if ERROR_COUNT:
        ERROR_COUNT.labels(error_type=error_type, component=component).inc()
