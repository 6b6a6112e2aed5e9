"""
Infrastructure Components - Logging and metrics

- Prometheus metrics for embedding, search, retrieval and processing runs
- Structured logging configuration

License: MIT
"""

from .monitoring import (
    setup_prometheus_metrics,
    embedding_duration_tracker,
    vector_search_duration_tracker,
    pipeline_duration_tracker,
    record_error,
)
from .logging_config import (
    setup_logging,
    setup_production_logging,
    setup_development_logging,
    JSONFormatter,
)

__all__ = [
    "setup_prometheus_metrics",
    "embedding_duration_tracker",
    "vector_search_duration_tracker",
    "pipeline_duration_tracker",
    "record_error",
    "setup_logging",
    "setup_production_logging",
    "setup_development_logging",
    "JSONFormatter",
]
