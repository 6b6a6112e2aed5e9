"""
Utility Functions - Common helper functions and utilities

License: MIT
"""

from .helpers import (
    generate_hash,
    chunk_list,
    backoff_delay,
    retry_with_backoff,
    truncate_text,
    calculate_cosine_similarity,
    format_duration,
    Timer,
    create_unique_id,
)

__all__ = [
    "generate_hash",
    "chunk_list",
    "backoff_delay",
    "retry_with_backoff",
    "truncate_text",
    "calculate_cosine_similarity",
    "format_duration",
    "Timer",
    "create_unique_id",
]
