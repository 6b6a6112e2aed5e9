"""
Exceptions - Error taxonomy for the context engine

Failures are contained at the narrowest boundary that owns them: one file,
one embedding batch, one retrieval call or one data source run.

License: MIT
"""

from typing import Optional


class ContextEngineError(Exception):
    """Base class for all context engine errors."""


class UnsupportedFormatError(ContextEngineError):
    """Raised when the loader has no extractor for a file extension."""

    def __init__(self, extension: str, path: Optional[str] = None):
        self.extension = extension
        self.path = path
        message = f"Unsupported file format: {extension or '<none>'}"
        if path:
            message += f" ({path})"
        super().__init__(message)


class EmbeddingProviderError(ContextEngineError):
    """Raised when the embedding provider call fails."""


class CollectionNotFoundError(ContextEngineError):
    """Raised when a vector store collection does not exist."""

    def __init__(self, collection_name: str):
        self.collection_name = collection_name
        super().__init__(f"Collection not found: {collection_name}")


class StoreNotReadyError(ContextEngineError):
    """Raised when a vector store is absent or not in the ready state."""

    def __init__(self, store_id: str, status: Optional[str] = None):
        self.store_id = store_id
        self.status = status
        super().__init__(f"Vector store {store_id} not ready (status: {status or 'missing'})")


class ProcessingFailedError(ContextEngineError):
    """Raised when a stage of a data source pipeline fails."""

    def __init__(self, source_id: str, stage: str, cause: Optional[BaseException] = None):
        self.source_id = source_id
        self.stage = stage
        self.cause = cause
        message = f"Processing failed for data source {source_id} during {stage}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class DataSourceNotFoundError(ContextEngineError):
    """Raised when an operation names an unknown data source."""

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Data source not found: {source_id}")
