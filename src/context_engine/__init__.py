"""
Context Engine - Retrieval-augmented-generation context for conversational agents

This package ingests documents into per-source vector collections and
retrieves labeled context for natural-language queries.

Ingestion
- Multi-format document loading
- Content-aware chunking
- Batched embeddings with retry and backoff
- ChromaDB or in-process vector storage

Retrieval
- Semantic nearest-neighbor search
- Fuzzy fallback tolerant of transcription errors

Operations
- Background processing with per-source status
- Configuration, logging and Prometheus metrics

License: MIT
"""

__version__ = "1.0.0"

# Engine
from .engine import ContextEngine

# Core exports
from .core.models import (
    DataSource,
    VectorStoreRecord,
    RetrievedContext,
    SourceKind,
    SourceStatus,
    StoreStatus,
)
from .core.document_loader import DocumentLoader
from .core.chunker import DocumentChunker
from .core.embedding_generator import EmbeddingGenerator, EmbeddingProvider, OpenAIEmbeddingProvider
from .core.vector_store import VectorStoreBase, ChromaVectorStore, InMemoryVectorStore

# Retrieval exports
from .retrieval.fuzzy_matcher import FuzzyMatcher
from .retrieval.context_retriever import ContextRetriever

# Pipeline exports
from .pipeline.registry import ConfigurationStore, InMemoryConfigurationStore, SourceRegistry
from .pipeline.lifecycle import DataSourceLifecycleController

# Infrastructure exports
from .infrastructure.monitoring import setup_prometheus_metrics
from .infrastructure.logging_config import setup_logging

# Configuration exports
from .config import EngineConfig, ConfigManager, get_config, get_config_manager

# Exceptions
from .exceptions import (
    ContextEngineError,
    UnsupportedFormatError,
    EmbeddingProviderError,
    CollectionNotFoundError,
    StoreNotReadyError,
    ProcessingFailedError,
    DataSourceNotFoundError,
)

__all__ = [
    # Engine
    "ContextEngine",
    # Core
    "DataSource",
    "VectorStoreRecord",
    "RetrievedContext",
    "SourceKind",
    "SourceStatus",
    "StoreStatus",
    "DocumentLoader",
    "DocumentChunker",
    "EmbeddingGenerator",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "VectorStoreBase",
    "ChromaVectorStore",
    "InMemoryVectorStore",
    # Retrieval
    "FuzzyMatcher",
    "ContextRetriever",
    # Pipeline
    "ConfigurationStore",
    "InMemoryConfigurationStore",
    "SourceRegistry",
    "DataSourceLifecycleController",
    # Infrastructure
    "setup_prometheus_metrics",
    "setup_logging",
    # Configuration
    "EngineConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
    # Exceptions
    "ContextEngineError",
    "UnsupportedFormatError",
    "EmbeddingProviderError",
    "CollectionNotFoundError",
    "StoreNotReadyError",
    "ProcessingFailedError",
    "DataSourceNotFoundError",
]
