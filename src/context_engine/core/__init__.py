"""
Core Components - Ingestion building blocks

- Document loading for text, Markdown, PDF, DOCX, CSV and JSON
- Content-aware chunking
- Batched embedding generation with retry
- Vector storage and nearest-neighbor search

License: MIT
"""

from .models import (
    DataSource,
    VectorStoreRecord,
    Document,
    Chunk,
    EmbeddingRecord,
    QueryMatch,
    ScanResult,
    RetrievedContext,
    SourceKind,
    SourceStatus,
    StoreStatus,
    ContentKind,
)
from .document_loader import DocumentLoader, flatten_json
from .chunker import DocumentChunker, ChunkStrategy
from .embedding_generator import (
    EmbeddingGenerator,
    EmbeddingProvider,
    EmbeddingResult,
    OpenAIEmbeddingProvider,
)
from .vector_store import (
    VectorStoreBase,
    ChromaVectorStore,
    InMemoryVectorStore,
    create_vector_store,
)

__all__ = [
    "DataSource",
    "VectorStoreRecord",
    "Document",
    "Chunk",
    "EmbeddingRecord",
    "QueryMatch",
    "ScanResult",
    "RetrievedContext",
    "SourceKind",
    "SourceStatus",
    "StoreStatus",
    "ContentKind",
    "DocumentLoader",
    "flatten_json",
    "DocumentChunker",
    "ChunkStrategy",
    "EmbeddingGenerator",
    "EmbeddingProvider",
    "EmbeddingResult",
    "OpenAIEmbeddingProvider",
    "VectorStoreBase",
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "create_vector_store",
]
