"""
Vector Store - Collection storage and nearest-neighbor search for embeddings

Each data source owns one named collection. Every adapter operation is a
coroutine; the ChromaDB client is blocking, so its calls run in worker
threads.

License: MIT
"""

from typing import List, Dict, Any, Optional
from abc import ABC, abstractmethod
import asyncio
import json
import logging

import chromadb
from chromadb.errors import ChromaError

from ..config import VectorStoreConfig
from ..exceptions import CollectionNotFoundError
from ..utils.helpers import calculate_cosine_similarity, chunk_list
from .models import EmbeddingRecord, QueryMatch, ScanResult

logger = logging.getLogger(__name__)


class VectorStoreBase(ABC):
    """Abstract base class for vector stores."""

    @abstractmethod
    async def ensure_collection(self, name: str) -> None:
        """Create the collection if it does not exist."""
        pass

    @abstractmethod
    async def upsert(self, name: str, records: List[EmbeddingRecord]) -> None:
        """Insert or replace records by id."""
        pass

    @abstractmethod
    async def query(self, name: str, query_embedding: List[float], k: int = 5) -> List[QueryMatch]:
        """Return up to k nearest records, best first."""
        pass

    @abstractmethod
    async def scan(self, name: str, limit: int = 100) -> ScanResult:
        """Read up to ``limit`` records in no particular order."""
        pass

    @abstractmethod
    async def count(self, name: str) -> int:
        """Number of records in the collection."""
        pass

    @abstractmethod
    async def delete_collection(self, name: str) -> None:
        """Drop the collection if it exists."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check if the vector store is healthy."""
        pass

    async def reset_collection(self, name: str) -> None:
        """Drop and recreate a collection so it can be refilled from scratch."""
        await self.delete_collection(name)
        await self.ensure_collection(name)


def sanitize_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """
    Make metadata storable as flat scalar values.

    None values are dropped and nested values are JSON-encoded.
    """
    clean: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            clean[key] = value
        else:
            clean[key] = json.dumps(value, default=str, ensure_ascii=False)
    return clean


class ChromaVectorStore(VectorStoreBase):
    """
    ChromaDB-backed vector store.

    Connects over HTTP when a host is configured, to an on-disk database when
    a persist directory is configured, and to an in-process database otherwise.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 8000,
        persist_directory: Optional[str] = None,
        metric: str = "cosine",
        upsert_batch_size: int = 100,
        client: Any = None,
    ) -> None:
        """
        Initialize the vector store.

        Args:
            host: ChromaDB server host
            port: ChromaDB server port
            persist_directory: Directory for an embedded persistent database
            metric: Distance space for new collections ('cosine', 'l2', 'ip')
            upsert_batch_size: Records per upsert call
            client: Pre-built ChromaDB client
        """
        self.host = host
        self.port = port
        self.persist_directory = persist_directory
        self.metric = metric
        self.upsert_batch_size = upsert_batch_size
        self._client = client

    @property
    def client(self) -> Any:
        """Lazy initialization of the ChromaDB client."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> Any:
        if self.host:
            logger.info(f"Connecting to ChromaDB at {self.host}:{self.port}")
            return chromadb.HttpClient(host=self.host, port=self.port)
        if self.persist_directory:
            logger.info(f"Opening ChromaDB database in {self.persist_directory}")
            return chromadb.PersistentClient(path=self.persist_directory)
        logger.info("Using in-process ChromaDB client")
        return chromadb.EphemeralClient()

    def _get_collection(self, name: str) -> Any:
        try:
            return self.client.get_collection(name=name)
        except (ValueError, ChromaError) as e:
            raise CollectionNotFoundError(name) from e

    async def ensure_collection(self, name: str) -> None:
        await asyncio.to_thread(
            self.client.get_or_create_collection,
            name=name,
            metadata={"hnsw:space": self.metric},
        )

    async def upsert(self, name: str, records: List[EmbeddingRecord]) -> None:
        """
        Store records in the collection.

        Args:
            name: Collection name
            records: Records with embeddings and metadata

        Raises:
            CollectionNotFoundError: If the collection does not exist
        """
        if not records:
            logger.warning("No records provided for storage")
            return

        collection = await asyncio.to_thread(self._get_collection, name)

        for batch in chunk_list(records, self.upsert_batch_size):
            await asyncio.to_thread(
                collection.upsert,
                ids=[record.id for record in batch],
                embeddings=[record.embedding for record in batch],
                documents=[record.content for record in batch],
                metadatas=[sanitize_metadata(record.metadata) for record in batch],
            )

        logger.info(f"Successfully stored {len(records)} records in {name}")

    async def query(self, name: str, query_embedding: List[float], k: int = 5) -> List[QueryMatch]:
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        collection = await asyncio.to_thread(self._get_collection, name)

        if await asyncio.to_thread(collection.count) == 0:
            return []

        response = await asyncio.to_thread(
            collection.query,
            query_embeddings=[query_embedding],
            n_results=k,
            include=["documents", "metadatas", "distances"],
        )

        ids = (response.get("ids") or [[]])[0]
        documents = (response.get("documents") or [[]])[0]
        metadatas = (response.get("metadatas") or [[]])[0]
        distances = (response.get("distances") or [[]])[0]

        matches = []
        for i, record_id in enumerate(ids):
            matches.append(
                QueryMatch(
                    id=record_id,
                    content=documents[i] if i < len(documents) else None,
                    metadata=(metadatas[i] if i < len(metadatas) else None) or {},
                    distance=distances[i] if i < len(distances) else None,
                )
            )

        return matches

    async def scan(self, name: str, limit: int = 100) -> ScanResult:
        collection = await asyncio.to_thread(self._get_collection, name)
        response = await asyncio.to_thread(
            collection.get, limit=limit, include=["documents", "metadatas"]
        )

        return ScanResult(
            ids=list(response.get("ids") or []),
            documents=list(response.get("documents") or []),
            metadatas=list(response.get("metadatas") or []),
        )

    async def count(self, name: str) -> int:
        collection = await asyncio.to_thread(self._get_collection, name)
        return await asyncio.to_thread(collection.count)

    async def delete_collection(self, name: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_collection, name=name)
            logger.info(f"Deleted collection {name}")
        except (ValueError, ChromaError):
            logger.debug(f"Collection {name} did not exist, nothing to delete")

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self.client.heartbeat)
            return True
        except Exception as e:
            logger.error(f"Vector store health check failed: {str(e)}")
            return False


class InMemoryVectorStore(VectorStoreBase):
    """
    Process-local vector store with brute-force search.

    Distances follow ChromaDB's conventions: cosine is ``1 - similarity``,
    l2 is squared euclidean and ip is ``1 - dot product``.
    """

    def __init__(self, metric: str = "cosine") -> None:
        if metric not in ("cosine", "l2", "ip"):
            raise ValueError(f"Unsupported metric: {metric}")
        self.metric = metric
        self._collections: Dict[str, Dict[str, EmbeddingRecord]] = {}
        self._dimensions: Dict[str, int] = {}

    def _get_collection(self, name: str) -> Dict[str, EmbeddingRecord]:
        if name not in self._collections:
            raise CollectionNotFoundError(name)
        return self._collections[name]

    def _distance(self, a: List[float], b: List[float]) -> float:
        if self.metric == "cosine":
            return 1.0 - calculate_cosine_similarity(a, b)
        if self.metric == "l2":
            return sum((x - y) ** 2 for x, y in zip(a, b))
        return 1.0 - sum(x * y for x, y in zip(a, b))

    async def ensure_collection(self, name: str) -> None:
        self._collections.setdefault(name, {})

    async def upsert(self, name: str, records: List[EmbeddingRecord]) -> None:
        collection = self._get_collection(name)

        for record in records:
            expected = self._dimensions.setdefault(name, len(record.embedding))
            if len(record.embedding) != expected:
                raise ValueError(
                    f"Embedding dimension {len(record.embedding)} does not match "
                    f"collection {name} dimension {expected}"
                )

        for record in records:
            collection[record.id] = EmbeddingRecord(
                id=record.id,
                embedding=list(record.embedding),
                content=record.content,
                metadata=sanitize_metadata(record.metadata),
            )

    async def query(self, name: str, query_embedding: List[float], k: int = 5) -> List[QueryMatch]:
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        collection = self._get_collection(name)
        scored = sorted(
            ((self._distance(query_embedding, record.embedding), record) for record in collection.values()),
            key=lambda pair: pair[0],
        )

        return [
            QueryMatch(
                id=record.id,
                content=record.content,
                metadata=dict(record.metadata),
                distance=distance,
            )
            for distance, record in scored[:k]
        ]

    async def scan(self, name: str, limit: int = 100) -> ScanResult:
        records = list(self._get_collection(name).values())[:limit]
        return ScanResult(
            ids=[record.id for record in records],
            documents=[record.content for record in records],
            metadatas=[dict(record.metadata) for record in records],
        )

    async def count(self, name: str) -> int:
        return len(self._get_collection(name))

    async def delete_collection(self, name: str) -> None:
        self._collections.pop(name, None)
        self._dimensions.pop(name, None)

    async def ping(self) -> bool:
        return True


def create_vector_store(config: Optional[VectorStoreConfig] = None) -> VectorStoreBase:
    """
    Build the vector store adapter for a configuration.

    Raises:
        ValueError: If the provider is not supported
    """
    config = config or VectorStoreConfig()

    if config.provider == "chromadb":
        return ChromaVectorStore(
            host=config.host,
            port=config.port,
            persist_directory=config.persist_directory,
            metric=config.metric,
            upsert_batch_size=config.upsert_batch_size,
        )
    elif config.provider == "local":
        return InMemoryVectorStore(metric=config.metric)
    else:
        raise ValueError(f"Unsupported vector store provider: {config.provider}")
