"""
Embedding Generator - Batched embeddings with retry and backoff

Chunks are embedded in fixed-size batches. A batch that still fails after
its retries is dropped and the run continues, so callers can receive fewer
records than chunks; EmbeddingResult reports how many succeeded.

License: MIT
"""

from typing import List, Optional
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
import time

import openai

from ..exceptions import EmbeddingProviderError
from ..infrastructure.monitoring import embedding_duration_tracker, record_embedding_batch_failure
from ..utils.helpers import chunk_list, retry_with_backoff, truncate_text
from .models import Chunk, EmbeddingRecord

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """External embedding API."""

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Return one vector per text, in order."""
        pass

    @abstractmethod
    async def embed_one(self, text: str) -> List[float]:
        """Return the vector for a single text."""
        pass


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings from the OpenAI embeddings endpoint.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(input=texts, model=self.model)
        return [item.embedding for item in response.data]

    async def embed_one(self, text: str) -> List[float]:
        response = await self.client.embeddings.create(input=[text], model=self.model)
        return response.data[0].embedding


@dataclass
class EmbeddingResult:
    """Outcome of embedding a list of chunks."""

    records: List[EmbeddingRecord] = field(default_factory=list)
    requested: int = 0
    failed_batches: List[int] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.records)

    @property
    def complete(self) -> bool:
        return self.succeeded == self.requested


class EmbeddingGenerator:
    """
    Generate embeddings for chunks and queries.

    Supports batch processing with per-batch retry for production use.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        model: str = "text-embedding-3-small",
        batch_size: int = 50,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        api_key: Optional[str] = None,
    ):
        """
        Initialize the embedding generator.

        Args:
            provider: Embedding provider (OpenAI when omitted)
            model: Embedding model for the default provider
            batch_size: Number of chunks per provider call
            max_retries: Retries per batch after the first attempt
            retry_base_delay: First backoff delay in seconds, doubled per retry
            api_key: API key for the default provider
        """
        if batch_size < 1:
            raise ValueError("Batch size must be at least 1")

        self.model = model
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.api_key = api_key
        self.dimension: Optional[int] = None
        self._provider = provider

    @property
    def provider(self) -> EmbeddingProvider:
        if self._provider is None:
            self._provider = OpenAIEmbeddingProvider(model=self.model, api_key=self.api_key)
        return self._provider

    async def generate_embeddings(self, chunks: List[Chunk]) -> EmbeddingResult:
        """
        Embed chunks batch by batch.

        Args:
            chunks: Chunks in pipeline order

        Returns:
            EmbeddingResult whose records keep chunk order; chunks of dropped
            batches are absent
        """
        result = EmbeddingResult(requested=len(chunks))
        if not chunks:
            logger.warning("No chunks provided for embedding generation")
            return result

        logger.info(f"Generating embeddings for {len(chunks)} chunks")
        start_time = time.time()

        for batch_number, batch in enumerate(chunk_list(chunks, self.batch_size), start=1):
            vectors = await self._embed_batch_with_retry(batch_number, [c.content for c in batch])

            if vectors is None:
                result.failed_batches.append(batch_number)
                record_embedding_batch_failure()
                continue

            for chunk, vector in zip(batch, vectors):
                result.records.append(
                    EmbeddingRecord(
                        id=chunk.id,
                        embedding=vector,
                        content=chunk.content,
                        metadata=dict(chunk.metadata),
                    )
                )

        total_time = time.time() - start_time
        logger.info(
            f"Generated {result.succeeded}/{result.requested} embeddings in {total_time:.2f} seconds",
            extra={"failed_batches": result.failed_batches},
        )
        return result

    async def _embed_batch_with_retry(
        self, batch_number: int, texts: List[str]
    ) -> Optional[List[List[float]]]:
        """Return the batch vectors, or None once every retry has failed."""

        async def attempt() -> List[List[float]]:
            with embedding_duration_tracker("batch"):
                vectors = await self.provider.embed_batch(texts)
            if len(vectors) != len(texts):
                raise EmbeddingProviderError(
                    f"Provider returned {len(vectors)} vectors for {len(texts)} texts"
                )
            return vectors

        try:
            vectors = await retry_with_backoff(
                attempt,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                description=f"Embedding batch {batch_number}",
            )
        except Exception as e:
            logger.error(
                f"Failed to embed batch {batch_number} after {self.max_retries + 1} attempts: {str(e)}"
            )
            return None

        if not self._check_dimension(vectors):
            logger.error(f"Dropping batch {batch_number}: embedding dimension mismatch")
            return None

        return vectors

    def _check_dimension(self, vectors: List[List[float]]) -> bool:
        """Accept a batch only if all vectors share the established dimension."""
        if not vectors:
            return True

        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) != 1:
            return False

        dimension = dimensions.pop()
        if self.dimension is None:
            self.dimension = dimension
        return dimension == self.dimension

    async def embed_query(self, query: str) -> List[float]:
        """
        Generate embedding for a single query.

        Args:
            query: Query text to embed

        Returns:
            Query embedding vector

        Raises:
            ValueError: If query is empty
            EmbeddingProviderError: If the provider call fails
        """
        if not query.strip():
            raise ValueError("Query cannot be empty")

        try:
            with embedding_duration_tracker("query"):
                return await self.provider.embed_one(query)
        except Exception as e:
            logger.error(f"Error embedding query '{truncate_text(query, 100)}': {str(e)}")
            raise EmbeddingProviderError(str(e)) from e
