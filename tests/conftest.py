"""
Test Configuration - Shared test fixtures and setup

This module provides common test fixtures and configuration for the test suite.
"""

import asyncio
import hashlib
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from context_engine.core.embedding_generator import EmbeddingGenerator, EmbeddingProvider
from context_engine.core.models import DataSource, SourceKind
from context_engine.core.vector_store import InMemoryVectorStore
from context_engine.engine import ContextEngine
from context_engine.pipeline.registry import InMemoryConfigurationStore, SourceRegistry

EMBEDDING_DIMENSION = 512


def bag_of_words_vector(text: str, dimension: int = EMBEDDING_DIMENSION) -> List[float]:
    """
    Deterministic embedding: hashed word counts.

    The last dimension is never used, so a one-hot vector on it is
    orthogonal to every document.
    """
    vector = [0.0] * dimension
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % (dimension - 1)
        vector[bucket] += 1.0
    return vector


def orthogonal_vector(dimension: int = EMBEDDING_DIMENSION) -> List[float]:
    vector = [0.0] * dimension
    vector[-1] = 1.0
    return vector


class FakeEmbeddingProvider(EmbeddingProvider):
    """In-process embedding provider with controllable failures."""

    def __init__(
        self,
        dimension: int = EMBEDDING_DIMENSION,
        query_vectors: Optional[Dict[str, List[float]]] = None,
        failing_texts: Optional[List[str]] = None,
    ):
        self.dimension = dimension
        self.query_vectors = query_vectors or {}
        self.failing_texts = failing_texts or []
        self.batch_calls = 0
        self.query_calls = 0
        self.fail_queries = False

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls += 1
        for text in texts:
            if any(marker in text for marker in self.failing_texts):
                raise RuntimeError("embedding service unavailable")
        return [bag_of_words_vector(text, self.dimension) for text in texts]

    async def embed_one(self, text: str) -> List[float]:
        self.query_calls += 1
        if self.fail_queries:
            raise RuntimeError("embedding service unavailable")
        if text in self.query_vectors:
            return list(self.query_vectors[text])
        return bag_of_words_vector(text, self.dimension)


class SlowConfigurationStore(InMemoryConfigurationStore):
    """Configuration store whose data source writes yield to the event loop."""

    def __init__(self, delay: float = 0.01):
        super().__init__()
        self.delay = delay

    async def save_data_source(self, source: DataSource) -> None:
        await asyncio.sleep(self.delay)
        await super().save_data_source(source)


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def provider_factory():
    """Build fake providers with custom failures or query vectors."""
    return FakeEmbeddingProvider


@pytest.fixture
def embedding_generator(fake_provider) -> EmbeddingGenerator:
    """Embedding generator that retries without sleeping."""
    return EmbeddingGenerator(provider=fake_provider, batch_size=50, retry_base_delay=0)


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def configuration_store() -> InMemoryConfigurationStore:
    return InMemoryConfigurationStore()


@pytest.fixture
def registry(configuration_store) -> SourceRegistry:
    return SourceRegistry(configuration_store)


@pytest.fixture
def engine(memory_store, embedding_generator, registry) -> ContextEngine:
    return ContextEngine(
        vector_store=memory_store,
        embedding_generator=embedding_generator,
        registry=registry,
        provider_name="local",
    )


@pytest.fixture
def team_directory(tmp_path) -> Path:
    """Directory with one person per file."""
    directory = tmp_path / "team"
    directory.mkdir()
    (directory / "sarah.txt").write_text(
        "Sarah Chen is the VP of Engineering at Acme. She joined in 2019.", encoding="utf-8"
    )
    (directory / "bob.md").write_text(
        "Bob Smith manages the sales team in Denver.", encoding="utf-8"
    )
    return directory


@pytest.fixture
def file_source(tmp_path) -> DataSource:
    path = tmp_path / "notes.txt"
    path.write_text("Quarterly planning notes for the platform team.", encoding="utf-8")
    return DataSource(id="src-1", name="Notes", kind=SourceKind.FILE, path=str(path))


@pytest.fixture
def orthogonal_embedding() -> List[float]:
    """Query vector with cosine distance 1.0 to every fake document embedding."""
    return orthogonal_vector()


@pytest.fixture
def slow_configuration_store() -> SlowConfigurationStore:
    return SlowConfigurationStore()
