"""
Context Retriever - Two-tier retrieval of labeled context for a query

Semantic nearest-neighbor search runs first. When it yields nothing under
the distance ceiling, a bounded sample of the collection is matched against
the query by edit distance, which recovers proper nouns that speech-to-text
has misspelled.

License: MIT
"""

from typing import List, Dict, Optional, Callable, Iterable
from collections import OrderedDict
import logging
import time

from ..config import RetrievalConfig
from ..exceptions import CollectionNotFoundError, StoreNotReadyError
from ..core.embedding_generator import EmbeddingGenerator
from ..core.models import QueryMatch, RetrievedContext, StoreStatus, VectorStoreRecord
from ..core.vector_store import VectorStoreBase
from ..infrastructure.monitoring import record_error, record_retrieval, vector_search_duration_tracker
from .fuzzy_matcher import FuzzyMatcher

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "\n\nRelevant information from your knowledge sources:\n\n"
SECTION_SEPARATOR = "\n\n---\n\n"
UNKNOWN_SOURCE = "Unknown source"

StoreLookup = Callable[[str], Optional[VectorStoreRecord]]


class ContextRetriever:
    """
    Retrieves context chunks from a data source's vector store.

    Retrieval never raises: a missing store, an embedding failure or any
    vector database error yields an empty result and a log line.
    """

    def __init__(
        self,
        vector_store: VectorStoreBase,
        embedding_generator: EmbeddingGenerator,
        store_lookup: StoreLookup,
        config: Optional[RetrievalConfig] = None,
        fuzzy_matcher: Optional[FuzzyMatcher] = None,
    ):
        """
        Initialize the retriever.

        Args:
            vector_store: Vector database adapter
            embedding_generator: Generator used to embed queries
            store_lookup: Resolves a vector store id to its record
            config: Retrieval settings
            fuzzy_matcher: Matcher for the fallback path
        """
        self.vector_store = vector_store
        self.embedding_generator = embedding_generator
        self.store_lookup = store_lookup
        self.config = config or RetrievalConfig()
        self.fuzzy_matcher = fuzzy_matcher or FuzzyMatcher(
            name_threshold=self.config.name_match_threshold,
            full_query_threshold=self.config.full_query_threshold,
            min_score=self.config.fuzzy_min_score,
            prefix_length=self.config.fuzzy_prefix_length,
        )

    def _resolve_store(self, vector_store_id: str) -> VectorStoreRecord:
        record = self.store_lookup(vector_store_id)
        if record is None:
            raise StoreNotReadyError(vector_store_id)
        if record.status is not StoreStatus.READY:
            raise StoreNotReadyError(vector_store_id, record.status.value)
        return record

    async def retrieve_context(self, query: str, vector_store_id: str) -> List[RetrievedContext]:
        """
        Retrieve context for a query from one vector store.

        Args:
            query: Natural-language query
            vector_store_id: Id of the vector store to search

        Returns:
            Context chunks, best first; empty when nothing relevant is found
        """
        if not query or not query.strip():
            return []

        try:
            store = self._resolve_store(vector_store_id)
        except StoreNotReadyError as e:
            logger.warning(f"Skipping retrieval: {str(e)}")
            record_retrieval("empty")
            return []

        start_time = time.time()

        try:
            query_embedding = await self.embedding_generator.embed_query(query)
        except Exception as e:
            logger.error(f"Query embedding failed for vector store {vector_store_id}: {str(e)}")
            record_error(type(e).__name__, "embedding")
            record_retrieval("empty")
            return []

        try:
            contexts = await self._semantic_search(store, query_embedding)
            method = "semantic"

            if not contexts:
                logger.info(
                    f"No semantic matches under {self.config.distance_threshold} "
                    f"in {vector_store_id}, trying fuzzy matching"
                )
                contexts = await self._fuzzy_search(store, query)
                method = "fuzzy"

        except CollectionNotFoundError as e:
            logger.warning(f"Vector store {vector_store_id} has no collection: {str(e)}")
            record_error(type(e).__name__, "vector_store")
            record_retrieval("empty")
            return []
        except Exception as e:
            logger.error(
                f"Retrieval from vector store {vector_store_id} failed: {str(e)}", exc_info=True
            )
            record_error(type(e).__name__, "vector_store")
            record_retrieval("empty")
            return []

        record_retrieval(method if contexts else "empty")
        logger.info(
            f"Retrieved {len(contexts)} contexts from {vector_store_id} "
            f"in {time.time() - start_time:.2f}s",
            extra={"vector_store_id": vector_store_id, "retrieval_method": method},
        )
        return contexts

    async def _semantic_search(
        self, store: VectorStoreRecord, query_embedding: List[float]
    ) -> List[RetrievedContext]:
        with vector_search_duration_tracker():
            matches = await self.vector_store.query(
                store.collection_name, query_embedding, k=self.config.top_k
            )

        kept = [
            match
            for match in matches
            if match.distance is None or match.distance < self.config.distance_threshold
        ]

        return [self._from_match(match, store) for match in kept]

    async def _fuzzy_search(self, store: VectorStoreRecord, query: str) -> List[RetrievedContext]:
        sample = await self.vector_store.scan(store.collection_name, limit=self.config.fuzzy_pool_size)
        texts = [document or "" for document in sample.documents]

        matches = self.fuzzy_matcher.find_matches(query, texts)[: self.config.fuzzy_top_n]

        contexts = []
        for match in matches:
            metadata = (
                sample.metadatas[match.index] if match.index < len(sample.metadatas) else None
            ) or {}
            contexts.append(
                RetrievedContext(
                    content=match.text,
                    source=str(metadata.get("source") or UNKNOWN_SOURCE),
                    data_source_id=str(metadata.get("data_source_id") or store.id),
                    score=match.score,
                    retrieval_method="fuzzy",
                )
            )
        return contexts

    @staticmethod
    def _from_match(match: QueryMatch, store: VectorStoreRecord) -> RetrievedContext:
        metadata = match.metadata or {}
        return RetrievedContext(
            content=match.content or "",
            source=str(metadata.get("source") or UNKNOWN_SOURCE),
            data_source_id=str(metadata.get("data_source_id") or store.id),
            score=None if match.distance is None else 1.0 - match.distance,
            retrieval_method="semantic",
        )

    async def retrieve_from_stores(
        self, query: str, vector_store_ids: Iterable[str]
    ) -> List[RetrievedContext]:
        """Retrieve from several stores in turn and concatenate the results."""
        contexts: List[RetrievedContext] = []
        for vector_store_id in vector_store_ids:
            contexts.extend(await self.retrieve_context(query, vector_store_id))
        return contexts

    @staticmethod
    def build_context_block(
        contexts: List[RetrievedContext], source_names: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Render contexts as a prompt block grouped by data source.

        Args:
            contexts: Retrieved contexts
            source_names: Display name per data source id

        Returns:
            The labeled block, or an empty string when there is no context
        """
        if not contexts:
            return ""

        source_names = source_names or {}
        grouped: "OrderedDict[str, List[str]]" = OrderedDict()
        for context in contexts:
            grouped.setdefault(context.data_source_id, []).append(context.content)

        sections = []
        for data_source_id, chunks in grouped.items():
            name = source_names.get(data_source_id) or f"Data Source {data_source_id}"
            sections.append(f'From "{name}":\n' + "\n\n".join(chunks))

        return CONTEXT_HEADER + SECTION_SEPARATOR.join(sections)
