"""
Context Engine - Facade over data sources, vector stores and retrieval

One ContextEngine instance owns the registry, the lifecycle controller and
the retriever. Construct it once (usually through from_config) and pass it
to the consumers that need context.

License: MIT
"""

from typing import List, Dict, Any, Optional, Union, Iterable
import logging
import time

from .config import EngineConfig, get_config
from .exceptions import DataSourceNotFoundError
from .core.chunker import DocumentChunker
from .core.document_loader import DocumentLoader
from .core.embedding_generator import EmbeddingGenerator, EmbeddingProvider
from .core.models import (
    DataSource,
    RetrievedContext,
    SourceKind,
    StoreStatus,
    VectorStoreRecord,
    collection_name_for,
)
from .core.vector_store import VectorStoreBase, create_vector_store
from .infrastructure.monitoring import set_vector_store_size
from .pipeline.lifecycle import DataSourceLifecycleController
from .pipeline.registry import ConfigurationStore, SourceRegistry
from .retrieval.context_retriever import ContextRetriever
from .retrieval.fuzzy_matcher import FuzzyMatcher
from .utils.helpers import create_unique_id

logger = logging.getLogger(__name__)

PEEK_SAMPLE_SIZE = 3

UPDATABLE_SOURCE_FIELDS = ("name", "path", "url", "connection_string", "api_key", "headers")
UPDATABLE_STORE_FIELDS = ("name", "provider")


class ContextEngine:
    """
    Retrieval-augmented-generation context engine.
    """

    def __init__(
        self,
        vector_store: VectorStoreBase,
        embedding_generator: EmbeddingGenerator,
        registry: Optional[SourceRegistry] = None,
        retriever: Optional[ContextRetriever] = None,
        controller: Optional[DataSourceLifecycleController] = None,
        provider_name: str = "chromadb",
    ):
        """
        Initialize the engine from pre-built components.

        Args:
            vector_store: Vector database adapter
            embedding_generator: Embedding generator for chunks and queries
            registry: Source registry (in-memory configuration store when omitted)
            retriever: Context retriever
            controller: Lifecycle controller
            provider_name: Provider recorded on vector store records
        """
        self.vector_store = vector_store
        self.embedding_generator = embedding_generator
        self.provider_name = provider_name
        self.registry = registry or SourceRegistry()
        self.controller = controller or DataSourceLifecycleController(
            registry=self.registry,
            vector_store=vector_store,
            embedding_generator=embedding_generator,
            provider_name=provider_name,
        )
        self.retriever = retriever or ContextRetriever(
            vector_store=vector_store,
            embedding_generator=embedding_generator,
            store_lookup=self.registry.get_vector_store,
        )
        self.initialized = False

    @classmethod
    def from_config(
        cls,
        config: Optional[EngineConfig] = None,
        configuration_store: Optional[ConfigurationStore] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStoreBase] = None,
    ) -> "ContextEngine":
        """
        Build every component from configuration.

        Args:
            config: Engine configuration (loaded from file and environment when omitted)
            configuration_store: Durable store for source and store records
            embedding_provider: Embedding provider (OpenAI when omitted)
            vector_store: Vector database adapter (built from config when omitted)
        """
        config = config or get_config()

        embedding_generator = EmbeddingGenerator(
            provider=embedding_provider,
            model=config.embedding.model,
            batch_size=config.embedding.batch_size,
            max_retries=config.embedding.max_retries,
            retry_base_delay=config.embedding.retry_base_delay,
            api_key=config.embedding.api_key,
        )
        vector_store = vector_store or create_vector_store(config.vector_store)
        registry = SourceRegistry(configuration_store)

        controller = DataSourceLifecycleController(
            registry=registry,
            vector_store=vector_store,
            embedding_generator=embedding_generator,
            loader=DocumentLoader(base_dir=config.upload_dir),
            chunker=DocumentChunker(config.chunking),
            provider_name=config.vector_store.provider,
        )

        retrieval = config.retrieval
        retriever = ContextRetriever(
            vector_store=vector_store,
            embedding_generator=embedding_generator,
            store_lookup=registry.get_vector_store,
            config=retrieval,
            fuzzy_matcher=FuzzyMatcher(
                name_threshold=retrieval.name_match_threshold,
                full_query_threshold=retrieval.full_query_threshold,
                min_score=retrieval.fuzzy_min_score,
                prefix_length=retrieval.fuzzy_prefix_length,
            ),
        )

        return cls(
            vector_store=vector_store,
            embedding_generator=embedding_generator,
            registry=registry,
            retriever=retriever,
            controller=controller,
            provider_name=config.vector_store.provider,
        )

    async def initialize(self) -> None:
        """Rehydrate the registry and verify stored collections."""
        if self.initialized:
            return

        try:
            logger.info("Initializing context engine...")
            await self.registry.initialize(self.vector_store)
            self.initialized = True
            logger.info("Context engine initialization completed")
        except Exception as e:
            logger.error(f"Failed to initialize context engine: {str(e)}")
            raise

    async def close(self) -> None:
        """Wait for in-flight processing runs to finish."""
        logger.info(f"Closing context engine, waiting for {self.controller.pending} runs")
        await self.controller.wait_for_pending()
        self.initialized = False

    # Data sources

    async def create_data_source(
        self,
        name: str,
        kind: Union[SourceKind, str],
        path: Optional[str] = None,
        url: Optional[str] = None,
        connection_string: Optional[str] = None,
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> DataSource:
        """
        Register a data source and start processing it in the background.

        Returns before processing completes; poll get_data_source for status.

        Raises:
            ValueError: If the name or kind is invalid, or the kind's
                location field is missing
        """
        if not name or not name.strip():
            raise ValueError("Data source name cannot be empty")

        kind = SourceKind(kind) if isinstance(kind, str) else kind

        if kind in (SourceKind.FILE, SourceKind.DIRECTORY) and not path:
            raise ValueError(f"A {kind.value} data source requires a path")
        if kind is SourceKind.URL and not url:
            raise ValueError("A url data source requires a url")

        source = DataSource(
            id=create_unique_id(),
            name=name.strip(),
            kind=kind,
            path=path,
            url=url,
            connection_string=connection_string,
            api_key=api_key,
            headers=dict(headers or {}),
        )
        await self.registry.save_source(source)
        logger.info(f"Created data source '{source.name}' ({source.id})", extra={"type": kind.value})

        self.controller.schedule(source.id)
        return source

    async def retry_data_source_processing(self, source_id: str) -> bool:
        return await self.controller.retry(source_id)

    def get_data_source(self, source_id: str) -> Optional[DataSource]:
        return self.registry.get_source(source_id)

    def list_data_sources(self) -> List[DataSource]:
        return self.registry.list_sources()

    async def update_data_source(self, source_id: str, **changes: Any) -> DataSource:
        """
        Update descriptive fields of a data source.

        Content is not re-processed; call retry_data_source_processing for that.

        Raises:
            DataSourceNotFoundError: If the source does not exist
            ValueError: If a field cannot be updated
        """
        source = self.registry.get_source(source_id)
        if source is None:
            raise DataSourceNotFoundError(source_id)

        invalid = [key for key in changes if key not in UPDATABLE_SOURCE_FIELDS]
        if invalid:
            raise ValueError(f"Cannot update data source fields: {', '.join(invalid)}")

        for key, value in changes.items():
            setattr(source, key, value)

        if not await self.registry.update_source(source):
            raise DataSourceNotFoundError(source_id)
        return source

    async def delete_data_source(self, source_id: str) -> bool:
        """
        Delete a data source, its vector store record and its collection.

        Returns:
            False if the source does not exist
        """
        source = await self.registry.remove_source(source_id)
        if source is None:
            return False

        record = await self.registry.remove_vector_store(source.vector_store_id)
        if record is not None:
            try:
                await self.vector_store.delete_collection(record.collection_name)
            except Exception as e:
                logger.error(
                    f"Failed to drop collection {record.collection_name}, leaving it orphaned: {str(e)}"
                )

        self.controller.forget(source_id)
        logger.info(f"Deleted data source {source_id}")
        return True

    # Vector stores

    async def create_vector_store(self, name: str, provider: Optional[str] = None) -> VectorStoreRecord:
        """Register a standalone vector store and create its collection."""
        if not name or not name.strip():
            raise ValueError("Vector store name cannot be empty")

        record = VectorStoreRecord(
            id=create_unique_id(),
            name=name.strip(),
            provider=provider or self.provider_name,
        )
        await self.vector_store.ensure_collection(record.collection_name)
        return await self.registry.save_vector_store(record)

    def get_vector_store(self, store_id: str) -> Optional[VectorStoreRecord]:
        return self.registry.get_vector_store(store_id)

    def list_vector_stores(self) -> List[VectorStoreRecord]:
        return self.registry.list_vector_stores()

    async def update_vector_store(self, store_id: str, **changes: Any) -> Optional[VectorStoreRecord]:
        record = self.registry.get_vector_store(store_id)
        if record is None:
            return None

        invalid = [key for key in changes if key not in UPDATABLE_STORE_FIELDS]
        if invalid:
            raise ValueError(f"Cannot update vector store fields: {', '.join(invalid)}")

        for key, value in changes.items():
            setattr(record, key, value)

        if not await self.registry.update_vector_store(record):
            return None
        return record

    async def delete_vector_store(self, store_id: str) -> bool:
        record = await self.registry.remove_vector_store(store_id)
        if record is None:
            return False

        try:
            await self.vector_store.delete_collection(record.collection_name)
        except Exception as e:
            logger.error(f"Failed to drop collection {record.collection_name}: {str(e)}")
        return True

    async def get_vector_store_stats(self, store_id: str) -> Optional[Dict[str, Any]]:
        """
        Describe a vector store, refreshing its record count when possible.

        Returns:
            The store record as a dict, or None if the store does not exist
        """
        record = self.registry.get_vector_store(store_id)
        if record is None:
            return None

        if record.status is StoreStatus.READY:
            try:
                record.vector_count = await self.vector_store.count(record.collection_name)
                set_vector_store_size(record.id, record.vector_count)
            except Exception as e:
                logger.warning(f"Could not refresh count for vector store {store_id}: {str(e)}")

        return record.to_dict()

    async def peek_collection(self, vector_store_id: str) -> Dict[str, Any]:
        """
        Sample a few records from a vector store's collection.

        Raises:
            CollectionNotFoundError: If the collection does not exist
        """
        record = self.registry.get_vector_store(vector_store_id)
        collection_name = (
            record.collection_name if record is not None else collection_name_for(vector_store_id)
        )

        count = await self.vector_store.count(collection_name)
        if count == 0:
            return {"count": 0, "documents": [], "metadatas": []}

        sample = await self.vector_store.scan(collection_name, limit=PEEK_SAMPLE_SIZE)
        logger.info(f"Peeked collection {collection_name}: {count} records")
        return {"count": count, "documents": sample.documents, "metadatas": sample.metadatas}

    # Retrieval

    async def retrieve_context(self, query: str, vector_store_id: str) -> List[Dict[str, Any]]:
        """
        Retrieve context for a query from one vector store.

        Returns:
            Dicts shaped ``{content, source, dataSourceId, score, retrievalMethod}``
        """
        contexts = await self.retriever.retrieve_context(query, vector_store_id)
        return [context.to_dict() for context in contexts]

    async def retrieve_from_stores(
        self, query: str, vector_store_ids: Iterable[str]
    ) -> List[Dict[str, Any]]:
        contexts = await self.retriever.retrieve_from_stores(query, vector_store_ids)
        return [context.to_dict() for context in contexts]

    def build_context_block(self, contexts: List[Union[RetrievedContext, Dict[str, Any]]]) -> str:
        """Render retrieved contexts as a prompt block labeled by data source name."""
        items = [
            context
            if isinstance(context, RetrievedContext)
            else RetrievedContext(
                content=context["content"],
                source=context.get("source", ""),
                data_source_id=context["dataSourceId"],
            )
            for context in contexts
        ]
        return self.retriever.build_context_block(items, self.registry.source_names())

    # Health

    async def health_check(self) -> Dict[str, Any]:
        """
        Health check of the engine's services.

        Returns:
            Dictionary with health status and service details
        """
        services: Dict[str, Any] = {}

        try:
            services["vector_store"] = {
                "healthy": await self.vector_store.ping(),
                "provider": self.provider_name,
            }
        except Exception as e:
            services["vector_store"] = {"healthy": False, "error": str(e)}

        services["embedding_generator"] = {
            "healthy": True,
            "model": self.embedding_generator.model,
            "dimension": self.embedding_generator.dimension,
        }

        sources = self.registry.list_sources()
        statuses: Dict[str, int] = {}
        for source in sources:
            statuses[source.status.value] = statuses.get(source.status.value, 0) + 1

        all_healthy = all(service.get("healthy", False) for service in services.values())

        return {
            "healthy": all_healthy,
            "initialized": self.initialized,
            "services": services,
            "data_sources": statuses,
            "pending_runs": self.controller.pending,
            "timestamp": time.time(),
        }
