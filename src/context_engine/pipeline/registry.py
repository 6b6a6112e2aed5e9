"""
Source Registry - Data source and vector store records with write-through

The registry keeps every record in memory and writes each mutation through
to a ConfigurationStore. On start it rehydrates from the store and checks
derived state against the vector database instead of trusting it.

License: MIT
"""

from typing import List, Dict, Optional
from abc import ABC, abstractmethod
import logging

from ..exceptions import CollectionNotFoundError
from ..core.models import (
    DataSource,
    SourceStatus,
    StoreStatus,
    VectorStoreRecord,
)
from ..core.vector_store import VectorStoreBase

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Processing was interrupted before it completed"
MISSING_COLLECTION_MESSAGE = "Vector collection is missing; retry processing to rebuild it"


class ConfigurationStore(ABC):
    """Durable storage for configuration records."""

    @abstractmethod
    async def load_data_sources(self) -> List[DataSource]:
        pass

    @abstractmethod
    async def save_data_source(self, source: DataSource) -> None:
        pass

    @abstractmethod
    async def delete_data_source(self, source_id: str) -> None:
        pass

    @abstractmethod
    async def load_vector_stores(self) -> List[VectorStoreRecord]:
        pass

    @abstractmethod
    async def save_vector_store(self, record: VectorStoreRecord) -> None:
        pass

    @abstractmethod
    async def delete_vector_store(self, store_id: str) -> None:
        pass


class InMemoryConfigurationStore(ConfigurationStore):
    """
    Configuration store that keeps serialized records in process memory.

    Records round-trip through their dict form, as they would through a
    database row.
    """

    def __init__(self):
        self.data_sources: Dict[str, Dict] = {}
        self.vector_stores: Dict[str, Dict] = {}

    async def load_data_sources(self) -> List[DataSource]:
        return [DataSource.from_dict(data) for data in self.data_sources.values()]

    async def save_data_source(self, source: DataSource) -> None:
        self.data_sources[source.id] = source.to_dict()

    async def delete_data_source(self, source_id: str) -> None:
        self.data_sources.pop(source_id, None)

    async def load_vector_stores(self) -> List[VectorStoreRecord]:
        return [VectorStoreRecord.from_dict(data) for data in self.vector_stores.values()]

    async def save_vector_store(self, record: VectorStoreRecord) -> None:
        self.vector_stores[record.id] = record.to_dict()

    async def delete_vector_store(self, store_id: str) -> None:
        self.vector_stores.pop(store_id, None)


class SourceRegistry:
    """
    In-memory index of data sources and vector stores.

    Reads are served from memory; every save or removal is written through
    to the configuration store before it returns.
    """

    def __init__(self, store: Optional[ConfigurationStore] = None):
        self.store = store or InMemoryConfigurationStore()
        self._sources: Dict[str, DataSource] = {}
        self._vector_stores: Dict[str, VectorStoreRecord] = {}

    async def initialize(self, vector_store: Optional[VectorStoreBase] = None) -> None:
        """
        Rehydrate records from the configuration store.

        Sources left mid-processing are marked as failed. When a vector
        store is given, every ready source has its collection checked and
        its vector count refreshed.

        Args:
            vector_store: Vector database used to verify collections
        """
        self._sources = {source.id: source for source in await self.store.load_data_sources()}
        self._vector_stores = {
            record.id: record for record in await self.store.load_vector_stores()
        }

        for source in list(self._sources.values()):
            if source.status is SourceStatus.PROCESSING:
                logger.warning(f"Data source {source.id} was interrupted during processing")
                await self._mark_failed(source, INTERRUPTED_MESSAGE)

            elif source.status is SourceStatus.READY and vector_store is not None:
                await self._verify_collection(source, vector_store)

        logger.info(
            f"Registry initialized with {len(self._sources)} data sources "
            f"and {len(self._vector_stores)} vector stores"
        )

    async def _verify_collection(self, source: DataSource, vector_store: VectorStoreBase) -> None:
        record = self._vector_stores.get(source.vector_store_id)
        if record is None:
            record = VectorStoreRecord(
                id=source.vector_store_id, name=source.name, data_source_id=source.id
            )

        try:
            count = await vector_store.count(record.collection_name)
        except CollectionNotFoundError:
            logger.warning(
                f"Collection {record.collection_name} for ready data source {source.id} is missing"
            )
            self._vector_stores[record.id] = record
            await self._mark_failed(source, MISSING_COLLECTION_MESSAGE)
            return
        except Exception as e:
            logger.warning(
                f"Could not verify collection {record.collection_name}, keeping stored state: {str(e)}"
            )
            return

        record.status = StoreStatus.READY
        record.vector_count = count
        await self.save_vector_store(record)
        logger.info(f"Restored vector store {record.id} with {count} records")

    async def _mark_failed(self, source: DataSource, message: str) -> None:
        source.status = SourceStatus.ERROR
        source.error_message = message
        await self.save_source(source)

        record = self._vector_stores.get(source.vector_store_id)
        if record is not None:
            record.status = StoreStatus.ERROR
            await self.save_vector_store(record)

    # Data sources

    def get_source(self, source_id: str) -> Optional[DataSource]:
        return self._sources.get(source_id)

    def list_sources(self) -> List[DataSource]:
        return list(self._sources.values())

    async def save_source(self, source: DataSource) -> DataSource:
        source.touch()
        await self.store.save_data_source(source)
        self._sources[source.id] = source
        return source

    async def update_source(self, source: DataSource) -> bool:
        """
        Write through a change to a registered source.

        Unlike save_source this never re-adds a source removed while the
        write was in flight; the stale row is deleted again instead.

        Returns:
            False if the source is no longer registered
        """
        if self._sources.get(source.id) is not source:
            return False

        source.touch()
        await self.store.save_data_source(source)

        if self._sources.get(source.id) is not source:
            await self.store.delete_data_source(source.id)
            return False
        return True

    async def remove_source(self, source_id: str) -> Optional[DataSource]:
        source = self._sources.get(source_id)
        if source is None:
            return None
        await self.store.delete_data_source(source_id)
        del self._sources[source_id]
        return source

    # Vector stores

    def get_vector_store(self, store_id: str) -> Optional[VectorStoreRecord]:
        return self._vector_stores.get(store_id)

    def list_vector_stores(self) -> List[VectorStoreRecord]:
        return list(self._vector_stores.values())

    def vector_store_for_source(self, source_id: str) -> Optional[VectorStoreRecord]:
        source = self._sources.get(source_id)
        if source is None:
            return None
        return self._vector_stores.get(source.vector_store_id)

    async def save_vector_store(self, record: VectorStoreRecord) -> VectorStoreRecord:
        record.touch()
        await self.store.save_vector_store(record)
        self._vector_stores[record.id] = record
        return record

    async def update_vector_store(self, record: VectorStoreRecord) -> bool:
        """Write through a change to a registered vector store; False if it was removed."""
        if self._vector_stores.get(record.id) is not record:
            return False

        record.touch()
        await self.store.save_vector_store(record)

        if self._vector_stores.get(record.id) is not record:
            await self.store.delete_vector_store(record.id)
            return False
        return True

    async def remove_vector_store(self, store_id: str) -> Optional[VectorStoreRecord]:
        record = self._vector_stores.get(store_id)
        if record is None:
            return None
        await self.store.delete_vector_store(store_id)
        del self._vector_stores[store_id]
        return record

    def source_names(self) -> Dict[str, str]:
        """Display name per data source id."""
        return {source.id: source.name for source in self._sources.values()}
