"""
Unit Tests for Source Registry

Tests write-through persistence and rehydration from the configuration
store.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from context_engine.core.models import (
    DataSource,
    EmbeddingRecord,
    SourceKind,
    SourceStatus,
    StoreStatus,
    VectorStoreRecord,
)
from context_engine.pipeline.registry import (
    INTERRUPTED_MESSAGE,
    MISSING_COLLECTION_MESSAGE,
    InMemoryConfigurationStore,
    SourceRegistry,
)


def make_source(source_id="src-1", status=SourceStatus.CONFIGURED, **kwargs):
    return DataSource(
        id=source_id,
        name="Team",
        kind=SourceKind.FILE,
        path="/data/team.txt",
        status=status,
        **kwargs,
    )


class TestWriteThrough:
    """Test that mutations reach the configuration store."""

    @pytest.mark.asyncio
    async def test_save_source(self, registry, configuration_store):
        source = make_source()

        await registry.save_source(source)

        assert registry.get_source("src-1") is source
        assert configuration_store.data_sources["src-1"]["name"] == "Team"
        assert configuration_store.data_sources["src-1"]["status"] == "configured"

    @pytest.mark.asyncio
    async def test_remove_source(self, registry, configuration_store):
        await registry.save_source(make_source())

        removed = await registry.remove_source("src-1")

        assert removed.id == "src-1"
        assert registry.get_source("src-1") is None
        assert "src-1" not in configuration_store.data_sources

    @pytest.mark.asyncio
    async def test_remove_unknown_source(self, registry):
        assert await registry.remove_source("missing") is None

    @pytest.mark.asyncio
    async def test_store_failure_leaves_memory_unchanged(self):
        """Test a failed write does not update the in-memory index."""
        store = InMemoryConfigurationStore()
        store.save_data_source = AsyncMock(side_effect=OSError("disk full"))
        registry = SourceRegistry(store)

        with pytest.raises(OSError):
            await registry.save_source(make_source())

        assert registry.get_source("src-1") is None

    @pytest.mark.asyncio
    async def test_update_source(self, registry, configuration_store):
        source = await registry.save_source(make_source())
        source.name = "People"

        assert await registry.update_source(source) is True
        assert configuration_store.data_sources["src-1"]["name"] == "People"

    @pytest.mark.asyncio
    async def test_update_unregistered_source(self, registry, configuration_store):
        """Test an update never inserts a source that is not registered."""
        assert await registry.update_source(make_source()) is False

        assert registry.get_source("src-1") is None
        assert configuration_store.data_sources == {}

    @pytest.mark.asyncio
    async def test_update_racing_removal(self, slow_configuration_store):
        """Test a source removed during an in-flight update stays removed."""
        registry = SourceRegistry(slow_configuration_store)
        source = await registry.save_source(make_source())

        write = asyncio.create_task(registry.update_source(source))
        await asyncio.sleep(0)
        await registry.remove_source("src-1")

        assert await write is False
        assert registry.get_source("src-1") is None
        assert "src-1" not in slow_configuration_store.data_sources

    @pytest.mark.asyncio
    async def test_update_vector_store(self, registry, configuration_store):
        record = VectorStoreRecord(id="datastore_src-1", name="Team", data_source_id="src-1")

        assert await registry.update_vector_store(record) is False
        assert configuration_store.vector_stores == {}

        await registry.save_vector_store(record)
        record.vector_count = 3

        assert await registry.update_vector_store(record) is True
        assert configuration_store.vector_stores["datastore_src-1"]["vectorCount"] == 3

    @pytest.mark.asyncio
    async def test_vector_store_for_source(self, registry):
        source = await registry.save_source(make_source())
        record = await registry.save_vector_store(
            VectorStoreRecord(id=source.vector_store_id, name="Team", data_source_id=source.id)
        )

        assert registry.vector_store_for_source("src-1") is record
        assert record.collection_name == "rag_datastore_src-1"
        assert registry.vector_store_for_source("missing") is None

    @pytest.mark.asyncio
    async def test_source_names(self, registry):
        await registry.save_source(make_source())
        await registry.save_source(
            DataSource(id="src-2", name="Sales", kind=SourceKind.DIRECTORY, path="/data/sales")
        )

        assert registry.source_names() == {"src-1": "Team", "src-2": "Sales"}


class TestRehydration:
    """Test initialization from persisted records."""

    @pytest.mark.asyncio
    async def test_records_are_restored(self, configuration_store):
        """Test a new registry sees what an earlier one saved."""
        first = SourceRegistry(configuration_store)
        await first.save_source(make_source(status=SourceStatus.CONFIGURED))

        second = SourceRegistry(configuration_store)
        await second.initialize()

        restored = second.get_source("src-1")
        assert restored is not None
        assert restored.name == "Team"
        assert restored.kind is SourceKind.FILE

    @pytest.mark.asyncio
    async def test_interrupted_processing_marked_error(self, configuration_store):
        """Test a source persisted mid-processing comes back failed."""
        first = SourceRegistry(configuration_store)
        source = await first.save_source(make_source(status=SourceStatus.PROCESSING))
        await first.save_vector_store(
            VectorStoreRecord(id=source.vector_store_id, name="Team", data_source_id=source.id)
        )

        second = SourceRegistry(configuration_store)
        await second.initialize()

        restored = second.get_source("src-1")
        assert restored.status is SourceStatus.ERROR
        assert restored.error_message == INTERRUPTED_MESSAGE
        assert second.get_vector_store("datastore_src-1").status is StoreStatus.ERROR
        assert configuration_store.data_sources["src-1"]["status"] == "error"

    @pytest.mark.asyncio
    async def test_missing_collection_marked_error(self, configuration_store, memory_store):
        """Test a ready source whose collection is gone comes back failed."""
        first = SourceRegistry(configuration_store)
        await first.save_source(make_source(status=SourceStatus.READY, document_count=4))

        second = SourceRegistry(configuration_store)
        await second.initialize(memory_store)

        restored = second.get_source("src-1")
        assert restored.status is SourceStatus.ERROR
        assert restored.error_message == MISSING_COLLECTION_MESSAGE
        assert second.get_vector_store("datastore_src-1").status is StoreStatus.ERROR

    @pytest.mark.asyncio
    async def test_vector_count_refreshed(self, configuration_store, memory_store):
        """Test a ready source keeps its status and gets a fresh vector count."""
        first = SourceRegistry(configuration_store)
        source = await first.save_source(make_source(status=SourceStatus.READY, document_count=2))
        await first.save_vector_store(
            VectorStoreRecord(
                id=source.vector_store_id,
                name="Team",
                data_source_id=source.id,
                status=StoreStatus.READY,
                vector_count=99,
            )
        )
        await memory_store.ensure_collection("rag_datastore_src-1")
        await memory_store.upsert(
            "rag_datastore_src-1",
            [
                EmbeddingRecord(id="a#0", embedding=[1.0, 0.0], content="a"),
                EmbeddingRecord(id="b#0", embedding=[0.0, 1.0], content="b"),
            ],
        )

        second = SourceRegistry(configuration_store)
        await second.initialize(memory_store)

        assert second.get_source("src-1").status is SourceStatus.READY
        record = second.get_vector_store("datastore_src-1")
        assert record.status is StoreStatus.READY
        assert record.vector_count == 2

    @pytest.mark.asyncio
    async def test_unreachable_vector_store_keeps_state(self, configuration_store, memory_store):
        """Test an unverifiable collection leaves the stored status alone."""
        first = SourceRegistry(configuration_store)
        await first.save_source(make_source(status=SourceStatus.READY))
        memory_store.count = AsyncMock(side_effect=ConnectionError("refused"))

        second = SourceRegistry(configuration_store)
        await second.initialize(memory_store)

        assert second.get_source("src-1").status is SourceStatus.READY

    @pytest.mark.asyncio
    async def test_ready_source_without_vector_store_check(self, configuration_store):
        """Test ready sources are trusted when no vector store is given."""
        first = SourceRegistry(configuration_store)
        await first.save_source(make_source(status=SourceStatus.READY))

        second = SourceRegistry(configuration_store)
        await second.initialize()

        assert second.get_source("src-1").status is SourceStatus.READY
