"""
Unit Tests for Data Source Lifecycle Controller

Tests the configured -> processing -> ready | error transitions, partial
embedding failure and re-processing.
"""

import asyncio

import pytest

from context_engine.core.embedding_generator import EmbeddingGenerator
from context_engine.core.models import DataSource, SourceKind, SourceStatus, StoreStatus
from context_engine.exceptions import CollectionNotFoundError
from context_engine.pipeline.lifecycle import DataSourceLifecycleController
from context_engine.pipeline.registry import SourceRegistry


@pytest.fixture
def controller(registry, memory_store, embedding_generator):
    return DataSourceLifecycleController(
        registry=registry,
        vector_store=memory_store,
        embedding_generator=embedding_generator,
        provider_name="local",
    )


async def register(registry, source):
    await registry.save_source(source)
    return source


class TestProcess:
    """Test cases for the processing pipeline."""

    @pytest.mark.asyncio
    async def test_directory_source_becomes_ready(self, controller, registry, memory_store, team_directory):
        """Test a directory is loaded, embedded and stored."""
        source = await register(
            registry,
            DataSource(id="src-1", name="Team", kind=SourceKind.DIRECTORY, path=str(team_directory)),
        )

        assert await controller.process("src-1") is True

        assert source.status is SourceStatus.READY
        assert source.document_count == 2
        assert source.last_indexed is not None
        assert source.error_message is None

        record = registry.get_vector_store("datastore_src-1")
        assert record.status is StoreStatus.READY
        assert record.vector_count == 2
        assert record.provider == "local"
        assert record.data_source_id == "src-1"
        assert await memory_store.count("rag_datastore_src-1") == 2

    @pytest.mark.asyncio
    async def test_ready_state_is_written_through(
        self, controller, registry, configuration_store, file_source
    ):
        await register(registry, file_source)

        await controller.process(file_source.id)

        assert configuration_store.data_sources["src-1"]["status"] == "ready"
        assert configuration_store.vector_stores["datastore_src-1"]["status"] == "ready"

    @pytest.mark.asyncio
    async def test_unsupported_file_marks_error(self, controller, registry, tmp_path):
        """Test a load failure leaves the source and store in error."""
        path = tmp_path / "slides.pptx"
        path.write_bytes(b"data")
        source = await register(
            registry, DataSource(id="src-x", name="Slides", kind=SourceKind.FILE, path=str(path))
        )

        assert await controller.process("src-x") is False

        assert source.status is SourceStatus.ERROR
        assert "Unsupported file format" in source.error_message
        assert registry.get_vector_store("datastore_src-x").status is StoreStatus.ERROR

    @pytest.mark.asyncio
    async def test_partial_embedding_failure(self, registry, memory_store, provider_factory, tmp_path):
        """Test 2 of 5 failed batches still leave the source ready with 3 records."""
        directory = tmp_path / "notes"
        directory.mkdir()
        for i, text in enumerate(["alpha", "beta BROKEN", "gamma", "delta BROKEN", "epsilon"]):
            (directory / f"note{i}.txt").write_text(f"Note {text}", encoding="utf-8")

        controller = DataSourceLifecycleController(
            registry=registry,
            vector_store=memory_store,
            embedding_generator=EmbeddingGenerator(
                provider=provider_factory(failing_texts=["BROKEN"]),
                batch_size=1,
                retry_base_delay=0,
            ),
        )
        source = await register(
            registry,
            DataSource(id="src-n", name="Notes", kind=SourceKind.DIRECTORY, path=str(directory)),
        )

        assert await controller.process("src-n") is True

        assert source.status is SourceStatus.READY
        assert source.document_count == 3
        assert registry.get_vector_store("datastore_src-n").vector_count == 3

    @pytest.mark.asyncio
    async def test_reprocessing_replaces_content(self, controller, registry, memory_store, team_directory):
        """Test processing twice does not duplicate records."""
        await register(
            registry,
            DataSource(id="src-1", name="Team", kind=SourceKind.DIRECTORY, path=str(team_directory)),
        )

        await controller.process("src-1")
        await controller.process("src-1")

        assert await memory_store.count("rag_datastore_src-1") == 2
        assert registry.get_source("src-1").document_count == 2

    @pytest.mark.asyncio
    async def test_removed_content_is_dropped(self, controller, registry, memory_store, team_directory):
        """Test a re-run reflects files deleted since the last run."""
        await register(
            registry,
            DataSource(id="src-1", name="Team", kind=SourceKind.DIRECTORY, path=str(team_directory)),
        )
        await controller.process("src-1")

        (team_directory / "bob.md").unlink()
        await controller.process("src-1")

        assert await memory_store.count("rag_datastore_src-1") == 1

    @pytest.mark.asyncio
    async def test_unknown_source(self, controller):
        assert await controller.process("missing") is False


class TestSchedulingAndRetry:
    """Test background scheduling and the retry path."""

    @pytest.mark.asyncio
    async def test_schedule_runs_in_background(self, controller, registry, file_source):
        await register(registry, file_source)

        task = controller.schedule(file_source.id)
        assert controller.pending == 1

        await controller.wait_for_pending()

        assert task.done()
        assert controller.pending == 0
        assert file_source.status is SourceStatus.READY

    @pytest.mark.asyncio
    async def test_runs_for_one_source_are_serialized(
        self, controller, registry, memory_store, team_directory
    ):
        """Test overlapping runs for one source end in a consistent state."""
        await register(
            registry,
            DataSource(id="src-1", name="Team", kind=SourceKind.DIRECTORY, path=str(team_directory)),
        )

        controller.schedule("src-1")
        controller.schedule("src-1")
        await controller.wait_for_pending()

        assert registry.get_source("src-1").status is SourceStatus.READY
        assert await memory_store.count("rag_datastore_src-1") == 2

    @pytest.mark.asyncio
    async def test_sources_process_independently(self, controller, registry, team_directory, file_source):
        """Test one failing source does not affect another."""
        await register(registry, file_source)
        await register(
            registry,
            DataSource(id="src-bad", name="Bad", kind=SourceKind.FILE, path=str(team_directory / "nope.txt")),
        )

        controller.schedule(file_source.id)
        controller.schedule("src-bad")
        await controller.wait_for_pending()

        assert registry.get_source(file_source.id).status is SourceStatus.READY
        assert registry.get_source("src-bad").status is SourceStatus.ERROR

    @pytest.mark.asyncio
    async def test_retry_after_fix(self, controller, registry, tmp_path):
        """Test a failed source recovers once its file exists."""
        path = tmp_path / "late.txt"
        source = await register(
            registry, DataSource(id="src-l", name="Late", kind=SourceKind.FILE, path=str(path))
        )
        await controller.process("src-l")
        assert source.status is SourceStatus.ERROR

        path.write_text("Arrived after the first run.", encoding="utf-8")
        assert await controller.retry("src-l") is True
        await controller.wait_for_pending()

        assert source.status is SourceStatus.READY
        assert source.error_message is None
        assert registry.get_vector_store("datastore_src-l").status is StoreStatus.READY

    @pytest.mark.asyncio
    async def test_retry_resets_status(self, controller, registry, file_source):
        """Test retry writes the configured status before scheduling."""
        file_source.status = SourceStatus.ERROR
        file_source.error_message = "boom"
        await register(registry, file_source)

        await controller.retry(file_source.id)

        assert file_source.status is SourceStatus.CONFIGURED
        assert file_source.error_message is None
        await controller.wait_for_pending()

    @pytest.mark.asyncio
    async def test_retry_unknown_source(self, controller):
        assert await controller.retry("missing") is False
        assert controller.pending == 0


class TestDeletionDuringProcessing:
    """Test a source deleted while its run is in flight."""

    @pytest.mark.asyncio
    async def test_deleted_source_is_not_restored(
        self, slow_configuration_store, memory_store, embedding_generator, file_source
    ):
        """Test a removal during the processing write leaves nothing behind."""
        registry = SourceRegistry(slow_configuration_store)
        controller = DataSourceLifecycleController(
            registry=registry, vector_store=memory_store, embedding_generator=embedding_generator
        )
        await register(registry, file_source)

        controller.schedule(file_source.id)
        await asyncio.sleep(0)
        await registry.remove_source(file_source.id)
        await controller.wait_for_pending()

        assert registry.get_source(file_source.id) is None
        assert file_source.id not in slow_configuration_store.data_sources
        assert registry.get_vector_store(file_source.vector_store_id) is None
        with pytest.raises(CollectionNotFoundError):
            await memory_store.count("rag_datastore_src-1")

    @pytest.mark.asyncio
    async def test_deleted_during_embedding(self, registry, memory_store, provider_factory, file_source):
        """Test a run abandons its store record when the source goes away mid-embedding."""
        provider = provider_factory()
        controller = DataSourceLifecycleController(
            registry=registry,
            vector_store=memory_store,
            embedding_generator=EmbeddingGenerator(provider=provider, retry_base_delay=0),
        )
        await register(registry, file_source)

        async def embed_then_delete(texts):
            await registry.remove_source(file_source.id)
            return [[1.0, 0.0] for _ in texts]

        provider.embed_batch = embed_then_delete

        assert await controller.process(file_source.id) is False

        assert registry.get_vector_store(file_source.vector_store_id) is None
        with pytest.raises(CollectionNotFoundError):
            await memory_store.count("rag_datastore_src-1")

    @pytest.mark.asyncio
    async def test_lock_released_for_deleted_source(self, controller, registry, file_source):
        await register(registry, file_source)
        await controller.process(file_source.id)
        assert file_source.id in controller._locks

        await registry.remove_source(file_source.id)
        await controller.process(file_source.id)

        assert file_source.id not in controller._locks

    @pytest.mark.asyncio
    async def test_forget_keeps_held_lock(self, controller):
        lock = controller._locks.setdefault("src-1", asyncio.Lock())

        async with lock:
            controller.forget("src-1")
            assert "src-1" in controller._locks

        controller.forget("src-1")
        assert "src-1" not in controller._locks
