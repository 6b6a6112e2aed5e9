"""
Data Source Lifecycle - Background ingestion of data sources

A data source moves configured -> processing -> ready | error. Processing
runs as a background task: load, chunk, embed and store, one stage after
the other. Different sources process concurrently; a single source never
has two runs in flight.

License: MIT
"""

from typing import Dict, Optional, Set
from datetime import datetime
import asyncio
import logging

from ..exceptions import ProcessingFailedError
from ..core.chunker import DocumentChunker
from ..core.document_loader import DocumentLoader
from ..core.embedding_generator import EmbeddingGenerator
from ..core.models import DataSource, SourceStatus, StoreStatus, VectorStoreRecord
from ..core.vector_store import VectorStoreBase
from ..infrastructure.monitoring import (
    pipeline_duration_tracker,
    record_error,
    record_pipeline_run,
    set_vector_store_size,
)
from ..utils.helpers import Timer, format_duration
from .registry import SourceRegistry

logger = logging.getLogger(__name__)


class DataSourceLifecycleController:
    """
    Drives data sources through the ingestion pipeline.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        vector_store: VectorStoreBase,
        embedding_generator: EmbeddingGenerator,
        loader: Optional[DocumentLoader] = None,
        chunker: Optional[DocumentChunker] = None,
        provider_name: str = "chromadb",
    ):
        """
        Initialize the controller.

        Args:
            registry: Registry holding source and store records
            vector_store: Vector database adapter
            embedding_generator: Generator for chunk embeddings
            loader: Document loader
            chunker: Document chunker
            provider_name: Provider recorded on created vector store records
        """
        self.registry = registry
        self.vector_store = vector_store
        self.embedding_generator = embedding_generator
        self.loader = loader or DocumentLoader()
        self.chunker = chunker or DocumentChunker()
        self.provider_name = provider_name

        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of processing runs not yet finished."""
        return len(self._tasks)

    def schedule(self, source_id: str) -> asyncio.Task:
        """
        Start processing a source in the background and return immediately.

        Must be called from a running event loop.
        """
        task = asyncio.create_task(self.process(source_id), name=f"process-{source_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Scheduled processing for data source {source_id}")
        return task

    async def process(self, source_id: str) -> bool:
        """
        Run the ingestion pipeline for one source.

        Runs for the same source are serialized. Failures are recorded on the
        source and never raised. A source deleted mid-run is abandoned and
        whatever the run created for it is dropped.

        Returns:
            True if the source ended up ready
        """
        lock = self._locks.setdefault(source_id, asyncio.Lock())
        try:
            async with lock:
                return await self._run(source_id)
        finally:
            if self.registry.get_source(source_id) is None:
                self.forget(source_id)

    def forget(self, source_id: str) -> None:
        """Release the run lock of a deleted source unless a run holds it."""
        lock = self._locks.get(source_id)
        if lock is not None and not lock.locked():
            del self._locks[source_id]

    def _is_current(self, source: DataSource) -> bool:
        return self.registry.get_source(source.id) is source

    async def _run(self, source_id: str) -> bool:
        source = self.registry.get_source(source_id)
        if source is None:
            logger.warning(f"Data source {source_id} no longer exists, skipping processing")
            return False

        timer = Timer(f"Processing data source {source_id}")
        stage = "start"
        record: Optional[VectorStoreRecord] = None

        try:
            with pipeline_duration_tracker(), timer:
                source.status = SourceStatus.PROCESSING
                source.error_message = None
                if not await self.registry.update_source(source):
                    return await self._abandon(source, record)
                logger.info(f"Processing data source '{source.name}' ({source_id})")

                stage = "prepare"
                record = await self._prepare_vector_store(source)
                if not self._is_current(source):
                    return await self._abandon(source, record)

                stage = "load"
                documents = await self.loader.load(source)

                stage = "chunk"
                chunks = self.chunker.chunk_documents(documents)

                stage = "embed"
                result = await self.embedding_generator.generate_embeddings(chunks)

                stage = "store"
                if not self._is_current(source):
                    return await self._abandon(source, record)
                if result.records:
                    await self.vector_store.upsert(record.collection_name, result.records)
                count = await self.vector_store.count(record.collection_name)

        except Exception as e:
            if not self._is_current(source):
                return await self._abandon(source, record)

            error = ProcessingFailedError(source_id, stage, e)
            logger.error(str(error), exc_info=True, extra={"data_source_id": source_id, "stage": stage})
            record_error(type(e).__name__, "pipeline")
            record_pipeline_run("error")
            await self._mark_failed(source, record, str(e))
            return False

        source.status = SourceStatus.READY
        source.document_count = result.succeeded
        source.last_indexed = datetime.now()
        if not await self.registry.update_source(source):
            return await self._abandon(source, record)

        record.status = StoreStatus.READY
        record.vector_count = count
        await self.registry.update_vector_store(record)

        set_vector_store_size(record.id, count)
        record_pipeline_run("ready")
        logger.info(
            f"Data source '{source.name}' ready: {len(documents)} documents, "
            f"{len(chunks)} chunks, {result.succeeded} embedded in {format_duration(timer.elapsed_time)}",
            extra={
                "data_source_id": source_id,
                "documents": len(documents),
                "chunks": len(chunks),
                "embedded": result.succeeded,
                "failed_batches": result.failed_batches,
            },
        )
        return True

    async def _prepare_vector_store(self, source: DataSource) -> VectorStoreRecord:
        """Create the source's store record on first run and empty its collection."""
        record = self.registry.get_vector_store(source.vector_store_id)
        if record is None:
            record = VectorStoreRecord(
                id=source.vector_store_id,
                name=source.name,
                provider=self.provider_name,
                data_source_id=source.id,
                status=StoreStatus.CONFIGURED,
            )
            await self.registry.save_vector_store(record)

        await self.vector_store.reset_collection(record.collection_name)
        return record

    async def _abandon(self, source: DataSource, record: Optional[VectorStoreRecord]) -> bool:
        """Drop what a run created for a source that was deleted under it."""
        logger.warning(f"Data source {source.id} was deleted during processing")
        record_pipeline_run("abandoned")

        if record is None:
            return False

        if self.registry.get_vector_store(record.id) is record:
            await self.registry.remove_vector_store(record.id)
        try:
            await self.vector_store.delete_collection(record.collection_name)
        except Exception as e:
            logger.error(
                f"Failed to drop collection {record.collection_name}, leaving it orphaned: {str(e)}"
            )
        return False

    async def _mark_failed(
        self, source: DataSource, record: Optional[VectorStoreRecord], message: str
    ) -> None:
        if not self._is_current(source):
            await self._abandon(source, record)
            return

        try:
            source.status = SourceStatus.ERROR
            source.error_message = message
            if not await self.registry.update_source(source):
                await self._abandon(source, record)
                return

            if record is not None:
                record.status = StoreStatus.ERROR
                await self.registry.update_vector_store(record)
        except Exception as e:
            logger.error(f"Failed to record error state for data source {source.id}: {str(e)}")

    async def retry(self, source_id: str) -> bool:
        """
        Reset a source to configured and schedule a new processing run.

        Returns:
            False if the source is unknown
        """
        source = self.registry.get_source(source_id)
        if source is None:
            return False

        source.status = SourceStatus.CONFIGURED
        source.error_message = None
        if not await self.registry.update_source(source):
            return False

        logger.info(f"Retrying processing for data source {source_id}")
        self.schedule(source_id)
        return True

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled processing run has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
