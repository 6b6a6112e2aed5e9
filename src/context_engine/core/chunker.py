"""
Document Chunker - Content-aware chunking strategies

Tabular content is grouped by rows so one record is rarely split, structured
content uses smaller character chunks, and free text uses paragraph-aware
character chunks with a larger overlap.

License: MIT
"""

from typing import List, Dict, Any, Optional, Tuple
from enum import Enum
import logging

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..config import ChunkingConfig
from .models import Chunk, ContentKind, Document

logger = logging.getLogger(__name__)

TEXT_SEPARATORS = ["\n\n", "\n", ".", " ", ""]
STRUCTURED_SEPARATORS = ["\n", ".", " ", ""]


class ChunkStrategy(Enum):
    """Chunking strategy, recorded on every chunk it produces."""

    TABULAR = "csv_rows"
    STRUCTURED = "json_properties"
    TEXT = "text_paragraphs"

    @classmethod
    def for_content(cls, kind: Optional[ContentKind]) -> "ChunkStrategy":
        if kind is ContentKind.CSV:
            return cls.TABULAR
        if kind is ContentKind.JSON:
            return cls.STRUCTURED
        return cls.TEXT


class DocumentChunker:
    """
    Splits documents into overlapping chunks suitable for embedding.
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        """
        Initialize the chunker.

        Args:
            config: Chunk sizes, overlaps and rows per tabular chunk
        """
        self.config = config or ChunkingConfig()
        self._text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.text_chunk_size,
            chunk_overlap=self.config.text_chunk_overlap,
            separators=TEXT_SEPARATORS,
        )
        self._structured_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.structured_chunk_size,
            chunk_overlap=self.config.structured_chunk_overlap,
            separators=STRUCTURED_SEPARATORS,
        )

    def chunk_documents(self, documents: List[Document]) -> List[Chunk]:
        """Chunk documents in order, keeping each document's chunk order."""
        chunks: List[Chunk] = []
        for document in documents:
            chunks.extend(self.chunk_document(document))
        return chunks

    def chunk_document(self, document: Document) -> List[Chunk]:
        """
        Split one document using the strategy for its content kind.

        Args:
            document: Loaded document

        Returns:
            Ordered chunks carrying the document metadata plus chunk fields
        """
        if not document.content.strip():
            logger.warning(f"Empty text provided for chunking from {document.metadata.get('source')}")
            return []

        strategy = ChunkStrategy.for_content(document.content_kind)

        if strategy is ChunkStrategy.TABULAR:
            pieces = self.split_rows(document.content)
        elif strategy is ChunkStrategy.STRUCTURED:
            pieces = [(text, {}) for text in self._structured_splitter.split_text(document.content)]
        else:
            pieces = [(text, {}) for text in self._text_splitter.split_text(document.content)]

        chunks = []
        for index, (text, extra) in enumerate(pieces):
            metadata = {
                **document.metadata,
                "parent_id": document.id,
                "chunk_strategy": strategy.value,
                "chunk_index": index,
                **extra,
            }
            chunks.append(Chunk(id=f"{document.id}#{index}", content=text, metadata=metadata))

        logger.debug(
            f"Created {len(chunks)} {strategy.value} chunks from {document.metadata.get('source')}"
        )
        return chunks

    def split_rows(self, content: str) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Group raw lines into runs of ``rows_per_chunk``.

        Returns:
            (text, {"start_row", "end_row"}) pairs with inclusive 0-based rows
        """
        lines = content.split("\n")
        size = self.config.rows_per_chunk
        pieces = []

        for start in range(0, len(lines), size):
            run = lines[start : start + size]
            row_range: Dict[str, Any] = {
                "start_row": start,
                "end_row": min(start + size - 1, len(lines) - 1),
            }
            pieces.append(("\n".join(run), row_range))

        return pieces
