"""
Unit Tests for Document Chunker

Tests the chunking strategies:
- Row groups for tabular content
- Character chunks for structured and free text
- Chunk metadata
"""

import pytest

from context_engine.config import ChunkingConfig
from context_engine.core.chunker import ChunkStrategy, DocumentChunker
from context_engine.core.models import ContentKind, Document


def make_document(content: str, kind: ContentKind, doc_id: str = "doc1") -> Document:
    return Document(
        id=doc_id,
        content=content,
        metadata={
            "source": f"/data/{doc_id}",
            "file_name": doc_id,
            "data_source_id": "src-1",
            "content_kind": kind.value,
        },
    )


def assert_covers_source(source, chunks):
    """Chunks are ordered slices of the source that leave only whitespace uncovered."""
    covered_to = 0
    previous_start = -1
    for chunk in chunks:
        start = source.find(chunk.content, previous_start + 1)
        assert start != -1, f"chunk is not a slice of the source: {chunk.content[:40]!r}"
        assert source[covered_to:start].strip() == ""
        covered_to = max(covered_to, start + len(chunk.content))
        previous_start = start
    assert source[covered_to:].strip() == ""


@pytest.fixture
def chunker():
    return DocumentChunker()


class TestChunkStrategy:
    """Test strategy selection by content kind."""

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (ContentKind.CSV, ChunkStrategy.TABULAR),
            (ContentKind.JSON, ChunkStrategy.STRUCTURED),
            (ContentKind.TEXT, ChunkStrategy.TEXT),
            (ContentKind.MARKDOWN, ChunkStrategy.TEXT),
            (ContentKind.PDF, ChunkStrategy.TEXT),
            (ContentKind.DOCX, ChunkStrategy.TEXT),
            (None, ChunkStrategy.TEXT),
        ],
    )
    def test_for_content(self, kind, expected):
        assert ChunkStrategy.for_content(kind) is expected


class TestDocumentChunker:
    """Test cases for DocumentChunker class."""

    def test_csv_rows_grouped_by_ten(self, chunker):
        """Test 25 rows become runs of 10, 10 and 5 lines."""
        content = "\n".join(f"Row {i}: name: person{i}" for i in range(1, 26))

        chunks = chunker.chunk_document(make_document(content, ContentKind.CSV))

        assert len(chunks) == 3
        assert [c.content.count("\n") + 1 for c in chunks] == [10, 10, 5]
        assert [(c.metadata["start_row"], c.metadata["end_row"]) for c in chunks] == [
            (0, 9),
            (10, 19),
            (20, 24),
        ]
        assert all(c.metadata["chunk_strategy"] == "csv_rows" for c in chunks)

    def test_csv_rows_per_chunk_configurable(self):
        """Test rows per chunk comes from configuration."""
        chunker = DocumentChunker(ChunkingConfig(rows_per_chunk=2))
        content = "\n".join(f"Row {i}" for i in range(1, 6))

        chunks = chunker.chunk_document(make_document(content, ContentKind.CSV))

        assert len(chunks) == 3
        assert chunks[-1].content == "Row 5"

    def test_short_text_single_chunk(self, chunker):
        """Test text under the chunk size stays whole."""
        chunks = chunker.chunk_document(
            make_document("Sarah Chen leads engineering.", ContentKind.TEXT)
        )

        assert len(chunks) == 1
        assert chunks[0].content == "Sarah Chen leads engineering."
        assert chunks[0].metadata["chunk_strategy"] == "text_paragraphs"

    def test_long_text_respects_chunk_size(self, chunker):
        """Test no text chunk exceeds 1000 characters."""
        paragraph = "This sentence describes the platform roadmap in some detail. " * 10
        content = "\n\n".join([paragraph.strip()] * 6)

        chunks = chunker.chunk_document(make_document(content, ContentKind.TEXT))

        assert len(chunks) > 1
        assert all(len(c.content) <= 1000 for c in chunks)

    def test_unbroken_text_is_hard_cut(self, chunker):
        """Test text with no separators is still split to size."""
        content = "x" * 2500

        chunks = chunker.chunk_document(make_document(content, ContentKind.TEXT))

        assert len(chunks) >= 3
        assert all(len(c.content) <= 1000 for c in chunks)

    def test_json_uses_structured_size(self, chunker):
        """Test no structured chunk exceeds 800 characters."""
        content = "\n".join(f"items[{i}].description: entry number {i} of the catalog" for i in range(60))

        chunks = chunker.chunk_document(make_document(content, ContentKind.JSON))

        assert len(chunks) > 1
        assert all(len(c.content) <= 800 for c in chunks)
        assert all(c.metadata["chunk_strategy"] == "json_properties" for c in chunks)

    def test_chunk_metadata(self, chunker):
        """Test chunks inherit document metadata and gain chunk fields."""
        content = "\n".join(f"Row {i}" for i in range(1, 16))

        chunks = chunker.chunk_document(make_document(content, ContentKind.CSV, doc_id="abc"))

        for index, chunk in enumerate(chunks):
            assert chunk.id == f"abc#{index}"
            assert chunk.metadata["parent_id"] == "abc"
            assert chunk.metadata["chunk_index"] == index
            assert chunk.metadata["source"] == "/data/abc"
            assert chunk.metadata["data_source_id"] == "src-1"

    def test_empty_document(self, chunker):
        """Test empty and whitespace-only documents yield no chunks."""
        assert chunker.chunk_document(make_document("", ContentKind.TEXT)) == []
        assert chunker.chunk_document(make_document("  \n\t ", ContentKind.TEXT)) == []

    def test_chunk_documents_preserves_order(self, chunker):
        """Test chunks follow document order."""
        documents = [
            make_document("First document.", ContentKind.TEXT, doc_id="a"),
            make_document("Second document.", ContentKind.TEXT, doc_id="b"),
        ]

        chunks = chunker.chunk_documents(documents)

        assert [c.metadata["parent_id"] for c in chunks] == ["a", "b"]


class TestChunkCoverage:
    """Test that chunking loses no content."""

    def test_text_chunks_cover_source(self, chunker):
        content = "\n\n".join(
            " ".join(f"Paragraph {p} sentence {s} covers item {p * 100 + s}." for s in range(30))
            for p in range(4)
        )

        chunks = chunker.chunk_document(make_document(content, ContentKind.TEXT))

        assert len(chunks) > 4
        assert_covers_source(content, chunks)

    def test_structured_chunks_cover_source(self, chunker):
        content = "\n".join(f"items[{i}].description: entry number {i} of the catalog" for i in range(60))

        chunks = chunker.chunk_document(make_document(content, ContentKind.JSON))

        assert len(chunks) > 1
        assert_covers_source(content, chunks)

    def test_consecutive_text_chunks_overlap(self, chunker):
        """Test long paragraphs carry context across chunk boundaries."""
        content = " ".join(f"Sentence {s} of the long handbook section." for s in range(80))

        chunks = chunker.chunk_document(make_document(content, ContentKind.TEXT))

        assert len(chunks) > 1
        for first, second in zip(chunks, chunks[1:]):
            first_end = content.find(first.content) + len(first.content)
            assert content.find(second.content) < first_end
