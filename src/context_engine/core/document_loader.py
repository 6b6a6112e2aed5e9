"""
Document Loader - Multi-format document loading for data sources

Reads plain text, Markdown, PDF, DOCX, CSV and JSON files and normalizes
each logical document into one text blob with source attribution.

License: MIT
"""

from typing import List, Dict, Any, Optional
from pathlib import Path
import asyncio
import codecs
import csv
import json
import logging

import docx
import PyPDF2

from ..exceptions import UnsupportedFormatError
from ..utils.helpers import generate_hash
from .models import ContentKind, DataSource, Document, SourceKind, SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)


class DocumentLoader:
    """
    Loads the documents of a data source.

    File sources produce one document; directory sources produce one
    document per supported file found recursively. URL, database and API
    sources are accepted but produce no documents yet.
    """

    def __init__(self, encoding: str = "utf-8", base_dir: Optional[str] = None):
        """
        Args:
            encoding: Text encoding of plain, CSV and JSON files
            base_dir: Directory that relative source paths are resolved against
        """
        self.encoding = encoding
        self.base_dir = Path(base_dir) if base_dir else None
        self._extractors = {
            ContentKind.TEXT: self.read_text,
            ContentKind.MARKDOWN: self.read_text,
            ContentKind.PDF: self.parse_pdf,
            ContentKind.DOCX: self.parse_docx,
            ContentKind.CSV: self.parse_csv,
            ContentKind.JSON: self.parse_json,
        }

    async def load(self, source: DataSource) -> List[Document]:
        """
        Load all documents for a data source.

        Args:
            source: Data source descriptor

        Returns:
            Documents in load order

        Raises:
            UnsupportedFormatError: If a file source has an unsupported extension
            FileNotFoundError: If a file or directory source path doesn't exist
        """
        if source.kind is SourceKind.FILE:
            if not source.path:
                raise ValueError(f"Data source {source.id} has no path")
            return [await self._load_document(source, self.resolve_path(source.path))]

        if source.kind is SourceKind.DIRECTORY:
            if not source.path:
                raise ValueError(f"Data source {source.id} has no path")
            return await self._load_directory(source, self.resolve_path(source.path))

        logger.info(f"Data source type {source.kind.value} not yet implemented, nothing to load")
        return []

    def resolve_path(self, path: str) -> Path:
        """Resolve a relative path that does not exist as given against ``base_dir``."""
        resolved = Path(path)
        if resolved.is_absolute() or self.base_dir is None or resolved.exists():
            return resolved
        return self.base_dir / resolved

    async def _load_directory(self, source: DataSource, directory: Path) -> List[Document]:
        if not directory.is_dir():
            raise FileNotFoundError(f"Directory not found: {directory}")

        files = await asyncio.to_thread(self.list_supported_files, directory)
        documents = []

        for file_path in files:
            try:
                documents.append(await self._load_document(source, file_path))
            except Exception as e:
                logger.warning(f"Skipping {file_path} in {directory}: {str(e)}")

        logger.info(f"Loaded {len(documents)}/{len(files)} files from {directory}")
        return documents

    async def _load_document(self, source: DataSource, file_path: Path) -> Document:
        kind = ContentKind.from_path(file_path)
        content = await asyncio.to_thread(self.load_file, file_path)

        return Document(
            id=generate_hash(f"{source.id}:{file_path}")[:16],
            content=content,
            metadata={
                "source": str(file_path),
                "file_name": file_path.name,
                "data_source_id": source.id,
                "content_kind": kind.value,
            },
        )

    @staticmethod
    def list_supported_files(directory: Path) -> List[Path]:
        """Recursively list files with a supported extension, sorted."""
        return sorted(
            path
            for path in directory.rglob("*")
            if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
        )

    def load_file(self, file_path: Path) -> str:
        """
        Extract the text of a single file.

        Args:
            file_path: Path to the file

        Returns:
            Extracted text content

        Raises:
            UnsupportedFormatError: If the extension has no extractor
            FileNotFoundError: If file doesn't exist
        """
        kind = ContentKind.from_path(file_path)
        if kind is None:
            raise UnsupportedFormatError(file_path.suffix.lower(), str(file_path))

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        try:
            text = self._extractors[kind](file_path)
        except Exception as e:
            logger.error(f"Error loading file {file_path}: {str(e)}")
            raise

        logger.info(f"Successfully loaded {file_path}, extracted {len(text)} characters")
        return text

    def read_text(self, file_path: Path) -> str:
        return file_path.read_text(encoding=self.encoding)

    def parse_pdf(self, file_path: Path) -> str:
        """
        Extract text from PDF file, one page per line block.

        Args:
            file_path: Path to PDF file

        Returns:
            Extracted text content
        """
        with open(file_path, "rb") as file:
            pdf_reader = PyPDF2.PdfReader(file)
            pages = []

            for page_num, page in enumerate(pdf_reader.pages):
                try:
                    pages.append(page.extract_text() or "")
                except Exception as e:
                    logger.warning(f"Error extracting page {page_num} from {file_path}: {str(e)}")
                    continue

        return "\n".join(pages).strip()

    def parse_docx(self, file_path: Path) -> str:
        """
        Extract text from DOCX file.

        Args:
            file_path: Path to DOCX file

        Returns:
            Non-empty paragraphs joined by newlines
        """
        doc = docx.Document(str(file_path))
        return "\n".join(p.text for p in doc.paragraphs if p.text.strip())

    def parse_csv(self, file_path: Path) -> str:
        """
        Render a CSV file row by row.

        Each row becomes ``Row N: column: value, column: value`` with N
        counting data rows from 1.
        """
        encoding = self.encoding
        if codecs.lookup(encoding).name == "utf-8":
            encoding = "utf-8-sig"

        with open(file_path, "r", encoding=encoding, newline="") as f:
            rows = list(csv.DictReader(f))

        return "\n".join(self.format_row(index, row) for index, row in enumerate(rows, start=1))

    @staticmethod
    def format_row(index: int, row: Dict[Any, Any]) -> str:
        fields = ", ".join(
            f"{key}: {'' if value is None else value}" for key, value in row.items() if key is not None
        )
        return f"Row {index}: {fields}"

    def parse_json(self, file_path: Path) -> str:
        """Flatten a JSON file into ``path: value`` lines."""
        with open(file_path, "r", encoding=self.encoding) as f:
            data = json.load(f)

        return "\n".join(flatten_json(data))


def _format_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_json(value: Any, prefix: str = "") -> List[str]:
    """
    Flatten nested JSON data into ``key.path: value`` lines.

    Objects extend the path with ``.key`` and arrays with ``[index]``.

    Args:
        value: Parsed JSON value
        prefix: Key path of ``value``

    Returns:
        One line per scalar leaf, in document order
    """
    if isinstance(value, dict):
        lines = []
        for key, item in value.items():
            lines.extend(flatten_json(item, f"{prefix}.{key}" if prefix else str(key)))
        return lines

    if isinstance(value, list):
        lines = []
        for index, item in enumerate(value):
            lines.extend(flatten_json(item, f"{prefix}[{index}]"))
        return lines

    if not prefix:
        return [_format_scalar(value)]

    return [f"{prefix}: {_format_scalar(value)}"]
