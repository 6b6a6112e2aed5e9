"""
Data Model - Data sources, vector stores, documents and chunks

Configuration records (DataSource, VectorStoreRecord) are owned by the
registry and mirrored to the configuration store. Documents, chunks and
embedding records only live for the duration of one pipeline run.

License: MIT
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class SourceKind(Enum):
    """Kind of origin a data source reads from."""

    FILE = "file"
    DIRECTORY = "directory"
    URL = "url"
    DATABASE = "database"
    API = "api"


class SourceStatus(Enum):
    """Lifecycle status of a data source."""

    CONFIGURED = "configured"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class StoreStatus(Enum):
    """Status of a vector store collection."""

    CONFIGURED = "configured"
    READY = "ready"
    ERROR = "error"


class ContentKind(Enum):
    """Content kind of a loaded file, resolved from its extension."""

    TEXT = "text"
    MARKDOWN = "markdown"
    PDF = "pdf"
    DOCX = "docx"
    CSV = "csv"
    JSON = "json"

    @classmethod
    def from_extension(cls, extension: str) -> Optional["ContentKind"]:
        """Return the content kind for a file extension, or None."""
        return _EXTENSION_KINDS.get(extension.lower())

    @classmethod
    def from_path(cls, path: Any) -> Optional["ContentKind"]:
        """Return the content kind for a file path, or None."""
        return cls.from_extension(Path(str(path)).suffix)


_EXTENSION_KINDS = {
    ".txt": ContentKind.TEXT,
    ".md": ContentKind.MARKDOWN,
    ".pdf": ContentKind.PDF,
    ".docx": ContentKind.DOCX,
    ".csv": ContentKind.CSV,
    ".json": ContentKind.JSON,
}

SUPPORTED_EXTENSIONS = tuple(_EXTENSION_KINDS)


def vector_store_id_for(source_id: str) -> str:
    """Id of the vector store owned by a data source."""
    return f"datastore_{source_id}"


def collection_name_for(vector_store_id: str) -> str:
    """Name of the vector database collection backing a vector store."""
    return f"rag_{vector_store_id}"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class DataSource:
    """A named origin of raw content."""

    id: str
    name: str
    kind: SourceKind
    path: Optional[str] = None
    url: Optional[str] = None
    connection_string: Optional[str] = None
    api_key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    status: SourceStatus = SourceStatus.CONFIGURED
    document_count: Optional[int] = None
    last_indexed: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def vector_store_id(self) -> str:
        return vector_store_id_for(self.id)

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the configuration store and API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind.value,
            "path": self.path,
            "url": self.url,
            "connectionString": self.connection_string,
            "apiKey": self.api_key,
            "headers": dict(self.headers),
            "status": self.status.value,
            "documentCount": self.document_count,
            "lastIndexed": _format_datetime(self.last_indexed),
            "errorMessage": self.error_message,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataSource":
        """Rebuild a data source from its serialized form."""
        now = datetime.now()
        return cls(
            id=data["id"],
            name=data["name"],
            kind=SourceKind(data["type"]),
            path=data.get("path"),
            url=data.get("url"),
            connection_string=data.get("connectionString"),
            api_key=data.get("apiKey"),
            headers=dict(data.get("headers") or {}),
            status=SourceStatus(data.get("status", SourceStatus.CONFIGURED.value)),
            document_count=data.get("documentCount"),
            last_indexed=_parse_datetime(data.get("lastIndexed")),
            error_message=data.get("errorMessage"),
            created_at=_parse_datetime(data.get("createdAt")) or now,
            updated_at=_parse_datetime(data.get("updatedAt")) or now,
        )


@dataclass
class VectorStoreRecord:
    """A named collection of embedding records."""

    id: str
    name: str
    provider: str = "chromadb"
    collection_name: str = ""
    data_source_id: Optional[str] = None
    status: StoreStatus = StoreStatus.CONFIGURED
    vector_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.collection_name:
            self.collection_name = collection_name_for(self.id)

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "collectionName": self.collection_name,
            "dataSourceId": self.data_source_id,
            "status": self.status.value,
            "vectorCount": self.vector_count,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VectorStoreRecord":
        now = datetime.now()
        return cls(
            id=data["id"],
            name=data["name"],
            provider=data.get("provider", "chromadb"),
            collection_name=data.get("collectionName", ""),
            data_source_id=data.get("dataSourceId"),
            status=StoreStatus(data.get("status", StoreStatus.CONFIGURED.value)),
            vector_count=data.get("vectorCount") or 0,
            created_at=_parse_datetime(data.get("createdAt")) or now,
            updated_at=_parse_datetime(data.get("updatedAt")) or now,
        )


@dataclass
class Document:
    """Normalized text of one logical document, with source attribution."""

    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def content_kind(self) -> Optional[ContentKind]:
        kind = self.metadata.get("content_kind")
        return ContentKind(kind) if kind else None


@dataclass
class Chunk:
    """A fragment of a document; the unit of embedding and storage."""

    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmbeddingRecord:
    """A chunk with its embedding vector, ready for the vector store."""

    id: str
    embedding: List[float]
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryMatch:
    """One nearest-neighbor result. Lower distance is more similar."""

    id: str
    content: str
    metadata: Dict[str, Any]
    distance: Optional[float] = None


@dataclass
class ScanResult:
    """Unordered bulk read of a collection."""

    ids: List[str] = field(default_factory=list)
    documents: List[Optional[str]] = field(default_factory=list)
    metadatas: List[Optional[Dict[str, Any]]] = field(default_factory=list)


@dataclass
class RetrievedContext:
    """A context chunk ready for prompt injection."""

    content: str
    source: str
    data_source_id: str
    score: Optional[float] = None
    retrieval_method: str = "semantic"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "source": self.source,
            "dataSourceId": self.data_source_id,
            "score": self.score,
            "retrievalMethod": self.retrieval_method,
        }
