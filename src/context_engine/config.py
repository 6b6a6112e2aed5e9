"""
Configuration Management - Centralized configuration for the context engine

Defaults are overridden by an optional YAML file, then by environment
variables (a local .env file is loaded first).

License: MIT
"""

import os
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from pathlib import Path
import logging

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "text-embedding-3-small"
    api_key: Optional[str] = None
    batch_size: int = 50
    max_retries: int = 3
    retry_base_delay: float = 1.0
    timeout: float = 30.0


@dataclass
class ChunkingConfig:
    """Configuration for the chunking strategies."""

    text_chunk_size: int = 1000
    text_chunk_overlap: int = 200
    structured_chunk_size: int = 800
    structured_chunk_overlap: int = 100
    rows_per_chunk: int = 10


@dataclass
class VectorStoreConfig:
    """Configuration for the vector database."""

    provider: str = "chromadb"
    metric: str = "cosine"
    upsert_batch_size: int = 100

    # ChromaDB specific
    host: Optional[str] = None
    port: int = 8000
    persist_directory: Optional[str] = None


@dataclass
class RetrievalConfig:
    """Configuration for context retrieval."""

    top_k: int = 5
    distance_threshold: float = 0.8
    fuzzy_pool_size: int = 100
    fuzzy_top_n: int = 3
    fuzzy_min_score: float = 0.5
    name_match_threshold: float = 0.6
    full_query_threshold: float = 0.7
    fuzzy_prefix_length: int = 100


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format_type: str = "simple"
    log_file: Optional[str] = None


@dataclass
class EngineConfig:
    """Main context engine configuration."""

    environment: str = "development"

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Uploaded files are read from here
    upload_dir: str = "./uploads"


VALID_PROVIDERS: List[str] = ["chromadb", "local"]
VALID_METRICS: List[str] = ["cosine", "l2", "ip"]


class ConfigManager:
    """
    Configuration manager for loading and validating configuration.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to a YAML configuration file (optional)
        """
        self.config_path = config_path
        self._config: Optional[EngineConfig] = None

    def load_config(self) -> EngineConfig:
        """
        Load configuration from file and environment variables.

        Returns:
            EngineConfig instance

        Raises:
            ValueError: If the resulting configuration is invalid
        """
        if self._config is not None:
            return self._config

        config = EngineConfig()

        if self.config_path and Path(self.config_path).exists():
            config = self._load_from_file(config, self.config_path)

        config = self._load_from_env(config)

        self._validate_config(config)

        self._config = config
        logger.info(f"Configuration loaded for environment: {config.environment}")

        return config

    def _load_from_file(self, config: EngineConfig, file_path: str) -> EngineConfig:
        """Load configuration from YAML file."""
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}

            self._update_config_from_dict(config, file_config)
            logger.info(f"Configuration loaded from file: {file_path}")

        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading configuration from file: {str(e)}")

        return config

    def _load_from_env(self, config: EngineConfig) -> EngineConfig:
        """Load configuration from environment variables."""

        config.environment = os.getenv("ENVIRONMENT", config.environment)
        config.upload_dir = os.getenv("UPLOAD_DIR", config.upload_dir)

        # Embedding
        config.embedding.model = os.getenv("EMBEDDING_MODEL", config.embedding.model)
        config.embedding.api_key = os.getenv("OPENAI_API_KEY", config.embedding.api_key)
        config.embedding.batch_size = int(
            os.getenv("EMBEDDING_BATCH_SIZE", str(config.embedding.batch_size))
        )
        config.embedding.max_retries = int(
            os.getenv("EMBEDDING_MAX_RETRIES", str(config.embedding.max_retries))
        )
        config.embedding.retry_base_delay = float(
            os.getenv("EMBEDDING_RETRY_BASE_DELAY", str(config.embedding.retry_base_delay))
        )

        # Vector Store
        config.vector_store.provider = os.getenv(
            "VECTOR_STORE_PROVIDER", config.vector_store.provider
        )
        config.vector_store.host = os.getenv("CHROMA_HOST", config.vector_store.host)
        config.vector_store.port = int(os.getenv("CHROMA_PORT", str(config.vector_store.port)))
        config.vector_store.persist_directory = os.getenv(
            "CHROMA_PERSIST_DIRECTORY", config.vector_store.persist_directory
        )

        # Retrieval
        config.retrieval.top_k = int(os.getenv("RETRIEVAL_TOP_K", str(config.retrieval.top_k)))
        config.retrieval.distance_threshold = float(
            os.getenv("RETRIEVAL_DISTANCE_THRESHOLD", str(config.retrieval.distance_threshold))
        )

        # Logging
        config.logging.level = os.getenv("LOG_LEVEL", config.logging.level)
        config.logging.format_type = os.getenv("LOG_FORMAT", config.logging.format_type)
        config.logging.log_file = os.getenv("LOG_FILE", config.logging.log_file)

        return config

    def _update_config_from_dict(self, config: EngineConfig, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        for section_name, section_config in config_dict.items():
            if hasattr(config, section_name) and isinstance(section_config, dict):
                section_obj = getattr(config, section_name)
                for key, value in section_config.items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)
            elif hasattr(config, section_name):
                setattr(config, section_name, section_config)

    def _validate_config(self, config: EngineConfig) -> None:
        """Validate configuration values."""
        errors = []

        # Embedding
        if config.embedding.batch_size < 1:
            errors.append("Embedding batch size must be at least 1")

        if config.embedding.max_retries < 0:
            errors.append("Embedding max retries cannot be negative")

        if config.embedding.retry_base_delay < 0:
            errors.append("Embedding retry base delay cannot be negative")

        # Chunking
        chunking = config.chunking
        if chunking.text_chunk_overlap >= chunking.text_chunk_size:
            errors.append("Text chunk overlap must be smaller than text chunk size")

        if chunking.structured_chunk_overlap >= chunking.structured_chunk_size:
            errors.append("Structured chunk overlap must be smaller than structured chunk size")

        if chunking.rows_per_chunk < 1:
            errors.append("Rows per chunk must be at least 1")

        # Vector store
        if config.vector_store.provider not in VALID_PROVIDERS:
            errors.append(f"Vector store provider must be one of: {', '.join(VALID_PROVIDERS)}")

        if config.vector_store.metric not in VALID_METRICS:
            errors.append(f"Vector store metric must be one of: {', '.join(VALID_METRICS)}")

        if config.vector_store.port < 1 or config.vector_store.port > 65535:
            errors.append("Vector store port must be between 1 and 65535")

        # Retrieval
        if config.retrieval.top_k < 1:
            errors.append("Retrieval top_k must be at least 1")

        if config.retrieval.fuzzy_pool_size < 1:
            errors.append("Fuzzy pool size must be at least 1")

        # Logging
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if config.logging.level.upper() not in valid_log_levels:
            errors.append(f"Log level must be one of: {', '.join(valid_log_levels)}")

        if errors:
            error_message = "Configuration validation errors:\n" + "\n".join(
                f"- {error}" for error in errors
            )
            raise ValueError(error_message)

    def get_config(self) -> EngineConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> EngineConfig:
        """Reload configuration from sources."""
        self._config = None
        return self.load_config()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, with secrets masked."""
        config = self.get_config()

        def dataclass_to_dict(obj):
            if hasattr(obj, "__dataclass_fields__"):
                return {
                    field_name: dataclass_to_dict(getattr(obj, field_name))
                    for field_name in obj.__dataclass_fields__
                }
            else:
                return obj

        result = dataclass_to_dict(config)
        if result["embedding"]["api_key"]:
            result["embedding"]["api_key"] = "***"
        return result


_config_manager = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get the process-wide configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path)
    return _config_manager


def get_config() -> EngineConfig:
    """Get the current engine configuration."""
    return get_config_manager().get_config()
