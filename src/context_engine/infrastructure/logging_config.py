"""
Logging Configuration - Readable logs in development, JSON in production

Production logging is rendered through structlog; development logging uses
stdlib dictConfig with a simple, detailed or JSON formatter.

License: MIT
"""

import json
import logging
import logging.config
import sys
from datetime import datetime
from typing import Dict, Any, Optional

import structlog

from ..config import LoggingConfig

_RESERVED_ATTRIBUTES = frozenset(
    [
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "exc_info", "exc_text",
        "stack_info", "taskName", "message",
    ]
)

_ROTATING_FILE_BYTES = 10485760  # 10MB


def setup_logging(
    config: Optional[LoggingConfig] = None,
    environment: str = "development",
) -> None:
    """
    Configure logging for the context engine.

    Args:
        config: Level, format ('simple', 'detailed', 'json') and optional log file
        environment: 'production' selects structlog JSON output
    """
    config = config or LoggingConfig()
    level = config.level.upper()

    if environment == "production":
        setup_production_logging(level, config.log_file)
    else:
        setup_development_logging(level, config.format_type.lower(), config.log_file)

    configure_external_loggers()


def setup_production_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Setup production logging with structured JSON format.

    Args:
        level: Logging level
        log_file: Optional log file path
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "json",
            "stream": sys.stdout,
        }
    }
    if log_file:
        handlers["file"] = _file_handler(level, "json", log_file)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JSONFormatter}},
            "handlers": handlers,
            "root": {"level": level, "handlers": list(handlers)},
        }
    )

    structlog.get_logger(__name__).info(
        "Production logging configured", level=level, file_logging=log_file is not None
    )


def setup_development_logging(
    level: str = "DEBUG", format_type: str = "simple", log_file: Optional[str] = None
) -> None:
    """
    Setup development logging with readable format.

    Args:
        level: Logging level
        format_type: Format type ('simple', 'detailed', 'json')
        log_file: Optional log file path
    """
    if format_type not in ("simple", "detailed", "json"):
        format_type = "simple"

    formatters = {
        "simple": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s"
        },
        "json": {"()": JSONFormatter},
    }

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": format_type,
            "stream": sys.stdout,
        }
    }
    if log_file:
        handlers["file"] = _file_handler(level, format_type, log_file)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": handlers,
            "root": {"level": level, "handlers": list(handlers)},
        }
    )

    logging.getLogger(__name__).info(
        f"Development logging configured: level={level}, format={format_type}"
    )


def _file_handler(level: str, formatter: str, log_file: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": log_file,
        "maxBytes": _ROTATING_FILE_BYTES,
        "backupCount": 5,
    }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter that keeps ``extra=`` fields such as data_source_id.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRIBUTES and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def configure_external_loggers() -> None:
    """
    Quiet logging from third-party clients.
    """
    external_loggers = {
        "urllib3.connectionpool": "WARNING",
        "chromadb": "WARNING",
        "openai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
    }

    for logger_name, level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level))
