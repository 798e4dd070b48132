"""Logging configuration for the SnapName service.

Uses Python's standard logging module, configured through
``logging.config.dictConfig``, with an optional JSON formatter for
production log aggregation.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from snapname.app.core.config import settings

# Attributes every LogRecord carries; anything else came in via ``extra=``.
_RESERVED_ATTRS = frozenset(
    (
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "exc_info", "exc_text", "stack_info",
        "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "message",
        "asctime", "taskName",
    )
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs one JSON object per record so logs can be shipped to an
    aggregation system without further parsing.
    """

    CONTEXT_FIELDS = [
        "request_id",   # Request ID from X-Request-ID header
        "client_key",   # Hashed rate limit key of the caller
        "upstream",     # Upstream service name (openai, cloudinary)
        "attempt",      # Retry attempt number
        "path",         # Request path
        "method",       # HTTP method
        "status_code",  # HTTP response status
    ]

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        log_data: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        for field in self.CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key not in self.CONTEXT_FIELDS
        }
        if extra:
            log_data["extra"] = extra

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Adds default values for contextual fields missing from a record."""

    CONTEXT_DEFAULTS = {
        "request_id": None,
        "client_key": None,
        "upstream": None,
        "attempt": None,
    }

    def filter(self, record: logging.LogRecord) -> bool:
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    log_format = settings.log_format.lower()
    log_level = settings.log_level.upper()

    formatters: Dict[str, Any] = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": (
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                " - request_id=%(request_id)s - upstream=%(upstream)s"
                " - attempt=%(attempt)s"
            )
        },
    }

    if log_format == "json":
        formatters["json"] = {"()": "snapname.app.core.logging.JSONFormatter"}
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": default_formatter,
            "stream": sys.stdout,
            "filters": ["context"],
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {"()": "snapname.app.core.logging.ContextFilter"},
        },
        "handlers": handlers,
        "loggers": {
            "snapname": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config())

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = "snapname") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    client_key: Optional[str] = None,
    upstream: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Create a log context dictionary for use with the ``extra`` parameter.

    Example:
        >>> logger.info(
        ...     "Nickname generated",
        ...     extra=get_log_context(request_id="abc123", upstream="openai"),
        ... )
    """
    context: Dict[str, Any] = {
        "request_id": request_id,
        "client_key": client_key,
        "upstream": upstream,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
