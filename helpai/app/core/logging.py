"""Structured logging configuration for the backend.

Standard library logging configured through ``dictConfig``, with a JSON
formatter for log aggregation and a context filter that backfills the
request/LLM fields every formatter expects.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from helpai.app.core.config import settings


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for consumption by log aggregation
    systems like ELK Stack or Grafana Loki.
    """

    STANDARD_FIELDS = ["name", "levelname", "message", "timestamp"]

    # Contextual fields for request and dispatch tracking
    CONTEXT_FIELDS = [
        "request_id",   # Request ID from X-Request-ID header
        "user_id",      # Owner of the request, when known
        "llm_kind",     # chat | json | vision
        "model",        # Model identifier sent to the provider
        "status_code",  # HTTP (or provider) status
        "duration_ms",  # Duration in milliseconds
    ]

    _RESERVED = frozenset((
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "exc_info", "exc_text", "stack_info",
        "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "message",
        "asctime", "timestamp", "logger", "level", "source", "taskName",
    ))

    def __init__(
        self,
        fields: Optional[list] = None,
        datefmt: Optional[str] = None,
    ):
        super().__init__(datefmt=datefmt)
        self.fields = fields or (self.STANDARD_FIELDS + self.CONTEXT_FIELDS)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
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
            if value is not None and value != "-":
                log_data[field] = value

        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in self.CONTEXT_FIELDS:
                continue
            log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds contextual fields to log records.

    Text formatters reference these fields by name, so every record must
    carry them even when the caller did not pass them in ``extra``.
    """

    CONTEXT_DEFAULTS = {field: None for field in JSONFormatter.CONTEXT_FIELDS}

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
    log_format = getattr(settings, "log_format", "text").lower()
    log_level = getattr(settings, "log_level", "INFO").upper()

    formatters = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - request_id=%(request_id)s - llm_kind=%(llm_kind)s - model=%(model)s"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "helpai.app.core.logging.JSONFormatter",
        }
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
        "error_console": {
            "class": "logging.StreamHandler",
            "level": "ERROR",
            "formatter": default_formatter,
            "stream": sys.stderr,
            "filters": ["context"],
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {
                "()": "helpai.app.core.logging.ContextFilter",
            },
        },
        "handlers": handlers,
        "loggers": {
            "helpai": {
                "level": log_level,
                "handlers": ["console", "error_console"],
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
    logging.getLogger("openai").setLevel(logging.WARNING)


def get_logger(name: str = "helpai") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    llm_kind: Optional[str] = None,
    model: Optional[str] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with the extra parameter.

    Example:
        >>> logger.info(
        ...     "Dispatching",
        ...     extra=get_log_context(llm_kind="json", model="gpt-4o-mini")
        ... )
    """
    context = {
        "request_id": request_id,
        "user_id": user_id,
        "llm_kind": llm_kind,
        "model": model,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}


def redact_prompt(text: Any, limit: Optional[int] = None) -> Any:
    """Truncate prompt text to a bounded prefix for logging."""
    if not isinstance(text, str):
        return text
    limit = settings.llm_log_prompt_chars if limit is None else limit
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


_PROMPT_KEYS = ("system", "user", "text")

_llm_logger = get_logger("helpai.llm")


def log_llm_event(event: str, level: int = logging.INFO, **info: Any) -> None:
    """Log one ``[llm:<event>]`` summary line with prompt text redacted."""
    safe = {
        key: redact_prompt(value) if key in _PROMPT_KEYS else value
        for key, value in info.items()
    }
    _llm_logger.log(
        level,
        "[llm:%s] %s",
        event,
        json.dumps(safe, default=str, ensure_ascii=False),
        extra=get_log_context(llm_kind=info.get("kind"), model=info.get("model")),
    )
