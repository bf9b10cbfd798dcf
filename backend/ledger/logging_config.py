"""
Logging configuration for the ledger core.

Console output for development, JSON lines for log aggregation. Format and
level come from settings (LOG_FORMAT, LOG_LEVEL, LOG_FILE).

Usage:
    from ledger.logging_config import get_logger
    logger = get_logger(__name__)
"""
import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from ledger.core.settings import settings


_STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message", "taskName",
}


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs one JSON object per line with timestamp, level, logger, message,
    and any extra fields passed to the logger.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)
        if extras:
            log_entry["extra"] = extras

        return json.dumps(log_entry, default=str)


def get_logging_config(level: Optional[str] = None, fmt: Optional[str] = None) -> dict:
    """Build a dictConfig for the ledger loggers."""
    log_level = (level or settings.LOG_LEVEL).upper()
    log_format = (fmt or settings.LOG_FORMAT).lower()

    formatter = "json" if log_format == "json" else "text"
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "stream": "ext://sys.stdout",
        },
    }
    if settings.LOG_FILE:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": formatter,
            "filename": settings.LOG_FILE,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "ledger.logging_config.JsonFormatter"},
            "text": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            },
        },
        "handlers": handlers,
        "loggers": {
            "ledger": {
                "handlers": list(handlers),
                "level": log_level,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": list(handlers),
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure logging once at process start."""
    logging.config.dictConfig(get_logging_config(level, fmt))


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    Usage:
        logger = get_logger(__name__)
        logger.info(f"JE {entry.entry_number}: draft → posted")
    """
    return logging.getLogger(name)
