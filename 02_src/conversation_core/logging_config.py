"""Structured logging configuration for the conversation core."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import DEFAULT_LOG_PATH


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "context"):
            log_data["context"] = record.context

        return json.dumps(log_data, default=str)


def log_context(**fields: Any) -> dict[str, Any]:
    """Build the ``extra`` mapping picked up by JSONFormatter.

    Fields set to None are left out.
    """
    return {"context": {k: v for k, v in fields.items() if v is not None}}


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   Defaults to LOG_LEVEL env var or INFO.
        log_file: Path to log file. Defaults to 04_logs/app.log.
                  An empty string logs to stdout only.
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if log_file is None:
        log_file = str(DEFAULT_LOG_PATH)

    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        },
    }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "formatter": "json",
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "conversation_core.logging_config.JSONFormatter"},
            },
            "handlers": handlers,
            "root": {"level": level, "handlers": list(handlers)},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for ``__name__``)."""
    return logging.getLogger(name)
