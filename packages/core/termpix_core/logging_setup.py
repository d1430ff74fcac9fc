"""Structured local logging setup."""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import state_dir


_LOGGER_NAME = "termpix"


def log_dir() -> Path:
    path = state_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        if hasattr(record, "event"):
            payload["event"] = getattr(record, "event")
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(keep_files: int = 7, console: bool = False, to_file: bool = True) -> logging.Logger:
    """Attach handlers once. Console output goes to stderr; stdout carries image data."""
    logger = logging.getLogger(_LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if console else logging.INFO)
    logger.propagate = False

    if to_file:
        try:
            path = log_dir() / "termpix.log"
            handler: logging.Handler = logging.handlers.TimedRotatingFileHandler(
                filename=str(path),
                when="midnight",
                backupCount=max(2, keep_files),
                encoding="utf-8",
            )
        except OSError:
            handler = logging.NullHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger.addHandler(stream_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.debug("logging configured", extra={"event": "logging_configured"})
    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME)
