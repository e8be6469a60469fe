"""Logging utilities for KB Retrieval."""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any

import orjson

_DEFAULT_LEVEL = os.environ.get("KBR_LOG_LEVEL", "INFO")

CONTEXT_PREFIX = "ctx_"
NOISY_LOGGERS = ("sentence_transformers", "urllib3", "filelock")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``ctx_*`` extras are grouped under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {
            key[len(CONTEXT_PREFIX) :]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class _KbrHandler(logging.StreamHandler):
    """Marker type so reconfiguration only replaces handlers installed here."""


def configure_logging(
    level: str | int = _DEFAULT_LEVEL,
    use_json: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Install a single stderr handler on the root logger.

    Handlers added by other code (test capture, embedding hosts) are left alone.
    """
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = _KbrHandler(stream or sys.stderr)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [h for h in root.handlers if not isinstance(h, _KbrHandler)] + [handler]
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra`` mapping whose keys the JSON formatter recognises."""
    return {f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items()}


def get_logger(name: str = "kb_retrieval") -> logging.Logger:
    """Return a named logger, configuring the root logger on first use."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "log_context", "get_logger"]
