"""Tests for structured logging."""

from __future__ import annotations

import io
import logging

import orjson

from kb_retrieval.core.logging import JsonFormatter, configure_logging, log_context


def test_json_formatter_groups_context_fields() -> None:
    record = logging.LogRecord("kb_retrieval.test", logging.INFO, __file__, 1, "Retrieved %d", (3,), None)
    for key, value in log_context(strategy="none", elapsed_ms=1.5).items():
        setattr(record, key, value)
    payload = orjson.loads(JsonFormatter().format(record))
    assert payload["message"] == "Retrieved 3"
    assert payload["logger"] == "kb_retrieval.test"
    assert payload["context"] == {"strategy": "none", "elapsed_ms": 1.5}


def test_reconfiguring_keeps_foreign_handlers() -> None:
    foreign = logging.NullHandler()
    logging.getLogger().addHandler(foreign)
    stream = io.StringIO()
    configure_logging("WARNING", use_json=True, stream=stream)
    configure_logging("INFO", use_json=True, stream=stream)
    handlers = logging.getLogger().handlers
    assert foreign in handlers
    assert sum(1 for handler in handlers if getattr(handler, "stream", None) is stream) == 1

    logging.getLogger("kb_retrieval.test").info("hello", extra=log_context(store="kb"))
    line = orjson.loads(stream.getvalue().splitlines()[-1])
    assert line["context"] == {"store": "kb"}
