"""Test fixtures for KB Retrieval."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from kb_retrieval.models.entities import Document  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings, environment, and log handlers between tests."""
    monkeypatch.setenv("KBR_CONFIG", str(tmp_path / "missing.yaml"))
    for key in list(os.environ):
        if key.startswith("KBR_") and key != "KBR_CONFIG":
            monkeypatch.delenv(key, raising=False)

    from kb_retrieval import dependencies as deps
    from kb_retrieval.core.config import get_settings

    root = logging.getLogger()
    handlers = list(root.handlers)
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    root.handlers = handlers


@pytest.fixture
def fox_documents() -> list[Document]:
    return [
        Document(id="A", content="the quick brown fox"),
        Document(id="B", content="jumps over the lazy dog"),
    ]


@pytest.fixture
def kb_documents() -> list[Document]:
    return [
        Document(
            id="pricing",
            content="Azure pricing depends on the region and the selected tier.",
            metadata={"title": "Azure Pricing", "source": "docs/pricing.md", "team": "sales"},
        ),
        Document(
            id="errors",
            content="Error code 500 means the server hit an unexpected condition. Retry the error later.",
            metadata={"title": "HTTP Errors", "source": "docs/errors.md", "team": "support"},
        ),
        Document(
            id="functions",
            content="A function call returns an error code when the input is invalid.",
            metadata={"title": "Functions", "source": "docs/functions.md", "team": "support"},
        ),
        Document(
            id="weather",
            content="The weather forecast predicts rain and mild temperature tomorrow.",
            metadata={"title": "Weather", "source": "docs/weather.md", "team": "ops"},
        ),
    ]
