"""Tests for context and citation formatting."""

from __future__ import annotations

import pytest

from kb_retrieval.models.entities import Document, ScoredDocument
from kb_retrieval.retrieval import build_context, generate_citations
from kb_retrieval.retrieval.context import relevance_label


def _scored(doc_id: str, score: float, **metadata: str) -> ScoredDocument:
    return ScoredDocument(
        document=Document(id=doc_id, content=f"{doc_id} body", metadata=dict(metadata)),
        score=score,
        rank=1,
        original_rank=0,
    )


@pytest.mark.parametrize(
    "score, label",
    [
        (95, "Highly Relevant"),
        (90, "Relevant"),
        (76, "Relevant"),
        (75, "Somewhat Relevant"),
        (60, "Low Relevance"),
    ],
)
def test_relevance_labels(score: float, label: str) -> None:
    assert relevance_label(score) == label


def test_enhanced_context_has_headers() -> None:
    results = [_scored("a", 92.0, title="Guide"), _scored("b", 40.0)]
    context = build_context(results)
    assert context == (
        "[Source: Guide (Highly Relevant, 92.0% match)]\na body"
        "\n\n---\n\n"
        "[Source: Untitled (Low Relevance, 40.0% match)]\nb body"
    )


def test_plain_context_joins_content() -> None:
    assert build_context([_scored("a", 92.0), _scored("b", 40.0)], enhanced=False) == "a body\n\nb body"


def test_citations_skip_low_scores_and_number_sequentially() -> None:
    results = [
        _scored("a", 80.0, title="Alpha", source="docs/a.md"),
        _scored("b", 60.0, title="Beta", source="docs/b.md"),
        _scored("c", 61.0, title="Gamma"),
    ]
    assert generate_citations(results) == (
        "Sources:\n"
        "[1] Alpha. docs/a.md (80.0% match)\n"
        "[2] Gamma. Unknown source (61.0% match)"
    )


def test_empty_inputs() -> None:
    assert build_context([]) == ""
    assert generate_citations([_scored("a", 10.0)]) == ""
