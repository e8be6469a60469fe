"""Tests for reranking strategies."""

from __future__ import annotations

import logging

import pytest

from kb_retrieval.core.errors import ValidationError
from kb_retrieval.models.entities import Document
from kb_retrieval.retrieval.fusion import reciprocal_rank_fusion, term_overlap
from kb_retrieval.retrieval.rerank import Reranker, RerankStrategy, cross_attention_bonus

ALL_STRATEGIES = ["reciprocal-rank-fusion", "cross-attention", "simple", "none", "not-a-strategy"]


def _doc(doc_id: str, content: str, similarity: float) -> Document:
    return Document(id=doc_id, content=content).with_similarity(similarity)


@pytest.fixture
def candidates() -> list[Document]:
    return [
        _doc("errors", "error code 500 means the server failed", 90.0),
        _doc("functions", "a function returns an error code", 66.0),
        _doc("pricing", "azure pricing by region", 10.0),
        _doc("weather", "rain tomorrow", 0.0),
    ]


def test_rrf_scores_two_crossed_rankings_exactly() -> None:
    docs = [_doc("X", "unrelated words here", 90.0), _doc("Y", "quick fox", 80.0)]
    fused = reciprocal_rank_fusion([["X", "Y"], ["Y", "X"]], ["X", "Y"])
    assert fused["X"] == pytest.approx(1 / 61 + 1 / 62)
    assert fused["Y"] == pytest.approx(1 / 62 + 1 / 61)

    ranked = Reranker().rerank(docs, "quick fox", "reciprocal-rank-fusion")
    # (1/61 + 1/62) * 5000 ~= 162.6, clamped to 100; equal scores keep input order.
    assert [(c.doc_id, c.score, c.original_rank) for c in ranked] == [("X", 100.0, 0), ("Y", 100.0, 1)]


def test_rrf_higher_fused_score_wins() -> None:
    fused = reciprocal_rank_fusion([["a", "b", "c"], ["b", "c", "a"]], ["a", "b", "c"])
    assert fused["a"] == pytest.approx(1 / 61 + 1 / 63)
    assert fused["b"] == pytest.approx(1 / 62 + 1 / 61)
    assert fused["c"] == pytest.approx(1 / 63 + 1 / 62)
    assert max(fused, key=fused.get) == "b"


def test_rrf_missing_identifier_takes_worst_rank() -> None:
    fused = reciprocal_rank_fusion([["a"], ["a", "b"]], ["a", "b"])
    assert fused["b"] == pytest.approx(1 / 62 + 1 / 62)


def test_rrf_orders_by_unclamped_fused_score() -> None:
    docs = [_doc("Y", "nothing relevant", 80.0), _doc("X", "quick fox", 90.0)]
    ranked = Reranker().rerank(docs, "quick fox", RerankStrategy.RECIPROCAL_RANK_FUSION)
    assert [c.doc_id for c in ranked] == ["X", "Y"]
    assert [c.original_rank for c in ranked] == [1, 0]


def test_term_overlap_counts_distinct_whitespace_terms() -> None:
    assert term_overlap("quick quick fox", "The QUICK brown dog") == pytest.approx(0.5)
    assert term_overlap("a an", "anything") == 0.0


def test_cross_attention_phrase_and_proximity_bonus() -> None:
    assert cross_attention_bonus("quick fox", "the quick fox jumps") == pytest.approx(15 + 10 * (1 - 6 / 50))
    far = "quick " + "x" * 60 + " fox"
    assert cross_attention_bonus("quick fox", far) == 0.0
    assert cross_attention_bonus("a fox", "a fox") == 15.0


def test_cross_attention_ranking() -> None:
    docs = [_doc("plain", "fox only", 60.0), _doc("phrase", "the quick fox jumps", 50.0)]
    ranked = Reranker().rerank(docs, "quick fox", "cross-attention")
    assert [c.doc_id for c in ranked] == ["phrase", "plain"]
    assert ranked[0].score == pytest.approx(73.8)
    assert ranked[1].score == pytest.approx(60.0)


def test_none_passes_through(candidates: list[Document]) -> None:
    docs = candidates + [_doc("over", "x", 120.0)]
    ranked = Reranker().rerank(docs, "error", "none")
    assert [c.doc_id for c in ranked] == [doc.id for doc in docs]
    assert [c.original_rank for c in ranked] == list(range(len(docs)))
    assert ranked[-1].score == 100.0


def test_simple_is_bounded_and_reproducible(candidates: list[Document]) -> None:
    first = Reranker(seed=11).rerank(candidates, "error", "simple")
    second = Reranker(seed=11).rerank(candidates, "error", "simple")
    assert first == second
    by_id = {doc.id: doc.similarity for doc in candidates}
    for candidate in first:
        assert abs(candidate.score - by_id[candidate.doc_id]) <= 5.0 or candidate.score in (0.0, 100.0)


def test_unknown_strategy_falls_back_to_simple(candidates: list[Document], caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="kb_retrieval.retrieval.rerank"):
        fallback = Reranker(seed=3).rerank(candidates, "error", "bm25-magic")
    assert fallback == Reranker(seed=3).rerank(candidates, "error", "simple")
    assert "falling back to simple" in caplog.text


def test_strict_reranker_rejects_unknown_strategy(candidates: list[Document]) -> None:
    with pytest.raises(ValidationError):
        Reranker(strict=True).rerank(candidates, "error", "bm25-magic")


@pytest.mark.parametrize(
    "tag, expected",
    [
        ("Cross_Attention", RerankStrategy.CROSS_ATTENTION),
        (" none ", RerankStrategy.NONE),
        (None, RerankStrategy.NONE),
        ("rrf", RerankStrategy.UNKNOWN),
        (RerankStrategy.SIMPLE, RerankStrategy.SIMPLE),
    ],
)
def test_strategy_parsing(tag: object, expected: RerankStrategy) -> None:
    assert RerankStrategy.parse(tag) is expected


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_output_is_permutation_with_scores_in_range(candidates: list[Document], strategy: str) -> None:
    ranked = Reranker().rerank(candidates, "error code", strategy)
    assert sorted(c.doc_id for c in ranked) == sorted(doc.id for doc in candidates)
    assert all(0.0 <= c.score <= 100.0 for c in ranked)


@pytest.mark.parametrize("strategy", ["reciprocal-rank-fusion", "cross-attention"])
def test_lexical_strategies_are_deterministic(candidates: list[Document], strategy: str) -> None:
    reranker = Reranker()
    assert reranker.rerank(candidates, "error code", strategy) == reranker.rerank(candidates, "error code", strategy)


def test_empty_input() -> None:
    assert Reranker().rerank([], "anything", "cross-attention") == []


def test_simple_orders_by_jittered_score_not_input_order() -> None:
    docs = [_doc("low", "a", 10.0), _doc("mid", "b", 50.0), _doc("high", "c", 90.0)]
    ranked = Reranker(seed=7).rerank(docs, "anything", "simple")
    assert [c.doc_id for c in ranked] == ["high", "mid", "low"]
    assert [c.original_rank for c in ranked] == [2, 1, 0]
    scores = [c.score for c in ranked]
    assert scores == sorted(scores, reverse=True)
