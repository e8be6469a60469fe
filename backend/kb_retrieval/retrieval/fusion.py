"""Rank fusion utilities."""

from __future__ import annotations

from typing import Callable, Sequence, TypeVar

from kb_retrieval.models.entities import Document
from kb_retrieval.utils.text import query_terms, whitespace_tokens

RRF_K = 60.0

T = TypeVar("T")


def rank_by(items: Sequence[T], key: Callable[[T], float]) -> list[T]:
    """Sort descending by ``key``; equal keys keep their input order."""
    return sorted(items, key=key, reverse=True)


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[str]],
    identifiers: Sequence[str],
    k: float = RRF_K,
) -> dict[str, float]:
    """Sum ``1 / (k + rank)`` over every ranking for each identifier.

    Ranks are 1-based. An identifier missing from a ranking takes the worst
    possible rank, ``len(identifiers)``.
    """
    worst = len(identifiers)
    positions = [{identifier: rank for rank, identifier in enumerate(ranking, start=1)} for ranking in rankings]
    return {
        identifier: sum(1.0 / (k + position.get(identifier, worst)) for position in positions)
        for identifier in identifiers
    }


def term_overlap(query: str, content: str) -> float:
    """Fraction of distinct query terms that appear as whitespace tokens in ``content``."""
    terms = set(query_terms(query))
    if not terms:
        return 0.0
    tokens = set(whitespace_tokens(content))
    return len(terms & tokens) / len(terms)


def keyword_match_score(query: str, content: str) -> float:
    """Share of query words found as substrings of ``content``.

    Words shorter than three characters never match but still count toward
    the denominator.
    """
    words = whitespace_tokens(query)
    if not words:
        return 0.0
    haystack = content.lower()
    matches = sum(1 for term in query_terms(query) if term in haystack)
    return matches / len(words)


def similarity_ranking(documents: Sequence[Document]) -> list[str]:
    return [doc.id for doc in rank_by(documents, key=lambda doc: doc.similarity)]


def overlap_ranking(documents: Sequence[Document], query: str) -> list[str]:
    scores = {doc.id: term_overlap(query, doc.content) for doc in documents}
    return [doc.id for doc in rank_by(documents, key=lambda doc: scores[doc.id])]


__all__ = [
    "RRF_K",
    "rank_by",
    "reciprocal_rank_fusion",
    "term_overlap",
    "keyword_match_score",
    "similarity_ranking",
    "overlap_ranking",
]
