"""Reranking strategies."""

from __future__ import annotations

import logging
import random
import threading
from enum import Enum
from typing import Callable, Sequence

from kb_retrieval.core.errors import ValidationError
from kb_retrieval.core.metrics import RERANK_LATENCY
from kb_retrieval.models.entities import Document, RankedCandidate
from kb_retrieval.retrieval.fusion import (
    RRF_K,
    overlap_ranking,
    rank_by,
    reciprocal_rank_fusion,
    similarity_ranking,
)
from kb_retrieval.utils.text import MIN_TERM_LENGTH, whitespace_tokens

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 100.0

RRF_SCALE = 5000.0
PHRASE_BONUS = 15.0
PROXIMITY_BONUS = 10.0
PROXIMITY_WINDOW = 50
SIMPLE_JITTER = 5.0


class RerankStrategy(str, Enum):
    RECIPROCAL_RANK_FUSION = "reciprocal-rank-fusion"
    CROSS_ATTENTION = "cross-attention"
    SIMPLE = "simple"
    NONE = "none"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, tag: "str | RerankStrategy | None") -> "RerankStrategy":
        """Map a tag onto a strategy; unrecognised tags become ``UNKNOWN``."""
        if isinstance(tag, RerankStrategy):
            return tag
        if tag is None:
            return cls.NONE
        normalized = tag.strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


Scored = list[tuple[Document, float]]


class Reranker:
    """Recomputes relevance for a candidate set.

    The output is always a permutation of the input ids with scores clamped
    to ``[0, 100]``. Unknown strategies fall back to ``simple`` unless the
    reranker is strict, in which case they raise ``ValidationError``.
    """

    def __init__(self, seed: int | None = 0, strict: bool = False, rng: random.Random | None = None) -> None:
        self.strict = strict
        self._rng = rng or random.Random(seed)
        self._rng_lock = threading.Lock()
        self._handlers: dict[RerankStrategy, Callable[[Sequence[Document], str], Scored]] = {
            RerankStrategy.RECIPROCAL_RANK_FUSION: self._apply_rrf,
            RerankStrategy.CROSS_ATTENTION: self._apply_cross_attention,
            RerankStrategy.SIMPLE: self._apply_simple,
            RerankStrategy.NONE: self._apply_none,
            RerankStrategy.UNKNOWN: self._apply_unknown,
        }

    def rerank(
        self,
        documents: Sequence[Document],
        query: str,
        strategy: "RerankStrategy | str" = RerankStrategy.RECIPROCAL_RANK_FUSION,
    ) -> list[RankedCandidate]:
        resolved = RerankStrategy.parse(strategy)
        if resolved is RerankStrategy.UNKNOWN and self.strict:
            raise ValidationError(f"Unsupported rerank strategy: {strategy!r}")
        if not documents:
            return []
        original_ranks = {doc.id: idx for idx, doc in enumerate(documents)}
        with RERANK_LATENCY.labels(strategy=resolved.value).time():
            scored = self._handlers[resolved](documents, query)
        if resolved is RerankStrategy.UNKNOWN:
            logger.warning("Unknown rerank strategy %r; falling back to simple", strategy)
        return [
            RankedCandidate(doc_id=doc.id, score=_clamp(score), original_rank=original_ranks[doc.id])
            for doc, score in scored
        ]

    # ------------------------------------------------------------------

    def _apply_rrf(self, documents: Sequence[Document], query: str) -> Scored:
        identifiers = [doc.id for doc in documents]
        fused = reciprocal_rank_fusion(
            [similarity_ranking(documents), overlap_ranking(documents, query)],
            identifiers,
            k=RRF_K,
        )
        scored = [(doc, fused[doc.id] * RRF_SCALE) for doc in documents]
        return rank_by(scored, key=lambda item: item[1])

    def _apply_cross_attention(self, documents: Sequence[Document], query: str) -> Scored:
        scored = [(doc, doc.similarity + cross_attention_bonus(query, doc.content)) for doc in documents]
        return rank_by(scored, key=lambda item: item[1])

    def _apply_simple(self, documents: Sequence[Document], query: str) -> Scored:
        with self._rng_lock:
            jitter = [self._rng.uniform(-SIMPLE_JITTER, SIMPLE_JITTER) for _ in documents]
        scored = [(doc, doc.similarity + delta) for doc, delta in zip(documents, jitter)]
        # Sorted by jittered score; input order is not preserved.
        return rank_by(scored, key=lambda item: item[1])

    def _apply_none(self, documents: Sequence[Document], query: str) -> Scored:
        return [(doc, doc.similarity) for doc in documents]

    def _apply_unknown(self, documents: Sequence[Document], query: str) -> Scored:
        return self._apply_simple(documents, query)


def cross_attention_bonus(query: str, content: str) -> float:
    """Phrase-match plus adjacent-term proximity bonus.

    Proximity uses the first occurrence of each term and decays linearly to
    zero at ``PROXIMITY_WINDOW`` characters.
    """
    text = content.lower()
    bonus = PHRASE_BONUS if query.strip() and query.lower() in text else 0.0
    terms = whitespace_tokens(query)
    for first, second in zip(terms, terms[1:]):
        if len(first) < MIN_TERM_LENGTH or len(second) < MIN_TERM_LENGTH:
            continue
        first_idx = text.find(first)
        second_idx = text.find(second)
        if first_idx == -1 or second_idx == -1:
            continue
        distance = abs(second_idx - first_idx)
        if distance < PROXIMITY_WINDOW:
            bonus += PROXIMITY_BONUS * (1 - distance / PROXIMITY_WINDOW)
    return bonus


def _clamp(score: float) -> float:
    return min(MAX_SCORE, max(MIN_SCORE, score))


__all__ = ["Reranker", "RerankStrategy", "cross_attention_bonus"]
