"""Search orchestration."""

from __future__ import annotations

import time
from typing import Any, Iterable, Mapping, Sequence

from kb_retrieval.core.config import Settings
from kb_retrieval.core.errors import NotFoundError, RetrievalError, ValidationError
from kb_retrieval.core.logging import get_logger, log_context
from kb_retrieval.core.metrics import RETRIEVAL_COUNT, RETRIEVAL_LATENCY
from kb_retrieval.models.dto import RetrievalOptions
from kb_retrieval.models.entities import (
    KEYWORD_SCORE_KEY,
    Document,
    QueryType,
    RetrievalResult,
    ScoredDocument,
    SearchMode,
)
from kb_retrieval.retrieval.fusion import keyword_match_score, rank_by
from kb_retrieval.retrieval.query import expand_query, preprocess_query
from kb_retrieval.retrieval.rerank import Reranker, RerankStrategy
from kb_retrieval.retrieval.router import QueryRouter
from kb_retrieval.retrieval.vector_store import VectorStore
from kb_retrieval.utils.ids import new_query_id
from kb_retrieval.utils.time import elapsed_ms

logger = get_logger(__name__)

# Hybrid candidates: max(top_k * factor, minimum) documents at threshold minus slack.
HYBRID_FETCH_FACTOR = 3
HYBRID_MIN_FETCH = 20
HYBRID_THRESHOLD_SLACK = 10.0


class RetrievalOrchestrator:
    """Coordinates routing, per-source similarity search, and reranking."""

    def __init__(
        self,
        stores: Mapping[str, VectorStore],
        router: QueryRouter | None = None,
        reranker: Reranker | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.stores = dict(stores)
        self.settings = settings or Settings()
        self.router = router or QueryRouter()
        self.reranker = reranker or Reranker(seed=self.settings.rerank_seed, strict=self.settings.rerank_strict)

    def store(self, source_id: str) -> VectorStore:
        try:
            return self.stores[source_id]
        except KeyError:
            raise NotFoundError("source", source_id) from None

    def retrieve(
        self,
        query: str,
        sources: Iterable[str] | None = None,
        options: RetrievalOptions | Mapping[str, Any] | None = None,
    ) -> RetrievalResult:
        start_time = time.perf_counter()
        try:
            result = self._retrieve(query, sources, options, start_time)
        except RetrievalError as exc:
            RETRIEVAL_COUNT.labels(status=type(exc).__name__).inc()
            raise
        RETRIEVAL_LATENCY.observe(time.perf_counter() - start_time)
        RETRIEVAL_COUNT.labels(status="ok").inc()
        return result

    # ------------------------------------------------------------------

    def _retrieve(
        self,
        query: str,
        sources: Iterable[str] | None,
        options: RetrievalOptions | Mapping[str, Any] | None,
        start_time: float,
    ) -> RetrievalResult:
        resolved = self._resolve_options(options)
        if not query or not query.strip():
            raise ValidationError("query must not be empty")

        cleaned = preprocess_query(query) if resolved.preprocess else query
        requested = list(self.stores) if sources is None else list(sources)
        decision = self.router.route(cleaned, requested)
        selected = [self.store(source_id) for source_id in decision.source_ids]
        mode = self._effective_mode(resolved.search_mode, decision.query_type)

        search_query = cleaned
        if resolved.use_expansion and decision.expanded_query:
            search_query = decision.expanded_query
        queries = [search_query, *expand_query(cleaned, resolved.query_variants)]

        if mode is SearchMode.HYBRID:
            fetch_k = max(resolved.top_k * HYBRID_FETCH_FACTOR, HYBRID_MIN_FETCH)
            fetch_threshold = max(resolved.threshold - HYBRID_THRESHOLD_SLACK, 0.0)
        else:
            fetch_k, fetch_threshold = resolved.top_k, resolved.threshold

        merged = merge_results(
            store.search_similar(text, fetch_k, fetch_threshold, filters=resolved.filters)
            for text in dict.fromkeys(queries)
            for store in selected
        )
        if mode is SearchMode.HYBRID:
            merged = blend_keyword_scores(merged, cleaned, resolved.keyword_weight, resolved.threshold)

        strategy = RerankStrategy.parse(resolved.rerank_strategy)
        if strategy is RerankStrategy.NONE or not merged:
            ranked = _as_scored(merged)
        else:
            # Expansion terms are synthetic; lexical reranking sees only the caller's query.
            candidates = self.reranker.rerank(merged, query, strategy)
            by_id = {doc.id: doc for doc in merged}
            ranked = [
                ScoredDocument(
                    document=by_id[candidate.doc_id],
                    score=candidate.score,
                    rank=idx + 1,
                    original_rank=candidate.original_rank,
                )
                for idx, candidate in enumerate(candidates)
            ]

        results = ranked[: resolved.top_k]
        duration = elapsed_ms(start_time)
        logger.info(
            "Retrieved %d documents from %d sources",
            len(results),
            len(selected),
            extra=log_context(
                query_type=decision.query_type.value,
                search_mode=mode.value,
                strategy=strategy.value,
                expanded=search_query != cleaned,
                variants=len(queries) - 1,
                elapsed_ms=round(duration, 3),
            ),
        )
        return RetrievalResult(
            query_id=new_query_id(),
            query=query,
            processed_query=cleaned,
            expanded_query=decision.expanded_query,
            query_type=decision.query_type,
            search_mode=mode,
            results=results,
            elapsed_ms=duration,
        )

    def find_similar(
        self,
        doc_id: str,
        sources: Iterable[str] | None = None,
        options: RetrievalOptions | Mapping[str, Any] | None = None,
    ) -> list[ScoredDocument]:
        """Documents most similar to a stored document, excluding that document.

        The document's content is used as the query against every selected
        store; routing, expansion and reranking are skipped.
        """
        resolved = self._resolve_options(options)
        selected = [self.store(source_id) for source_id in (list(self.stores) if sources is None else sources)]
        source_doc = next((doc for doc in (store.get(doc_id) for store in selected) if doc is not None), None)
        if source_doc is None:
            raise NotFoundError("document", doc_id)
        if not source_doc.content.strip():
            return []
        merged = merge_results(
            store.search_similar(source_doc.content, resolved.top_k + 1, resolved.threshold, filters=resolved.filters)
            for store in selected
        )
        similar = [doc for doc in merged if doc.id != doc_id][: resolved.top_k]
        logger.debug("Found %d documents similar to %s", len(similar), doc_id)
        return _as_scored(similar)

    @staticmethod
    def _effective_mode(requested: SearchMode, query_type: QueryType) -> SearchMode:
        if requested is SearchMode.AUTO:
            return SearchMode.HYBRID if query_type is QueryType.HYBRID else SearchMode.VECTOR
        return requested

    def _resolve_options(self, options: RetrievalOptions | Mapping[str, Any] | None) -> RetrievalOptions:
        if isinstance(options, RetrievalOptions):
            return options
        return RetrievalOptions.from_settings(self.settings, **dict(options or {}))


def merge_results(batches: Iterable[Sequence[Document]]) -> list[Document]:
    """Union of per-source results keyed by id, keeping the highest similarity.

    On equal scores the first-seen copy wins; the union is sorted by similarity
    with ties in first-seen order.
    """
    best: dict[str, Document] = {}
    for batch in batches:
        for doc in batch:
            current = best.get(doc.id)
            if current is None or doc.similarity > current.similarity:
                best[doc.id] = doc
    return rank_by(list(best.values()), key=lambda doc: doc.similarity)


def blend_keyword_scores(
    documents: Sequence[Document], query: str, keyword_weight: float, threshold: float
) -> list[Document]:
    """Mix vector similarity with keyword matching, best first, dropping scores below ``threshold``.

    ``score = (1 - w) * similarity + w * keyword_match * 100``; the keyword
    component is kept in ``metadata["keyword_score"]``.
    """
    blended: list[Document] = []
    for doc in documents:
        keyword = keyword_match_score(query, doc.content)
        score = (1.0 - keyword_weight) * doc.similarity + keyword_weight * keyword * 100.0
        if score >= threshold:
            blended.append(doc.with_similarity(score, **{KEYWORD_SCORE_KEY: keyword}))
    return rank_by(blended, key=lambda doc: doc.similarity)


def _as_scored(documents: Sequence[Document]) -> list[ScoredDocument]:
    return [
        ScoredDocument(document=doc, score=doc.similarity, rank=idx + 1, original_rank=idx)
        for idx, doc in enumerate(documents)
    ]


__all__ = ["RetrievalOrchestrator", "merge_results", "blend_keyword_scores"]
