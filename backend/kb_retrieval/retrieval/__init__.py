"""Retrieval orchestration components."""

from .vector_store import VectorStore, KeywordVectorStore, EmbeddingVectorStore
from .router import QueryRouter
from .rerank import Reranker, RerankStrategy
from .search import RetrievalOrchestrator, merge_results, blend_keyword_scores
from .query import preprocess_query, expand_query
from .context import build_context, generate_citations

__all__ = [
    "VectorStore",
    "KeywordVectorStore",
    "EmbeddingVectorStore",
    "QueryRouter",
    "Reranker",
    "RerankStrategy",
    "RetrievalOrchestrator",
    "merge_results",
    "blend_keyword_scores",
    "preprocess_query",
    "expand_query",
    "build_context",
    "generate_citations",
]
