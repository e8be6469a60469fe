"""Component wiring from Settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Mapping

from kb_retrieval.core.config import Settings, get_settings
from kb_retrieval.embeddings.cache import CachedEmbeddingGenerator, EmbeddingCache
from kb_retrieval.embeddings.generator import (
    EmbeddingGenerator,
    HashedEmbeddingGenerator,
    SentenceTransformerEmbeddingGenerator,
    TimeoutEmbeddingGenerator,
)
from kb_retrieval.models.entities import Document
from kb_retrieval.retrieval import KeywordVectorStore, QueryRouter, Reranker, RetrievalOrchestrator, VectorStore
from kb_retrieval.retrieval.vector_store import EmbeddingVectorStore

HASHED_MODEL_PREFIX = "hashed"


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def build_embedding_generator(settings: Settings) -> EmbeddingGenerator:
    """Backend selected by model name, wrapped with timeout and cache layers."""
    generator: EmbeddingGenerator
    if settings.embedding_model.startswith(HASHED_MODEL_PREFIX):
        generator = HashedEmbeddingGenerator(settings.embedding_model, dim=settings.embedding_dim)
    else:
        generator = SentenceTransformerEmbeddingGenerator(settings.embedding_model)
    if settings.embedding_timeout_s is not None:
        generator = TimeoutEmbeddingGenerator(
            generator,
            timeout_s=settings.embedding_timeout_s,
            max_workers=settings.embedding_workers,
        )
    if settings.embedding_cache_size > 0:
        cache = EmbeddingCache(max_size=settings.embedding_cache_size, ttl_seconds=settings.embedding_cache_ttl_s)
        generator = CachedEmbeddingGenerator(generator, cache)
    return generator


def build_store(
    name: str,
    documents: Iterable[Document] = (),
    generator: EmbeddingGenerator | None = None,
) -> VectorStore:
    """Keyword baseline store, or a cosine store when a generator is supplied."""
    store: VectorStore
    if generator is None:
        store = KeywordVectorStore(name=name)
    else:
        store = EmbeddingVectorStore(generator, name=name)
    store.add_documents(documents)
    return store


def build_orchestrator(stores: Mapping[str, VectorStore], settings: Settings | None = None) -> RetrievalOrchestrator:
    resolved = settings or get_app_settings()
    return RetrievalOrchestrator(
        stores=stores,
        router=QueryRouter(),
        reranker=Reranker(seed=resolved.rerank_seed, strict=resolved.rerank_strict),
        settings=resolved,
    )


__all__ = [
    "get_app_settings",
    "build_embedding_generator",
    "build_store",
    "build_orchestrator",
]
