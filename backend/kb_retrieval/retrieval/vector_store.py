"""Vector store abstraction and in-memory implementations."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping

from kb_retrieval.core.errors import ValidationError
from kb_retrieval.core.logging import log_context
from kb_retrieval.core.metrics import STORE_SIZE
from kb_retrieval.embeddings.generator import EmbeddingGenerator, cosine_similarity
from kb_retrieval.models.entities import Document, EmbeddingVector
from kb_retrieval.utils.text import query_terms

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0


class VectorStore(ABC):
    """Shared, mutable document collection answering similarity queries.

    Documents are keyed by id; re-adding an id replaces the document but keeps
    its original insertion position, which is also the tie-break order.
    """

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._documents: dict[str, Document] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def get(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    def add_documents(self, docs: Iterable[Document]) -> None:
        batch = list(docs)
        if not batch:
            return
        prepared = self._prepare(batch)
        with self._lock:
            self._upsert(batch, prepared)
            STORE_SIZE.labels(store=self.name).set(len(self._documents))
        logger.debug("Upserted %d documents", len(batch), extra=log_context(store=self.name))

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()
            self._on_clear()
            STORE_SIZE.labels(store=self.name).set(0)

    def search_similar(
        self,
        query: str,
        top_k: int,
        threshold: float,
        filters: Mapping[str, Any] | None = None,
    ) -> list[Document]:
        """Documents scoring at least ``threshold``, best first, at most ``top_k``.

        Returned documents are copies carrying ``metadata["similarity"]``.
        """
        if top_k < 1:
            raise ValidationError("top_k must be >= 1")
        if not 0.0 <= threshold <= MAX_SCORE:
            raise ValidationError("threshold must be within [0, 100]")
        with self._lock:
            snapshot = [doc for doc in self._documents.values() if _matches(doc, filters)]
            captured = self._capture(snapshot)
        scored = self._score(query, snapshot, captured)
        kept = [(doc, score) for doc, score in scored if score >= threshold]
        # list.sort is stable: equal scores keep insertion order.
        kept.sort(key=lambda item: item[1], reverse=True)
        return [doc.with_similarity(score) for doc, score in kept[:top_k]]

    def _prepare(self, batch: list[Document]) -> Any:
        """Compute per-batch data outside the lock."""
        return None

    def _upsert(self, batch: list[Document], prepared: Any) -> None:
        for doc in batch:
            self._documents[doc.id] = doc

    def _on_clear(self) -> None:
        pass

    def _capture(self, snapshot: list[Document]) -> Any:
        """Per-search state read in the same critical section as ``snapshot``."""
        return None

    @abstractmethod
    def _score(self, query: str, documents: list[Document], captured: Any) -> list[tuple[Document, float]]:
        """Score each candidate on the 0-100 scale, preserving input order."""


class KeywordVectorStore(VectorStore):
    """Term-frequency baseline standing in for true vector similarity.

    Score is the summed occurrence count of each query term divided by the
    number of terms, scaled to percent and capped at 100.
    """

    def _score(self, query: str, documents: list[Document], captured: Any) -> list[tuple[Document, float]]:
        terms = query_terms(query)
        if not terms:
            return []
        scored: list[tuple[Document, float]] = []
        for doc in documents:
            content = doc.content.lower()
            raw = sum(content.count(term) for term in terms)
            scored.append((doc, min(MAX_SCORE, (raw / len(terms)) * 100.0)))
        return scored


class EmbeddingVectorStore(VectorStore):
    """Cosine similarity over vectors from an :class:`EmbeddingGenerator`.

    Negative cosine values score zero.
    """

    def __init__(self, generator: EmbeddingGenerator, name: str = "default") -> None:
        super().__init__(name=name)
        self.generator = generator
        self._vectors: dict[str, EmbeddingVector] = {}

    def _prepare(self, batch: list[Document]) -> list[EmbeddingVector]:
        # A backend failure raises here and leaves the store unchanged.
        return self.generator.generate_batch([doc.content for doc in batch])

    def _upsert(self, batch: list[Document], prepared: list[EmbeddingVector]) -> None:
        for doc, vector in zip(batch, prepared):
            self._documents[doc.id] = doc
            self._vectors[doc.id] = vector

    def _on_clear(self) -> None:
        self._vectors.clear()

    def _capture(self, snapshot: list[Document]) -> dict[str, EmbeddingVector | None]:
        return {doc.id: self._vectors.get(doc.id) for doc in snapshot}

    def _score(
        self, query: str, documents: list[Document], captured: dict[str, EmbeddingVector | None]
    ) -> list[tuple[Document, float]]:
        if not query.strip() or not documents:
            return []
        query_vector = self.generator.generate(query)
        scored: list[tuple[Document, float]] = []
        for doc in documents:
            vector = captured[doc.id]
            if vector is None:
                continue
            similarity = cosine_similarity(query_vector, vector)
            scored.append((doc, min(MAX_SCORE, max(0.0, similarity) * 100.0)))
        return scored


def _matches(doc: Document, filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(doc.metadata.get(key) == value for key, value in filters.items())


__all__ = ["VectorStore", "KeywordVectorStore", "EmbeddingVectorStore"]
