"""Internal dataclasses shared by the retrieval components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SIMILARITY_KEY = "similarity"
KEYWORD_SCORE_KEY = "keyword_score"


class QueryType(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class SearchMode(str, Enum):
    """Whether similarity is blended with keyword matching before reranking."""

    VECTOR = "vector"
    HYBRID = "hybrid"
    AUTO = "auto"


@dataclass(slots=True)
class Document:
    """A unit of retrievable text; ``id`` is unique within a store."""

    id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def similarity(self) -> float:
        return float(self.metadata.get(SIMILARITY_KEY) or 0.0)

    def with_similarity(self, score: float, **extra: Any) -> "Document":
        """Return a copy annotated with a similarity score and any extra metadata."""
        return Document(
            id=self.id,
            content=self.content,
            metadata={**self.metadata, **extra, SIMILARITY_KEY: score},
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Document":
        return cls(
            id=str(payload["id"]),
            content=str(payload.get("content") or ""),
            metadata=dict(payload.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "metadata": dict(self.metadata)}


@dataclass(frozen=True, slots=True)
class EmbeddingVector:
    dimensions: int
    values: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.values) != self.dimensions:
            raise ValueError(
                f"Embedding has {len(self.values)} values but declares {self.dimensions} dimensions"
            )

    def is_comparable(self, other: "EmbeddingVector") -> bool:
        return self.dimensions == other.dimensions


@dataclass(frozen=True, slots=True)
class RankedCandidate:
    doc_id: str
    score: float
    original_rank: int


@dataclass(frozen=True, slots=True)
class RouteDecision:
    source_ids: tuple[str, ...]
    expanded_query: str | None
    query_type: QueryType


@dataclass(slots=True)
class ScoredDocument:
    """One row of a retrieval result."""

    document: Document
    score: float
    rank: int
    original_rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.document.id,
            "score": self.score,
            "rank": self.rank,
            "original_rank": self.original_rank,
            "content": self.document.content,
            "metadata": dict(self.document.metadata),
        }


@dataclass(slots=True)
class RetrievalResult:
    query_id: str
    query: str
    processed_query: str
    expanded_query: str | None
    query_type: QueryType
    search_mode: SearchMode
    results: list[ScoredDocument]
    elapsed_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_id": self.query_id,
            "query": self.query,
            "processed_query": self.processed_query,
            "expanded_query": self.expanded_query,
            "query_type": self.query_type.value,
            "search_mode": self.search_mode.value,
            "elapsed_ms": self.elapsed_ms,
            "results": [item.to_dict() for item in self.results],
        }


__all__ = [
    "SIMILARITY_KEY",
    "KEYWORD_SCORE_KEY",
    "QueryType",
    "SearchMode",
    "Document",
    "EmbeddingVector",
    "RankedCandidate",
    "RouteDecision",
    "ScoredDocument",
    "RetrievalResult",
]
