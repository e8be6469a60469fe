"""Query classification, expansion, and source selection."""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from kb_retrieval.models.entities import QueryType, RouteDecision

ENTITY_RE = re.compile(r"\b[A-Z][a-z]+\b", re.ASCII)
NUMBER_RE = re.compile(r"\b\d+\b", re.ASCII)
TECHNICAL_RE = re.compile(r"\b(?:technical|code|error|function)\b", re.ASCII)

EXPANSION_MAX_LENGTH = 10
EXPANSION_TERMS = ("information", "details", "explanation")


class QueryRouter:
    """Heuristic router.

    Capitalised words suggest named entities and route to hybrid search; digits
    or technical vocabulary route to keyword search; anything else is semantic.
    Queries shorter than ten characters get generic elaboration terms appended.
    """

    def route(self, query: str, available_sources: Iterable[str]) -> RouteDecision:
        return RouteDecision(
            source_ids=self.select_sources(query, list(available_sources)),
            expanded_query=self.expand(query),
            query_type=self.classify(query),
        )

    def classify(self, query: str) -> QueryType:
        if ENTITY_RE.search(query):
            return QueryType.HYBRID
        if NUMBER_RE.search(query) or TECHNICAL_RE.search(query.lower()):
            return QueryType.KEYWORD
        return QueryType.SEMANTIC

    def expand(self, query: str) -> str | None:
        if len(query) < EXPANSION_MAX_LENGTH:
            return f"{query} {' '.join(EXPANSION_TERMS)}"
        return None

    def select_sources(self, query: str, available_sources: Sequence[str]) -> tuple[str, ...]:
        """All available sources, de-duplicated in order; subclasses may prune."""
        return tuple(dict.fromkeys(available_sources))


__all__ = ["QueryRouter", "EXPANSION_TERMS"]
