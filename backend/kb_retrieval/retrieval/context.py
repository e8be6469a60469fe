"""Context and citation formatting for generation prompts."""

from __future__ import annotations

from typing import Sequence

from kb_retrieval.models.entities import ScoredDocument

CITATION_MIN_SCORE = 60.0
SECTION_SEPARATOR = "\n\n---\n\n"


def relevance_label(score: float) -> str:
    if score > 90:
        return "Highly Relevant"
    if score > 75:
        return "Relevant"
    if score > 60:
        return "Somewhat Relevant"
    return "Low Relevance"


def build_context(results: Sequence[ScoredDocument], enhanced: bool = True) -> str:
    """Join retrieved documents into a prompt context block."""
    if not results:
        return ""
    if not enhanced:
        return "\n\n".join(item.document.content for item in results)
    sections = []
    for item in results:
        title = item.document.metadata.get("title") or "Untitled"
        header = f"[Source: {title} ({relevance_label(item.score)}, {item.score:.1f}% match)]"
        sections.append(f"{header}\n{item.document.content}")
    return SECTION_SEPARATOR.join(sections)


def generate_citations(results: Sequence[ScoredDocument]) -> str:
    """Numbered source list for results scoring above the citation cutoff."""
    lines = []
    for item in results:
        if item.score <= CITATION_MIN_SCORE:
            continue
        metadata = item.document.metadata
        title = metadata.get("title") or "Untitled"
        source = metadata.get("source") or "Unknown source"
        lines.append(f"[{len(lines) + 1}] {title}. {source} ({item.score:.1f}% match)")
    if not lines:
        return ""
    return "Sources:\n" + "\n".join(lines)


__all__ = ["relevance_label", "build_context", "generate_citations"]
