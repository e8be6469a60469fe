"""Query clean-up and synonym variants applied before routing."""

from __future__ import annotations

import re
from typing import Mapping

PUNCTUATION_RUN_RE = re.compile(r"[?!.,;:]{2,}")
WHITESPACE_RE = re.compile(r"\s+")

STOP_WORD_MIN_TOKENS = 4
MIN_KEPT_TOKENS = 2
DEFAULT_VARIANTS = 3

STOP_WORDS = frozenset(
    """
    a an the and or but is are was were be been being in on at to for with
    about against between into through during before after above below from
    up down of off over under again further then once here there when where
    why how all any both each few more most other some such no nor not only
    own same so than too very can will just should now
    """.split()
)

SYNONYMS: Mapping[str, tuple[str, ...]] = {
    "create": ("make", "build", "generate", "develop"),
    "delete": ("remove", "erase", "eliminate"),
    "update": ("modify", "change", "edit", "alter"),
    "search": ("find", "locate", "query", "look for"),
    "document": ("file", "record", "paper", "content"),
    "user": ("person", "individual", "customer", "client"),
    "system": ("platform", "application", "software", "program"),
    "error": ("bug", "issue", "problem", "fault", "defect"),
    "feature": ("functionality", "capability", "option"),
    "data": ("information", "content", "records"),
    "api": ("interface", "endpoint", "service"),
    "database": ("db", "data store", "repository"),
    "code": ("script", "program", "source"),
    "test": ("check", "verify", "validate", "examine"),
    "deploy": ("launch", "release", "publish", "roll out"),
}

GENERIC_VARIANTS = ("information about {query}", "how to {query}", "{query} examples")


def preprocess_query(query: str) -> str:
    """Trim, collapse punctuation runs and whitespace, drop stop words from long queries.

    ``"  slow   query?!!"`` becomes ``"slow query?"``; stop words are only
    removed when the query has more than three words.
    """
    processed = query.strip()
    processed = PUNCTUATION_RUN_RE.sub(lambda match: match.group(0)[0], processed)
    processed = WHITESPACE_RE.sub(" ", processed)
    if len(processed.split(" ")) >= STOP_WORD_MIN_TOKENS:
        processed = remove_stop_words(processed)
    return processed


def remove_stop_words(query: str) -> str:
    """Drop stop words, keeping the query unchanged if fewer than two words would survive.

    Matching is case-insensitive; surviving words keep their case so entity
    detection in the router still sees capitalised names.
    """
    words = query.split()
    kept = [word for word in words if word.lower() not in STOP_WORDS]
    if len(kept) < MIN_KEPT_TOKENS and len(words) > MIN_KEPT_TOKENS:
        return query
    return " ".join(kept)


def expand_query(query: str, count: int = DEFAULT_VARIANTS) -> list[str]:
    """Up to ``count`` variants, swapping one word at a time for a synonym.

    Generic phrasings fill in when the synonym table runs short.
    """
    if count <= 0:
        return []
    words = query.split(" ")
    variants: list[str] = []
    for idx, word in enumerate(words):
        for synonym in SYNONYMS.get(word.lower(), ()):
            if len(variants) >= count:
                return variants
            variants.append(" ".join(words[:idx] + [synonym] + words[idx + 1 :]))
    if len(variants) < count:
        variants.extend(template.format(query=query) for template in GENERIC_VARIANTS)
    return variants[:count]


__all__ = ["preprocess_query", "remove_stop_words", "expand_query", "STOP_WORDS", "SYNONYMS"]
