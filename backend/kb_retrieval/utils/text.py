"""Tokenisation helpers shared by scoring and embedding code."""

from __future__ import annotations

import re

WORD_RE = re.compile(r"\w+")

MIN_TERM_LENGTH = 3


def whitespace_tokens(text: str) -> list[str]:
    """Lowercase whitespace-delimited tokens, punctuation kept."""
    return text.lower().split()


def query_terms(text: str) -> list[str]:
    """Lowercase whitespace tokens longer than two characters, duplicates kept."""
    return [token for token in whitespace_tokens(text) if len(token) >= MIN_TERM_LENGTH]


def word_tokens(text: str) -> list[str]:
    """Lowercase alphanumeric word tokens."""
    return WORD_RE.findall(text.lower())
