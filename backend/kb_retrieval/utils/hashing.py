"""Hashing utilities."""

from __future__ import annotations

import hashlib


def sha256_text(text: str) -> str:
    """Return hex digest for UTF-8 encoded text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def stable_bucket(token: str, buckets: int) -> int:
    """Map a token onto ``[0, buckets)`` independently of PYTHONHASHSEED."""
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % buckets
