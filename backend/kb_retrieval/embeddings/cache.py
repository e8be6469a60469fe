"""Embedding cache to avoid recomputing vectors for repeated texts."""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable

from kb_retrieval.embeddings.generator import EmbeddingGenerator
from kb_retrieval.models.entities import EmbeddingVector
from kb_retrieval.utils.hashing import sha256_text

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_S = 24 * 60 * 60


@dataclass(slots=True)
class CacheEntry:
    vector: EmbeddingVector
    timestamp: float
    model: str


class EmbeddingCache:
    """Bounded TTL cache keyed by model and text; evicts the oldest entry first."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, text: str, model: str) -> EmbeddingVector | None:
        key = _key(text, model)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[key]
                return None
            return entry.vector

    def set(self, text: str, vector: EmbeddingVector, model: str) -> None:
        if self.max_size <= 0:
            return
        key = _key(text, model)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(vector=vector, timestamp=self._clock(), model=model)
            while len(self._entries) > self.max_size:
                oldest = min(self._entries, key=lambda item: self._entries[item].timestamp)
                del self._entries[oldest]

    def clear_expired(self) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if self._expired(entry)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, object]:
        with self._lock:
            models = Counter(entry.model for entry in self._entries.values())
            return {"size": len(self._entries), "models": dict(models)}

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self.ttl_seconds


class CachedEmbeddingGenerator(EmbeddingGenerator):
    """Serves repeated texts from an :class:`EmbeddingCache`."""

    def __init__(self, inner: EmbeddingGenerator, cache: EmbeddingCache | None = None) -> None:
        self.inner = inner
        self.model_name = inner.model_name
        self.cache = cache or EmbeddingCache()

    @property
    def dimensions(self) -> int:
        return self.inner.dimensions

    def generate(self, text: str) -> EmbeddingVector:
        cached = self.cache.get(text, self.model_name)
        if cached is not None:
            return cached
        vector = self.inner.generate(text)
        self.cache.set(text, vector, self.model_name)
        return vector

    def generate_batch(self, texts: Iterable[str]) -> list[EmbeddingVector]:
        items = list(texts)
        resolved: list[EmbeddingVector | None] = [self.cache.get(text, self.model_name) for text in items]
        missing = [idx for idx, vector in enumerate(resolved) if vector is None]
        if missing:
            fresh = self.inner.generate_batch([items[idx] for idx in missing])
            for idx, vector in zip(missing, fresh):
                resolved[idx] = vector
                self.cache.set(items[idx], vector, self.model_name)
        return [vector for vector in resolved if vector is not None]

    def close(self) -> None:
        self.inner.close()


def _key(text: str, model: str) -> tuple[str, str]:
    return (model, sha256_text(text))


__all__ = ["EmbeddingCache", "CachedEmbeddingGenerator"]
