"""Tests for the embedding cache."""

from __future__ import annotations

from typing import Iterable

from kb_retrieval.embeddings.cache import CachedEmbeddingGenerator, EmbeddingCache
from kb_retrieval.embeddings.generator import HashedEmbeddingGenerator
from kb_retrieval.models.entities import EmbeddingVector


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _vec(value: float) -> EmbeddingVector:
    return EmbeddingVector(dimensions=1, values=(value,))


def test_get_returns_stored_vector_per_model() -> None:
    cache = EmbeddingCache()
    cache.set("hello", _vec(1.0), "m1")
    assert cache.get("hello", "m1") == _vec(1.0)
    assert cache.get("hello", "m2") is None


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = EmbeddingCache(ttl_seconds=10, clock=clock)
    cache.set("hello", _vec(1.0), "m1")
    clock.now = 10.0
    assert cache.get("hello", "m1") is not None
    clock.now = 10.5
    assert cache.get("hello", "m1") is None
    assert len(cache) == 0


def test_oldest_entry_is_evicted_when_full() -> None:
    clock = FakeClock()
    cache = EmbeddingCache(max_size=2, clock=clock)
    for idx, text in enumerate(["a", "b", "c"]):
        clock.now = float(idx)
        cache.set(text, _vec(float(idx)), "m")
    assert cache.get("a", "m") is None
    assert cache.get("b", "m") == _vec(1.0)
    assert cache.get("c", "m") == _vec(2.0)


def test_clear_expired_and_stats() -> None:
    clock = FakeClock()
    cache = EmbeddingCache(ttl_seconds=5, clock=clock)
    cache.set("old", _vec(1.0), "m1")
    clock.now = 4.0
    cache.set("new", _vec(2.0), "m2")
    clock.now = 6.0
    assert cache.clear_expired() == 1
    assert cache.stats() == {"size": 1, "models": {"m2": 1}}
    cache.clear()
    assert cache.stats() == {"size": 0, "models": {}}


class CountingGenerator(HashedEmbeddingGenerator):
    def __init__(self) -> None:
        super().__init__(model_name="counting", dim=8)
        self.seen: list[str] = []

    def generate(self, text: str) -> EmbeddingVector:
        self.seen.append(text)
        return super().generate(text)

    def generate_batch(self, texts: Iterable[str]) -> list[EmbeddingVector]:
        return [self.generate(text) for text in texts]


def test_cached_generator_only_embeds_misses() -> None:
    inner = CountingGenerator()
    generator = CachedEmbeddingGenerator(inner)
    first = generator.generate("alpha")
    assert generator.generate("alpha") == first
    vectors = generator.generate_batch(["alpha", "beta", "gamma", "beta"])
    assert inner.seen == ["alpha", "beta", "gamma", "beta"]
    assert vectors == [inner.generate(text) for text in ["alpha", "beta", "gamma", "beta"]]
    assert generator.cache.stats()["size"] == 3
