"""Embedding generators.

Every generator maps text to a fixed-dimension :class:`EmbeddingVector` and is
deterministic for a fixed model: identical text yields an identical vector.
``HashedEmbeddingGenerator`` is the built-in backend and the substitution point
for a real model; ``SentenceTransformerEmbeddingGenerator`` is one such model.
"""

from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Iterable, Sequence

from kb_retrieval.core.errors import EmbeddingError
from kb_retrieval.core.logging import log_context
from kb_retrieval.core.metrics import EMBEDDING_FAILURES
from kb_retrieval.models.entities import EmbeddingVector
from kb_retrieval.utils.hashing import stable_bucket
from kb_retrieval.utils.text import word_tokens

logger = logging.getLogger(__name__)

DEFAULT_DIM = 384


class EmbeddingGenerator(ABC):
    """Maps text to fixed-dimension vectors."""

    model_name: str

    @property
    @abstractmethod
    def dimensions(self) -> int: ...

    @abstractmethod
    def generate(self, text: str) -> EmbeddingVector: ...

    def generate_batch(self, texts: Iterable[str]) -> list[EmbeddingVector]:
        """One vector per input text, in input order."""
        return [self.generate(text) for text in texts]

    def close(self) -> None:
        """Release backend resources; a no-op by default."""


class HashedEmbeddingGenerator(EmbeddingGenerator):
    """Bag-of-words feature hashing with L2 normalisation."""

    def __init__(self, model_name: str = "hashed-bow-v1", dim: int = DEFAULT_DIM) -> None:
        if dim < 1:
            raise ValueError("dim must be positive")
        self.model_name = model_name
        self._dim = dim

    @property
    def dimensions(self) -> int:
        return self._dim

    def generate(self, text: str) -> EmbeddingVector:
        vector = [0.0] * self._dim
        for token in word_tokens(text):
            vector[stable_bucket(token, self._dim)] += 1.0
        _normalize(vector)
        return EmbeddingVector(dimensions=self._dim, values=tuple(vector))


class SentenceTransformerEmbeddingGenerator(EmbeddingGenerator):
    """Wrapper around a sentence-transformers bi-encoder, loaded on first use."""

    def __init__(self, model_name: str, device: str | None = None, model: Any | None = None) -> None:
        self.model_name = model_name
        self.device = device
        self._model = model

    @property
    def model(self) -> Any:
        if self._model is None:
            self._model = self._load()
        return self._model

    @property
    def dimensions(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def generate(self, text: str) -> EmbeddingVector:
        return self.generate_batch([text])[0]

    def generate_batch(self, texts: Iterable[str]) -> list[EmbeddingVector]:
        items = list(texts)
        if not items:
            return []
        try:
            rows = self.model.encode(items, normalize_embeddings=True, convert_to_numpy=True)
        except EmbeddingError:
            raise
        except Exception as exc:
            EMBEDDING_FAILURES.labels(model=self.model_name, reason="backend").inc()
            raise EmbeddingError(f"Embedding backend '{self.model_name}' failed: {exc}") from exc
        if len(rows) != len(items):
            raise EmbeddingError(f"Embedding backend returned {len(rows)} vectors for {len(items)} texts")
        dim = self.dimensions
        vectors: list[EmbeddingVector] = []
        for row in rows:
            values = tuple(float(value) for value in row)
            if len(values) != dim:
                raise EmbeddingError(f"Embedding backend returned a {len(values)}-d vector, expected {dim}")
            vectors.append(EmbeddingVector(dimensions=dim, values=values))
        return vectors

    def _load(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise EmbeddingError(
                "sentence-transformers is not installed; install the 'models' extra", retryable=False
            ) from exc
        try:
            return SentenceTransformer(self.model_name, device=self.device)
        except Exception as exc:  # pragma: no cover - requires network
            EMBEDDING_FAILURES.labels(model=self.model_name, reason="load").inc()
            raise EmbeddingError(f"Failed to load embedding model '{self.model_name}': {exc}") from exc


class TimeoutEmbeddingGenerator(EmbeddingGenerator):
    """Runs another generator in a worker pool with a per-call deadline.

    With ``max_workers > 1`` batch items are embedded in parallel; results are
    collected in input order so the output matches the sequential one.

    A running backend call cannot be interrupted, so a timeout retires the
    whole pool and later calls start on a fresh one instead of queueing
    behind the stuck worker.
    """

    def __init__(self, inner: EmbeddingGenerator, timeout_s: float, max_workers: int = 1) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self.inner = inner
        self.model_name = inner.model_name
        self.timeout_s = timeout_s
        self.max_workers = max(1, max_workers)
        self._pool_lock = threading.Lock()
        self._executor = self._new_executor()

    @property
    def dimensions(self) -> int:
        return self.inner.dimensions

    def generate(self, text: str) -> EmbeddingVector:
        executor, futures = self._submit(self.inner.generate, [text])
        return self._await(executor, futures[0])

    def generate_batch(self, texts: Iterable[str]) -> list[EmbeddingVector]:
        items = list(texts)
        if self.max_workers == 1 or len(items) < 2:
            executor, futures = self._submit(self.inner.generate_batch, [items])
            return self._await(executor, futures[0])
        executor, futures = self._submit(self.inner.generate, items)
        try:
            return [self._await(executor, future) for future in futures]
        finally:
            for future in futures:
                future.cancel()

    def close(self) -> None:
        with self._pool_lock:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self.inner.close()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="kbr-embed")

    def _submit(self, fn: Callable[[Any], Any], args: list[Any]) -> tuple[ThreadPoolExecutor, list[Future]]:
        with self._pool_lock:
            executor = self._executor
            return executor, [executor.submit(fn, arg) for arg in args]

    def _retire(self, executor: ThreadPoolExecutor) -> None:
        with self._pool_lock:
            if self._executor is not executor:
                return
            self._executor = self._new_executor()
        executor.shutdown(wait=False, cancel_futures=True)

    def _await(self, executor: ThreadPoolExecutor, future: Future) -> Any:
        try:
            return future.result(timeout=self.timeout_s)
        except FutureTimeoutError as exc:
            future.cancel()
            self._retire(executor)
            EMBEDDING_FAILURES.labels(model=self.model_name, reason="timeout").inc()
            logger.warning(
                "Embedding call timed out after %.2fs", self.timeout_s, extra=log_context(model=self.model_name)
            )
            raise EmbeddingError(f"Embedding timed out after {self.timeout_s:.2f}s") from exc
        except CancelledError as exc:
            # Queued behind a call that timed out on the retired pool.
            EMBEDDING_FAILURES.labels(model=self.model_name, reason="cancelled").inc()
            raise EmbeddingError("Embedding call cancelled after a backend timeout") from exc
        except EmbeddingError:
            raise
        except Exception as exc:
            EMBEDDING_FAILURES.labels(model=self.model_name, reason="backend").inc()
            raise EmbeddingError(f"Embedding backend '{self.model_name}' failed: {exc}") from exc


def cosine_similarity(a: EmbeddingVector, b: EmbeddingVector) -> float:
    if not a.is_comparable(b):
        raise ValueError(f"Cannot compare {a.dimensions}-d and {b.dimensions}-d vectors")
    norm_a = math.sqrt(_dot(a.values, a.values))
    norm_b = math.sqrt(_dot(b.values, b.values))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return _dot(a.values, b.values) / (norm_a * norm_b)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingGenerator",
    "HashedEmbeddingGenerator",
    "SentenceTransformerEmbeddingGenerator",
    "TimeoutEmbeddingGenerator",
    "cosine_similarity",
]
