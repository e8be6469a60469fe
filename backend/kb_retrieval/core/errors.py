"""Error taxonomy raised at component boundaries."""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for retrieval pipeline errors."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class EmbeddingError(RetrievalError):
    """Embedding backend failed or timed out; the call may be retried."""

    retryable = True


class ValidationError(RetrievalError):
    """Caller supplied invalid input (top_k, threshold, empty query...)."""


class NotFoundError(RetrievalError):
    """A requested source or document does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"Unknown {kind}: {identifier!r}")
        self.kind = kind
        self.identifier = identifier


__all__ = ["RetrievalError", "EmbeddingError", "ValidationError", "NotFoundError"]
