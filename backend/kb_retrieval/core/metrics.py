"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

REGISTRY = CollectorRegistry()

RETRIEVAL_COUNT = Counter(
    "kbr_retrievals_total",
    "Total retrieval requests",
    labelnames=("status",),
    registry=REGISTRY,
)

RETRIEVAL_LATENCY = Histogram(
    "kbr_retrieval_latency_seconds",
    "End-to-end retrieval latency",
    registry=REGISTRY,
)

RERANK_LATENCY = Histogram(
    "kbr_rerank_latency_seconds",
    "Reranking latency",
    labelnames=("strategy",),
    registry=REGISTRY,
)

EMBEDDING_FAILURES = Counter(
    "kbr_embedding_failures_total",
    "Embedding generation failures",
    labelnames=("model", "reason"),
    registry=REGISTRY,
)

STORE_SIZE = Gauge(
    "kbr_store_documents",
    "Number of documents held by a vector store",
    labelnames=("store",),
    registry=REGISTRY,
)


def metrics_payload() -> bytes:
    """Return metrics in the Prometheus text exposition format."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "RETRIEVAL_COUNT",
    "RETRIEVAL_LATENCY",
    "RERANK_LATENCY",
    "EMBEDDING_FAILURES",
    "STORE_SIZE",
    "metrics_payload",
]
