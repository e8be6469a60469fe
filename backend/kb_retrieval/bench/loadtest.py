"""Concurrent load generation against the retrieval contract.

Each simulated user runs in its own thread: it waits for its ramp-up slot,
then issues requests sequentially with a think-time pause between them.
Failures are recorded per request and reported through the success rate.
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping, Sequence

from kb_retrieval.models.dto import LoadTestConfig, RetrievalOptions
from kb_retrieval.retrieval.search import RetrievalOrchestrator
from kb_retrieval.utils.time import iso_from_epoch

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RequestResult:
    user_id: int
    request_id: int
    duration_ms: float
    success: bool
    error: str | None = None


@dataclass(slots=True)
class BenchmarkResult:
    test_name: str
    average_ms: float
    min_ms: float
    max_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float
    p99_ms: float
    success_rate: float
    throughput_rps: float
    concurrent_users: int
    total_requests: int
    start_time: str
    end_time: str
    duration_ms: float
    errors: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def percentile(sorted_values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile of an ascending sequence; 0 when empty."""
    if not sorted_values:
        return 0.0
    index = math.ceil((pct / 100.0) * len(sorted_values)) - 1
    return sorted_values[max(0, min(len(sorted_values) - 1, index))]


class LoadTester:
    def __init__(
        self,
        target: Callable[[], Any],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self._sleep = sleep

    def run(self, config: LoadTestConfig, test_name: str = "RetrievalLoadTest") -> BenchmarkResult:
        wall_start = time.time()
        start = time.perf_counter()
        with ThreadPoolExecutor(max_workers=config.concurrent_users, thread_name_prefix="kbr-user") as pool:
            futures = [pool.submit(self._run_user, user_id, config) for user_id in range(config.concurrent_users)]
            results = [result for future in futures for result in future.result()]
        duration_s = time.perf_counter() - start
        return summarize(results, config, test_name, wall_start, duration_s)

    def _run_user(self, user_id: int, config: LoadTestConfig) -> list[RequestResult]:
        if config.ramp_up_s:
            self._sleep(config.ramp_up_s / config.concurrent_users * user_id)
        results: list[RequestResult] = []
        for request_id in range(config.requests_per_user):
            if request_id > 0 and config.think_time_s:
                self._sleep(config.think_time_s)
            started = time.perf_counter()
            error: str | None = None
            try:
                self.target()
            except Exception as exc:  # noqa: BLE001 - failures are part of the measurement
                error = f"{type(exc).__name__}: {exc}"
                logger.debug("User %d request %d failed: %s", user_id, request_id, error)
            results.append(
                RequestResult(
                    user_id=user_id,
                    request_id=request_id,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    success=error is None,
                    error=error,
                )
            )
        return results


def summarize(
    results: Sequence[RequestResult],
    config: LoadTestConfig,
    test_name: str,
    wall_start: float,
    duration_s: float,
) -> BenchmarkResult:
    durations = sorted(result.duration_ms for result in results)
    total = len(durations)
    successes = sum(1 for result in results if result.success)
    errors: dict[str, int] = {}
    for result in results:
        if result.error:
            kind = result.error.split(":", 1)[0]
            errors[kind] = errors.get(kind, 0) + 1
    return BenchmarkResult(
        test_name=test_name,
        average_ms=sum(durations) / total if total else 0.0,
        min_ms=durations[0] if durations else 0.0,
        max_ms=durations[-1] if durations else 0.0,
        p50_ms=percentile(durations, 50),
        p90_ms=percentile(durations, 90),
        p95_ms=percentile(durations, 95),
        p99_ms=percentile(durations, 99),
        success_rate=(successes / total * 100.0) if total else 0.0,
        throughput_rps=(total / duration_s) if duration_s > 0 else 0.0,
        concurrent_users=config.concurrent_users,
        total_requests=total,
        start_time=iso_from_epoch(wall_start),
        end_time=iso_from_epoch(wall_start + duration_s),
        duration_ms=duration_s * 1000.0,
        errors=errors,
    )


def run_load_test(
    orchestrator: RetrievalOrchestrator,
    query: str,
    config: LoadTestConfig,
    sources: Sequence[str] | None = None,
    options: RetrievalOptions | Mapping[str, Any] | None = None,
) -> BenchmarkResult:
    tester = LoadTester(lambda: orchestrator.retrieve(query, sources, options))
    return tester.run(config)


__all__ = ["LoadTester", "BenchmarkResult", "RequestResult", "percentile", "summarize", "run_load_test"]
