"""Tests for the load-test harness."""

from __future__ import annotations

import threading

import pytest

from kb_retrieval.bench.loadtest import LoadTester, RequestResult, percentile, run_load_test, summarize
from kb_retrieval.dependencies import build_store
from kb_retrieval.models.dto import LoadTestConfig
from kb_retrieval.models.entities import Document
from kb_retrieval.retrieval import RetrievalOrchestrator


def test_percentile_uses_nearest_rank() -> None:
    values = [float(v) for v in range(1, 11)]
    assert percentile(values, 50) == 5.0
    assert percentile(values, 90) == 9.0
    assert percentile(values, 99) == 10.0
    assert percentile(values, 0) == 1.0
    assert percentile([], 50) == 0.0


def test_summary_counts_failures_by_type() -> None:
    results = [
        RequestResult(user_id=0, request_id=0, duration_ms=10.0, success=True),
        RequestResult(user_id=0, request_id=1, duration_ms=30.0, success=False, error="TimeoutError: slow"),
        RequestResult(user_id=1, request_id=0, duration_ms=20.0, success=False, error="TimeoutError: slow"),
        RequestResult(user_id=1, request_id=1, duration_ms=40.0, success=True),
    ]
    summary = summarize(results, LoadTestConfig(concurrent_users=2, requests_per_user=2), "unit", 0.0, 2.0)
    assert summary.total_requests == 4
    assert summary.success_rate == 50.0
    assert summary.average_ms == 25.0
    assert (summary.min_ms, summary.max_ms) == (10.0, 40.0)
    assert summary.p50_ms == 20.0
    assert summary.throughput_rps == 2.0
    assert summary.errors == {"TimeoutError": 2}
    assert summary.to_dict()["test_name"] == "unit"


def test_ramp_up_and_think_time_are_slept() -> None:
    sleeps: list[float] = []
    lock = threading.Lock()
    calls: list[int] = []

    def record(seconds: float) -> None:
        with lock:
            sleeps.append(seconds)

    def target() -> None:
        with lock:
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("boom")

    tester = LoadTester(target, sleep=record)
    config = LoadTestConfig(concurrent_users=2, requests_per_user=3, ramp_up_s=1.0, think_time_s=0.25)
    result = tester.run(config)

    assert len(calls) == 6
    assert result.total_requests == 6
    assert result.success_rate == pytest.approx(5 / 6 * 100)
    assert result.errors == {"RuntimeError": 1}
    # One ramp-up pause per user (0s and 0.5s) plus two think-time pauses each.
    assert sorted(sleeps) == [0.0, 0.25, 0.25, 0.25, 0.25, 0.5]


def test_run_load_test_against_orchestrator() -> None:
    store = build_store("kb", [Document(id="a", content="the quick brown fox")])
    orchestrator = RetrievalOrchestrator({"kb": store})
    result = run_load_test(
        orchestrator,
        "quick fox",
        LoadTestConfig(concurrent_users=3, requests_per_user=4),
        sources=["kb"],
    )
    assert result.total_requests == 12
    assert result.success_rate == 100.0
    assert result.concurrent_users == 3
    assert result.min_ms <= result.p50_ms <= result.p99_ms <= result.max_ms


def test_failing_source_is_reported_not_raised() -> None:
    orchestrator = RetrievalOrchestrator({"kb": build_store("kb")})
    result = run_load_test(orchestrator, "quick fox", LoadTestConfig(requests_per_user=2), sources=["missing"])
    assert result.success_rate == 0.0
    assert result.errors == {"NotFoundError": 2}
