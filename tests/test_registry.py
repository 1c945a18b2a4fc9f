"""Tests for chainwatch._registry."""

from __future__ import annotations

import threading

import pytest

from chainwatch._registry import MetricsRegistry
from chainwatch._types import FlowRun, FlowStatus, StepRecord


def _run(flow: str = "transfer", status: FlowStatus = FlowStatus.OK) -> FlowRun:
    return FlowRun(flow_name=flow, run_id="r1", started_at=1.0, status=status, finished_at=2.0)


class TestPublishing:
    def test_status_values(self) -> None:
        metrics = MetricsRegistry()
        metrics.publish_status("a", FlowStatus.OK)
        metrics.publish_status("b", FlowStatus.SKIP)
        metrics.publish_status("c", FlowStatus.FAIL)
        assert metrics.status_of("a") == 1.0
        assert metrics.status_of("b") == 0.5
        assert metrics.status_of("c") == 0.0

    def test_unset_sample_is_none(self) -> None:
        assert MetricsRegistry().status_of("transfer") is None

    def test_unknown_gas_kind(self) -> None:
        with pytest.raises(ValueError, match="Unknown gas metric kind"):
            MetricsRegistry().publish_step_gas("transfer", "send", "gas_limit", 1)

    def test_registries_are_independent(self) -> None:
        first = MetricsRegistry()
        second = MetricsRegistry()
        first.publish_status("transfer", FlowStatus.OK)
        assert second.status_of("transfer") is None

    def test_expose(self) -> None:
        metrics = MetricsRegistry()
        metrics.publish_status("transfer", FlowStatus.SKIP)
        text = metrics.expose().decode()
        assert 'watchdog_status{flow="transfer"} 0.5' in text


class TestGauge:
    def test_cached_by_name(self) -> None:
        metrics = MetricsRegistry()
        gauge = metrics.gauge("watchdog_settlement_age", "doc")
        assert metrics.gauge("watchdog_settlement_age", "doc") is gauge
        gauge.set(7)
        assert metrics.sample("watchdog_settlement_age") == 7


class TestRuns:
    def test_store_and_read(self) -> None:
        metrics = MetricsRegistry()
        metrics.store_run(_run())
        run = metrics.last_run("transfer")
        assert run is not None and run.status is FlowStatus.OK
        assert metrics.flow_names() == ["transfer"]

    def test_missing(self) -> None:
        assert MetricsRegistry().last_run("missing") is None

    def test_stored_steps_are_a_copy(self) -> None:
        metrics = MetricsRegistry()
        run = _run()
        metrics.store_run(run)
        run.steps.append(StepRecord(name="late", latency_s=0.1, end_timestamp_ms=0))
        stored = metrics.last_run("transfer")
        assert stored is not None and stored.steps == []

    def test_thread_safety(self) -> None:
        metrics = MetricsRegistry()
        errors: list[Exception] = []

        def worker(i: int) -> None:
            try:
                for _ in range(50):
                    metrics.store_run(_run(flow=f"flow_{i}"))
                    metrics.gauge("watchdog_shared", "doc")
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert len(metrics.flow_names()) == 10
