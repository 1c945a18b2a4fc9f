"""Metrics registry shared by all flow recorders.

The registry is constructed once at startup and handed to every flow; there
is no module-level instance. All series are keyed by flow name (and step name
where applicable) and behave as last-write-wins gauges.
"""

from __future__ import annotations

import threading
from dataclasses import replace

from prometheus_client import CollectorRegistry, Gauge, Histogram, generate_latest

from chainwatch._types import FlowRun, FlowStatus

GAS_KINDS = ("gas", "gas_price", "gas_cost")


class MetricsRegistry:
    """Owns the ``watchdog_*`` Prometheus series and the last sealed run per flow."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.collector_registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.Lock()
        self._runs: dict[str, FlowRun] = {}
        self._extra_gauges: dict[str, Gauge] = {}

        reg = self.collector_registry
        self.latency = Gauge(
            "watchdog_latency",
            "Watchdog step latencies for all flows",
            ["flow", "stage"],
            registry=reg,
        )
        self.latency_total = Gauge(
            "watchdog_latency_total",
            "Watchdog latency totals for all flows",
            ["flow"],
            registry=reg,
        )
        self.status = Gauge(
            "watchdog_status",
            "Watchdog flow status (1 = OK, 0.5 = skipped, 0 = failed)",
            ["flow"],
            registry=reg,
        )
        self.status_histogram = Histogram(
            "watchdog_status_histogram",
            "Distribution of watchdog flow outcomes",
            ["flow"],
            buckets=(0.0, 0.5, 1.0),
            registry=reg,
        )
        self.step_timestamp = Gauge(
            "watchdog_step_timestamp",
            "Watchdog last step completion timestamp in ms for all flows",
            ["flow", "step"],
            registry=reg,
        )
        self.step_gas = Gauge(
            "watchdog_step_gas",
            "Watchdog step gas",
            ["flow", "step"],
            registry=reg,
        )
        self.step_gas_price = Gauge(
            "watchdog_step_gas_price",
            "Watchdog step gas price (either limit or actually used)",
            ["flow", "step"],
            registry=reg,
        )
        self.step_gas_cost = Gauge(
            "watchdog_step_gas_cost",
            "Watchdog step gas cost (price * used)",
            ["flow", "step"],
            registry=reg,
        )

    # -- publishing -----------------------------------------------------------

    def publish_status(self, flow: str, status: FlowStatus) -> None:
        value = status.metric_value
        self.status.labels(flow=flow).set(value)
        self.status_histogram.labels(flow=flow).observe(value)

    def publish_latency_total(self, flow: str, seconds: float) -> None:
        self.latency_total.labels(flow=flow).set(seconds)

    def publish_step_completion(
        self, flow: str, step: str, latency_s: float, timestamp_ms: int
    ) -> None:
        self.latency.labels(flow=flow, stage=step).set(latency_s)
        self.step_timestamp.labels(flow=flow, step=step).set(timestamp_ms)

    def publish_step_gas(self, flow: str, step: str, kind: str, value: float) -> None:
        """Set one of the per-step gas gauges; *kind* is one of :data:`GAS_KINDS`."""
        if kind == "gas":
            gauge = self.step_gas
        elif kind == "gas_price":
            gauge = self.step_gas_price
        elif kind == "gas_cost":
            gauge = self.step_gas_cost
        else:
            raise ValueError(f"Unknown gas metric kind: {kind!r}")
        gauge.labels(flow=flow, step=step).set(value)

    def gauge(self, name: str, documentation: str) -> Gauge:
        """Return a flow-specific unlabeled gauge, creating it on first use."""
        with self._lock:
            existing = self._extra_gauges.get(name)
            if existing is None:
                existing = Gauge(name, documentation, registry=self.collector_registry)
                self._extra_gauges[name] = existing
            return existing

    # -- run snapshots --------------------------------------------------------

    def store_run(self, run: FlowRun) -> None:
        """Remember *run* as the latest sealed run of its flow."""
        with self._lock:
            self._runs[run.flow_name] = replace(run, steps=list(run.steps))

    def last_run(self, flow: str) -> FlowRun | None:
        with self._lock:
            return self._runs.get(flow)

    def flow_names(self) -> list[str]:
        with self._lock:
            return list(self._runs.keys())

    # -- reading --------------------------------------------------------------

    def sample(self, name: str, **labels: str) -> float | None:
        """Current value of a sample, or ``None`` if it was never set."""
        return self.collector_registry.get_sample_value(name, labels)

    def status_of(self, flow: str) -> float | None:
        return self.sample("watchdog_status", flow=flow)

    def expose(self) -> bytes:
        """Render all series in the Prometheus text exposition format."""
        return generate_latest(self.collector_registry)
