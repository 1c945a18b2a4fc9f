"""Per-flow metric recorder: run lifecycle, timed steps, gas figures."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from chainwatch._context import FlowContext, bind_run, clear_run
from chainwatch._errors import LogicError
from chainwatch._registry import MetricsRegistry
from chainwatch._timer import with_timeout
from chainwatch._types import FlowRun, FlowStatus, Numberish, R, StepRecord
from chainwatch.backends.base import TracingBackend
from chainwatch.backends.logging import LoggingBackend

logger = logging.getLogger("chainwatch.recorder")


def _to_int(value: Numberish) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _now_ms() -> int:
    return int(time.time() * 1000)


class StepHooks:
    """Callbacks handed to a step body so it can report gas figures."""

    __slots__ = ("_recorder", "_record", "step_name")

    def __init__(self, recorder: FlowMetricRecorder, step_name: str, record: StepRecord) -> None:
        self._recorder = recorder
        self._record = record
        self.step_name = step_name

    def record_gas(self, gas: Numberish) -> None:
        self._record.gas_used = _to_int(gas)
        self._recorder.manual_record_step_gas(self.step_name, gas)

    def record_gas_price(self, price: Numberish) -> None:
        self._record.gas_price = _to_int(price)
        self._recorder.manual_record_step_gas_price(self.step_name, price)

    def record_gas_cost(self, cost: Numberish) -> None:
        self._record.gas_cost = _to_int(cost)
        self._recorder.manual_record_step_gas_cost(self.step_name, cost)


class FlowMetricRecorder:
    """Records one flow's runs into a shared :class:`MetricsRegistry`.

    A run is opened by :meth:`record_flow_start` and sealed by exactly one of
    :meth:`record_flow_success`, :meth:`record_flow_failure` or
    :meth:`record_flow_skipped`. Starting a second run while one is open is a
    :class:`LogicError`.
    """

    def __init__(
        self,
        flow_name: str,
        metrics: MetricsRegistry,
        tracer: TracingBackend | None = None,
    ) -> None:
        self.flow_name = flow_name
        self._metrics = metrics
        self._tracer = tracer if tracer is not None else LoggingBackend()
        self._run: FlowRun | None = None
        self._last_step_latency: float | None = None
        self._last_total_latency: float | None = None

    @property
    def current_run(self) -> FlowRun | None:
        return self._run

    @property
    def last_step_latency(self) -> float | None:
        return self._last_step_latency

    @property
    def last_total_latency(self) -> float | None:
        return self._last_total_latency

    # -- lifecycle ------------------------------------------------------------

    def record_flow_start(self) -> FlowRun:
        if self._run is not None:
            raise LogicError(
                f"Flow '{self.flow_name}' started while run {self._run.run_id} is still open"
            )
        run_id = uuid.uuid4().hex
        self._run = FlowRun(flow_name=self.flow_name, run_id=run_id, started_at=time.time())
        bind_run(FlowContext(self.flow_name, run_id=run_id))
        logger.info("flow.start", extra={"flow": self.flow_name, "correlation_id": run_id})
        return self._run

    def record_flow_success(self) -> None:
        if self._run is None:
            raise LogicError(f"Flow '{self.flow_name}' succeeded without a recorded start")
        run = self._seal(FlowStatus.OK)
        latency = run.total_latency_s or 0.0
        self._metrics.publish_latency_total(self.flow_name, latency)
        self._last_total_latency = latency
        logger.info(
            "flow.success",
            extra={"flow": self.flow_name, "correlation_id": run.run_id, "latency_s": latency},
        )

    def record_flow_failure(self) -> None:
        run = self._seal(FlowStatus.FAIL)
        logger.error("flow.failure", extra={"flow": self.flow_name, "correlation_id": run.run_id})

    def record_flow_skipped(self) -> None:
        run = self._seal(FlowStatus.SKIP)
        logger.warning("flow.skipped", extra={"flow": self.flow_name, "correlation_id": run.run_id})

    def _seal(self, status: FlowStatus) -> FlowRun:
        # Failures and skips may be reported before a start was recorded
        # (e.g. a lookup preceding the start raised); they still seal a run.
        run = self._run
        if run is None:
            run = FlowRun(flow_name=self.flow_name, run_id=uuid.uuid4().hex, started_at=time.time())
        run.status = status
        run.finished_at = time.time()
        self._run = None
        clear_run()
        self._metrics.publish_status(self.flow_name, status)
        self._metrics.store_run(run)
        return run

    # -- steps ----------------------------------------------------------------

    async def step_execution(
        self,
        step_name: str,
        timeout_ms: float,
        fn: Callable[[StepHooks], Awaitable[R]],
    ) -> R:
        """Run ``fn(hooks)`` as step *step_name* with a deadline of *timeout_ms*.

        Returns what *fn* returns, or propagates its failure (including
        :class:`~chainwatch._errors.StepTimeout`). The step is recorded on the
        open run either way; latency and completion time are published only
        when it completes.
        """
        record = StepRecord(name=step_name, latency_s=0.0, end_timestamp_ms=0, completed=False)
        hooks = StepHooks(self, step_name, record)
        start = time.monotonic()
        try:
            with self._tracer.span(self.flow_name, step_name, timeout_ms):
                result = await with_timeout(fn(hooks), timeout_ms, f"step {step_name}")
        except BaseException:
            record.latency_s = time.monotonic() - start
            record.end_timestamp_ms = _now_ms()
            self._append(record)
            raise
        record.latency_s = time.monotonic() - start
        record.end_timestamp_ms = _now_ms()
        record.completed = True
        self._append(record)
        self._last_step_latency = record.latency_s
        self._metrics.publish_step_completion(
            self.flow_name, step_name, record.latency_s, record.end_timestamp_ms
        )
        logger.info(
            "step.completed",
            extra={"flow": self.flow_name, "step": step_name, "latency_s": record.latency_s},
        )
        return result

    def _append(self, record: StepRecord) -> None:
        if self._run is not None:
            self._run.steps.append(record)

    # -- out-of-band recording ------------------------------------------------

    def manual_record_status(self, status: FlowStatus, latency_s: float = 0.0) -> None:
        """Publish an outcome reconstructed from chain history rather than a live run."""
        self._metrics.publish_status(self.flow_name, status)
        if status is FlowStatus.OK:
            self._metrics.publish_latency_total(self.flow_name, latency_s)
            self._last_total_latency = latency_s

    def manual_record_step_completion(
        self, step_name: str, latency_s: float, timestamp_s: float
    ) -> None:
        self._metrics.publish_step_completion(
            self.flow_name, step_name, latency_s, int(timestamp_s * 1000)
        )

    def manual_record_step_gas(self, step_name: str, gas: Numberish) -> None:
        self._metrics.publish_step_gas(self.flow_name, step_name, "gas", _to_int(gas))

    def manual_record_step_gas_price(self, step_name: str, price: Numberish) -> None:
        self._metrics.publish_step_gas(self.flow_name, step_name, "gas_price", _to_int(price))

    def manual_record_step_gas_cost(self, step_name: str, cost: Numberish) -> None:
        self._metrics.publish_step_gas(self.flow_name, step_name, "gas_cost", _to_int(cost))
