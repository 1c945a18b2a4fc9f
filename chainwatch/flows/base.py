"""Common machinery of every monitoring flow: the periodic loop and the attempt boundary."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import ClassVar

from chainwatch._errors import AdmissionRefused, LogicError
from chainwatch._recorder import FlowMetricRecorder
from chainwatch._registry import MetricsRegistry
from chainwatch._types import MIN, SEC, FlowStatus
from chainwatch.backends.base import TracingBackend

# Step names shared across flows.
ESTIMATION = "estimation"
SEND = "send"
EXECUTION = "execution"
L1_EXECUTION = "l1_execution"
L2_EXECUTION = "l2_execution"
GET_FINALIZATION_PARAMS = "get_finalization_params"
L1_SIMULATION = "l1_simulation"

ESTIMATION_TIMEOUT_MS = 10 * SEC
SEND_TIMEOUT_MS = 10 * SEC
L1_EXECUTION_TIMEOUT_MS = 3 * MIN


class BaseFlow(ABC):
    """A periodically executed monitoring flow.

    Subclasses set :attr:`name` and implement :meth:`run_cycle`; they may
    override :meth:`prepare` for work done once before the first cycle.
    """

    name: ClassVar[str]

    def __init__(
        self,
        metrics: MetricsRegistry,
        *,
        interval_ms: int,
        tracer: TracingBackend | None = None,
    ) -> None:
        self.metrics = metrics
        self.interval_ms = interval_ms
        self.recorder = FlowMetricRecorder(self.name, metrics, tracer)
        self.logger = logging.getLogger(f"chainwatch.flows.{self.name}")

    async def run(self, iterations: int | None = None) -> None:
        """Run cycles every ``interval_ms`` forever, or *iterations* times.

        A cycle that overruns the interval is followed immediately by the next.
        """
        self.logger.info("Starting %s flow with interval %.0f s", self.name, self.interval_ms / SEC)
        await self.prepare()
        loop = asyncio.get_running_loop()
        done = 0
        while iterations is None or done < iterations:
            deadline = loop.time() + self.interval_ms / SEC
            await self.run_cycle()
            done += 1
            if iterations is not None and done >= iterations:
                break
            await asyncio.sleep(max(0.0, deadline - loop.time()))

    async def prepare(self) -> None:
        """Hook run once before the first cycle."""

    @abstractmethod
    async def run_cycle(self) -> None:
        """Execute one scheduled cycle."""

    async def guarded(self, attempt: Callable[[], Awaitable[FlowStatus]]) -> FlowStatus:
        """Run a single attempt, turning every non-logic failure into a status.

        :class:`AdmissionRefused` seals the run as skipped; any other error
        seals it as failed. :class:`LogicError` propagates and ends the loop.
        """
        try:
            return await attempt()
        except LogicError:
            raise
        except AdmissionRefused as exc:
            self.logger.warning("Skipping %s: %s", self.name, exc)
            self.recorder.record_flow_skipped()
            return FlowStatus.SKIP
        except Exception as exc:
            self.logger.error("Error during %s flow execution: %s", self.name, exc, exc_info=True)
            self.recorder.record_flow_failure()
            return FlowStatus.FAIL

    async def sleep_ms(self, ms: float) -> None:
        await asyncio.sleep(ms / SEC)
