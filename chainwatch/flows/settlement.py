"""Settlement lag flow: how long the oldest unsettled L2 block has been waiting."""

from __future__ import annotations

from chainwatch._errors import RpcError, SettlementDeadlineExceeded
from chainwatch._recorder import StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._types import SEC, FlowStatus
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import ChainProvider
from chainwatch.flows.base import BaseFlow

SETTLEMENT = "settlement"
SETTLEMENT_TIMEOUT_MS = 2 * SEC


class SettlementFlow(BaseFlow):
    name = "settlement"

    def __init__(
        self,
        l1: ChainProvider,
        l2: ChainProvider,
        metrics: MetricsRegistry,
        *,
        interval_ms: int,
        deadline_ms: int,
        tracer: TracingBackend | None = None,
    ) -> None:
        super().__init__(metrics, interval_ms=interval_ms, tracer=tracer)
        self.l1 = l1
        self.l2 = l2
        self.deadline_ms = deadline_ms
        self.settlement_age = metrics.gauge(
            "watchdog_settlement_age",
            "Age of the oldest unsettled block in seconds (0 if no unsettled blocks)",
        )

    async def measure_settlement_age(self, _hooks: StepHooks) -> int:
        """Return the settlement age in seconds and publish it."""
        settled = await self.l2.get_block("finalized")
        if settled is None:
            raise RpcError("Failed to get last settled block")
        self.logger.debug("Last settled block number: %d", settled.number)

        unsettled = await self.l2.get_block(settled.number + 1)
        if unsettled is None:
            self.logger.debug("No unsettled blocks found")
            self.settlement_age.set(0)
            return 0

        l1_block = await self.l1.get_block("latest")
        if l1_block is None:
            raise RpcError("Failed to get L1 block")
        age = l1_block.timestamp - unsettled.timestamp
        self.logger.debug("Block %d unsettled for %d seconds", unsettled.number, age)
        self.settlement_age.set(age)
        if age * SEC > self.deadline_ms:
            raise SettlementDeadlineExceeded(age, self.deadline_ms // SEC)
        return age

    async def _attempt(self) -> FlowStatus:
        self.recorder.record_flow_start()
        await self.recorder.step_execution(
            SETTLEMENT, SETTLEMENT_TIMEOUT_MS, self.measure_settlement_age
        )
        self.recorder.record_flow_success()
        return FlowStatus.OK

    async def run_cycle(self) -> None:
        await self.guarded(self._attempt)
