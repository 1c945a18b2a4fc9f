"""RPC liveness flow: one ``eth_blockNumber`` call per cycle."""

from __future__ import annotations

from typing import Any

from chainwatch._recorder import StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._types import SEC, FlowStatus
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import ChainProvider
from chainwatch.flows.base import BaseFlow

GET_BLOCK_NUMBER = "get_block_number"


class BlockNumberFlow(BaseFlow):
    name = "block_number"

    def __init__(
        self,
        provider: ChainProvider,
        metrics: MetricsRegistry,
        *,
        interval_ms: int,
        tracer: TracingBackend | None = None,
    ) -> None:
        super().__init__(metrics, interval_ms=interval_ms, tracer=tracer)
        self.provider = provider

    async def _attempt(self) -> FlowStatus:
        self.recorder.record_flow_start()

        async def get_block_number(_hooks: StepHooks) -> Any:
            resp = await self.provider.send("eth_blockNumber", [])
            self.logger.debug("eth_blockNumber response: %s", resp)
            return resp

        await self.recorder.step_execution(GET_BLOCK_NUMBER, SEC, get_block_number)
        self.recorder.record_flow_success()
        return FlowStatus.OK

    async def run_cycle(self) -> None:
        await self.guarded(self._attempt)
