"""Withdrawal finalization check.

Takes the newest withdrawal inside a finalized L2 block, fetches its proof
and gas-estimates the L1 finalize call. Nothing is ever submitted, so the
claim path is exercised without paying for real finalizations.

Outcomes: no finalized withdrawal → SKIP; proof fetch failure → FAIL;
withdrawal not sent by the base token → FAIL; simulation succeeds → OK.
"""

from __future__ import annotations

import time

from chainwatch._errors import NotBaseTokenWithdrawal
from chainwatch._recorder import StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._types import FinalizeWithdrawalParams, FlowStatus
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import Bridge, Wallet
from chainwatch.flows.base import (
    ESTIMATION_TIMEOUT_MS,
    GET_FINALIZATION_PARAMS,
    L1_SIMULATION,
    BaseFlow,
)
from chainwatch.reconcile.withdrawal import WithdrawalHistoryReader


class WithdrawalFinalizeFlow(BaseFlow):
    name = "withdrawalFinalize"

    def __init__(
        self,
        wallet: Wallet,
        bridge: Bridge,
        history: WithdrawalHistoryReader,
        metrics: MetricsRegistry,
        *,
        interval_ms: int,
        tracer: TracingBackend | None = None,
    ) -> None:
        super().__init__(metrics, interval_ms=interval_ms, tracer=tracer)
        self.wallet = wallet
        self.bridge = bridge
        self.history = history
        self.time_since_last_finalizable_withdrawal = metrics.gauge(
            "watchdog_time_since_last_finalizable_withdrawal",
            "Blockchain seconds since the last finalizable withdrawal on L2",
        )
        self.time_since_last_finalized_block = metrics.gauge(
            "watchdog_time_since_last_finalized_block",
            "Real seconds since the last finalized block on L2",
        )

    async def execute_withdrawal_finalize(self) -> FlowStatus:
        return await self.guarded(self._attempt)

    async def _attempt(self) -> FlowStatus:
        execution = await self.history.get_last_execution("finalized", self.wallet.address)
        block_timestamp = await self.history.current_l2_timestamp()
        finalized_timestamp = await self.history.latest_finalized_block_timestamp()
        self.recorder.record_flow_start()

        if execution is None:
            self.logger.warning("No withdrawal found to try finalize")
            self.recorder.record_flow_skipped()
            return FlowStatus.SKIP

        withdrawal_hash = execution.l2_receipt.tx_hash
        self.time_since_last_finalizable_withdrawal.set(block_timestamp - execution.timestamp_l2)
        self.time_since_last_finalized_block.set(time.time() - finalized_timestamp)
        self.logger.info("Simulating finalization for withdrawal %s", withdrawal_hash)

        async def get_params(_hooks: StepHooks) -> FinalizeWithdrawalParams:
            return await self.bridge.get_finalize_withdrawal_params(withdrawal_hash)

        params = await self.recorder.step_execution(
            GET_FINALIZATION_PARAMS, ESTIMATION_TIMEOUT_MS, get_params
        )
        if params.sender.lower() != self.bridge.base_token_l2_address.lower():
            raise NotBaseTokenWithdrawal(withdrawal_hash, params.sender)

        async def simulate(hooks: StepHooks) -> int:
            gas = await self.bridge.estimate_finalize_withdrawal(params)
            hooks.record_gas(gas)
            return gas

        await self.recorder.step_execution(L1_SIMULATION, ESTIMATION_TIMEOUT_MS, simulate)
        self.logger.info("Finalization simulation for withdrawal %s successful", withdrawal_hash)
        self.recorder.record_flow_success()
        return FlowStatus.OK

    async def run_cycle(self) -> None:
        await self.execute_withdrawal_finalize()
