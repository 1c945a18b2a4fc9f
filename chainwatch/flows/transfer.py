"""L2 self-transfer flow."""

from __future__ import annotations

from dataclasses import replace

from chainwatch._context import annotate_run
from chainwatch._errors import TransactionReverted
from chainwatch._lock import Mutex
from chainwatch._recorder import StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._retry import run_with_retries
from chainwatch._types import FlowStatus, PopulatedTx, Receipt, RetryBudget, TransferRequest
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import TxHandle, Wallet
from chainwatch.flows.base import (
    ESTIMATION,
    ESTIMATION_TIMEOUT_MS,
    EXECUTION,
    SEND,
    SEND_TIMEOUT_MS,
    BaseFlow,
)


class TransferFlow(BaseFlow):
    """Sends 1 wei to itself on L2 (or 0 wei through a paymaster) and waits for inclusion."""

    name = "transfer"

    def __init__(
        self,
        wallet: Wallet,
        metrics: MetricsRegistry,
        *,
        l2_wallet_lock: Mutex,
        interval_ms: int,
        retry: RetryBudget,
        execution_timeout_ms: int,
        paymaster_address: str | None = None,
        tracer: TracingBackend | None = None,
    ) -> None:
        super().__init__(metrics, interval_ms=interval_ms, tracer=tracer)
        self.wallet = wallet
        self.l2_wallet_lock = l2_wallet_lock
        self.retry = retry
        self.execution_timeout_ms = execution_timeout_ms
        self.paymaster_address = paymaster_address

    def transfer_request(self) -> TransferRequest:
        if self.paymaster_address is not None:
            # With a paymaster the wallet may hold no funds at all.
            return TransferRequest(to=self.wallet.address, value=0, paymaster=self.paymaster_address)
        return TransferRequest(to=self.wallet.address, value=1)

    async def execute_transfer(self) -> FlowStatus:
        return await self.guarded(self._attempt)

    async def _attempt(self) -> FlowStatus:
        self.recorder.record_flow_start()
        request = self.transfer_request()

        async def estimate(hooks: StepHooks) -> PopulatedTx:
            nonce = await self.wallet.get_nonce("latest")
            populated = await self.wallet.populate_transfer(replace(request, nonce=nonce))
            hooks.record_gas_price(populated.max_fee_per_gas)
            hooks.record_gas(populated.gas_limit)
            hooks.record_gas_cost(populated.max_cost)
            return populated

        populated = await self.recorder.step_execution(ESTIMATION, ESTIMATION_TIMEOUT_MS, estimate)

        async def send(_hooks: StepHooks) -> TxHandle:
            return await self.wallet.send_transaction(populated)

        handle = await self.recorder.step_execution(SEND, SEND_TIMEOUT_MS, send)
        annotate_run("tx_hash", handle.hash)

        async def execution(hooks: StepHooks) -> Receipt:
            receipt = await handle.wait(1)
            hooks.record_gas(receipt.gas_used)
            hooks.record_gas_price(receipt.gas_price)
            hooks.record_gas_cost(receipt.gas_cost)
            if not receipt.succeeded:
                raise TransactionReverted(receipt.tx_hash)
            return receipt

        await self.recorder.step_execution(EXECUTION, self.execution_timeout_ms, execution)
        self.logger.info("Transfer %s included in L2 block", handle.hash)
        self.recorder.record_flow_success()
        return FlowStatus.OK

    async def run_cycle(self) -> None:
        await run_with_retries(
            lambda: self.l2_wallet_lock.with_lock(self.execute_transfer),
            self.retry,
            flow_name=self.name,
        )
