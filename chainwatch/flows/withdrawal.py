"""L2→L1 withdrawal flow. Submits withdrawals; finalization is watched separately."""

from __future__ import annotations

from dataclasses import replace

from chainwatch._context import annotate_run
from chainwatch._errors import LogicError, TransactionReverted
from chainwatch._lock import Mutex
from chainwatch._recorder import StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._retry import run_with_retries
from chainwatch._types import SEC, FlowStatus, PopulatedTx, Receipt, RetryBudget, WithdrawalRequest
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import Bridge, TxHandle, Wallet
from chainwatch.flows.base import (
    ESTIMATION,
    ESTIMATION_TIMEOUT_MS,
    L2_EXECUTION,
    SEND,
    SEND_TIMEOUT_MS,
    BaseFlow,
)
from chainwatch.reconcile.withdrawal import WithdrawalHistoryReader

ZKSYNC_OS_GAS_LIMIT = 1_000_000


class WithdrawalFlow(BaseFlow):
    name = "withdrawal"

    def __init__(
        self,
        wallet: Wallet,
        bridge: Bridge,
        history: WithdrawalHistoryReader,
        metrics: MetricsRegistry,
        *,
        l2_wallet_lock: Mutex,
        interval_ms: int,
        retry: RetryBudget,
        execution_timeout_ms: int,
        paymaster_address: str | None = None,
        zksync_os: bool = False,
        tracer: TracingBackend | None = None,
    ) -> None:
        super().__init__(metrics, interval_ms=interval_ms, tracer=tracer)
        self.wallet = wallet
        self.bridge = bridge
        self.history = history
        self.l2_wallet_lock = l2_wallet_lock
        self.retry = retry
        self.execution_timeout_ms = execution_timeout_ms
        self.paymaster_address = paymaster_address
        self.zksync_os = zksync_os

    def withdrawal_request(self) -> WithdrawalRequest:
        return WithdrawalRequest(
            to=self.wallet.address,
            token=self.bridge.base_token_l2_address,
            amount=0 if self.paymaster_address is not None else 1,
            paymaster=self.paymaster_address,
            gas_limit=ZKSYNC_OS_GAS_LIMIT if self.zksync_os else None,
        )

    async def prepare(self) -> None:
        """Report the previous withdrawal, if any, and keep the schedule across restarts."""
        try:
            last = await self.history.get_last_execution("latest", self.wallet.address)
            now = await self.history.current_l2_timestamp()
        except LogicError:
            raise
        except Exception as exc:
            self.logger.error("Could not reconcile previous withdrawal: %s", exc)
            return
        if last is None:
            return
        self.recorder.manual_record_status(FlowStatus.OK)
        elapsed_ms = (now - last.timestamp_l2) * SEC
        if elapsed_ms < self.interval_ms:
            wait_ms = self.interval_ms - elapsed_ms
            self.logger.info("Waiting %.0f seconds before starting withdrawal flow", wait_ms / SEC)
            await self.sleep_ms(wait_ms)

    async def execute_withdrawal(self) -> FlowStatus:
        return await self.guarded(self._attempt)

    async def _attempt(self) -> FlowStatus:
        self.recorder.record_flow_start()
        request = self.withdrawal_request()

        async def estimate(hooks: StepHooks) -> PopulatedTx:
            nonce = await self.wallet.get_nonce("latest")
            populated = await self.wallet.populate_withdrawal(replace(request, nonce=nonce))
            hooks.record_gas(populated.gas_limit)
            hooks.record_gas_price(populated.max_fee_per_gas)
            hooks.record_gas_cost(populated.max_cost)
            return populated

        populated = await self.recorder.step_execution(ESTIMATION, ESTIMATION_TIMEOUT_MS, estimate)

        async def send(_hooks: StepHooks) -> TxHandle:
            return await self.wallet.send_transaction(populated)

        handle = await self.recorder.step_execution(SEND, SEND_TIMEOUT_MS, send)
        annotate_run("tx_hash", handle.hash)
        self.logger.info("Withdrawal %s sent on L2", handle.hash)

        async def l2_execution(hooks: StepHooks) -> Receipt:
            receipt = await handle.wait(1)
            hooks.record_gas(receipt.gas_used)
            hooks.record_gas_price(receipt.gas_price)
            hooks.record_gas_cost(receipt.gas_cost)
            if not receipt.succeeded:
                raise TransactionReverted(receipt.tx_hash)
            return receipt

        await self.recorder.step_execution(L2_EXECUTION, self.execution_timeout_ms, l2_execution)
        self.logger.info("Withdrawal %s included in L2 block", handle.hash)
        self.recorder.record_flow_success()
        return FlowStatus.OK

    async def run_cycle(self) -> None:
        await run_with_retries(
            lambda: self.l2_wallet_lock.with_lock(self.execute_withdrawal),
            self.retry,
            flow_name=self.name,
        )
