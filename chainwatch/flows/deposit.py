"""Watchdog deposits (L1→L2) and the scheduled deposit flow."""

from __future__ import annotations

from collections.abc import Callable

from chainwatch._context import annotate_run
from chainwatch._errors import (
    AdmissionRefused,
    LogicError,
    ReconciliationAmbiguous,
    RpcError,
    TransactionReverted,
)
from chainwatch._lock import Mutex
from chainwatch._recorder import FlowMetricRecorder, StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._retry import run_with_retries
from chainwatch._types import (
    SEC,
    DepositRequest,
    ExecutionKnown,
    ExecutionResult,
    ExecutionUnknown,
    FlowStatus,
    PopulatedTx,
    Receipt,
    RetryBudget,
)
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import Bridge, ChainProvider, DepositHandle, Wallet
from chainwatch.flows.base import (
    ESTIMATION,
    ESTIMATION_TIMEOUT_MS,
    L1_EXECUTION,
    L1_EXECUTION_TIMEOUT_MS,
    L2_EXECUTION,
    SEND,
    SEND_TIMEOUT_MS,
    BaseFlow,
)
from chainwatch.reconcile.deposit import DepositHistoryReader

ZKSYNC_OS_L2_GAS_LIMIT = 1_000_000


def record_deposit_result(recorder: FlowMetricRecorder, result: ExecutionResult) -> None:
    """Publish a reconciled deposit through the recorder's out-of-band path."""
    if isinstance(result, ExecutionUnknown):
        raise LogicError("Cannot record a deposit that was never found")
    if result.status is FlowStatus.FAIL:
        recorder.manual_record_status(FlowStatus.FAIL, 0)
        return
    assert result.l2_receipt is not None and result.timestamp_l2 is not None
    latency = result.timestamp_l2 - result.timestamp_l1
    recorder.manual_record_status(FlowStatus.OK, latency)
    recorder.manual_record_step_completion(L2_EXECUTION, latency, result.timestamp_l2)
    for step, receipt in ((L1_EXECUTION, result.l1_receipt), (L2_EXECUTION, result.l2_receipt)):
        recorder.manual_record_step_gas(step, receipt.gas_used)
        recorder.manual_record_step_gas_price(step, receipt.gas_price)
        recorder.manual_record_step_gas_cost(step, receipt.gas_cost)


class DepositExecutor:
    """Sends one 1 wei base-token deposit and follows it to L2.

    Shared by the scheduled deposit flow and the deposit-user flow; each
    passes its own recorder. The caller owns the run: it records the start
    before :meth:`execute` and seals it afterwards.
    """

    def __init__(
        self,
        wallet: Wallet,
        l1: ChainProvider,
        l2: ChainProvider,
        bridge: Bridge,
        history: DepositHistoryReader,
        recorder: FlowMetricRecorder,
        *,
        gas_price_limit_wei: int,
        l2_timeout_ms: int,
        zksync_os: bool = False,
        on_submit: Callable[[], None] | None = None,
    ) -> None:
        self.wallet = wallet
        self.l1 = l1
        self.l2 = l2
        self.bridge = bridge
        self.history = history
        self.recorder = recorder
        self.gas_price_limit_wei = gas_price_limit_wei
        self.l2_timeout_ms = l2_timeout_ms
        self.zksync_os = zksync_os
        self.on_submit = on_submit

    def deposit_request(self) -> DepositRequest:
        return DepositRequest(
            to=self.wallet.address,
            token=self.bridge.base_token_l1_address,
            amount=1,
            refund_recipient=self.wallet.address,
            # Pinning the limit avoids an L1→L2 gas estimation call.
            l2_gas_limit=ZKSYNC_OS_L2_GAS_LIMIT if self.zksync_os else None,
        )

    async def check_gas_price(self) -> int:
        """Return the current L1 fee, or raise :class:`AdmissionRefused` above the ceiling."""
        fee = (await self.l1.get_fee_data()).effective_fee
        if fee is None:
            raise RpcError("L1 fee data carries neither max fee nor gas price")
        if fee > self.gas_price_limit_wei:
            raise AdmissionRefused(fee, self.gas_price_limit_wei)
        return fee

    async def execute(self) -> ExecutionKnown:
        """Submit a deposit and return its reconciled outcome."""
        await self.check_gas_price()

        async def estimate(hooks: StepHooks) -> PopulatedTx:
            populated = await self.wallet.populate_deposit(self.deposit_request())
            hooks.record_gas(populated.gas_limit)
            hooks.record_gas_price(populated.max_fee_per_gas)
            hooks.record_gas_cost(populated.max_cost)
            return populated

        populated = await self.recorder.step_execution(ESTIMATION, ESTIMATION_TIMEOUT_MS, estimate)

        if self.on_submit is not None:
            self.on_submit()

        async def send(_hooks: StepHooks) -> DepositHandle:
            return await self.wallet.send_deposit(populated)

        handle = await self.recorder.step_execution(SEND, SEND_TIMEOUT_MS, send)
        annotate_run("tx_hash", handle.hash)

        async def l1_execution(hooks: StepHooks) -> Receipt:
            receipt = await handle.wait_l1_commit(1)
            hooks.record_gas(receipt.gas_used)
            hooks.record_gas_price(receipt.gas_price)
            hooks.record_gas_cost(receipt.gas_cost)
            if not receipt.succeeded:
                raise TransactionReverted(receipt.tx_hash)
            return receipt

        l1_receipt = await self.recorder.step_execution(
            L1_EXECUTION, L1_EXECUTION_TIMEOUT_MS, l1_execution
        )
        l2_hash = self.bridge.l2_hash_from_priority_op(l1_receipt)

        async def l2_execution(hooks: StepHooks) -> Receipt:
            receipt = await self.l2.wait_for_transaction(l2_hash, 1)
            hooks.record_gas(receipt.gas_used)
            hooks.record_gas_price(receipt.gas_price)
            hooks.record_gas_cost(receipt.gas_cost)
            return receipt

        await self.recorder.step_execution(L2_EXECUTION, self.l2_timeout_ms, l2_execution)

        result = await self.history.get_last_execution(self.wallet.address)
        if isinstance(result, ExecutionUnknown):
            raise ReconciliationAmbiguous(
                f"Deposit {handle.hash} was mined on L1 but no deposit event was found"
            )
        if result.l1_receipt.tx_hash.lower() != l1_receipt.tx_hash.lower():
            raise ReconciliationAmbiguous(
                f"Latest deposit on chain is {result.l1_receipt.tx_hash}, expected {l1_receipt.tx_hash}"
            )
        return result


class DepositFlow(BaseFlow):
    """Deposits on a fixed schedule, whatever other depositors are doing."""

    name = "deposit"

    def __init__(
        self,
        wallet: Wallet,
        l1: ChainProvider,
        l2: ChainProvider,
        bridge: Bridge,
        history: DepositHistoryReader,
        metrics: MetricsRegistry,
        *,
        l1_wallet_lock: Mutex,
        interval_ms: int,
        retry: RetryBudget,
        gas_price_limit_wei: int,
        l2_timeout_ms: int,
        zksync_os: bool = False,
        tracer: TracingBackend | None = None,
    ) -> None:
        super().__init__(metrics, interval_ms=interval_ms, tracer=tracer)
        self.wallet = wallet
        self.history = history
        self.l1_wallet_lock = l1_wallet_lock
        self.retry = retry
        self.executor = DepositExecutor(
            wallet,
            l1,
            l2,
            bridge,
            history,
            self.recorder,
            gas_price_limit_wei=gas_price_limit_wei,
            l2_timeout_ms=l2_timeout_ms,
            zksync_os=zksync_os,
        )

    async def prepare(self) -> None:
        """Report the watchdog's previous deposit and keep the schedule across restarts."""
        try:
            last = await self.history.get_last_execution(self.wallet.address)
            if isinstance(last, ExecutionUnknown):
                return
            record_deposit_result(self.recorder, last)
            elapsed_ms = (await self.history.current_l1_timestamp() - last.timestamp_l1) * SEC
        except LogicError:
            raise
        except Exception as exc:
            self.logger.error("Could not reconcile previous deposit: %s", exc)
            return
        if elapsed_ms < self.interval_ms:
            wait_ms = self.interval_ms - elapsed_ms
            self.logger.info("Waiting %.0f seconds before starting deposit flow", wait_ms / SEC)
            await self.sleep_ms(wait_ms)

    async def execute_deposit(self) -> FlowStatus:
        return await self.guarded(self._attempt)

    async def _attempt(self) -> FlowStatus:
        self.recorder.record_flow_start()
        result = await self.executor.execute()
        if result.status is FlowStatus.FAIL:
            self.logger.error("Deposit %s failed on L2", result.l1_receipt.tx_hash)
            self.recorder.record_flow_failure()
            return FlowStatus.FAIL
        self.logger.info(
            "Deposit %s executed on L2 after %d seconds",
            result.l1_receipt.tx_hash,
            result.sec_since_l1_deposit,
        )
        self.recorder.record_flow_success()
        return FlowStatus.OK

    async def run_cycle(self) -> None:
        await run_with_retries(
            lambda: self.l1_wallet_lock.with_lock(self.execute_deposit),
            self.retry,
            flow_name=self.name,
        )
