"""Deposit-user assurance flow.

Watches deposits made by anybody. As long as some deposit succeeded within
the trigger delay, the flow only reports it; when deposits go quiet the
watchdog sends one itself, so the status never goes stale on an idle chain.
"""

from __future__ import annotations

from chainwatch._errors import LogicError
from chainwatch._lock import Mutex
from chainwatch._registry import MetricsRegistry
from chainwatch._retry import run_with_retries
from chainwatch._types import SEC, ExecutionKnown, FlowStatus, RetryBudget
from chainwatch.backends.base import TracingBackend
from chainwatch.chain.base import Bridge, ChainProvider, Wallet
from chainwatch.flows.base import BaseFlow
from chainwatch.flows.deposit import DepositExecutor, record_deposit_result
from chainwatch.reconcile.deposit import DepositHistoryReader


class DepositUserFlow(BaseFlow):
    name = "depositUser"

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
        trigger_delay_ms: int,
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
        self.trigger_delay_ms = trigger_delay_ms
        self.retry = retry
        # L1 time of the watchdog's own latest submission attempt; counts as
        # deposit activity even when the submission never reached L1.
        self.last_submission_timestamp_l1 = 0
        self._cycle_timestamp_l1 = 0
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
            on_submit=self._mark_submission,
        )

    def _mark_submission(self) -> None:
        self.last_submission_timestamp_l1 = self._cycle_timestamp_l1

    async def run_cycle(self) -> None:
        try:
            now = await self.history.current_l1_timestamp()
            latest = await self.history.get_last_execution(None)
        except LogicError:
            raise
        except Exception as exc:
            self.logger.error("Deposit reconciliation failed: %s", exc)
            self.recorder.manual_record_status(FlowStatus.FAIL)
            return

        if isinstance(latest, ExecutionKnown):
            record_deposit_result(self.recorder, latest)

        last_success = latest.timestamp_l1 if latest.status is FlowStatus.OK else 0
        last_activity = max(last_success, self.last_submission_timestamp_l1)
        idle_s = now - last_activity
        if idle_s * SEC <= self.trigger_delay_ms:
            self.logger.debug("Last deposit activity %d seconds ago, not depositing", idle_s)
            return

        self.logger.info(
            "No deposit detected in the last %d seconds, starting deposit transaction", idle_s
        )
        self._cycle_timestamp_l1 = now
        await run_with_retries(
            lambda: self.l1_wallet_lock.with_lock(self.execute_watchdog_deposit),
            self.retry,
            flow_name=self.name,
        )

    async def execute_watchdog_deposit(self) -> FlowStatus:
        return await self.guarded(self._attempt)

    async def _attempt(self) -> FlowStatus:
        self.recorder.record_flow_start()
        result = await self.executor.execute()
        if result.status is FlowStatus.FAIL:
            self.logger.error("Watchdog deposit %s failed on L2", result.l1_receipt.tx_hash)
            self.recorder.record_flow_failure()
            return FlowStatus.FAIL
        self.logger.info("Watchdog deposit %s executed on L2", result.l1_receipt.tx_hash)
        self.recorder.record_flow_success()
        return FlowStatus.OK
