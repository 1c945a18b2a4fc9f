"""Tests for chainwatch.flows.withdrawal and chainwatch.flows.withdrawal_finalize."""

from __future__ import annotations

import asyncio

from chainwatch._lock import Mutex
from chainwatch._registry import MetricsRegistry
from chainwatch._types import RetryBudget, WithdrawalRequest
from chainwatch.flows.withdrawal import WithdrawalFlow
from chainwatch.flows.withdrawal_finalize import WithdrawalFinalizeFlow
from chainwatch.reconcile.withdrawal import WithdrawalHistoryReader
from tests.fakes import BASE_TOKEN_L2, FINALIZE_GAS, OTHER_ADDRESS, WALLET_ADDRESS, FakeChain


def _history(chain: FakeChain) -> WithdrawalHistoryReader:
    return WithdrawalHistoryReader(chain.l2, chain.bridge, max_log_blocks=50_000)


def _withdrawal_flow(
    chain: FakeChain,
    metrics: MetricsRegistry,
    *,
    limit: int = 2,
    paymaster: str | None = None,
    zksync_os: bool = False,
) -> WithdrawalFlow:
    return WithdrawalFlow(
        chain.wallet,
        chain.bridge,
        _history(chain),
        metrics,
        l2_wallet_lock=Mutex(),
        interval_ms=0,
        retry=RetryBudget(limit=limit, interval_ms=0),
        execution_timeout_ms=1000,
        paymaster_address=paymaster,
        zksync_os=zksync_os,
    )


def _finalize_flow(chain: FakeChain, metrics: MetricsRegistry) -> WithdrawalFinalizeFlow:
    return WithdrawalFinalizeFlow(
        chain.wallet, chain.bridge, _history(chain), metrics, interval_ms=0
    )


class TestWithdrawalFlow:
    def test_successful_cycle(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        asyncio.run(_withdrawal_flow(chain, metrics).run(iterations=1))

        assert metrics.status_of("withdrawal") == 1.0
        request = chain.wallet.requests[0]
        assert isinstance(request, WithdrawalRequest)
        assert (request.to, request.token, request.amount) == (WALLET_ADDRESS, BASE_TOKEN_L2, 1)
        assert request.gas_limit is None
        run = metrics.last_run("withdrawal")
        assert run is not None
        assert [s.name for s in run.steps] == ["estimation", "send", "l2_execution"]
        # the withdrawal is visible to reconciliation afterwards
        assert asyncio.run(_history(chain).get_last_execution("latest", WALLET_ADDRESS)) is not None

    def test_paymaster_withdraws_zero(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        request = _withdrawal_flow(chain, metrics, paymaster="0xpaymaster").withdrawal_request()
        assert request.amount == 0
        assert request.paymaster == "0xpaymaster"

    def test_zksync_os_pins_gas_limit(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        request = _withdrawal_flow(chain, metrics, zksync_os=True).withdrawal_request()
        assert request.gas_limit == 1_000_000

    def test_reverted_withdrawal_is_retried(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.l2_status = 0
        asyncio.run(_withdrawal_flow(chain, metrics, limit=2).run(iterations=1))
        assert metrics.status_of("withdrawal") == 0.0
        assert len(chain.wallet.sent) == 2

    def test_prepare_reports_previous_withdrawal(
        self, chain: FakeChain, metrics: MetricsRegistry
    ) -> None:
        chain.add_withdrawal(WALLET_ADDRESS)
        asyncio.run(_withdrawal_flow(chain, metrics).prepare())
        assert metrics.status_of("withdrawal") == 1.0
        assert chain.wallet.sent == []

    def test_prepare_without_history(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        asyncio.run(_withdrawal_flow(chain, metrics).prepare())
        assert metrics.status_of("withdrawal") is None


class TestWithdrawalFinalizeFlow:
    def test_nothing_finalized_skips(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.add_withdrawal(WALLET_ADDRESS)
        asyncio.run(_finalize_flow(chain, metrics).run(iterations=1))

        assert metrics.status_of("withdrawalFinalize") == 0.5
        assert chain.bridge.params_calls == []

    def test_simulates_finalization(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        receipt = chain.add_withdrawal(WALLET_ADDRESS, finalized=True)
        for _ in range(3):
            chain.l2.mine()

        asyncio.run(_finalize_flow(chain, metrics).run(iterations=1))

        assert metrics.status_of("withdrawalFinalize") == 1.0
        assert chain.bridge.params_calls == [receipt.tx_hash]
        assert len(chain.bridge.estimate_calls) == 1
        assert (
            metrics.sample("watchdog_step_gas", flow="withdrawalFinalize", step="l1_simulation")
            == FINALIZE_GAS
        )
        assert metrics.sample("watchdog_time_since_last_finalizable_withdrawal") == 36
        assert metrics.sample("watchdog_time_since_last_finalized_block") is not None
        run = metrics.last_run("withdrawalFinalize")
        assert run is not None
        assert [s.name for s in run.steps] == ["get_finalization_params", "l1_simulation"]

    def test_not_base_token_fails(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.add_withdrawal(WALLET_ADDRESS, finalized=True)
        chain.bridge.params_sender = OTHER_ADDRESS

        asyncio.run(_finalize_flow(chain, metrics).run(iterations=1))

        assert metrics.status_of("withdrawalFinalize") == 0.0
        assert chain.bridge.estimate_calls == []

    def test_proof_fetch_error_fails(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.add_withdrawal(WALLET_ADDRESS, finalized=True)
        chain.bridge.errors["get_finalize_withdrawal_params"] = ConnectionError("no proof")

        asyncio.run(_finalize_flow(chain, metrics).run(iterations=1))

        assert metrics.status_of("withdrawalFinalize") == 0.0
        assert chain.bridge.estimate_calls == []

    def test_single_attempt_per_cycle(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.add_withdrawal(WALLET_ADDRESS, finalized=True)
        chain.bridge.errors["get_finalize_withdrawal_params"] = ConnectionError("no proof")
        asyncio.run(_finalize_flow(chain, metrics).run(iterations=1))
        assert len(chain.bridge.params_calls) == 1
