"""Tests for chainwatch.flows.transfer."""

from __future__ import annotations

import asyncio

from chainwatch._lock import Mutex
from chainwatch._registry import MetricsRegistry
from chainwatch._types import RetryBudget, TransferRequest
from chainwatch.flows.transfer import TransferFlow
from tests.fakes import WALLET_ADDRESS, FakeChain


def _flow(
    chain: FakeChain,
    metrics: MetricsRegistry,
    *,
    limit: int = 3,
    execution_timeout_ms: int = 1000,
    paymaster: str | None = None,
) -> TransferFlow:
    return TransferFlow(
        chain.wallet,
        metrics,
        l2_wallet_lock=Mutex(),
        interval_ms=0,
        retry=RetryBudget(limit=limit, interval_ms=0),
        execution_timeout_ms=execution_timeout_ms,
        paymaster_address=paymaster,
    )


class TestTransferFlow:
    def test_successful_cycle(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        flow = _flow(chain, metrics)
        asyncio.run(flow.run(iterations=1))

        assert metrics.status_of("transfer") == 1.0
        assert len(chain.wallet.sent) == 1
        tx = chain.wallet.sent[0]
        assert tx.to == WALLET_ADDRESS
        assert tx.value == 1
        run = metrics.last_run("transfer")
        assert run is not None
        assert [s.name for s in run.steps] == ["estimation", "send", "execution"]
        for stage in ("estimation", "send", "execution"):
            assert metrics.sample("watchdog_latency", flow="transfer", stage=stage) is not None
        assert metrics.sample("watchdog_step_gas", flow="transfer", step="execution") == 21_000

    def test_uses_current_nonce(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.wallet.nonce = 7
        asyncio.run(_flow(chain, metrics).run(iterations=1))
        request = chain.wallet.requests[0]
        assert isinstance(request, TransferRequest)
        assert request.nonce == 7

    def test_paymaster_sends_zero_value(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        flow = _flow(chain, metrics, paymaster="0xpaymaster")
        request = flow.transfer_request()
        assert request.value == 0
        assert request.paymaster == "0xpaymaster"

    def test_reverted_transfer_is_retried(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.l2_status = 0
        asyncio.run(_flow(chain, metrics, limit=3).run(iterations=1))
        assert metrics.status_of("transfer") == 0.0
        assert len(chain.wallet.sent) == 3

    def test_execution_timeout_fails(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        chain.l2_hang = True
        asyncio.run(_flow(chain, metrics, limit=1, execution_timeout_ms=20).run(iterations=1))
        assert metrics.status_of("transfer") == 0.0
        assert metrics.sample("watchdog_latency", flow="transfer", stage="execution") is None
        run = metrics.last_run("transfer")
        assert run is not None
        step = run.step("execution")
        assert step is not None and not step.completed

    def test_recovers_within_budget(self, chain: FakeChain, metrics: MetricsRegistry) -> None:
        original = chain.wallet.populate_transfer
        calls = 0

        async def flaky(request: TransferRequest):  # type: ignore[no-untyped-def]
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("estimation failed")
            return await original(request)

        chain.wallet.populate_transfer = flaky  # type: ignore[method-assign]
        asyncio.run(_flow(chain, metrics, limit=3).run(iterations=1))
        assert calls == 2
        assert metrics.status_of("transfer") == 1.0
