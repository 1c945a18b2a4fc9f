"""Tests for chainwatch.reconcile.withdrawal."""

from __future__ import annotations

import asyncio

from chainwatch.reconcile.withdrawal import WithdrawalHistoryReader
from tests.fakes import OTHER_ADDRESS, WALLET_ADDRESS, FakeChain


def _reader(chain: FakeChain, window: int = 50_000) -> WithdrawalHistoryReader:
    return WithdrawalHistoryReader(chain.l2, chain.bridge, max_log_blocks=window)


class TestGetLastExecution:
    def test_none_found(self, chain: FakeChain) -> None:
        assert asyncio.run(_reader(chain).get_last_execution("latest", WALLET_ADDRESS)) is None

    def test_latest(self, chain: FakeChain) -> None:
        receipt = chain.add_withdrawal(WALLET_ADDRESS)
        execution = asyncio.run(_reader(chain).get_last_execution("latest", WALLET_ADDRESS))
        assert execution is not None
        assert execution.l2_receipt.tx_hash == receipt.tx_hash
        assert execution.timestamp_l2 == chain.l2.blocks[receipt.block_number].timestamp

    def test_finalized_ignores_newer_blocks(self, chain: FakeChain) -> None:
        finalized = chain.add_withdrawal(WALLET_ADDRESS, finalized=True)
        chain.add_withdrawal(WALLET_ADDRESS)
        reader = _reader(chain)

        at_finalized = asyncio.run(reader.get_last_execution("finalized", WALLET_ADDRESS))
        at_latest = asyncio.run(reader.get_last_execution("latest", WALLET_ADDRESS))

        assert at_finalized is not None
        assert at_finalized.l2_receipt.tx_hash == finalized.tx_hash
        assert at_latest is not None
        assert at_latest.l2_receipt.tx_hash != finalized.tx_hash

    def test_nothing_finalized_yet(self, chain: FakeChain) -> None:
        chain.add_withdrawal(WALLET_ADDRESS)
        assert asyncio.run(_reader(chain).get_last_execution("finalized", WALLET_ADDRESS)) is None

    def test_address_filter(self, chain: FakeChain) -> None:
        chain.add_withdrawal(OTHER_ADDRESS)
        reader = _reader(chain)
        assert asyncio.run(reader.get_last_execution("latest", WALLET_ADDRESS)) is None
        assert asyncio.run(reader.get_last_execution("latest", None)) is not None

    def test_zero_window_disables_lookup(self, chain: FakeChain) -> None:
        chain.add_withdrawal(WALLET_ADDRESS)
        assert asyncio.run(_reader(chain, window=0).get_last_execution("latest", None)) is None
        assert chain.l2.log_queries == []


class TestTimestamps:
    def test_latest_and_finalized(self, chain: FakeChain) -> None:
        chain.add_withdrawal(WALLET_ADDRESS, finalized=True)
        latest = chain.l2.mine()
        reader = _reader(chain)
        assert asyncio.run(reader.current_l2_timestamp()) == latest.timestamp
        finalized = chain.l2.blocks[chain.l2.finalized].timestamp
        assert asyncio.run(reader.latest_finalized_block_timestamp()) == finalized
