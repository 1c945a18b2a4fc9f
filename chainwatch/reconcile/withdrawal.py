"""Withdrawal (L2→L1) reconciliation."""

from __future__ import annotations

import logging

from chainwatch._errors import ReconciliationAmbiguous, RpcError
from chainwatch._types import BlockTag, WithdrawalExecution
from chainwatch.chain.base import Bridge, ChainProvider
from chainwatch.reconcile.deposit import latest_event

logger = logging.getLogger("chainwatch.reconcile.withdrawal")


class WithdrawalHistoryReader:
    """Finds the most recent base-token withdrawal on L2.

    A *max_log_blocks* of 0 turns the lookup off; every query then reports
    that no withdrawal exists.
    """

    def __init__(self, l2: ChainProvider, bridge: Bridge, *, max_log_blocks: int) -> None:
        self._l2 = l2
        self._bridge = bridge
        self.max_log_blocks = max_log_blocks

    async def get_last_execution(
        self, block_tag: BlockTag, address: str | None
    ) -> WithdrawalExecution | None:
        """Return the latest withdrawal at or below the *block_tag* block, or ``None``."""
        if self.max_log_blocks == 0:
            return None
        top = await self._l2.get_block(block_tag)
        if top is None:
            raise RpcError(f"L2 returned no {block_tag} block", method="eth_getBlockByNumber")
        log_filter = self._bridge.withdrawal_log_filter(address).with_range(
            max(top.number - self.max_log_blocks, 0), top.number
        )
        event = latest_event(await self._l2.get_logs(log_filter))
        if event is None:
            logger.info("No %s withdrawals found for %s", block_tag, address or "any wallet")
            return None

        block = await self._l2.get_block(event.block_number)
        if block is None:
            raise RpcError(f"L2 block {event.block_number} of withdrawal {event.tx_hash} not found")
        receipt = await self._l2.get_transaction_receipt(event.tx_hash)
        if receipt is None:
            raise ReconciliationAmbiguous(f"No L2 receipt for withdrawal event in {event.tx_hash}")
        return WithdrawalExecution(l2_receipt=receipt, timestamp_l2=block.timestamp)

    async def current_l2_timestamp(self) -> int:
        return await self._block_timestamp("latest")

    async def latest_finalized_block_timestamp(self) -> int:
        return await self._block_timestamp("finalized")

    async def _block_timestamp(self, tag: BlockTag) -> int:
        block = await self._l2.get_block(tag)
        if block is None:
            raise RpcError(f"L2 returned no {tag} block", method="eth_getBlockByNumber")
        return block.timestamp
