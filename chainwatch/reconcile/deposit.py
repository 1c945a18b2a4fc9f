"""Deposit (L1→L2) reconciliation.

Finds the most recent base-token deposit initiated on L1, follows it to its
priority operation on L2 and reports how it ended. It does not matter who
sent the deposit, which is what lets the deposit-user flow stay passive
while somebody else is depositing.
"""

from __future__ import annotations

import asyncio
import logging

from chainwatch._errors import LogicError, ReconciliationAmbiguous, RpcError
from chainwatch._types import (
    ExecutionKnown,
    ExecutionResult,
    ExecutionUnknown,
    FlowStatus,
    LogEntry,
    Receipt,
)
from chainwatch.chain.base import Bridge, ChainProvider

logger = logging.getLogger("chainwatch.reconcile.deposit")


def latest_event(events: list[LogEntry]) -> LogEntry | None:
    """Return the event with the highest block number; ties keep query order."""
    if not events:
        return None
    return sorted(events, key=lambda e: e.block_number, reverse=True)[0]


class DepositHistoryReader:
    """Reconciles deposits from L1 event history.

    Parameters
    ----------
    l1, l2:
        Providers for the settlement and execution chain.
    bridge:
        Supplies the event filter and the L1 receipt → L2 hash derivation.
    max_log_blocks:
        Width of the L1 block window searched, ending at the current head.
        Keeps ``eth_getLogs`` within provider limits.
    l2_timeout_ms:
        How long to wait for the L2 side of a found deposit.
    """

    def __init__(
        self,
        l1: ChainProvider,
        l2: ChainProvider,
        bridge: Bridge,
        *,
        max_log_blocks: int,
        l2_timeout_ms: int,
    ) -> None:
        self._l1 = l1
        self._l2 = l2
        self._bridge = bridge
        self.max_log_blocks = max_log_blocks
        self.l2_timeout_ms = l2_timeout_ms

    async def current_l1_timestamp(self) -> int:
        block = await self._l1.get_block("latest")
        if block is None:
            raise RpcError("L1 returned no latest block", method="eth_getBlockByNumber")
        return block.timestamp

    async def get_last_execution(self, address: str | None) -> ExecutionResult:
        """Reconcile the latest deposit from *address*, or from anyone if ``None``.

        Returns :class:`ExecutionUnknown` when the window holds no deposit.
        A deposit whose L2 side failed, or did not show up within
        ``l2_timeout_ms``, comes back as ``ExecutionKnown`` with status FAIL.
        """
        head = await self._l1.get_block_number()
        now = await self.current_l1_timestamp()
        log_filter = self._bridge.deposit_log_filter(self._bridge.chain_id, address).with_range(
            max(head - self.max_log_blocks, 0), head
        )
        event = latest_event(await self._l1.get_logs(log_filter))
        who = address or "any wallet"
        if event is None:
            logger.info("No deposits found for %s", who)
            return ExecutionUnknown()

        block = await self._l1.get_block(event.block_number)
        if block is None:
            raise RpcError(f"L1 block {event.block_number} of deposit {event.tx_hash} not found")
        l1_receipt = await self._l1.get_transaction_receipt(event.tx_hash)
        if l1_receipt is None:
            raise ReconciliationAmbiguous(f"No L1 receipt for deposit event in {event.tx_hash}")

        timestamp_l1 = block.timestamp
        l2_hash = self._bridge.l2_hash_from_priority_op(l1_receipt)
        logger.info(
            "Found deposit %s from %s at L1 time %d, %d seconds ago, expecting L2 tx %s",
            event.tx_hash,
            who,
            timestamp_l1,
            now - timestamp_l1,
            l2_hash,
        )

        l2_receipt = await self._wait_l2(event.tx_hash, l2_hash)
        if l2_receipt is None:
            logger.error("Deposit %s not executed on L2: %s", event.tx_hash, l2_hash)
            return self._failed(l1_receipt, timestamp_l1, now)
        if not l2_receipt.succeeded:
            logger.error("Deposit %s failed on L2: %s", event.tx_hash, l2_hash)
            return self._failed(l1_receipt, timestamp_l1, now)

        l2_block = await self._l2.get_block(l2_receipt.block_number)
        if l2_block is None:
            raise RpcError(f"L2 block {l2_receipt.block_number} of {l2_hash} not found")
        logger.info(
            "Deposit %s executed on L2 as %s at L2 time %d",
            event.tx_hash,
            l2_hash,
            l2_block.timestamp,
        )
        return ExecutionKnown(
            l1_receipt=l1_receipt,
            timestamp_l1=timestamp_l1,
            sec_since_l1_deposit=l2_block.timestamp - timestamp_l1,
            status=FlowStatus.OK,
            l2_receipt=l2_receipt,
            timestamp_l2=l2_block.timestamp,
        )

    async def _wait_l2(self, l1_hash: str, l2_hash: str) -> Receipt | None:
        # The wait is cancelled on timeout: the next reconciliation re-reads history.
        try:
            return await asyncio.wait_for(
                self._l2.wait_for_transaction(l2_hash, 1), self.l2_timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.error(
                "Deposit %s: L2 transaction %s not seen within %d ms",
                l1_hash,
                l2_hash,
                self.l2_timeout_ms,
            )
            return None
        except LogicError:
            raise
        except Exception as exc:
            logger.error("Deposit %s: error fetching L2 transaction %s: %s", l1_hash, l2_hash, exc)
            return None

    @staticmethod
    def _failed(l1_receipt: Receipt, timestamp_l1: int, now: int) -> ExecutionKnown:
        return ExecutionKnown(
            l1_receipt=l1_receipt,
            timestamp_l1=timestamp_l1,
            sec_since_l1_deposit=now - timestamp_l1,
            status=FlowStatus.FAIL,
        )
