"""Monitoring flows."""

from __future__ import annotations

from chainwatch.flows.base import BaseFlow
from chainwatch.flows.block_number import BlockNumberFlow
from chainwatch.flows.deposit import DepositExecutor, DepositFlow, record_deposit_result
from chainwatch.flows.deposit_user import DepositUserFlow
from chainwatch.flows.settlement import SettlementFlow
from chainwatch.flows.transfer import TransferFlow
from chainwatch.flows.withdrawal import WithdrawalFlow
from chainwatch.flows.withdrawal_finalize import WithdrawalFinalizeFlow

__all__ = [
    "BaseFlow",
    "BlockNumberFlow",
    "DepositExecutor",
    "DepositFlow",
    "DepositUserFlow",
    "SettlementFlow",
    "TransferFlow",
    "WithdrawalFinalizeFlow",
    "WithdrawalFlow",
    "record_deposit_result",
]
