"""Rebuild flow outcomes from on-chain history."""

from __future__ import annotations

from chainwatch.reconcile.deposit import DepositHistoryReader
from chainwatch.reconcile.withdrawal import WithdrawalHistoryReader

__all__ = ["DepositHistoryReader", "WithdrawalHistoryReader"]
