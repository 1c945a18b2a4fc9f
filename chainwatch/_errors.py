"""Exception taxonomy.

Every failure a flow attempt can hit derives from :class:`WatchdogError`.
Attempts convert these (and any error raised by a chain client) into a
:class:`~chainwatch._types.FlowStatus`; :class:`LogicError` is the one
exception that is never converted and ends the flow loop.
"""

from __future__ import annotations


class WatchdogError(Exception):
    """Base class for chainwatch errors."""


class StepTimeout(WatchdogError):
    """A step did not finish before its deadline.

    The outcome is ambiguous: the abandoned work may still complete later.
    """

    def __init__(self, step: str, timeout_ms: float) -> None:
        super().__init__(f"{step} timed out after {timeout_ms:g} ms")
        self.step = step
        self.timeout_ms = timeout_ms


class RpcError(WatchdogError):
    """A chain RPC call failed."""

    def __init__(self, message: str, *, method: str | None = None) -> None:
        super().__init__(message)
        self.method = method


class AdmissionRefused(WatchdogError):
    """The current L1 fee is above the configured ceiling."""

    def __init__(self, fee: int, ceiling: int) -> None:
        super().__init__(f"L1 fee {fee} wei is above the ceiling of {ceiling} wei")
        self.fee = fee
        self.ceiling = ceiling


class ReconciliationAmbiguous(WatchdogError):
    """Chain history does not show what a just-submitted transaction should have left."""


class NotBaseTokenWithdrawal(ReconciliationAmbiguous):
    """The withdrawal picked for finalization was not sent by the base token contract."""

    def __init__(self, tx_hash: str, sender: str) -> None:
        super().__init__(f"Withdrawal {tx_hash} is not a base token withdrawal (sender {sender})")
        self.tx_hash = tx_hash
        self.sender = sender


class TransactionReverted(WatchdogError):
    """A transaction was included but its receipt reports failure."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Transaction {tx_hash} reverted")
        self.tx_hash = tx_hash


class SettlementDeadlineExceeded(WatchdogError):
    def __init__(self, age_s: int, deadline_s: int) -> None:
        super().__init__(f"Settlement age {age_s}s exceeds deadline {deadline_s}s")
        self.age_s = age_s
        self.deadline_s = deadline_s


class LogicError(RuntimeError):
    """Programming error. Never retried and never converted into a flow status."""
