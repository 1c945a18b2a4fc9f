"""Core type definitions for chainwatch flows and chain data."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Literal, TypeVar, Union

R = TypeVar("R")

BlockTag = Literal["latest", "finalized"]
Numberish = Union[int, float, str]

SEC = 1000
MIN = 60 * SEC
GWEI = 10**9


class FlowStatus(str, enum.Enum):
    """Terminal outcome of a single flow attempt."""

    OK = "OK"
    FAIL = "FAIL"
    SKIP = "SKIP"

    @property
    def metric_value(self) -> float:
        """Value published on the ``watchdog_status`` gauge."""
        return _STATUS_METRIC_VALUES[self]


_STATUS_METRIC_VALUES = {
    FlowStatus.OK: 1.0,
    FlowStatus.SKIP: 0.5,
    FlowStatus.FAIL: 0.0,
}


@dataclass(frozen=True, slots=True)
class RetryBudget:
    """How many FAIL outcomes a flow tolerates per cycle, and the pause between them."""

    limit: int
    interval_ms: int

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"Retry limit must be at least 1, got {self.limit}")
        if self.interval_ms < 0:
            raise ValueError(f"Retry interval must not be negative, got {self.interval_ms}")


# ---------------------------------------------------------------------------
# Flow runs
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class StepRecord:
    """One step attempt within a flow run."""

    name: str
    latency_s: float
    end_timestamp_ms: int
    completed: bool = True
    gas_used: int | None = None
    gas_price: int | None = None
    gas_cost: int | None = None


@dataclass(slots=True)
class FlowRun:
    """A single logical execution of a flow, from start to seal."""

    flow_name: str
    run_id: str
    started_at: float
    steps: list[StepRecord] = field(default_factory=list)
    status: FlowStatus | None = None
    finished_at: float | None = None

    @property
    def sealed(self) -> bool:
        return self.status is not None

    @property
    def total_latency_s(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def step(self, name: str) -> StepRecord | None:
        """Return the latest record for step *name*, if any."""
        for record in reversed(self.steps):
            if record.name == name:
                return record
        return None


# ---------------------------------------------------------------------------
# Chain data
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Block:
    number: int
    timestamp: int
    hash: str = ""


@dataclass(frozen=True, slots=True)
class Receipt:
    """Transaction receipt, reduced to the fields the flows look at."""

    tx_hash: str
    block_number: int
    status: int
    gas_used: int
    gas_price: int
    sender: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def gas_cost(self) -> int:
        return self.gas_used * self.gas_price


@dataclass(frozen=True, slots=True)
class LogEntry:
    address: str
    topics: tuple[str, ...]
    block_number: int
    tx_hash: str
    log_index: int = 0
    data: str = "0x"


@dataclass(frozen=True, slots=True)
class LogFilter:
    """An ``eth_getLogs`` filter. Each topic slot is a value, a list of alternatives, or ``None``."""

    address: str
    topics: tuple[str | tuple[str, ...] | None, ...] = ()
    from_block: int | None = None
    to_block: int | None = None

    def with_range(self, from_block: int, to_block: int) -> LogFilter:
        return LogFilter(
            address=self.address,
            topics=self.topics,
            from_block=from_block,
            to_block=to_block,
        )


@dataclass(frozen=True, slots=True)
class FeeData:
    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None

    @property
    def effective_fee(self) -> int | None:
        """Fee used for admission control: EIP-1559 max fee, else legacy gas price."""
        if self.max_fee_per_gas is not None:
            return self.max_fee_per_gas
        return self.gas_price


@dataclass(frozen=True, slots=True)
class TransferRequest:
    to: str
    value: int
    paymaster: str | None = None
    nonce: int | None = None


@dataclass(frozen=True, slots=True)
class DepositRequest:
    to: str
    token: str
    amount: int
    refund_recipient: str | None = None
    l2_gas_limit: int | None = None


@dataclass(frozen=True, slots=True)
class WithdrawalRequest:
    to: str
    token: str
    amount: int
    paymaster: str | None = None
    gas_limit: int | None = None
    nonce: int | None = None


@dataclass(frozen=True, slots=True)
class PopulatedTx:
    """A fully populated, not yet signed, transaction."""

    to: str
    value: int
    gas_limit: int
    max_fee_per_gas: int
    nonce: int | None = None
    data: str = "0x"

    @property
    def max_cost(self) -> int:
        return self.gas_limit * self.max_fee_per_gas


@dataclass(frozen=True, slots=True)
class FinalizeWithdrawalParams:
    l1_batch_number: int
    l2_message_index: int
    l2_tx_number_in_block: int
    message: str
    sender: str
    proof: tuple[str, ...]


# ---------------------------------------------------------------------------
# Reconciliation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExecutionUnknown:
    """No matching deposit event in the queried window."""

    status: None = None
    timestamp_l1: int = 0


@dataclass(frozen=True, slots=True)
class ExecutionKnown:
    """A deposit found on L1, together with what became of it on L2."""

    l1_receipt: Receipt
    timestamp_l1: int
    sec_since_l1_deposit: int
    status: FlowStatus
    l2_receipt: Receipt | None = None
    timestamp_l2: int | None = None

    def __post_init__(self) -> None:
        if self.status is FlowStatus.SKIP:
            raise ValueError("A reconciled deposit is either OK or FAIL, never SKIP")
        if self.status is FlowStatus.OK and (
            self.l2_receipt is None
            or not self.l2_receipt.succeeded
            or self.timestamp_l2 is None
        ):
            raise ValueError("An OK deposit needs a successful L2 receipt and timestamp")


ExecutionResult = Union[ExecutionUnknown, ExecutionKnown]


@dataclass(frozen=True, slots=True)
class WithdrawalExecution:
    l2_receipt: Receipt
    timestamp_l2: int
