"""Capability interfaces for the chain clients chainwatch drives.

chainwatch does not speak JSON-RPC itself. A deployment supplies concrete
implementations of these interfaces (typically thin adapters over an
Ethereum/ZKsync client library) through a chain factory; see
:func:`chainwatch.chain.load_chain_factory`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from chainwatch._types import (
    Block,
    BlockTag,
    DepositRequest,
    FeeData,
    FinalizeWithdrawalParams,
    LogEntry,
    LogFilter,
    PopulatedTx,
    Receipt,
    TransferRequest,
    WithdrawalRequest,
)


class ChainProvider(ABC):
    """Read access to one chain (L1 or L2)."""

    @abstractmethod
    async def get_block_number(self) -> int: ...

    @abstractmethod
    async def get_block(self, block: int | BlockTag) -> Block | None:
        """Return the block by number or tag, ``None`` if it does not exist yet."""

    @abstractmethod
    async def get_logs(self, log_filter: LogFilter) -> list[LogEntry]: ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None: ...

    @abstractmethod
    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> Receipt:
        """Block until *tx_hash* has *confirmations* confirmations.

        Implementations may wait indefinitely; callers bound the wait.
        """

    @abstractmethod
    async def get_fee_data(self) -> FeeData: ...

    @abstractmethod
    async def get_balance(self, address: str) -> int: ...

    @abstractmethod
    async def send(self, method: str, params: list[Any]) -> Any:
        """Issue a raw JSON-RPC request."""


class TxHandle(ABC):
    """A submitted transaction."""

    @property
    @abstractmethod
    def hash(self) -> str: ...

    @abstractmethod
    async def wait(self, confirmations: int = 1) -> Receipt:
        """Wait for inclusion on the chain the transaction was sent to."""


class DepositHandle(TxHandle):
    """A submitted L1→L2 deposit."""

    @abstractmethod
    async def wait_l1_commit(self, confirmations: int = 1) -> Receipt:
        """Wait for the L1 transaction to be mined."""


class Wallet(ABC):
    """The watchdog's signing identity on both layers."""

    @property
    @abstractmethod
    def address(self) -> str: ...

    @abstractmethod
    async def get_nonce(self, block_tag: BlockTag = "latest") -> int: ...

    @abstractmethod
    async def populate_transfer(self, request: TransferRequest) -> PopulatedTx:
        """Fill gas limit and fees of an L2 transfer."""

    @abstractmethod
    async def populate_withdrawal(self, request: WithdrawalRequest) -> PopulatedTx:
        """Build and populate the L2 transaction that withdraws to L1."""

    @abstractmethod
    async def populate_deposit(self, request: DepositRequest) -> PopulatedTx:
        """Build and populate the L1 bridge transaction of a deposit."""

    @abstractmethod
    async def send_transaction(self, tx: PopulatedTx) -> TxHandle:
        """Sign and submit a populated L2 transaction."""

    @abstractmethod
    async def send_deposit(self, tx: PopulatedTx) -> DepositHandle:
        """Sign and submit a populated L1 deposit."""


class Bridge(ABC):
    """Bridge contracts and priority-operation correlation."""

    @property
    @abstractmethod
    def chain_id(self) -> int:
        """Chain ID of the L2 the deposits target."""

    @property
    @abstractmethod
    def base_token_l1_address(self) -> str:
        """L1 address of the token deposits are denominated in."""

    @property
    @abstractmethod
    def base_token_l2_address(self) -> str:
        """System contract address of the base token on L2."""

    @abstractmethod
    def deposit_log_filter(self, chain_id: int, address: str | None) -> LogFilter:
        """Filter for base-token deposit-initiation events on the L1 bridge.

        *address* ``None`` matches deposits from any sender. The block range
        is left open; the caller bounds it.
        """

    @abstractmethod
    def withdrawal_log_filter(self, address: str | None) -> LogFilter:
        """Filter for base-token withdrawal events on L2."""

    @abstractmethod
    def l2_hash_from_priority_op(self, l1_receipt: Receipt) -> str:
        """Derive the L2 transaction hash of the priority operation in *l1_receipt*."""

    @abstractmethod
    async def get_finalize_withdrawal_params(self, withdrawal_hash: str) -> FinalizeWithdrawalParams: ...

    @abstractmethod
    async def estimate_finalize_withdrawal(self, params: FinalizeWithdrawalParams) -> int:
        """Gas-estimate the L1 finalize call for *params* without submitting it."""


@dataclass(frozen=True, slots=True)
class ChainCapabilities:
    """Everything the flows need from the outside world."""

    l1: ChainProvider
    l2: ChainProvider
    wallet: Wallet
    bridge: Bridge
