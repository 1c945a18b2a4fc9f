"""Environment configuration, resolved once at startup."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from chainwatch._types import GWEI, MIN, SEC, RetryBudget

FLOW_NAMES = (
    "transfer",
    "deposit",
    "depositUser",
    "withdrawal",
    "withdrawalFinalize",
    "settlement",
    "block_number",
)

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"", "0", "false", "no", "off"})


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(float(raw))
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _bool(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _optional(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(name, "").strip()
    return raw or None


@dataclass(frozen=True, slots=True)
class Settings:
    """Flow switches, schedules, budgets and limits. All durations are milliseconds."""

    transfer_enabled: bool = False
    transfer_interval_ms: int = 5 * MIN
    transfer_retry: RetryBudget = RetryBudget(limit=5, interval_ms=5 * SEC)

    deposit_enabled: bool = False
    deposit_interval_ms: int = 15 * MIN
    deposit_retry: RetryBudget = RetryBudget(limit=3, interval_ms=30 * SEC)
    deposit_l2_timeout_ms: int = 15 * MIN
    deposit_l1_gas_price_limit_wei: int = 1000 * GWEI

    deposit_user_enabled: bool = False
    deposit_user_interval_ms: int = 5 * MIN
    deposit_user_trigger_delay_ms: int = 60 * MIN

    withdrawal_enabled: bool = False
    withdrawal_interval_ms: int = 15 * MIN
    withdrawal_retry: RetryBudget = RetryBudget(limit=10, interval_ms=30 * SEC)

    withdrawal_finalize_enabled: bool = False
    withdrawal_finalize_interval_ms: int = 15 * MIN

    settlement_enabled: bool = False
    settlement_interval_ms: int = 1 * MIN
    settlement_deadline_ms: int = 90 * MIN

    block_number_enabled: bool = False
    block_number_interval_ms: int = 1 * MIN

    l2_execution_timeout_ms: int = 15 * SEC
    max_log_blocks_l1: int = 50_000
    max_log_blocks_l2: int = 50_000
    paymaster_address: str | None = None
    zksync_os: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from *environ* (defaults to ``os.environ``).

        Raises :class:`ValueError` naming the variable when a value does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            transfer_enabled=_bool(env, "FLOW_TRANSFER_ENABLE"),
            transfer_interval_ms=_int(env, "FLOW_TRANSFER_INTERVAL", defaults.transfer_interval_ms),
            transfer_retry=RetryBudget(
                limit=_int(env, "FLOW_RETRY_LIMIT", defaults.transfer_retry.limit),
                interval_ms=_int(env, "FLOW_RETRY_INTERVAL", defaults.transfer_retry.interval_ms),
            ),
            deposit_enabled=_bool(env, "FLOW_DEPOSIT_ENABLE"),
            deposit_interval_ms=_int(env, "FLOW_DEPOSIT_INTERVAL", defaults.deposit_interval_ms),
            deposit_retry=RetryBudget(
                limit=_int(env, "FLOW_DEPOSIT_RETRY_LIMIT", defaults.deposit_retry.limit),
                interval_ms=_int(
                    env, "FLOW_DEPOSIT_RETRY_INTERVAL", defaults.deposit_retry.interval_ms
                ),
            ),
            deposit_l2_timeout_ms=_int(env, "FLOW_DEPOSIT_L2_TIMEOUT", defaults.deposit_l2_timeout_ms),
            deposit_l1_gas_price_limit_wei=_int(
                env,
                "FLOW_DEPOSIT_L1_GAS_PRICE_LIMIT_GWEI",
                defaults.deposit_l1_gas_price_limit_wei // GWEI,
            )
            * GWEI,
            deposit_user_enabled=_bool(env, "FLOW_DEPOSIT_USER_ENABLE"),
            deposit_user_interval_ms=_int(
                env, "FLOW_DEPOSIT_USER_INTERVAL", defaults.deposit_user_interval_ms
            ),
            deposit_user_trigger_delay_ms=_int(
                env, "FLOW_DEPOSIT_USER_TX_TRIGGER_DELAY", defaults.deposit_user_trigger_delay_ms
            ),
            withdrawal_enabled=_bool(env, "FLOW_WITHDRAWAL_ENABLE"),
            withdrawal_interval_ms=_int(
                env, "FLOW_WITHDRAWAL_INTERVAL", defaults.withdrawal_interval_ms
            ),
            withdrawal_retry=RetryBudget(
                limit=_int(env, "FLOW_WITHDRAWAL_RETRY_LIMIT", defaults.withdrawal_retry.limit),
                interval_ms=_int(
                    env, "FLOW_WITHDRAWAL_RETRY_INTERVAL", defaults.withdrawal_retry.interval_ms
                ),
            ),
            withdrawal_finalize_enabled=_bool(env, "FLOW_WITHDRAWAL_FINALIZE_ENABLE"),
            withdrawal_finalize_interval_ms=_int(
                env, "FLOW_WITHDRAWAL_FINALIZE_INTERVAL", defaults.withdrawal_finalize_interval_ms
            ),
            settlement_enabled=_bool(env, "FLOW_SETTLEMENT_ENABLE"),
            settlement_interval_ms=_int(
                env, "FLOW_SETTLEMENT_INTERVAL", defaults.settlement_interval_ms
            ),
            settlement_deadline_ms=_int(env, "SETTLEMENT_DEADLINE", defaults.settlement_deadline_ms),
            block_number_enabled=_bool(env, "FLOW_BLOCK_NUMBER_ENABLE"),
            block_number_interval_ms=_int(
                env, "FLOW_BLOCK_NUMBER_INTERVAL", defaults.block_number_interval_ms
            ),
            l2_execution_timeout_ms=_int(
                env, "L2_EXECUTION_TIMEOUT", defaults.l2_execution_timeout_ms
            ),
            max_log_blocks_l1=_int(env, "MAX_LOGS_BLOCKS", defaults.max_log_blocks_l1),
            max_log_blocks_l2=_int(env, "MAX_LOGS_BLOCKS_L2", defaults.max_log_blocks_l2),
            paymaster_address=_optional(env, "PAYMASTER_ADDRESS"),
            zksync_os=_bool(env, "ZKSYNC_OS"),
        )

    def enabled_flows(self) -> list[str]:
        """Names of the enabled flows, in startup order."""
        switches = {
            "transfer": self.transfer_enabled,
            "deposit": self.deposit_enabled,
            "depositUser": self.deposit_user_enabled,
            "withdrawal": self.withdrawal_enabled,
            "withdrawalFinalize": self.withdrawal_finalize_enabled,
            "settlement": self.settlement_enabled,
            "block_number": self.block_number_enabled,
        }
        return [name for name in FLOW_NAMES if switches[name]]
