"""chainwatch: synthetic-load health watchdog for two-layer chains."""

from __future__ import annotations

from chainwatch._context import (
    FlowContext,
    active_run,
    annotate_run,
    current_flow_name,
    current_run_id,
    run_value,
)
from chainwatch._errors import (
    AdmissionRefused,
    LogicError,
    NotBaseTokenWithdrawal,
    ReconciliationAmbiguous,
    RpcError,
    SettlementDeadlineExceeded,
    StepTimeout,
    TransactionReverted,
    WatchdogError,
)
from chainwatch._lock import Mutex
from chainwatch._recorder import FlowMetricRecorder, StepHooks
from chainwatch._registry import MetricsRegistry
from chainwatch._retry import run_with_retries
from chainwatch._settings import Settings
from chainwatch._timer import with_timeout
from chainwatch._types import (
    ExecutionKnown,
    ExecutionResult,
    ExecutionUnknown,
    FlowRun,
    FlowStatus,
    RetryBudget,
    StepRecord,
    WithdrawalExecution,
)

__all__ = [
    "AdmissionRefused",
    "ExecutionKnown",
    "ExecutionResult",
    "ExecutionUnknown",
    "FlowContext",
    "FlowMetricRecorder",
    "FlowRun",
    "FlowStatus",
    "LogicError",
    "MetricsRegistry",
    "Mutex",
    "NotBaseTokenWithdrawal",
    "ReconciliationAmbiguous",
    "RetryBudget",
    "RpcError",
    "Settings",
    "SettlementDeadlineExceeded",
    "StepHooks",
    "StepRecord",
    "StepTimeout",
    "TransactionReverted",
    "WatchdogError",
    "WithdrawalExecution",
    "active_run",
    "annotate_run",
    "current_flow_name",
    "current_run_id",
    "run_value",
    "run_with_retries",
    "with_timeout",
]
