"""Process bootstrap: configuration, metrics exporter, flow wiring."""

from __future__ import annotations

import asyncio
import logging

import click
from prometheus_client import (
    CollectorRegistry,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    start_http_server,
)

from chainwatch._lock import Mutex
from chainwatch._logging import setup_logging
from chainwatch._registry import MetricsRegistry
from chainwatch._settings import Settings
from chainwatch.backends import TracingBackend, create_backend
from chainwatch.chain import (
    ChainCapabilities,
    ChainFactory,
    build_capabilities,
    load_chain_factory,
)
from chainwatch.flows import (
    BaseFlow,
    BlockNumberFlow,
    DepositFlow,
    DepositUserFlow,
    SettlementFlow,
    TransferFlow,
    WithdrawalFinalizeFlow,
    WithdrawalFlow,
)
from chainwatch.reconcile import DepositHistoryReader, WithdrawalHistoryReader

logger = logging.getLogger("chainwatch")


def register_runtime_collectors(registry: CollectorRegistry) -> None:
    """Export the process, interpreter and GC series alongside the watchdog ones."""
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)


def build_flows(
    settings: Settings,
    chain: ChainCapabilities,
    metrics: MetricsRegistry,
    tracer: TracingBackend | None = None,
) -> list[BaseFlow]:
    """Instantiate every enabled flow.

    Flows that sign with the same account share one :class:`Mutex`: transfer
    and withdrawal on L2, deposit and deposit-user on L1.
    """
    l1_wallet_lock = Mutex("l1-wallet")
    l2_wallet_lock = Mutex("l2-wallet")
    deposits = DepositHistoryReader(
        chain.l1,
        chain.l2,
        chain.bridge,
        max_log_blocks=settings.max_log_blocks_l1,
        l2_timeout_ms=settings.deposit_l2_timeout_ms,
    )
    withdrawals = WithdrawalHistoryReader(
        chain.l2, chain.bridge, max_log_blocks=settings.max_log_blocks_l2
    )

    flows: list[BaseFlow] = []
    if settings.transfer_enabled:
        flows.append(
            TransferFlow(
                chain.wallet,
                metrics,
                l2_wallet_lock=l2_wallet_lock,
                interval_ms=settings.transfer_interval_ms,
                retry=settings.transfer_retry,
                execution_timeout_ms=settings.l2_execution_timeout_ms,
                paymaster_address=settings.paymaster_address,
                tracer=tracer,
            )
        )
    if settings.deposit_enabled:
        flows.append(
            DepositFlow(
                chain.wallet,
                chain.l1,
                chain.l2,
                chain.bridge,
                deposits,
                metrics,
                l1_wallet_lock=l1_wallet_lock,
                interval_ms=settings.deposit_interval_ms,
                retry=settings.deposit_retry,
                gas_price_limit_wei=settings.deposit_l1_gas_price_limit_wei,
                l2_timeout_ms=settings.deposit_l2_timeout_ms,
                zksync_os=settings.zksync_os,
                tracer=tracer,
            )
        )
    if settings.deposit_user_enabled:
        flows.append(
            DepositUserFlow(
                chain.wallet,
                chain.l1,
                chain.l2,
                chain.bridge,
                deposits,
                metrics,
                l1_wallet_lock=l1_wallet_lock,
                interval_ms=settings.deposit_user_interval_ms,
                trigger_delay_ms=settings.deposit_user_trigger_delay_ms,
                retry=settings.deposit_retry,
                gas_price_limit_wei=settings.deposit_l1_gas_price_limit_wei,
                l2_timeout_ms=settings.deposit_l2_timeout_ms,
                zksync_os=settings.zksync_os,
                tracer=tracer,
            )
        )
    if settings.withdrawal_enabled:
        flows.append(
            WithdrawalFlow(
                chain.wallet,
                chain.bridge,
                withdrawals,
                metrics,
                l2_wallet_lock=l2_wallet_lock,
                interval_ms=settings.withdrawal_interval_ms,
                retry=settings.withdrawal_retry,
                execution_timeout_ms=settings.l2_execution_timeout_ms,
                paymaster_address=settings.paymaster_address,
                zksync_os=settings.zksync_os,
                tracer=tracer,
            )
        )
    if settings.withdrawal_finalize_enabled:
        flows.append(
            WithdrawalFinalizeFlow(
                chain.wallet,
                chain.bridge,
                withdrawals,
                metrics,
                interval_ms=settings.withdrawal_finalize_interval_ms,
                tracer=tracer,
            )
        )
    if settings.settlement_enabled:
        flows.append(
            SettlementFlow(
                chain.l1,
                chain.l2,
                metrics,
                interval_ms=settings.settlement_interval_ms,
                deadline_ms=settings.settlement_deadline_ms,
                tracer=tracer,
            )
        )
    if settings.block_number_enabled:
        flows.append(
            BlockNumberFlow(
                chain.l2,
                metrics,
                interval_ms=settings.block_number_interval_ms,
                tracer=tracer,
            )
        )
    return flows


async def run_flows(flows: list[BaseFlow]) -> None:
    """Run all flows concurrently. A flow that raises takes the process down."""
    try:
        await asyncio.gather(*(flow.run() for flow in flows))
    except Exception:
        logger.critical("Flow loop terminated", exc_info=True)
        raise


async def serve(
    settings: Settings,
    factory: ChainFactory,
    metrics: MetricsRegistry,
    tracer: TracingBackend,
) -> None:
    chain = await build_capabilities(factory, settings)
    address = chain.wallet.address
    l1_balance = await chain.l1.get_balance(address)
    l2_balance = await chain.l2.get_balance(address)
    logger.info("Wallet %s balance: L1 %d wei, L2 %d wei", address, l1_balance, l2_balance)
    flows = build_flows(settings, chain, metrics, tracer)
    logger.info("Starting flows: %s", ", ".join(flow.name for flow in flows))
    await run_flows(flows)


@click.command()
@click.option(
    "--chain-factory",
    envvar="WATCHDOG_CHAIN_FACTORY",
    help="'package.module:callable' returning the chain capabilities.",
)
@click.option(
    "--metrics-port",
    envvar="METRICS_PORT",
    type=int,
    default=8080,
    show_default=True,
    help="Port of the Prometheus exporter.",
)
@click.option("--log-level", envvar="LOG_LEVEL", default=None, help="Root log level.")
@click.option(
    "--environment",
    envvar="WATCHDOG_ENV",
    default=None,
    help="'production' switches logs to JSON.",
)
@click.option(
    "--tracing",
    envvar="WATCHDOG_TRACING",
    type=click.Choice(["auto", "logging", "otel"]),
    default="auto",
    show_default=True,
)
@click.pass_context
def main(
    ctx: click.Context,
    chain_factory: str | None,
    metrics_port: int,
    log_level: str | None,
    environment: str | None,
    tracing: str,
) -> None:
    """Run the chain-health watchdog."""
    setup_logging(environment, log_level)
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    enabled = settings.enabled_flows()
    if not enabled:
        logger.error("No flows enabled, set at least one FLOW_*_ENABLE variable")
        ctx.exit(1)
    if not chain_factory:
        raise click.UsageError("A chain factory is required (--chain-factory or WATCHDOG_CHAIN_FACTORY)")
    try:
        factory = load_chain_factory(chain_factory)
    except (ImportError, ValueError) as exc:
        raise click.ClickException(f"Cannot load chain factory: {exc}") from exc

    metrics = MetricsRegistry()
    register_runtime_collectors(metrics.collector_registry)
    tracer = create_backend(tracing)
    start_http_server(metrics_port, registry=metrics.collector_registry)
    logger.info("Metrics exporter listening on port %d", metrics_port)
    asyncio.run(serve(settings, factory, metrics, tracer))
