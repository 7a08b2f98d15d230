"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Wiring between configuration and the timed execution engine.

- Installs the process-wide logging handler
- Builds the local signer from the actors' keys
- Builds upstream connections and the Upstream Selector
- Builds the per-actor operations and the service
- Maps failures at the process boundary to exit codes

============================================================
ARCHITECTURAL POSITION
============================================================
- This module has NO engine logic
- It does NOT decide when to dispatch
- It ONLY assembles components and hands them to the service

============================================================
"""

import asyncio
import json
import logging
import sys
from typing import Optional

from chain_rpc.base import BaseConnection
from chain_rpc.logging_utils import mask_url
from chain_rpc.providers.jsonrpc import JsonRpcConnection
from chain_rpc.providers.mock import MockConfig, MockConnection
from chain_rpc.selector import UpstreamSelector
from chain_rpc.signer import LocalSigner
from core.clock import ClockProtocol, SystemClock
from core.constants import (
    EXIT_INTERRUPTED,
    EXIT_SETUP_FAILURE,
    PRIMARY_CONNECTION_NAME,
    SECONDARY_CONNECTION_NAME,
)
from reporting.events import ReporterSink, default_reporter
from timed_execution.config import ExecutionConfig
from timed_execution.operations import VaultDepositOperations
from timed_execution.service import TimedExecutionService
from timed_execution.types import ActorRegistry


logger = logging.getLogger(__name__)


# Seconds before the target at which the simulated chain starts in dry-run mode.
DEFAULT_DRY_RUN_LEAD_SECONDS = 15


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up process logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Run identifier included in every line

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


# ============================================================
# CONNECTIONS
# ============================================================

def build_signer(registry: ActorRegistry) -> Optional[LocalSigner]:
    """Signer over the actors' keys; None when no actor carries one."""
    keys = [actor.credential for actor in registry.actors() if actor.credential]
    if not keys:
        return None
    signer = LocalSigner(keys)
    logger.info(f"Signing locally for {len(signer)} actors")
    return signer


def build_connections(
    config: ExecutionConfig,
    registry: Optional[ActorRegistry] = None,
) -> UpstreamSelector:
    """
    Primary (and optional secondary) JSON-RPC connections behind a selector.

    Both connections share one signer built from the registry's keys;
    without keys the endpoints sign (node-signer mode).
    """
    upstream = config.upstream
    fees = config.gas.to_fees()
    signer = build_signer(registry or config.build_registry())
    if signer is None:
        logger.info("Node-signer mode: writes use eth_sendTransaction")

    def connection(name: str, url: str) -> BaseConnection:
        logger.info(f"[{name}] Using upstream {mask_url(url)}")
        return JsonRpcConnection(
            name=name,
            url=url,
            gas_fees=fees,
            request_timeout=upstream.request_timeout_seconds,
            settlement_timeout=upstream.settlement_timeout_seconds,
            settlement_poll=upstream.settlement_poll_seconds,
            signer=signer,
        )

    primary = connection(PRIMARY_CONNECTION_NAME, upstream.primary_url)
    secondary = None
    if upstream.secondary_url:
        secondary = connection(SECONDARY_CONNECTION_NAME, upstream.secondary_url)
    else:
        logger.warning("No secondary upstream configured; failover disabled")

    return UpstreamSelector(primary, secondary)


def build_dry_run_connections(
    config: ExecutionConfig,
    lead_seconds: int = DEFAULT_DRY_RUN_LEAD_SECONDS,
    clock: Optional[ClockProtocol] = None,
) -> UpstreamSelector:
    """
    Simulated chain for rehearsals.

    Starts lead_seconds before the target, advances with the wall clock,
    and funds every actor with exactly the configured amount.
    """
    mock_config = MockConfig(
        simulate_from=config.target_timestamp - lead_seconds,
        default_balance=config.amount,
        decimals=config.token_decimals,
    )
    logger.info(
        f"[dry-run] Simulated chain starts {lead_seconds}s before target "
        f"{config.target_timestamp}"
    )
    return UpstreamSelector(MockConnection(name="dry-run", config=mock_config, clock=clock))


# ============================================================
# SERVICE
# ============================================================

def build_operations(config: ExecutionConfig) -> VaultDepositOperations:
    return VaultDepositOperations(
        token_address=config.token_address,
        vault_address=config.vault_address,
        amount=config.amount,
        authorize_gas_limit=config.gas.authorize_gas_limit,
        execute_gas_limit=config.gas.execute_gas_limit,
    )


def build_service(
    config: ExecutionConfig,
    dry_run: bool = False,
    dry_run_lead: int = DEFAULT_DRY_RUN_LEAD_SECONDS,
    reporter: Optional[ReporterSink] = None,
    clock: Optional[ClockProtocol] = None,
) -> TimedExecutionService:
    """
    Assemble a ready-to-run service.

    Raises:
        ConfigurationError: Malformed window or empty actor list
    """
    clock = clock or SystemClock()
    registry = config.build_registry()
    if dry_run:
        selector = build_dry_run_connections(config, dry_run_lead, clock)
    else:
        selector = build_connections(config, registry)

    return TimedExecutionService(
        config=config,
        selector=selector,
        operations=build_operations(config),
        registry=registry,
        reporter=reporter or default_reporter(),
        clock=clock,
    )


# ============================================================
# EXIT CODES
# ============================================================

def exit_code_for_error(error: BaseException) -> int:
    """Exit status for a failure that escaped the service."""
    if isinstance(error, (KeyboardInterrupt, asyncio.CancelledError)):
        return EXIT_INTERRUPTED
    return EXIT_SETUP_FAILURE
