"""
Timed Execution - Readiness Phase.

============================================================
PURPOSE
============================================================
Brings every actor to a known state before monitoring starts.

PHASES:
1. Balances and allowances, read concurrently per actor
2. Authorization for actors whose allowance is short but whose
   balance suffices (actors already covered need no write)
3. Target state (total assets, caps, vault mode, deposit window) and
   time to target; anything that may make deposits revert is a warning
4. Ready count; zero ready actors is a setup failure

OWNERSHIP:
    Writes only the readiness fields of each StatusCell. The
    terminal outcome fields belong to the Parallel Dispatcher.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from chain_rpc.logging_utils import short_address
from chain_rpc.selector import UpstreamSelector
from core.clock import format_duration
from core.constants import VAULT_MODE_DEPOSIT, VAULT_MODE_NAMES
from core.exceptions import SetupError
from reporting.events import EventKind, NullReporter, ReporterSink

from .config import from_base_units
from .operations import ActorOperations
from .retry import RetryExecutor
from .types import ActorRegistry, StatusCell, TargetWindow


logger = logging.getLogger(__name__)


@dataclass
class PreparationReport:
    """What the readiness phase found and did."""

    total: int = 0
    balance_ready: int = 0
    authorized: int = 0
    authorized_now: int = 0
    read_failures: int = 0
    authorize_failures: int = 0
    ready: int = 0
    target_state: Dict[str, Any] = field(default_factory=dict)
    seconds_to_target: Optional[int] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "balance_ready": self.balance_ready,
            "authorized": self.authorized,
            "authorized_now": self.authorized_now,
            "read_failures": self.read_failures,
            "authorize_failures": self.authorize_failures,
            "ready": self.ready,
            "target_state": self.target_state,
            "seconds_to_target": self.seconds_to_target,
            "warnings": list(self.warnings),
        }


class ReadinessChecker:
    """Runs the readiness phase for a registry."""

    def __init__(
        self,
        selector: UpstreamSelector,
        operations: ActorOperations,
        retry: RetryExecutor,
        amount: int,
        token_decimals: int = 6,
        reporter: Optional[ReporterSink] = None,
    ) -> None:
        self._selector = selector
        self._ops = operations
        self._retry = retry
        self._amount = amount
        self._decimals = token_decimals
        self._reporter = reporter or NullReporter()

    def _fmt(self, value: Optional[int]) -> str:
        if value is None:
            return "?"
        return str(from_base_units(value, self._decimals))

    async def prepare(
        self,
        registry: ActorRegistry,
        window: TargetWindow,
        require_ready_actor: bool = True,
    ) -> PreparationReport:
        """
        Run all phases.

        Raises:
            SetupError: No ready actors and require_ready_actor is set
        """
        report = PreparationReport(total=len(registry))

        report.read_failures = await self.check_balances(registry)
        report.authorized_now, report.authorize_failures = await self.authorize_all(registry)
        await self.check_target_state(registry, window, report)

        report.balance_ready = sum(1 for c in registry if c.status.ready_balance)
        report.authorized = sum(1 for c in registry if c.status.authorized)
        report.ready = len(registry.ready_cells())

        self._reporter.report(
            EventKind.PREPARATION,
            f"{report.ready}/{report.total} actors ready",
            **report.to_dict(),
        )

        if report.ready == 0 and require_ready_actor:
            raise SetupError(
                "No actor is ready (sufficient balance and authorization)",
                context=report.to_dict(),
            )
        return report

    # ------------------------------------------------------------
    # Phase 1: balances
    # ------------------------------------------------------------

    async def check_balances(self, registry: ActorRegistry) -> int:
        """Read balance and allowance for every actor; returns failure count."""
        logger.info(f"[preparation] Checking balances for {len(registry)} actors")
        results = await asyncio.gather(*(self._read_cell(c) for c in registry))
        return sum(1 for ok in results if not ok)

    async def _read_cell(self, cell: StatusCell) -> bool:
        actor = cell.actor
        try:
            balance, allowance = await asyncio.gather(
                self._retry.run(
                    lambda: self._ops.read_balance(self._selector.current_connection(), actor),
                    f"{actor.display_name} balance",
                ),
                self._retry.run(
                    lambda: self._ops.read_allowance(self._selector.current_connection(), actor),
                    f"{actor.display_name} allowance",
                ),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            cell.record_preparation_error(f"balance check failed: {e}")
            logger.error(f"[{actor.display_name}] Balance check failed: {e}")
            return False

        cell.record_balance(balance, self._amount)
        cell.record_allowance(allowance)
        if allowance >= self._amount:
            cell.mark_authorized()

        if cell.status.ready_balance:
            logger.info(
                f"[{actor.display_name}] {short_address(actor.identifier)} "
                f"balance {self._fmt(balance)}, allowance {self._fmt(allowance)}"
            )
        else:
            logger.error(
                f"[{actor.display_name}] {short_address(actor.identifier)} "
                f"insufficient balance: {self._fmt(balance)} < {self._fmt(self._amount)}"
            )
        return True

    # ------------------------------------------------------------
    # Phase 2: authorization
    # ------------------------------------------------------------

    async def authorize_all(self, registry: ActorRegistry) -> Tuple[int, int]:
        """Authorize actors that need it; returns (authorized, failed)."""
        pending = [
            c for c in registry
            if c.status.ready_balance
            and not c.status.authorized
            and c.status.preparation_error is None
        ]
        if not pending:
            logger.info("[preparation] No authorization needed")
            return 0, 0

        logger.info(f"[preparation] Authorizing {len(pending)} actors")
        results = await asyncio.gather(*(self._authorize_cell(c) for c in pending))
        done = sum(1 for ok in results if ok)
        logger.info(f"[preparation] Authorization: {done}/{len(pending)} succeeded")
        return done, len(pending) - done

    async def _authorize_cell(self, cell: StatusCell) -> bool:
        actor = cell.actor
        try:
            result = await self._retry.run(
                lambda: self._ops.authorize(self._selector.current_connection(), actor),
                f"{actor.display_name} authorize",
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            cell.record_preparation_error(f"authorization failed: {e}")
            logger.error(f"[{actor.display_name}] Authorization failed: {e}")
            return False

        cell.mark_authorized()
        cell.record_allowance(self._amount)
        logger.info(f"[{actor.display_name}] Authorized ({result.tx_hash})")
        return True

    # ------------------------------------------------------------
    # Phase 3: target state
    # ------------------------------------------------------------

    async def check_target_state(
        self,
        registry: ActorRegistry,
        window: TargetWindow,
        report: PreparationReport,
    ) -> None:
        """Log vault state and time to target; failures only warn."""
        first = registry.actors()[0] if len(registry) else None
        try:
            state = await self._retry.run(
                lambda: self._ops.read_target_state(self._selector.current_connection(), first),
                "target state",
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = f"Target state check failed: {e}"
            logger.error(f"[preparation] {message}")
            report.warnings.append(message)
        else:
            report.target_state = state
            logger.info(
                f"[preparation] Target total assets {self._fmt(state.get('total_assets'))}, "
                f"per-actor cap {self._fmt(state.get('max_deposit'))}"
            )
            for message in self._target_state_warnings(state, window, len(registry.ready_cells())):
                logger.warning(f"[preparation] {message}")
                report.warnings.append(message)

        try:
            now = await self._selector.current_connection().get_current_timestamp()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[preparation] Could not read current timestamp: {e}")
            return

        remaining = window.seconds_until(now)
        report.seconds_to_target = remaining
        if remaining >= 0:
            logger.info(f"[preparation] Time to target: {format_duration(remaining)}")
        else:
            message = f"Target passed {-remaining}s ago"
            logger.warning(f"[preparation] {message}")
            report.warnings.append(message)

    def _target_state_warnings(
        self,
        state: Dict[str, Any],
        window: TargetWindow,
        ready: int,
    ) -> List[str]:
        """Conditions that may make deposits revert. Getters the vault lacks are None."""
        warnings = []

        cap = state.get("max_deposit")
        if cap is not None and cap < self._amount:
            warnings.append(
                f"Per-actor cap {self._fmt(cap)} is below the amount {self._fmt(self._amount)}"
            )

        mode = state.get("operational_mode")
        if mode is not None and mode != VAULT_MODE_DEPOSIT:
            name = VAULT_MODE_NAMES[mode] if mode < len(VAULT_MODE_NAMES) else "Unknown"
            warnings.append(f"Vault is not in Deposit mode (current: {name} ({mode}))")

        total = state.get("total_assets")
        total_cap = state.get("max_total_assets")
        planned = self._amount * ready
        if total is not None and total_cap is not None and total + planned > total_cap:
            warnings.append(
                f"Vault total cap {self._fmt(total_cap)} leaves room for "
                f"{self._fmt(max(total_cap - total, 0))}, below the {self._fmt(planned)} planned"
            )

        start = state.get("deposit_start")
        if start and start > window.latest:
            warnings.append(f"Deposits open at {start}, after the target window")
        end = state.get("deposit_end")
        if end and end < window.earliest:
            warnings.append(f"Deposits closed at {end}, before the target window")

        return warnings
