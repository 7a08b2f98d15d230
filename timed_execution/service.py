"""
Timed Execution - Service.

============================================================
PURPOSE
============================================================
Runs one timed execution end to end.

FLOW:
    readiness phase (unless skipped)
        -> Clock Monitor
        -> on TRIGGERED (or PAST_DEADLINE with override):
           Parallel Dispatcher, once
        -> finalize RunState
        -> Outcome Aggregator -> SUMMARY event

EXIT CODES:
    0   every actor succeeded
    2   at least one, but not every, actor succeeded
    3   dispatched, none succeeded
    4   aborted (deadline missed without override, or stopped)
    1   setup / configuration failure (raised, mapped by the caller)
    130 interrupted (mapped by the caller)

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from chain_rpc.selector import UpstreamSelector
from core.clock import ClockProtocol, SystemClock
from core.constants import (
    EXIT_ABORTED,
    EXIT_ALL_SUCCEEDED,
    EXIT_NONE_SUCCEEDED,
    EXIT_PARTIAL_SUCCESS,
)
from core.exceptions import ConfigurationError, DeadlineMissedError, TransientUpstreamError
from reporting.events import EventKind, NullReporter, ReporterSink

from .aggregator import OutcomeAggregator, RunSummary
from .config import ExecutionConfig
from .dispatcher import DispatchResult, ParallelDispatcher
from .monitor import ClockMonitor, MonitorResult
from .operations import ActorOperations
from .preparation import PreparationReport, ReadinessChecker
from .retry import RetryExecutor
from .types import Actor, ActorRegistry, MonitorState, RunState


logger = logging.getLogger(__name__)


# ============================================================
# RUN REPORT
# ============================================================

@dataclass
class RunReport:
    """Everything a caller needs after a run."""

    monitor_state: MonitorState
    summary: RunSummary
    exit_code: int
    preparation: Optional[PreparationReport] = None
    monitor: Optional[MonitorResult] = None
    dispatch: Optional[DispatchResult] = None
    error: Optional[str] = None
    upstream: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_state": self.monitor_state.value,
            "exit_code": self.exit_code,
            "error": self.error,
            "preparation": self.preparation.to_dict() if self.preparation else None,
            "monitor": self.monitor.to_dict() if self.monitor else None,
            "dispatch": self.dispatch.to_dict() if self.dispatch else None,
            "summary": self.summary.to_dict(),
            "upstream": self.upstream,
        }


def exit_code_for(summary: RunSummary, dispatched: bool) -> int:
    """Map a finished run to its process exit status."""
    if not dispatched:
        return EXIT_ABORTED
    if summary.all_succeeded:
        return EXIT_ALL_SUCCEEDED
    if summary.any_succeeded:
        return EXIT_PARTIAL_SUCCESS
    return EXIT_NONE_SUCCEEDED


# ============================================================
# SERVICE
# ============================================================

class TimedExecutionService:
    """
    Wires the engine components for one run.

    Usage:
        service = TimedExecutionService(config, selector, operations)
        report = await service.run()
        sys.exit(report.exit_code)
    """

    def __init__(
        self,
        config: ExecutionConfig,
        selector: UpstreamSelector,
        operations: ActorOperations,
        registry: Optional[ActorRegistry] = None,
        reporter: Optional[ReporterSink] = None,
        clock: Optional[ClockProtocol] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._selector = selector
        self._ops = operations
        self._reporter = reporter or NullReporter()
        self._clock = clock or SystemClock()

        self._window = config.window()
        self._registry = registry or config.build_registry()
        if len(self._registry) == 0:
            raise ConfigurationError("At least one actor is required", config_key="actors")

        self._retry = RetryExecutor(
            max_attempts=config.retry.max_attempts,
            delay_seconds=config.retry.delay_seconds,
            sleep=sleep,
        )
        self._monitor = ClockMonitor(
            selector=selector,
            window=self._window,
            polling=config.polling,
            reporter=self._reporter,
            clock=self._clock,
            sleep=sleep,
        )
        self._dispatcher = ParallelDispatcher(self._retry, self._reporter)
        self._readiness = ReadinessChecker(
            selector=selector,
            operations=operations,
            retry=self._retry,
            amount=config.amount,
            token_decimals=config.token_decimals,
            reporter=self._reporter,
        )
        self._aggregator = OutcomeAggregator(
            amount_per_actor=config.amount,
            token_decimals=config.token_decimals,
        )

        self._run_state: Optional[RunState] = None
        self._dispatch_result: Optional[DispatchResult] = None

        selector.on_failover(self._report_failover)

    @property
    def registry(self) -> ActorRegistry:
        return self._registry

    @property
    def monitor(self) -> ClockMonitor:
        return self._monitor

    @property
    def run_state(self) -> Optional[RunState]:
        return self._run_state

    async def close(self) -> None:
        """Close the upstream connections."""
        await self._selector.close()

    def request_stop(self) -> None:
        """End monitoring (ABORTED). An in-flight dispatch runs to completion."""
        self._monitor.stop()

    async def run(self) -> RunReport:
        """
        Execute the run.

        Raises:
            SetupError: Readiness phase found no ready actor
        """
        run_state = RunState.start(self._registry, self._clock)
        self._run_state = run_state
        preparation: Optional[PreparationReport] = None
        monitor_result: Optional[MonitorResult] = None
        error: Optional[str] = None

        logger.info(
            f"Starting run: {len(self._registry)} actors, "
            f"target {self._window.target_timestamp} ±{self._window.tolerance}s"
        )

        if not self._config.skip_preparation:
            preparation = await self._readiness.prepare(
                self._registry,
                self._window,
                require_ready_actor=self._config.require_ready_actor,
            )

        try:
            monitor_result = await self._monitor.run(
                self._dispatch,
                proceed_past_deadline=self._config.proceed_past_deadline,
            )
        except DeadlineMissedError as e:
            error = str(e)
            logger.error(f"Deadline missed, not dispatching: {e}")

        run_state.monitor_state = self._monitor.state
        run_state.finalize(self._clock)

        summary = self._aggregator.summarize(run_state)
        exit_code = exit_code_for(summary, run_state.dispatched)
        upstream = self._selector.get_stats()
        logger.info(
            f"Upstream at finish: '{upstream['active']}'"
            f"{' (failed over)' if upstream['failed_over'] else ''}"
        )

        self._reporter.report(
            EventKind.SUMMARY,
            f"Run finished: {summary.successes}/{summary.total} succeeded, "
            f"total value {summary.total_value_human}",
            **summary.to_dict(),
        )

        return RunReport(
            monitor_state=run_state.monitor_state,
            summary=summary,
            exit_code=exit_code,
            preparation=preparation,
            monitor=monitor_result,
            dispatch=self._dispatch_result,
            error=error,
            upstream=upstream,
        )

    # ------------------------------------------------------------
    # Dispatch handoff
    # ------------------------------------------------------------

    async def _dispatch(self, monitor_result: MonitorResult) -> DispatchResult:
        run_state = self._run_state
        run_state.trigger_timestamp = monitor_result.observed_timestamp
        run_state.dispatched = True

        self._dispatch_result = await self._dispatcher.dispatch(
            self._registry,
            self._operation_for,
            operation_name="execute",
        )
        return self._dispatch_result

    def _operation_for(self, actor: Actor) -> Callable[[], Awaitable[Any]]:
        """Per-attempt operation; the connection is looked up on each call."""

        async def attempt() -> Any:
            connection = self._selector.current_connection()
            try:
                return await self._ops.execute(connection, actor)
            except TransientUpstreamError:
                if self._selector.has_secondary and not self._selector.is_failed_over:
                    logger.warning(
                        f"[{actor.display_name}] Transient failure on '{connection.name}', failing over"
                    )
                    self._selector.failover()
                raise

        return attempt

    def _report_failover(self, from_name: str, to_name: str) -> None:
        """Single FAILOVER event per switch, whichever phase triggered it."""
        self._reporter.report(
            EventKind.FAILOVER,
            f"Switched upstream from '{from_name}' to '{to_name}'",
            from_connection=from_name,
            to_connection=to_name,
        )
