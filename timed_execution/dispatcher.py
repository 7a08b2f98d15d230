"""
Timed Execution - Parallel Dispatcher.

============================================================
PURPOSE
============================================================
At trigger time, runs one operation per actor concurrently and
waits for every one of them to settle.

GUARANTEES:
- Non-short-circuiting join: one actor's failure never cancels
  or delays another actor's operation
- Each task writes only its own StatusCell, exactly once
- Partial failure is a result, not an exception
- Only an empty actor set raises (SetupError)

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Awaitable, Dict, List, Optional, Sequence

from core.exceptions import SetupError
from reporting.events import EventKind, NullReporter, ReporterSink

from .retry import RetryExecutor
from .types import Actor, ActorRegistry, StatusCell


logger = logging.getLogger(__name__)

OperationFactory = Callable[[Actor], Callable[[], Awaitable[Any]]]


@dataclass
class DispatchResult:
    """Counts after the join."""

    successes: int
    failures: int

    @property
    def total(self) -> int:
        return self.successes + self.failures

    def to_dict(self) -> Dict[str, int]:
        return {"successes": self.successes, "failures": self.failures, "total": self.total}


def result_handle_of(result: Any) -> Optional[str]:
    """Extract an opaque handle from an operation result."""
    if result is None:
        return None
    handle = getattr(result, "result_handle", None)
    if handle is None:
        handle = getattr(result, "tx_hash", None)
    return str(handle) if handle is not None else str(result)


class ParallelDispatcher:
    """
    Fans out one retried operation per actor.

    Usage:
        dispatcher = ParallelDispatcher(RetryExecutor(3, 2.0), reporter)
        result = await dispatcher.dispatch(
            registry,
            lambda actor: lambda: ops.execute(selector.current_connection(), actor),
        )
    """

    def __init__(
        self,
        retry: RetryExecutor,
        reporter: Optional[ReporterSink] = None,
    ) -> None:
        self._retry = retry
        self._reporter = reporter or NullReporter()

    async def dispatch(
        self,
        registry: ActorRegistry,
        factory: OperationFactory,
        operation_name: str = "execute",
        cells: Optional[Sequence[StatusCell]] = None,
    ) -> DispatchResult:
        """
        Run factory(actor) under retry for every actor and join.

        Args:
            registry: Actors to dispatch for
            factory: Maps an actor to a zero-argument async operation
            operation_name: Used in logs and exhaustion errors
            cells: Subset of the registry's cells (default: all)

        Returns:
            DispatchResult with success and failure counts

        Raises:
            SetupError: No actors to dispatch
        """
        targets: List[StatusCell] = list(cells) if cells is not None else registry.cells()
        if not targets:
            raise SetupError("No actors to dispatch", context={"operation": operation_name})

        logger.info(f"Dispatching {operation_name} for {len(targets)} actors concurrently")

        outcomes = await asyncio.gather(
            *(self._settle(cell, factory, operation_name) for cell in targets),
            return_exceptions=True,
        )

        for cell, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"[{cell.actor.display_name}] {operation_name} task crashed: "
                    f"{type(outcome).__name__}: {outcome}"
                )
                if not cell.status.is_settled:
                    cell.record_failure(f"{type(outcome).__name__}: {outcome}")

        # Counts come from the cells, the single record of each outcome
        successes = sum(1 for cell in targets if cell.status.operation_succeeded is True)
        failures = len(targets) - successes

        logger.info(
            f"{operation_name} settled: {successes} succeeded, {failures} failed "
            f"of {len(targets)}"
        )
        return DispatchResult(successes=successes, failures=failures)

    async def _settle(
        self,
        cell: StatusCell,
        factory: OperationFactory,
        operation_name: str,
    ) -> bool:
        """Run one actor's operation to completion and record the outcome."""
        actor = cell.actor
        name = f"{actor.display_name} {operation_name}"

        try:
            result = await self._retry.run(factory(actor), name)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            cell.record_failure(str(e))
            logger.error(f"[{actor.display_name}] {operation_name} failed: {e}")
            self._report_result(
                actor,
                f"{actor.display_name}: {operation_name} failed: {e}",
                success=False,
                error=str(e),
            )
            return False

        handle = result_handle_of(result)
        cell.record_success(handle)
        self._report_result(
            actor,
            f"{actor.display_name}: {operation_name} succeeded ({handle})",
            success=True,
            result_handle=handle,
        )
        return True

    def _report_result(self, actor: Actor, message: str, **data: Any) -> None:
        """Emit ACTOR_RESULT. The cell is already written; a failing sink cannot change it."""
        try:
            self._reporter.report(
                EventKind.ACTOR_RESULT,
                message,
                actor=actor.identifier,
                label=actor.label,
                **data,
            )
        except Exception as e:
            logger.error(f"[{actor.display_name}] Reporter failed for result event: {e}")
