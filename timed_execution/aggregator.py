"""
Timed Execution - Outcome Aggregator.

============================================================
PURPOSE
============================================================
Pure read over the final actor registry.

PRODUCES:
- Elapsed run time
- Success / failure / not-dispatched counts
- Total value moved (per-actor amount x successes)
- Per-actor (identifier, outcome, detail) rows in registry order

No mutation and no network access; summarizing a finalized run
twice yields identical output.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from reporting.summary import render_summary

from .config import from_base_units
from .types import MonitorState, RunState


logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Terminal per-actor outcome."""

    SUCCESS = "success"
    FAILURE = "failure"
    NOT_DISPATCHED = "not_dispatched"


@dataclass(frozen=True)
class ActorOutcome:
    """One row of the final report."""

    identifier: str
    label: str
    outcome: Outcome
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "label": self.label,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }


@dataclass
class RunSummary:
    """Final report for one run."""

    monitor_state: MonitorState
    elapsed_seconds: float
    total: int
    successes: int
    failures: int
    not_dispatched: int
    amount_per_actor: int
    total_value: int
    token_decimals: int
    outcomes: List[ActorOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    trigger_timestamp: Optional[int] = None

    @property
    def total_value_human(self) -> Decimal:
        return from_base_units(self.total_value, self.token_decimals)

    @property
    def amount_per_actor_human(self) -> Decimal:
        return from_base_units(self.amount_per_actor, self.token_decimals)

    @property
    def all_succeeded(self) -> bool:
        return self.total > 0 and self.successes == self.total

    @property
    def any_succeeded(self) -> bool:
        return self.successes > 0

    def successful(self) -> List[ActorOutcome]:
        return [o for o in self.outcomes if o.outcome == Outcome.SUCCESS]

    def failed(self) -> List[ActorOutcome]:
        return [o for o in self.outcomes if o.outcome == Outcome.FAILURE]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_state": self.monitor_state.value,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "total": self.total,
            "successes": self.successes,
            "failures": self.failures,
            "not_dispatched": self.not_dispatched,
            "amount_per_actor": str(self.amount_per_actor_human),
            "total_value": str(self.total_value_human),
            "total_value_base_units": self.total_value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "trigger_timestamp": self.trigger_timestamp,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    def render_lines(self) -> List[str]:
        return render_summary(self)


class OutcomeAggregator:
    """Builds a RunSummary from a RunState."""

    def __init__(
        self,
        amount_per_actor: int,
        token_decimals: int,
    ) -> None:
        self._amount = amount_per_actor
        self._decimals = token_decimals

    def summarize(self, run_state: RunState) -> RunSummary:
        """
        Summarize the run. Reads only; never mutates run_state.

        Depends only on the registry and the stamped times, so repeated
        calls on an unchanged state give the same summary.
        """
        outcomes: List[ActorOutcome] = []
        successes = failures = not_dispatched = 0

        for cell in run_state.registry:
            actor = cell.actor
            status = cell.status

            if status.operation_succeeded is True:
                successes += 1
                outcome, detail = Outcome.SUCCESS, status.result_handle or ""
            elif status.operation_succeeded is False:
                failures += 1
                outcome, detail = Outcome.FAILURE, status.last_error or ""
            else:
                not_dispatched += 1
                outcome, detail = Outcome.NOT_DISPATCHED, status.preparation_error or ""

            outcomes.append(ActorOutcome(
                identifier=actor.identifier,
                label=actor.label,
                outcome=outcome,
                detail=detail,
            ))

        return RunSummary(
            monitor_state=run_state.monitor_state,
            elapsed_seconds=run_state.elapsed_seconds(),
            total=len(run_state.registry),
            successes=successes,
            failures=failures,
            not_dispatched=not_dispatched,
            amount_per_actor=self._amount,
            total_value=self._amount * successes,
            token_decimals=self._decimals,
            outcomes=outcomes,
            started_at=run_state.started_at,
            completed_at=run_state.completed_at,
            trigger_timestamp=run_state.trigger_timestamp,
        )
