"""
Timed Execution - Types.

============================================================
PURPOSE
============================================================
All type definitions for timed execution.

OWNERSHIP:
    The Clock Monitor owns window classification.
    The Parallel Dispatcher owns operation_succeeded, result_handle
    and last_error. Each dispatched task receives exactly one
    StatusCell and writes nothing else.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

from core.clock import ClockProtocol
from core.exceptions import ConfigurationError, StatusTransitionError


# ============================================================
# ACTORS
# ============================================================

@dataclass(frozen=True)
class Actor:
    """One independent credentialed party. Immutable once loaded."""

    identifier: str
    """Public identifier (account address)."""

    label: str = ""
    """Display label, e.g. 'Wallet 3'."""

    credential: str = field(default="", repr=False, compare=False)
    """Hex private key when signing locally; empty in node-signer mode."""

    @property
    def display_name(self) -> str:
        return self.label or self.identifier


@dataclass
class ActorStatus:
    """Mutable per-actor status, one per Actor."""

    ready_balance: bool = False
    """Balance covers the per-actor amount."""

    balance: Optional[int] = None
    """Last observed balance in base units."""

    allowance: Optional[int] = None
    """Last observed allowance in base units."""

    authorized: bool = False
    """Target contract may pull the per-actor amount."""

    operation_succeeded: Optional[bool] = None
    """Tri-state: None = unknown, True = success, False = failure."""

    result_handle: Optional[str] = None
    """Reference to the completed operation (transaction hash)."""

    last_error: Optional[str] = None
    """Terminal operation error message."""

    preparation_error: Optional[str] = None
    """Error seen during the readiness phase, if any."""

    @property
    def is_ready(self) -> bool:
        return self.ready_balance and self.authorized

    @property
    def is_settled(self) -> bool:
        return self.operation_succeeded is not None


class StatusCell:
    """
    Exclusive write handle to one actor's status.

    The terminal outcome can be written exactly once.
    """

    def __init__(self, actor: Actor, status: Optional[ActorStatus] = None) -> None:
        self._actor = actor
        self._status = status or ActorStatus()

    @property
    def actor(self) -> Actor:
        return self._actor

    @property
    def status(self) -> ActorStatus:
        return self._status

    # ------------------------------------------------------------
    # Readiness fields
    # ------------------------------------------------------------

    def record_balance(self, balance: int, required: int) -> None:
        self._status.balance = balance
        self._status.ready_balance = balance >= required

    def record_allowance(self, allowance: int) -> None:
        self._status.allowance = allowance

    def mark_authorized(self) -> None:
        self._status.authorized = True

    def record_preparation_error(self, message: str) -> None:
        self._status.preparation_error = message

    # ------------------------------------------------------------
    # Terminal outcome
    # ------------------------------------------------------------

    def record_success(self, result_handle: Optional[str]) -> None:
        self._ensure_unsettled()
        self._status.operation_succeeded = True
        self._status.result_handle = result_handle

    def record_failure(self, error: str) -> None:
        self._ensure_unsettled()
        self._status.operation_succeeded = False
        self._status.last_error = error

    def _ensure_unsettled(self) -> None:
        if self._status.operation_succeeded is not None:
            raise StatusTransitionError(
                f"Outcome for {self._actor.display_name} already recorded",
                context={"actor": self._actor.identifier},
            )

    def __repr__(self) -> str:
        return f"<StatusCell({self._actor.display_name}, succeeded={self._status.operation_succeeded})>"


class ActorRegistry:
    """Ordered set of actors with their status cells."""

    def __init__(self, actors: Sequence[Actor]) -> None:
        seen: Dict[str, Actor] = {}
        for actor in actors:
            key = actor.identifier.lower()
            if key in seen:
                raise ConfigurationError(
                    f"Duplicate actor {actor.identifier}",
                    config_key="actors",
                )
            seen[key] = actor
        self._cells: List[StatusCell] = [StatusCell(a) for a in actors]
        self._index = {c.actor.identifier.lower(): c for c in self._cells}

    @classmethod
    def from_identifiers(
        cls,
        identifiers: Sequence[str],
        credentials: Sequence[str] = (),
    ) -> "ActorRegistry":
        """
        Build a registry labelled 'Wallet 1', 'Wallet 2', ... in order.

        credentials, when given, pairs positionally with identifiers.
        """
        return cls([
            Actor(
                identifier=ident,
                label=f"Wallet {i + 1}",
                credential=credentials[i] if i < len(credentials) else "",
            )
            for i, ident in enumerate(identifiers)
        ])

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[StatusCell]:
        return iter(self._cells)

    def cells(self) -> List[StatusCell]:
        return list(self._cells)

    def actors(self) -> List[Actor]:
        return [c.actor for c in self._cells]

    def cell(self, identifier: str) -> StatusCell:
        return self._index[identifier.lower()]

    def ready_cells(self) -> List[StatusCell]:
        return [c for c in self._cells if c.status.is_ready]


# ============================================================
# TARGET WINDOW
# ============================================================

class WindowPosition(Enum):
    """Where a sampled timestamp falls relative to the window."""

    BEFORE = "BEFORE"
    IN_WINDOW = "IN_WINDOW"
    PAST = "PAST"


@dataclass(frozen=True)
class TargetWindow:
    """
    Inclusive window [target - tolerance, target + tolerance].

    A timestamp t is in window iff |t - target| <= tolerance.
    """

    target_timestamp: int
    tolerance: int = 3

    def __post_init__(self):
        if self.tolerance < 0:
            raise ConfigurationError(
                f"tolerance must be >= 0, got {self.tolerance}",
                config_key="tolerance_seconds",
            )
        if self.target_timestamp <= 0:
            raise ConfigurationError(
                f"target_timestamp must be positive, got {self.target_timestamp}",
                config_key="target_timestamp",
            )

    @property
    def earliest(self) -> int:
        return self.target_timestamp - self.tolerance

    @property
    def latest(self) -> int:
        return self.target_timestamp + self.tolerance

    def contains(self, timestamp: int) -> bool:
        return abs(timestamp - self.target_timestamp) <= self.tolerance

    def classify(self, timestamp: int) -> WindowPosition:
        if self.contains(timestamp):
            return WindowPosition.IN_WINDOW
        if timestamp < self.target_timestamp:
            return WindowPosition.BEFORE
        return WindowPosition.PAST

    def seconds_until(self, timestamp: int) -> int:
        """Target minus timestamp; positive while the target is ahead."""
        return self.target_timestamp - timestamp


# ============================================================
# RUN STATE
# ============================================================

class MonitorState(Enum):
    """Clock Monitor states."""

    POLLING = "POLLING"
    """Waiting for the target window."""

    TRIGGERED = "TRIGGERED"
    """A sample landed in the window; dispatch handed off."""

    PAST_DEADLINE = "PAST_DEADLINE"
    """The window was passed without a sample inside it."""

    ABORTED = "ABORTED"
    """Terminal, no dispatch."""


@dataclass
class RunState:
    """All actor statuses plus run timing metadata."""

    registry: ActorRegistry
    started_at: datetime
    started_monotonic: float = 0.0
    completed_at: Optional[datetime] = None
    completed_monotonic: Optional[float] = None
    monitor_state: MonitorState = MonitorState.POLLING
    trigger_timestamp: Optional[int] = None
    dispatched: bool = False

    @classmethod
    def start(cls, registry: ActorRegistry, clock: ClockProtocol) -> "RunState":
        return cls(
            registry=registry,
            started_at=clock.now(),
            started_monotonic=clock.monotonic(),
        )

    @property
    def is_finalized(self) -> bool:
        return self.completed_at is not None

    def finalize(self, clock: ClockProtocol) -> None:
        """Stamp completion time. Later calls keep the first stamp."""
        if self.completed_at is not None:
            return
        self.completed_at = clock.now()
        self.completed_monotonic = clock.monotonic()

    def elapsed_seconds(self) -> float:
        """Seconds from start to completion; 0.0 until finalized."""
        if self.completed_monotonic is None:
            return 0.0
        return max(0.0, self.completed_monotonic - self.started_monotonic)
