"""
Reporting - Progress and Outcome Events.

============================================================
PURPOSE
============================================================
Structured events emitted by the execution engine.

EVENT KINDS:
- Heartbeat while waiting far from the target
- Countdown once the target is near
- Window reached / deadline missed
- Upstream failover
- Per-actor result
- Preparation progress
- Final summary

DELIVERY:
- Sinks receive events synchronously, in the order generated
- Rendering is the sink's concern; the engine assumes none

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)


# ============================================================
# EVENT TYPES
# ============================================================

class EventKind(Enum):
    """Kinds of reporter events."""

    HEARTBEAT = "HEARTBEAT"
    """Still waiting, target far away."""

    COUNTDOWN = "COUNTDOWN"
    """Target within the countdown threshold."""

    WINDOW_REACHED = "WINDOW_REACHED"
    """Sampled timestamp landed in the target window."""

    DEADLINE_MISSED = "DEADLINE_MISSED"
    """Sampled timestamp is past the target window."""

    FAILOVER = "FAILOVER"
    """Active upstream switched to the secondary."""

    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    """Timestamp query failed inside the monitor loop."""

    ACTOR_RESULT = "ACTOR_RESULT"
    """One actor's operation settled."""

    PREPARATION = "PREPARATION"
    """Readiness phase progress."""

    SUMMARY = "SUMMARY"
    """Final run summary."""


# Log level used by LoggingReporter per event kind
_EVENT_LEVELS = {
    EventKind.HEARTBEAT: logging.INFO,
    EventKind.COUNTDOWN: logging.INFO,
    EventKind.WINDOW_REACHED: logging.INFO,
    EventKind.DEADLINE_MISSED: logging.ERROR,
    EventKind.FAILOVER: logging.WARNING,
    EventKind.UPSTREAM_ERROR: logging.WARNING,
    EventKind.ACTOR_RESULT: logging.INFO,
    EventKind.PREPARATION: logging.INFO,
    EventKind.SUMMARY: logging.INFO,
}


@dataclass
class ReportEvent:
    """A single reporter event."""

    kind: EventKind
    """Kind of event."""

    message: str
    """Human-readable one-liner."""

    data: Dict[str, Any] = field(default_factory=dict)
    """Structured payload."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the event was generated (local wall clock)."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# SINKS
# ============================================================

class ReporterSink(ABC):
    """Accepts structured progress and outcome events."""

    @abstractmethod
    def emit(self, event: ReportEvent) -> None:
        """Deliver one event. Must not reorder events."""
        pass

    def report(
        self,
        kind: EventKind,
        message: str,
        **data: Any,
    ) -> ReportEvent:
        """Build and emit an event in one call."""
        event = ReportEvent(kind=kind, message=message, data=data)
        self.emit(event)
        return event


class LoggingReporter(ReporterSink):
    """Writes events to the standard logger."""

    def __init__(self, name: str = "timed_dispatch.events") -> None:
        self._logger = logging.getLogger(name)

    def emit(self, event: ReportEvent) -> None:
        level = _EVENT_LEVELS.get(event.kind, logging.INFO)
        self._logger.log(level, event.message, extra={"event": event.to_dict()})


class MemoryReporter(ReporterSink):
    """Keeps events in memory. Used by tests and for the final report."""

    def __init__(self) -> None:
        self._events: List[ReportEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: ReportEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[ReportEvent]:
        with self._lock:
            return list(self._events)

    def of_kind(self, kind: EventKind) -> List[ReportEvent]:
        return [e for e in self.events if e.kind == kind]

    def kinds(self) -> List[EventKind]:
        return [e.kind for e in self.events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class CompositeReporter(ReporterSink):
    """Fans every event out to several sinks, in registration order."""

    def __init__(self, *sinks: ReporterSink) -> None:
        self._sinks: List[ReporterSink] = list(sinks)

    def add(self, sink: ReporterSink) -> None:
        self._sinks.append(sink)

    def emit(self, event: ReportEvent) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as e:
                logger.error(f"Reporter sink {type(sink).__name__} failed: {e}")


class NullReporter(ReporterSink):
    """Discards events."""

    def emit(self, event: ReportEvent) -> None:
        return None


def default_reporter(extra: Optional[ReporterSink] = None) -> ReporterSink:
    """Logging reporter, optionally combined with another sink."""
    if extra is None:
        return LoggingReporter()
    return CompositeReporter(LoggingReporter(), extra)
