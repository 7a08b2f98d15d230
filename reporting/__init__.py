"""
Reporting Package.

Reporter sinks for engine events and plain-text summary rendering.

Modules:
- events: Event kinds, sink interface, logging/memory/composite sinks
- summary: Run summary rendering
"""

from reporting.events import (
    CompositeReporter,
    EventKind,
    LoggingReporter,
    MemoryReporter,
    NullReporter,
    ReportEvent,
    ReporterSink,
    default_reporter,
)
from reporting.summary import render_summary


__all__ = [
    "CompositeReporter",
    "EventKind",
    "LoggingReporter",
    "MemoryReporter",
    "NullReporter",
    "ReportEvent",
    "ReporterSink",
    "default_reporter",
    "render_summary",
]
