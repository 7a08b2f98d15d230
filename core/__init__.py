"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Wall-clock abstraction (mockable)
- exceptions: Custom exception hierarchy
- constants: System-wide constants
"""

from core.clock import (
    ClockProtocol,
    MockClock,
    SystemClock,
    format_duration,
    from_unix,
)
from core.exceptions import (
    ConfigurationError,
    DeadlineMissedError,
    ErrorClassification,
    ExhaustedRetryError,
    NoSecondaryConfiguredError,
    RejectedOperationError,
    SetupError,
    Severity,
    StatusTransitionError,
    TimedExecutionError,
    TransientUpstreamError,
    UpstreamError,
)


__all__ = [
    # Clock
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "format_duration",
    "from_unix",

    # Exceptions
    "ConfigurationError",
    "DeadlineMissedError",
    "ErrorClassification",
    "ExhaustedRetryError",
    "NoSecondaryConfiguredError",
    "RejectedOperationError",
    "SetupError",
    "Severity",
    "StatusTransitionError",
    "TimedExecutionError",
    "TransientUpstreamError",
    "UpstreamError",
]
