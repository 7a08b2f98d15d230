"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for timed execution.

- Provides clear exception hierarchy
- Separates retryable upstream failures from terminal ones
- Supports error categorization for reporting
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
TimedExecutionError (base)
├── ConfigurationError
├── SetupError
├── UpstreamError
│   ├── TransientUpstreamError
│   └── RejectedOperationError
├── ExhaustedRetryError
├── NoSecondaryConfiguredError
├── DeadlineMissedError
└── StatusTransitionError

============================================================
PROPAGATION
============================================================
- Per-actor errors stop at the Retry Executor boundary
- Loop-level upstream errors stop inside the monitor loop
- Only setup-time errors terminate the process early

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for reporting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact the run."""

    CRITICAL = "critical"
    """Critical issue, the run cannot continue."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from by the caller."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TimedExecutionError(Exception):
    """
    Base exception for all timed execution errors.

    All exceptions carry:
    - severity: for reporting
    - context: for debugging
    - classification: for retry and propagation decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if error is recoverable."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        return self.message


# ============================================================
# SETUP ERRORS
# ============================================================

class ConfigurationError(TimedExecutionError):
    """Error in configuration (malformed window, empty actor set, bad values)."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        errors: Optional[list] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if errors:
            context["errors"] = list(errors)

        super().__init__(message, context=context, **kwargs)
        self.config_key = config_key
        self.errors = list(errors or [])


class SetupError(TimedExecutionError):
    """Setup-time failure that terminates the process before monitoring."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE


# ============================================================
# UPSTREAM ERRORS
# ============================================================

class UpstreamError(TimedExecutionError):
    """Base class for failures reported by an upstream connection."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        connection_name: Optional[str] = None,
        method: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if connection_name:
            context["connection"] = connection_name
        if method:
            context["method"] = method

        super().__init__(message, context=context, **kwargs)
        self.connection_name = connection_name
        self.method = method


class TransientUpstreamError(UpstreamError):
    """Network, timeout or overloaded-upstream failure. Retryable."""


class RejectedOperationError(UpstreamError):
    """
    Remote logic rejected the action (RPC error object, reverted receipt).

    Retryable up to the attempt cap, since resubmission may succeed once a
    prerequisite condition changes on chain.
    """

    default_classification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if code is not None:
            context["code"] = code
        super().__init__(message, context=context, **kwargs)
        self.code = code


# ============================================================
# EXECUTION ERRORS
# ============================================================

class ExhaustedRetryError(TimedExecutionError):
    """Terminal per-operation failure after every attempt failed."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ):
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"{operation} failed: all {attempts} attempts exhausted{detail}",
            context={"operation": operation, "attempts": attempts},
            cause=last_error,
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class NoSecondaryConfiguredError(TimedExecutionError):
    """Failover requested but no secondary connection was configured."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.RECOVERABLE

    def __init__(self, message: str = "No secondary upstream configured"):
        super().__init__(message)


class DeadlineMissedError(TimedExecutionError):
    """
    The monitor observed a timestamp past the target window.

    Recoverable only via explicit operator override.
    """

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.RECOVERABLE

    def __init__(self, target_timestamp: int, observed_timestamp: int):
        seconds_past = observed_timestamp - target_timestamp
        super().__init__(
            f"Target timestamp {target_timestamp} passed {seconds_past}s ago "
            f"(observed {observed_timestamp})",
            context={
                "target_timestamp": target_timestamp,
                "observed_timestamp": observed_timestamp,
                "seconds_past": seconds_past,
            },
        )
        self.target_timestamp = target_timestamp
        self.observed_timestamp = observed_timestamp
        self.seconds_past = seconds_past


class StatusTransitionError(TimedExecutionError):
    """Attempt to write a second terminal outcome into an actor status."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Severity",
    "ErrorClassification",
    "TimedExecutionError",
    "ConfigurationError",
    "SetupError",
    "UpstreamError",
    "TransientUpstreamError",
    "RejectedOperationError",
    "ExhaustedRetryError",
    "NoSecondaryConfiguredError",
    "DeadlineMissedError",
    "StatusTransitionError",
]
