"""
Timed Execution Package.

Timestamp-synchronized parallel execution: waits for a target moment
on an external clock, then runs one operation per actor concurrently
with bounded retry and upstream failover.

Modules:
- types: Actors, status cells, target window, run state
- retry: Retry Executor
- monitor: Clock Monitor
- dispatcher: Parallel Dispatcher
- aggregator: Outcome Aggregator
- operations: Per-actor operations (vault deposit)
- preparation: Readiness phase
- config: Run configuration
- service: End-to-end run
"""

from .aggregator import ActorOutcome, Outcome, OutcomeAggregator, RunSummary
from .config import (
    ExecutionConfig,
    GasConfig,
    PollingConfig,
    RetryConfig,
    UpstreamConfig,
    from_base_units,
    to_base_units,
)
from .dispatcher import DispatchResult, ParallelDispatcher
from .monitor import ClockMonitor, MonitorResult
from .operations import ActorOperations, OperationResult, VaultDepositOperations
from .preparation import PreparationReport, ReadinessChecker
from .retry import RetryExecutor
from .service import RunReport, TimedExecutionService, exit_code_for
from .types import (
    Actor,
    ActorRegistry,
    ActorStatus,
    MonitorState,
    RunState,
    StatusCell,
    TargetWindow,
    WindowPosition,
)


__all__ = [
    # Types
    "Actor",
    "ActorRegistry",
    "ActorStatus",
    "MonitorState",
    "RunState",
    "StatusCell",
    "TargetWindow",
    "WindowPosition",

    # Engine
    "RetryExecutor",
    "ClockMonitor",
    "MonitorResult",
    "ParallelDispatcher",
    "DispatchResult",
    "OutcomeAggregator",
    "RunSummary",
    "ActorOutcome",
    "Outcome",

    # Operations
    "ActorOperations",
    "OperationResult",
    "VaultDepositOperations",
    "ReadinessChecker",
    "PreparationReport",

    # Config
    "ExecutionConfig",
    "GasConfig",
    "PollingConfig",
    "RetryConfig",
    "UpstreamConfig",
    "from_base_units",
    "to_base_units",

    # Service
    "TimedExecutionService",
    "RunReport",
    "exit_code_for",
]
