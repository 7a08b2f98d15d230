"""
Timed Execution Service Tests.

============================================================
PURPOSE
============================================================
End-to-end runs against the in-memory connection.

TEST CATEGORIES:
- Exit codes for every outcome
- Readiness phase integration
- Failover on the dispatch path
- Stop requests and cleanup

The first scripted timestamp of a prepared run is consumed by the
readiness phase (time to target).

============================================================
"""

import pytest
from datetime import datetime, timezone
from typing import List
from unittest.mock import AsyncMock, MagicMock

from chain_rpc.providers.mock import MockConfig, MockConnection
from chain_rpc.selector import UpstreamSelector
from core.clock import MockClock
from core.exceptions import ConfigurationError, SetupError, TransientUpstreamError
from reporting.events import EventKind, MemoryReporter
from timed_execution.config import ExecutionConfig
from timed_execution.operations import VaultDepositOperations
from timed_execution.service import TimedExecutionService, exit_code_for
from timed_execution.types import MonitorState


A1 = "0x" + "1" * 40
A2 = "0x" + "2" * 40
TOKEN = "0x" + "a" * 40
VAULT = "0x" + "b" * 40

AMOUNT = 1_000


class FakeSleep:
    """Advances the clock instead of waiting."""

    def __init__(self, clock: MockClock):
        self.clock = clock
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


def make_config(**overrides) -> ExecutionConfig:
    data = {
        "target_timestamp": 1_000,
        "tolerance_seconds": 3,
        "actors": [A1, A2],
        "token_address": TOKEN,
        "vault_address": VAULT,
        "amount_base_units": AMOUNT,
        "token_decimals": 0,
        "upstream": {"primary_url": "https://rpc.example.org"},
    }
    data.update(overrides)
    return ExecutionConfig.from_dict(data)


def make_service(config: ExecutionConfig, primary, secondary=None):
    clock = MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
    reporter = MemoryReporter()
    selector = UpstreamSelector(primary, secondary)
    service = TimedExecutionService(
        config=config,
        selector=selector,
        operations=VaultDepositOperations(TOKEN, VAULT, config.amount),
        reporter=reporter,
        clock=clock,
        sleep=FakeSleep(clock),
    )
    return service, reporter, selector


def funded(*timestamps, **kwargs) -> MockConnection:
    config = MockConfig(
        timestamps=list(timestamps),
        default_balance=AMOUNT,
        default_allowance=AMOUNT,
        **kwargs,
    )
    return MockConnection("primary", config)


# ============================================================
# EXIT CODE TESTS
# ============================================================

class TestRunOutcomes:
    """Tests for complete runs and their exit codes."""

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        """Test every actor succeeding exits 0."""
        conn = funded(900, 990, 998)
        service, reporter, _ = make_service(make_config(), conn)

        report = await service.run()

        assert report.exit_code == 0
        assert report.monitor_state == MonitorState.TRIGGERED
        assert report.summary.successes == 2
        assert report.summary.trigger_timestamp == 998
        assert report.preparation.ready == 2
        assert report.dispatch.successes == 2
        assert report.error is None
        assert len(reporter.of_kind(EventKind.SUMMARY)) == 1
        assert report.upstream["active"] == "primary"
        assert not report.upstream["failed_over"]
        assert reporter.kinds()[-1] == EventKind.SUMMARY

    @pytest.mark.asyncio
    async def test_partial_success(self):
        """Test one failing actor exits 2 after exhausting retries."""
        conn = funded(900, 999, failing_actors={A2})
        service, _, _ = make_service(make_config(), conn)

        report = await service.run()

        assert report.exit_code == 2
        assert report.summary.successes == 1
        assert report.summary.failures == 1
        assert len(conn.writes_for(A2)) == 3
        assert len(conn.writes_for(A1)) == 1

    @pytest.mark.asyncio
    async def test_none_succeed(self):
        """Test all actors failing exits 3."""
        conn = funded(900, 1_000, failing_actors={A1, A2})
        service, _, _ = make_service(make_config(), conn)

        report = await service.run()

        assert report.exit_code == 3
        assert report.summary.successes == 0
        assert service.run_state.dispatched

    @pytest.mark.asyncio
    async def test_deadline_missed(self):
        """Test a skipped window aborts with exit 4 and no writes."""
        conn = funded(900, 990, 1_010)
        service, reporter, _ = make_service(make_config(), conn)

        report = await service.run()

        assert report.exit_code == 4
        assert report.monitor_state == MonitorState.ABORTED
        assert report.error == "Target timestamp 1000 passed 10s ago (observed 1010)"
        assert conn.writes_for(A1) == []
        assert conn.writes_for(A2) == []
        assert report.summary.not_dispatched == 2
        assert len(reporter.of_kind(EventKind.DEADLINE_MISSED)) == 1

    @pytest.mark.asyncio
    async def test_proceed_past_deadline(self):
        """Test the override dispatches once after a missed window."""
        conn = funded(900, 1_010)
        config = make_config(proceed_past_deadline=True)
        service, _, _ = make_service(config, conn)

        report = await service.run()

        assert report.monitor_state == MonitorState.PAST_DEADLINE
        assert report.exit_code == 0
        assert len(conn.writes_for(A1)) == 1
        assert len(conn.writes_for(A2)) == 1


# ============================================================
# PREPARATION TESTS
# ============================================================

class TestPreparationIntegration:
    """Tests for the readiness phase inside a run."""

    @pytest.mark.asyncio
    async def test_no_ready_actor_raises(self):
        """Test a run with no funded actor raises SetupError before monitoring."""
        conn = MockConnection("primary", MockConfig(timestamps=[900, 998]))
        service, _, _ = make_service(make_config(), conn)

        with pytest.raises(SetupError):
            await service.run()

        assert conn.timestamp_queries == 1

    @pytest.mark.asyncio
    async def test_skip_preparation(self):
        """Test skip_preparation goes straight to monitoring."""
        conn = funded(998)
        service, _, _ = make_service(make_config(skip_preparation=True), conn)

        report = await service.run()

        assert report.preparation is None
        assert report.exit_code == 0
        assert not [c for c in conn.calls if c.method == "call_read"]

    @pytest.mark.asyncio
    async def test_authorization_during_preparation(self):
        """Test actors without allowance are authorized before dispatch."""
        conn = MockConnection("primary", MockConfig(
            timestamps=[900, 998],
            default_balance=AMOUNT,
        ))
        service, _, _ = make_service(make_config(), conn)

        report = await service.run()

        assert report.preparation.authorized_now == 2
        assert report.exit_code == 0
        descriptions = [c.payload["description"] for c in conn.writes_for(A1)]
        assert descriptions == ["approve", "deposit"]


# ============================================================
# FAILOVER TESTS
# ============================================================

class TestDispatchFailover:
    """Tests for failover on the dispatch path."""

    @pytest.mark.asyncio
    async def test_transient_write_error_fails_over(self):
        """Test a transient write error switches upstream and the retry succeeds."""
        primary = funded(998)
        primary.call_write = AsyncMock(side_effect=TransientUpstreamError("timeout"))
        secondary = MockConnection("secondary", MockConfig(timestamps=[998]))
        service, reporter, selector = make_service(
            make_config(skip_preparation=True),
            primary,
            secondary,
        )

        report = await service.run()

        assert report.exit_code == 0
        assert selector.current_connection() is secondary
        assert len(reporter.of_kind(EventKind.FAILOVER)) == 1
        assert len(secondary.writes_for(A1)) == 1
        assert len(secondary.writes_for(A2)) == 1

    @pytest.mark.asyncio
    async def test_monitor_failover_reported_once(self):
        """Test a failover while monitoring yields exactly one FAILOVER event."""
        primary = funded(TransientUpstreamError("timeout"))
        secondary = MockConnection("secondary", MockConfig(timestamps=[998]))
        service, reporter, selector = make_service(
            make_config(skip_preparation=True),
            primary,
            secondary,
        )

        report = await service.run()

        assert report.exit_code == 0
        events = reporter.of_kind(EventKind.FAILOVER)
        assert len(events) == 1
        assert events[0].data == {"from_connection": "primary", "to_connection": "secondary"}
        assert report.upstream["active"] == "secondary"
        assert report.upstream["failed_over"]
        assert primary.writes_for(A1) == []

    @pytest.mark.asyncio
    async def test_rejection_does_not_fail_over(self):
        """Test rejected writes stay on the primary."""
        primary = funded(998, failing_actors={A1})
        secondary = MockConnection("secondary", MockConfig(timestamps=[998]))
        service, reporter, selector = make_service(
            make_config(skip_preparation=True),
            primary,
            secondary,
        )

        report = await service.run()

        assert report.exit_code == 2
        assert selector.current_connection() is primary
        assert reporter.of_kind(EventKind.FAILOVER) == []
        assert secondary.writes_for(A1) == []


# ============================================================
# LIFECYCLE TESTS
# ============================================================

class TestLifecycle:
    """Tests for stop, close and construction."""

    @pytest.mark.asyncio
    async def test_stop_before_run(self):
        """Test a stop request aborts without dispatch."""
        conn = funded(998)
        service, _, _ = make_service(make_config(skip_preparation=True), conn)
        service.request_stop()

        report = await service.run()

        assert report.exit_code == 4
        assert report.monitor_state == MonitorState.ABORTED
        assert report.error is None
        assert conn.writes_for(A1) == []

    @pytest.mark.asyncio
    async def test_close(self):
        """Test close closes both connections."""
        primary = funded(998)
        secondary = MockConnection("secondary")
        service, _, _ = make_service(make_config(), primary, secondary)

        await service.close()

        assert primary.closed
        assert secondary.closed

    def test_no_actors(self):
        """Test an empty actor list is rejected at construction."""
        with pytest.raises(ConfigurationError):
            make_service(make_config(actors=[]), funded(998))

    def test_exit_code_for(self):
        """Test exit code mapping helper."""
        summary = MagicMock(all_succeeded=False, any_succeeded=True)

        assert exit_code_for(summary, dispatched=True) == 2
        assert exit_code_for(summary, dispatched=False) == 4
        summary.any_succeeded = False
        assert exit_code_for(summary, dispatched=True) == 3
        summary.all_succeeded = True
        assert exit_code_for(summary, dispatched=True) == 0
