"""
Readiness Phase Tests.

============================================================
PURPOSE
============================================================
Tests for balance checks, authorization and target state reads
against the in-memory connection.

============================================================
"""

import pytest
from unittest.mock import AsyncMock

from chain_rpc.providers.mock import MockConfig, MockConnection
from chain_rpc.selector import UpstreamSelector
from core.exceptions import SetupError
from reporting.events import EventKind, MemoryReporter
from timed_execution.operations import VaultDepositOperations
from timed_execution.preparation import ReadinessChecker
from timed_execution.retry import RetryExecutor
from timed_execution.types import ActorRegistry, TargetWindow


A1 = "0x" + "1" * 40
A2 = "0x" + "2" * 40
A3 = "0x" + "3" * 40
TOKEN = "0x" + "a" * 40
VAULT = "0x" + "b" * 40

AMOUNT = 1_000


def make_checker(config: MockConfig, reporter=None):
    conn = MockConnection("primary", config)
    checker = ReadinessChecker(
        selector=UpstreamSelector(conn),
        operations=VaultDepositOperations(TOKEN, VAULT, AMOUNT),
        retry=RetryExecutor(3, 0.5, sleep=AsyncMock()),
        amount=AMOUNT,
        token_decimals=0,
        reporter=reporter,
    )
    return checker, conn


# ============================================================
# BALANCE AND AUTHORIZATION TESTS
# ============================================================

class TestReadinessChecker:
    """Tests for ReadinessChecker.prepare."""

    @pytest.mark.asyncio
    async def test_mixed_actors(self):
        """Test authorize-needed, already-authorized and underfunded actors."""
        config = MockConfig(
            timestamps=[900],
            balances={A1: 2_000, A2: 2_000, A3: 10},
            allowances={A2: 5_000},
        )
        reporter = MemoryReporter()
        checker, conn = make_checker(config, reporter)
        registry = ActorRegistry.from_identifiers([A1, A2, A3])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.total == 3
        assert report.balance_ready == 2
        assert report.authorized == 2
        assert report.authorized_now == 1
        assert report.ready == 2
        assert report.seconds_to_target == 100

        assert len(conn.writes_for(A1)) == 1
        assert conn.writes_for(A2) == []
        assert conn.writes_for(A3) == []

        assert registry.cell(A1).status.allowance == AMOUNT
        assert not registry.cell(A3).status.ready_balance
        assert registry.cell(A3).status.balance == 10
        assert len(reporter.of_kind(EventKind.PREPARATION)) == 1

    @pytest.mark.asyncio
    async def test_read_failure_marks_actor(self):
        """Test a failing balance read leaves a preparation error after retries."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            failing_reads={A2},
        )
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1, A2])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.read_failures == 1
        assert report.ready == 1
        error = registry.cell(A2).status.preparation_error
        assert error.startswith("balance check failed")
        assert registry.cell(A2).status.operation_succeeded is None

    @pytest.mark.asyncio
    async def test_authorize_failure(self):
        """Test a rejected approval is recorded and the actor is not ready."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            failing_actors={A1},
        )
        checker, conn = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1, A2])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.authorize_failures == 1
        assert report.authorized_now == 1
        assert len(conn.writes_for(A1)) == 3
        assert "authorization failed" in registry.cell(A1).status.preparation_error
        assert [c.actor.identifier for c in registry.ready_cells()] == [A2]

    @pytest.mark.asyncio
    async def test_no_ready_actor_is_setup_error(self):
        """Test zero ready actors raises SetupError."""
        checker, _ = make_checker(MockConfig(timestamps=[900]))
        registry = ActorRegistry.from_identifiers([A1, A2])

        with pytest.raises(SetupError):
            await checker.prepare(registry, TargetWindow(1_000, 3))

    @pytest.mark.asyncio
    async def test_no_ready_actor_allowed(self):
        """Test require_ready_actor=False returns the report instead."""
        checker, _ = make_checker(MockConfig(timestamps=[900]))
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(
            registry,
            TargetWindow(1_000, 3),
            require_ready_actor=False,
        )

        assert report.ready == 0


# ============================================================
# TARGET STATE TESTS
# ============================================================

class TestTargetState:
    """Tests for the target state phase."""

    @pytest.mark.asyncio
    async def test_cap_below_amount_warns(self):
        """Test a per-actor cap below the amount is a warning only."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            default_allowance=AMOUNT,
            total_assets=77,
            max_deposit=500,
        )
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.target_state == {
            "total_assets": 77,
            "max_deposit": 500,
            "operational_mode": 1,
            "deposit_start": 0,
            "deposit_end": 0,
            "max_total_assets": 2 ** 256 - 1,
        }
        assert any("Per-actor cap" in w for w in report.warnings)
        assert report.ready == 1

    @pytest.mark.asyncio
    async def test_vault_not_in_deposit_mode_warns(self):
        """Test a vault outside Deposit mode is named in a warning."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            default_allowance=AMOUNT,
            operational_mode=0,
        )
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert "Vault is not in Deposit mode (current: Idle (0))" in report.warnings
        assert report.ready == 1

    @pytest.mark.asyncio
    async def test_total_cap_too_small_for_all_actors(self):
        """Test a vault total cap without room for every ready actor warns."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            default_allowance=AMOUNT,
            total_assets=9_000,
            max_total_assets=10_500,
        )
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1, A2])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.target_state["max_total_assets"] == 10_500
        assert "Vault total cap 10500 leaves room for 1500, below the 2000 planned" in report.warnings

    @pytest.mark.asyncio
    async def test_deposit_window_outside_target(self):
        """Test a deposit window that misses the target warns."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            default_allowance=AMOUNT,
            deposit_start=2_000,
            deposit_end=500,
        )
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert "Deposits open at 2000, after the target window" in report.warnings
        assert "Deposits closed at 500, before the target window" in report.warnings

    @pytest.mark.asyncio
    async def test_plain_vault_without_status_getters(self):
        """Test a vault lacking the status getters reads them as None, without warnings."""
        config = MockConfig(
            timestamps=[900],
            default_balance=AMOUNT,
            default_allowance=AMOUNT,
            operational_mode=None,
            deposit_start=None,
            deposit_end=None,
            max_total_assets=None,
        )
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.target_state["operational_mode"] is None
        assert report.target_state["max_total_assets"] is None
        assert report.warnings == []
        assert report.ready == 1

    @pytest.mark.asyncio
    async def test_target_already_passed(self):
        """Test a passed target is reported as a warning."""
        config = MockConfig(timestamps=[1_100], default_balance=AMOUNT, default_allowance=AMOUNT)
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.seconds_to_target == -100
        assert "Target passed 100s ago" in report.warnings

    @pytest.mark.asyncio
    async def test_timestamp_unavailable(self):
        """Test a failed timestamp read leaves seconds_to_target unset."""
        config = MockConfig(default_balance=AMOUNT, default_allowance=AMOUNT)
        checker, _ = make_checker(config)
        registry = ActorRegistry.from_identifiers([A1])

        report = await checker.prepare(registry, TargetWindow(1_000, 3))

        assert report.seconds_to_target is None
        assert report.ready == 1
