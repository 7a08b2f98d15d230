"""
Outcome Aggregator Tests.

============================================================
PURPOSE
============================================================
Tests for the final run summary and its text rendering.

============================================================
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from core.clock import MockClock
from timed_execution.aggregator import Outcome, OutcomeAggregator
from timed_execution.types import ActorRegistry, MonitorState, RunState


A1 = "0x" + "1" * 40
A2 = "0x" + "2" * 40
A3 = "0x" + "3" * 40

AMOUNT = 1_000 * 10 ** 6


def finished_run(clock: MockClock) -> RunState:
    """Three actors: success, failure, never dispatched."""
    registry = ActorRegistry.from_identifiers([A1, A2, A3])
    state = RunState.start(registry, clock)
    registry.cell(A1).record_success("0xaaa")
    registry.cell(A2).record_failure("Wallet 2 execute failed: all 3 attempts exhausted: reverted")
    registry.cell(A3).record_preparation_error("balance check failed: timeout")
    clock.advance(12.5)
    state.monitor_state = MonitorState.TRIGGERED
    state.trigger_timestamp = 999
    state.finalize(clock)
    return state


# ============================================================
# SUMMARY TESTS
# ============================================================

class TestOutcomeAggregator:
    """Tests for OutcomeAggregator.summarize."""

    def _clock(self) -> MockClock:
        return MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))

    def test_counts_and_total_value(self):
        """Test counts and value moved."""
        clock = self._clock()
        summary = OutcomeAggregator(AMOUNT, 6).summarize(finished_run(clock))

        assert summary.total == 3
        assert summary.successes == 1
        assert summary.failures == 1
        assert summary.not_dispatched == 1
        assert summary.total_value == AMOUNT
        assert summary.total_value_human == Decimal("1000")
        assert summary.elapsed_seconds == 12.5
        assert summary.trigger_timestamp == 999
        assert summary.any_succeeded
        assert not summary.all_succeeded

    def test_rows_in_registry_order(self):
        """Test one row per actor in input order."""
        clock = self._clock()
        summary = OutcomeAggregator(AMOUNT, 6).summarize(finished_run(clock))

        assert [o.identifier for o in summary.outcomes] == [A1, A2, A3]
        assert [o.outcome for o in summary.outcomes] == [
            Outcome.SUCCESS,
            Outcome.FAILURE,
            Outcome.NOT_DISPATCHED,
        ]
        assert summary.outcomes[0].detail == "0xaaa"
        assert summary.outcomes[2].detail == "balance check failed: timeout"

    def test_idempotent(self):
        """Test summarizing a finalized run twice gives identical output."""
        clock = self._clock()
        state = finished_run(clock)
        aggregator = OutcomeAggregator(AMOUNT, 6)

        first = aggregator.summarize(state)
        clock.advance(60)
        second = aggregator.summarize(state)

        assert first.to_dict() == second.to_dict()
        assert first.render_lines() == second.render_lines()

    def test_idempotent_before_finalize(self):
        """Test a still-running state summarizes the same as time passes."""
        clock = self._clock()
        registry = ActorRegistry.from_identifiers([A1, A2])
        state = RunState.start(registry, clock)
        registry.cell(A1).record_success("0xaaa")
        aggregator = OutcomeAggregator(AMOUNT, 6)

        first = aggregator.summarize(state)
        clock.advance(5)
        second = aggregator.summarize(state)

        assert first.to_dict() == second.to_dict()
        assert first.elapsed_seconds == 0.0
        assert first.completed_at is None

    def test_does_not_mutate(self):
        """Test the run state is untouched."""
        clock = self._clock()
        state = finished_run(clock)

        OutcomeAggregator(AMOUNT, 6).summarize(state)

        assert state.registry.cell(A3).status.operation_succeeded is None
        assert state.completed_at is not None

    def test_all_succeeded(self):
        """Test the all-success flag."""
        clock = self._clock()
        registry = ActorRegistry.from_identifiers([A1, A2])
        state = RunState.start(registry, clock)
        for cell in registry:
            cell.record_success("0x1")
        state.finalize(clock)

        summary = OutcomeAggregator(5, 0).summarize(state)

        assert summary.all_succeeded
        assert summary.total_value == 10


# ============================================================
# RENDERING TESTS
# ============================================================

class TestSummaryRendering:
    """Tests for the plain-text summary."""

    def test_render(self):
        """Test the summary text lists counts, hashes and failures."""
        clock = MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        summary = OutcomeAggregator(AMOUNT, 6).summarize(finished_run(clock))

        text = "\n".join(summary.render_lines())

        assert "Monitor state:  TRIGGERED" in text
        assert "Succeeded:      1/3" in text
        assert "Failed:         1/3" in text
        assert "Not dispatched: 1/3" in text
        assert "Total value:    1000 (1000 x 1)" in text
        assert "Wallet 1: 0xaaa" in text
        assert f"Wallet 2 ({A2}): Wallet 2 execute failed" in text

    def test_render_without_failures(self):
        """Test empty sections are omitted."""
        clock = MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        registry = ActorRegistry.from_identifiers([A1])
        state = RunState.start(registry, clock)
        registry.cell(A1).record_success("0x1")
        state.finalize(clock)

        lines = OutcomeAggregator(1, 0).summarize(state).render_lines()

        assert "Failed actors:" not in lines
        assert not any(line.startswith("Not dispatched") for line in lines)
