"""
Timed Execution - Clock Monitor.

============================================================
PURPOSE
============================================================
Polls the external clock (latest block timestamp) through the
Upstream Selector and decides when the target window is reached.

STATE MACHINE:

    POLLING ──(sample in window)──────────► TRIGGERED ──► dispatch once
       │
       ├──(sample past window)────────────► PAST_DEADLINE
       │                                        │
       │                     proceed override ──┼──► dispatch once
       │                                        │
       │                     no override ───────┴──► ABORTED
       │
       └──(stop requested)────────────────► ABORTED

POLLING POLICY:
- Short interval once the target is within the countdown threshold,
  long interval otherwise
- Heartbeat at most once per heartbeat interval while far away
- Countdown on every poll once near
- Query failure: fail over once if possible, back off, keep polling

ASSUMPTION:
    External timestamps are non-decreasing. Two polls that skip over
    the whole window land in PAST_DEADLINE; a missed window is not
    detected retroactively.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from chain_rpc.selector import UpstreamSelector
from core.clock import ClockProtocol, SystemClock, format_duration, from_unix
from core.exceptions import DeadlineMissedError, NoSecondaryConfiguredError
from reporting.events import EventKind, NullReporter, ReporterSink

from .config import PollingConfig
from .types import MonitorState, TargetWindow, WindowPosition


logger = logging.getLogger(__name__)


@dataclass
class MonitorResult:
    """Outcome of the monitoring loop."""

    state: MonitorState
    """Terminal (or decision-point) state reached."""

    observed_timestamp: Optional[int] = None
    """Last external timestamp sampled."""

    block_number: Optional[int] = None
    """Block the last timestamp came from, when known."""

    polls: int = 0
    """Successful timestamp samples."""

    errors: int = 0
    """Failed timestamp queries."""

    dispatched: bool = False
    """Whether the dispatch handoff happened."""

    dispatch_result: Any = None
    """Whatever the dispatch callable returned."""

    target_timestamp: Optional[int] = None

    @property
    def offset_seconds(self) -> Optional[int]:
        """Observed minus target; negative means early."""
        if self.observed_timestamp is None or self.target_timestamp is None:
            return None
        return self.observed_timestamp - self.target_timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "observed_timestamp": self.observed_timestamp,
            "target_timestamp": self.target_timestamp,
            "offset_seconds": self.offset_seconds,
            "block_number": self.block_number,
            "polls": self.polls,
            "errors": self.errors,
            "dispatched": self.dispatched,
        }


class ClockMonitor:
    """
    Drives the wait for the target window.

    The connection is looked up through the selector on every poll so
    a failover takes effect on the next sample.
    """

    def __init__(
        self,
        selector: UpstreamSelector,
        window: TargetWindow,
        polling: Optional[PollingConfig] = None,
        reporter: Optional[ReporterSink] = None,
        clock: Optional[ClockProtocol] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._selector = selector
        self._window = window
        self._polling = polling or PollingConfig()
        self._reporter = reporter or NullReporter()
        self._clock = clock or SystemClock()
        self._sleep = sleep

        self._state = MonitorState.POLLING
        self._stop_requested = False
        self._last_heartbeat: Optional[float] = None
        self._countdown_started = False
        self._warned_no_secondary = False

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def window(self) -> TargetWindow:
        return self._window

    def stop(self) -> None:
        """Request the loop to end; takes effect before the next poll."""
        if not self._stop_requested:
            logger.warning("[monitor] Stop requested")
        self._stop_requested = True

    def poll_interval(self, remaining_seconds: int) -> float:
        """Sleep before the next poll given seconds left to the target."""
        if remaining_seconds <= self._polling.countdown_threshold_seconds:
            return self._polling.near_interval_seconds
        return self._polling.far_interval_seconds

    # ------------------------------------------------------------
    # Polling loop
    # ------------------------------------------------------------

    async def wait_for_window(self) -> MonitorResult:
        """
        Poll until a sample lands in the window, past it, or stop().

        Returns:
            MonitorResult in TRIGGERED, PAST_DEADLINE or ABORTED
        """
        result = MonitorResult(
            state=MonitorState.POLLING,
            target_timestamp=self._window.target_timestamp,
        )
        self._state = MonitorState.POLLING

        logger.info(
            f"[monitor] Target {self._window.target_timestamp} "
            f"({from_unix(self._window.target_timestamp).isoformat()}), "
            f"tolerance ±{self._window.tolerance}s"
        )

        while not self._stop_requested:
            connection = self._selector.current_connection()
            try:
                block = await connection.get_latest_block()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                result.errors += 1
                self._on_query_error(connection.name, e)
                await self._sleep(self._polling.error_backoff_seconds)
                continue

            result.polls += 1
            result.observed_timestamp = block.timestamp
            result.block_number = block.number

            position = self._window.classify(block.timestamp)

            if position == WindowPosition.IN_WINDOW:
                return self._finish(result, MonitorState.TRIGGERED)

            if position == WindowPosition.PAST:
                return self._finish(result, MonitorState.PAST_DEADLINE)

            remaining = self._window.seconds_until(block.timestamp)
            self._report_progress(block.timestamp, block.number, remaining)
            await self._sleep(self.poll_interval(remaining))

        return self._finish(result, MonitorState.ABORTED)

    async def run(
        self,
        dispatch: Callable[[MonitorResult], Awaitable[Any]],
        proceed_past_deadline: bool = False,
    ) -> MonitorResult:
        """
        Wait for the window, then hand off to dispatch at most once.

        Args:
            dispatch: Called once on TRIGGERED, or on PAST_DEADLINE
                when proceed_past_deadline is set
            proceed_past_deadline: Operator override for a missed window

        Returns:
            MonitorResult (dispatched=True when the handoff happened)

        Raises:
            DeadlineMissedError: Window missed without override; the
                monitor is left in ABORTED
        """
        result = await self.wait_for_window()

        if result.state == MonitorState.PAST_DEADLINE:
            if not proceed_past_deadline:
                self._state = MonitorState.ABORTED
                result.state = MonitorState.ABORTED
                raise DeadlineMissedError(
                    self._window.target_timestamp,
                    result.observed_timestamp,
                )
            logger.warning("[monitor] Proceeding past deadline by operator override")

        if result.state in (MonitorState.TRIGGERED, MonitorState.PAST_DEADLINE):
            result.dispatched = True
            result.dispatch_result = await dispatch(result)

        return result

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _finish(self, result: MonitorResult, state: MonitorState) -> MonitorResult:
        self._state = state
        result.state = state

        if state == MonitorState.TRIGGERED:
            self._reporter.report(
                EventKind.WINDOW_REACHED,
                f"Target window reached at block {result.block_number} "
                f"(timestamp {result.observed_timestamp}, offset {result.offset_seconds:+d}s)",
                block_number=result.block_number,
                timestamp=result.observed_timestamp,
                offset_seconds=result.offset_seconds,
            )
        elif state == MonitorState.PAST_DEADLINE:
            self._reporter.report(
                EventKind.DEADLINE_MISSED,
                f"Target passed {result.offset_seconds}s ago "
                f"(observed {result.observed_timestamp})",
                timestamp=result.observed_timestamp,
                offset_seconds=result.offset_seconds,
            )
        else:
            logger.warning(f"[monitor] Stopped after {result.polls} polls, no dispatch")
        return result

    def _report_progress(self, timestamp: int, block_number: int, remaining: int) -> None:
        if remaining <= self._polling.countdown_threshold_seconds:
            if not self._countdown_started:
                self._countdown_started = True
                logger.info("[monitor] Countdown started")
            self._reporter.report(
                EventKind.COUNTDOWN,
                f"{remaining}s remaining",
                remaining_seconds=remaining,
                timestamp=timestamp,
            )
            return

        now = self._clock.monotonic()
        if (
            self._last_heartbeat is None
            or now - self._last_heartbeat >= self._polling.heartbeat_interval_seconds
        ):
            self._last_heartbeat = now
            self._reporter.report(
                EventKind.HEARTBEAT,
                f"Waiting... block {block_number}, "
                f"{from_unix(timestamp).isoformat()}, "
                f"{format_duration(remaining)} remaining",
                block_number=block_number,
                timestamp=timestamp,
                remaining_seconds=remaining,
            )

    def _on_query_error(self, connection_name: str, error: Exception) -> None:
        """Log the failure and fail over once if a secondary is available."""
        logger.error(f"[monitor] Timestamp query on '{connection_name}' failed: {error}")
        self._reporter.report(
            EventKind.UPSTREAM_ERROR,
            f"Timestamp query on '{connection_name}' failed: {error}",
            connection=connection_name,
            error=str(error),
        )

        if self._selector.is_failed_over:
            return

        try:
            self._selector.failover()
        except NoSecondaryConfiguredError as e:
            if not self._warned_no_secondary:
                self._warned_no_secondary = True
                logger.warning(f"[monitor] Cannot fail over: {e}")

