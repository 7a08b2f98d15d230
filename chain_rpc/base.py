"""
Base Upstream Connection - Abstract interface for all chain connections.

All connections MUST:
- Raise TransientUpstreamError for network/timeout failures
- Raise RejectedOperationError when the remote side rejects an action
- Never retry on their own (retry policy belongs to the caller)
- Track health so operators can see which upstream is struggling
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from chain_rpc.models import (
    BlockInfo,
    ConnectionHealth,
    ConnectionStatus,
    OperationHandle,
    ReadQuery,
    Settlement,
    WriteRequest,
)
from core.exceptions import UpstreamError


logger = logging.getLogger(__name__)


class BaseConnection(ABC):
    """
    Abstract base class for upstream connections.

    Each connection must:
    1. Implement get_latest_block() - Read the newest block header
    2. Implement call_read() - Side-effect free contract call
    3. Implement call_write() - Submit a write for an actor
    4. Implement await_settlement() - Wait for a write's final outcome

    Features:
    - Health tracking (consecutive failures, latency, last error)
    - Async context manager support
    """

    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(self, name: str) -> None:
        self._name = name
        self._health = ConnectionHealth()

    @property
    def name(self) -> str:
        """Identifier used in logs and handles ("primary", "secondary", ...)."""
        return self._name

    @abstractmethod
    async def get_latest_block(self) -> BlockInfo:
        """
        Read the latest block header.

        Raises:
            UpstreamError: If the upstream cannot answer
        """
        pass

    async def get_current_timestamp(self) -> int:
        """Current external time: the latest block's timestamp in seconds."""
        block = await self.get_latest_block()
        return block.timestamp

    @abstractmethod
    async def call_read(self, actor: Optional[str], query: ReadQuery) -> str:
        """
        Execute a read-only call.

        Args:
            actor: Account the call is made from, if any
            query: Target and calldata

        Returns:
            Hex-encoded return data
        """
        pass

    @abstractmethod
    async def call_write(self, actor: str, request: WriteRequest) -> OperationHandle:
        """
        Submit a state-changing call on behalf of an actor.

        Returns:
            Handle identifying the submitted operation
        """
        pass

    @abstractmethod
    async def await_settlement(self, handle: OperationHandle) -> Settlement:
        """
        Wait until a submitted operation is final.

        Returns:
            Settlement with success flag and detail
        """
        pass

    # ─────────────────────────────────────────────────────────────
    # Health Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_request(self) -> float:
        """Record a request start; returns the start time for latency."""
        self._health.request_count += 1
        return time.monotonic()

    def _on_success(self, started: Optional[float] = None) -> None:
        """Handle successful request."""
        if started is not None:
            self._health.latency_ms = (time.monotonic() - started) * 1000
        self._health.consecutive_failures = 0
        self._health.last_success_time = datetime.now(timezone.utc)

        if self._health.status != ConnectionStatus.HEALTHY:
            if self._health.status != ConnectionStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = ConnectionStatus.HEALTHY

    def _on_error(self, error: UpstreamError) -> None:
        """Handle request error."""
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)

        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != ConnectionStatus.UNAVAILABLE:
                self._health.status = ConnectionStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != ConnectionStatus.DEGRADED:
                self._health.status = ConnectionStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

    def get_health(self) -> ConnectionHealth:
        """Get current health status."""
        return self._health

    def is_healthy(self) -> bool:
        """Check if connection is healthy."""
        return self._health.is_healthy()

    def describe(self) -> dict[str, Any]:
        """Loggable description without secrets."""
        return {"name": self.name, "health": self._health.to_dict()}

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        return None

    async def __aenter__(self) -> "BaseConnection":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
