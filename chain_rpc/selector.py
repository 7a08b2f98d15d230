"""
Upstream Selector - Primary/secondary connection pair with manual failover.

Features:
- current_connection() indirection, read fresh on every use
- One-directional failover (primary -> secondary), no fail-back
- Mutex-guarded handle swap so concurrent readers see the latest switch
- Failover callbacks for reporting
"""

import logging
import threading
from typing import Any, Callable, Optional

from chain_rpc.base import BaseConnection
from core.exceptions import NoSecondaryConfiguredError


logger = logging.getLogger(__name__)


class UpstreamSelector:
    """
    Holds the primary and optional secondary connection.

    Callers MUST fetch the connection through current_connection() for
    every request and never keep a reference across retries.

    Usage:
        selector = UpstreamSelector(primary, secondary)
        conn = selector.current_connection()
        try:
            ts = await conn.get_current_timestamp()
        except UpstreamError:
            selector.failover()
    """

    def __init__(
        self,
        primary: BaseConnection,
        secondary: Optional[BaseConnection] = None,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._active = primary
        self._lock = threading.Lock()

        self._on_failover_callbacks: list[Callable[[str, str], None]] = []

    @property
    def primary(self) -> BaseConnection:
        return self._primary

    @property
    def secondary(self) -> Optional[BaseConnection]:
        return self._secondary

    @property
    def has_secondary(self) -> bool:
        return self._secondary is not None

    @property
    def is_failed_over(self) -> bool:
        with self._lock:
            return self._active is not self._primary

    def current_connection(self) -> BaseConnection:
        """Return the connection new requests should use."""
        with self._lock:
            return self._active

    def failover(self) -> bool:
        """
        Switch the active connection from primary to secondary.

        Already on the secondary: no-op, returns True.

        Returns:
            True once the secondary is active

        Raises:
            NoSecondaryConfiguredError: No secondary configured; active
                connection is left unchanged
        """
        if self._secondary is None:
            raise NoSecondaryConfiguredError()

        with self._lock:
            if self._active is self._secondary:
                return True
            previous = self._active
            self._active = self._secondary

        logger.warning(
            f"Failover: switched upstream from '{previous.name}' to '{self._secondary.name}'"
        )
        for callback in self._on_failover_callbacks:
            try:
                callback(previous.name, self._secondary.name)
            except Exception as e:
                logger.error(f"Failover callback error: {e}")
        return True

    def on_failover(self, callback: Callable[[str, str], None]) -> None:
        """Register callback invoked with (from_name, to_name) on failover."""
        self._on_failover_callbacks.append(callback)

    def get_stats(self) -> dict[str, Any]:
        """Snapshot for logs and reports."""
        active = self.current_connection()
        return {
            "active": active.name,
            "failed_over": active is not self._primary,
            "primary": self._primary.describe(),
            "secondary": self._secondary.describe() if self._secondary else None,
        }

    async def close(self) -> None:
        """Close both connections."""
        await self._primary.close()
        if self._secondary is not None:
            await self._secondary.close()

    async def __aenter__(self) -> "UpstreamSelector":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
