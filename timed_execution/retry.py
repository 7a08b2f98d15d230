"""
Timed Execution - Retry Executor.

============================================================
PURPOSE
============================================================
Wraps a single fallible async operation with bounded, delayed retry.

POLICY:
- At most max_attempts invocations
- Fixed delay between attempts (no delay after the last one)
- No retry after success
- After the final failure: ExhaustedRetryError naming the operation

Generic over the operation; reused for authorization, execution
and chain reads.

============================================================
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from core.constants import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_DELAY_SECONDS
from core.exceptions import ConfigurationError, ExhaustedRetryError


logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class RetryExecutor:
    """
    Bounded fixed-delay retry around a zero-argument async operation.

    The operation is a factory called afresh on every attempt, so any
    connection it uses is looked up again per attempt.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be >= 1, got {max_attempts}",
                config_key="retry.max_attempts",
            )
        if delay_seconds < 0:
            raise ConfigurationError(
                f"delay_seconds must be >= 0, got {delay_seconds}",
                config_key="retry.delay_seconds",
            )
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def run(
        self,
        operation: Operation,
        name: str,
        on_attempt_failed: Optional[Callable[[int, Exception], None]] = None,
    ) -> T:
        """
        Execute operation with retry.

        Args:
            operation: Zero-argument coroutine function
            name: Operation name for logs and the exhaustion error
            on_attempt_failed: Called with (attempt, error) after each failure

        Returns:
            The operation's result

        Raises:
            ExhaustedRetryError: After max_attempts failures
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"[{name}] Attempt {attempt}/{self.max_attempts} failed: {e}"
                )
                if on_attempt_failed is not None:
                    on_attempt_failed(attempt, e)

                if attempt < self.max_attempts:
                    await self._sleep(self.delay_seconds)

        raise ExhaustedRetryError(name, self.max_attempts, last_error)
