"""
Retry executor with linear backoff for transient upstream failures.

Failures classified as NonRetryableError (HTTP 400/404) are re-raised on the
first attempt; everything else is retried up to max_attempts times with a
delay of base_delay * attempt between tries.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional
from core.exceptions import NonRetryableError, RetryExhaustedError
import logging

logger = logging.getLogger(__name__)


class RetryExecutor:
    """
    Invoke an async operation until it succeeds or attempts run out.

    The sleep function is injectable so tests can run without real delays.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        context: str = "operation",
        details: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Run operation with retries.

        Args:
            operation: Zero-argument coroutine factory
            max_attempts: Total attempts including the first (>= 1)
            base_delay: Seconds; attempt n waits base_delay * n before retrying
            context: Label used in log lines and the final error

        Returns:
            The first successful result

        Raises:
            NonRetryableError: Immediately, without further attempts
            RetryExhaustedError: After max_attempts failed attempts
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()

            except NonRetryableError:
                raise

            except Exception as e:
                last_error = e

                if attempt >= max_attempts:
                    break

                delay = base_delay * attempt
                logger.warning(
                    f"{context} failed (attempt {attempt}/{max_attempts}): {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        logger.error(f"{context} failed after {max_attempts} attempts: {last_error}")
        raise RetryExhaustedError(
            f"{context} failed after {max_attempts} attempts",
            label=context,
            attempts=max_attempts,
            context=details,
            original_exception=last_error
        )
