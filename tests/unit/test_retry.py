"""
Unit tests for the retry executor
"""

import pytest
from unittest.mock import AsyncMock, call
from ingestion.retry import RetryExecutor
from core.exceptions import (
    NetworkError,
    ResourceNotFoundError,
    BadRequestError,
    RetryExhaustedError,
)


def flaky(failures: int, result="ok"):
    """Operation that fails `failures` times, then returns result"""
    return AsyncMock(side_effect=[NetworkError("boom")] * failures + [result])


class TestRetryExecutor:
    """Test bounded retries with linear backoff"""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, no_sleep):
        """No retries and no sleeping when the operation succeeds"""
        operation = flaky(0)
        result = await RetryExecutor(sleep=no_sleep).execute(operation, max_attempts=3, base_delay=1.0)

        assert result == "ok"
        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [1, 2, 4])
    async def test_k_failures_then_success(self, no_sleep, failures):
        """Returns the success after exactly k+1 invocations"""
        operation = flaky(failures)
        result = await RetryExecutor(sleep=no_sleep).execute(
            operation, max_attempts=failures + 1, base_delay=0.5, context="fetch"
        )

        assert result == "ok"
        assert operation.await_count == failures + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_attempts,failures", [(1, 1), (3, 3), (2, 5)])
    async def test_exhaustion_after_max_attempts(self, no_sleep, max_attempts, failures):
        """Raises after exactly max_attempts invocations"""
        operation = flaky(failures)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await RetryExecutor(sleep=no_sleep).execute(
                operation, max_attempts=max_attempts, base_delay=0.1, context="deputy 204554"
            )

        assert operation.await_count == max_attempts
        assert exc_info.value.attempts == max_attempts
        assert exc_info.value.label == "deputy 204554"
        assert isinstance(exc_info.value.original_exception, NetworkError)

    @pytest.mark.asyncio
    async def test_linear_backoff_delays(self, no_sleep):
        """Attempt n waits base_delay * n; no wait after the last attempt"""
        operation = flaky(3)

        with pytest.raises(RetryExhaustedError):
            await RetryExecutor(sleep=no_sleep).execute(operation, max_attempts=3, base_delay=2.0)

        assert no_sleep.await_args_list == [call(2.0), call(4.0)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_cls", [ResourceNotFoundError, BadRequestError])
    async def test_non_retryable_errors_fail_fast(self, no_sleep, error_cls):
        """404 and 400 are configuration problems, not retried"""
        operation = AsyncMock(side_effect=error_cls("nope"))

        with pytest.raises(error_cls):
            await RetryExecutor(sleep=no_sleep).execute(operation, max_attempts=5, base_delay=1.0)

        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generic_exceptions_are_retried(self, no_sleep):
        """Unclassified errors count as transient"""
        operation = AsyncMock(side_effect=[ValueError("bad json"), {"dados": []}])
        result = await RetryExecutor(sleep=no_sleep).execute(operation, max_attempts=2, base_delay=0)

        assert result == {"dados": []}

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self, no_sleep):
        with pytest.raises(ValueError):
            await RetryExecutor(sleep=no_sleep).execute(flaky(0), max_attempts=0)
