"""Tests for transient-error classification, backoff and the retry executor."""

from __future__ import annotations

import random
import unittest
from unittest.mock import AsyncMock

from linkshelf.domain.exceptions.domain_exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from linkshelf.sync.retry import RetryExecutor, RetryPolicy
from linkshelf.utils.retry_utils import compute_backoff_delay, is_transient_error

# ---------------------------------------------------------------------------
# is_transient_error
# ---------------------------------------------------------------------------


class TestIsTransientError(unittest.TestCase):
    def test_typed_remote_errors_use_flag(self):
        assert is_transient_error(NetworkError("boom"))
        assert is_transient_error(RateLimitError("slow down", retry_after=5))
        assert is_transient_error(ApiError("HTTP 503", status_code=503))
        assert not is_transient_error(ApiError("HTTP 409", status_code=409))

    def test_auth_and_validation_are_permanent(self):
        assert not is_transient_error(AuthenticationError("connection timeout"))
        assert not is_transient_error(ValidationError("timeout"))

    def test_keyword_classification(self):
        assert is_transient_error(RuntimeError("Connection reset by peer"))
        assert is_transient_error(RuntimeError("502 Bad Gateway"))
        assert not is_transient_error(RuntimeError("404 not found"))
        assert not is_transient_error(RuntimeError("something odd"))

    def test_type_name_fallback(self):
        assert is_transient_error(TimeoutError())


class TestComputeBackoffDelay(unittest.TestCase):
    def test_exponential_and_capped(self):
        delays = [
            compute_backoff_delay(i, base_delay=1.0, max_delay=5.0, jitter=0) for i in range(5)
        ]
        assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_in_band(self):
        rng = random.Random(7)
        for _ in range(50):
            delay = compute_backoff_delay(2, base_delay=1.0, max_delay=30.0, jitter=0.1, rng=rng)
            assert 3.6 <= delay <= 4.4


# ---------------------------------------------------------------------------
# RetryExecutor
# ---------------------------------------------------------------------------


class TestRetryExecutor(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sleep = AsyncMock()
        self.executor = RetryExecutor(RetryPolicy(max_retries=2, jitter=0), sleep=self.sleep)

    async def test_success_first_try(self):
        func = AsyncMock(return_value="ok")
        value, ok, retryable, error = await self.executor.run(func, operation_name="op")
        assert (value, ok, retryable, error) == ("ok", True, False, None)
        self.sleep.assert_not_awaited()

    async def test_transient_then_success(self):
        func = AsyncMock(side_effect=[NetworkError("down"), "ok"])
        value, ok, _, _ = await self.executor.run(func, operation_name="op")
        assert ok and value == "ok"
        self.sleep.assert_awaited_once_with(1.0)

    async def test_permanent_error_not_retried(self):
        func = AsyncMock(side_effect=ApiError("HTTP 400: Bad Request", status_code=400))
        _, ok, retryable, error = await self.executor.run(func, operation_name="op")
        assert not ok and not retryable
        assert isinstance(error, ApiError)
        assert func.await_count == 1

    async def test_retries_exhausted(self):
        func = AsyncMock(side_effect=NetworkError("down"))
        _, ok, retryable, error = await self.executor.run(func, operation_name="op")
        assert not ok and retryable
        assert func.await_count == 3
        assert [c.args[0] for c in self.sleep.await_args_list] == [1.0, 2.0]

    async def test_rate_limit_returns_without_sleeping(self):
        func = AsyncMock(side_effect=RateLimitError("Rate limited", retry_after=60))
        _, ok, retryable, error = await self.executor.run(func, operation_name="op")
        assert not ok and retryable
        assert isinstance(error, RateLimitError)
        assert func.await_count == 1
        self.sleep.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
