"""Tests for retry mechanism with exponential backoff."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from helpai.app.providers.retry import (
    RETRYABLE_STATUS_CODES,
    RetryPolicy,
    call_with_retry,
    get_status_code,
    with_retry,
)


async def no_sleep(_delay: float) -> None:
    return None


class TestRetryPolicy:
    """Test RetryPolicy configuration."""

    def test_default_values(self):
        """Test default retry policy values."""
        policy = RetryPolicy()

        assert policy.max_retries == 2
        assert policy.base_delay == 0.8
        assert policy.max_delay == 10.0
        assert policy.exponential_base == 2.0
        assert policy.jitter == 0.25
        assert policy.retryable_status_codes == frozenset({408, 409, 500, 502, 503, 504})

    def test_from_settings(self, test_settings):
        policy = RetryPolicy.from_settings(test_settings)

        assert policy.max_retries == 2
        assert policy.base_delay == 0.8
        assert policy.jitter == 0.0

    def test_calculate_delay(self):
        """Test exponential delay calculation."""
        policy = RetryPolicy(base_delay=0.8, max_delay=10.0, jitter=0.0)

        assert policy.calculate_delay(0) == pytest.approx(0.8)
        assert policy.calculate_delay(1) == pytest.approx(1.6)
        assert policy.calculate_delay(2) == pytest.approx(3.2)

    def test_calculate_delay_capped_at_max(self):
        """Test delay is capped at max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=0.0)

        assert policy.calculate_delay(3) == 5.0
        assert policy.calculate_delay(4) == 5.0

    def test_jitter_is_bounded(self):
        policy = RetryPolicy(base_delay=0.8, jitter=0.25)

        for _ in range(50):
            assert 0.8 <= policy.calculate_delay(0) <= 1.05


class TestIsRetryable:
    """Test which failures are retried."""

    @pytest.mark.parametrize("status", sorted(RETRYABLE_STATUS_CODES))
    def test_transient_statuses(self, status_error, status):
        assert RetryPolicy().is_retryable(status_error(status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_not_retried(self, status_error, status):
        assert not RetryPolicy().is_retryable(status_error(status))

    def test_429_never_retried(self, rate_limit_error, quota_error):
        policy = RetryPolicy(retryable_status_codes=frozenset({429, 503}))

        assert not policy.is_retryable(rate_limit_error(retry_after="1"))
        assert not policy.is_retryable(quota_error())

    def test_timeouts_and_connection_errors(self):
        request = httpx.Request("POST", "https://example.test")
        policy = RetryPolicy()

        assert policy.is_retryable(openai.APITimeoutError(request=request))
        assert policy.is_retryable(openai.APIConnectionError(request=request))
        assert policy.is_retryable(httpx.ReadTimeout("timed out", request=request))
        assert policy.is_retryable(ConnectionResetError())
        assert policy.is_retryable(asyncio.TimeoutError())

    def test_other_exceptions_not_retried(self):
        assert not RetryPolicy().is_retryable(ValueError("bad payload"))


class TestGetStatusCode:
    """Test status extraction across exception types."""

    def test_openai_error(self, status_error):
        assert get_status_code(status_error(503)) == 503

    def test_httpx_error(self):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(502, request=request)
        exc = httpx.HTTPStatusError("bad gateway", request=request, response=response)

        assert get_status_code(exc) == 502

    def test_status_attribute(self):
        exc = RuntimeError("upstream")
        exc.status = 504
        assert get_status_code(exc) == 504

    def test_unknown(self):
        assert get_status_code(RuntimeError("boom")) is None


class TestCallWithRetry:
    """Test call_with_retry loop."""

    @pytest.mark.asyncio
    async def test_success_after_transient_failures(self, status_error):
        func = AsyncMock(side_effect=[status_error(503), status_error(503), "success"])
        sleep = AsyncMock()

        result = await call_with_retry(func, RetryPolicy(jitter=0.0), sleep=sleep)

        assert result == "success"
        assert func.call_count == 3
        delays = [c.args[0] for c in sleep.call_args_list]
        assert delays == pytest.approx([0.8, 1.6])

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self, status_error):
        func = AsyncMock(side_effect=status_error(502))

        with pytest.raises(openai.InternalServerError):
            await call_with_retry(func, RetryPolicy(max_retries=2), sleep=no_sleep)

        assert func.call_count == 3

    @pytest.mark.asyncio
    async def test_429_fails_immediately(self, rate_limit_error):
        func = AsyncMock(side_effect=rate_limit_error(retry_after="5"))
        sleep = AsyncMock()

        with pytest.raises(openai.RateLimitError):
            await call_with_retry(func, RetryPolicy(), sleep=sleep)

        assert func.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, status_error):
        func = AsyncMock(side_effect=[status_error(500), "ok"])
        on_retry = MagicMock()

        await call_with_retry(func, RetryPolicy(jitter=0.0), sleep=no_sleep, on_retry=on_retry)

        on_retry.assert_called_once()
        attempt, exc, delay = on_retry.call_args.args
        assert attempt == 0
        assert get_status_code(exc) == 500
        assert delay == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_zero_retries(self, status_error):
        func = AsyncMock(side_effect=status_error(503))

        with pytest.raises(openai.InternalServerError):
            await call_with_retry(func, RetryPolicy(max_retries=0), sleep=no_sleep)

        assert func.call_count == 1


class TestWithRetryDecorator:
    """Test with_retry decorator functionality."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        """Test function succeeds without retries."""
        mock_func = AsyncMock(return_value="success")

        @with_retry()
        async def test_func():
            return await mock_func()

        result = await test_func()

        assert result == "success"
        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_retryable_exception(self):
        """Test function retries on retryable exception."""
        mock_func = AsyncMock(side_effect=[httpx.NetworkError("Connection failed"), "success"])

        @with_retry(RetryPolicy(base_delay=0.01, jitter=0.0))
        async def test_func():
            return await mock_func()

        result = await test_func()

        assert result == "success"
        assert mock_func.call_count == 2

    @pytest.mark.asyncio
    async def test_preserves_function_metadata(self):
        @with_retry()
        async def my_function():
            """My docstring."""
            return "result"

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == "My docstring."
