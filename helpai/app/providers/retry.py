"""Retry mechanism with capped exponential backoff for provider calls.

Only transient infrastructure failures are retried: timeouts, connection
resets, 408/409 and the 5xx family. HTTP 429 is never retried here; the
admission gate's cooldown handles throttling instead.
"""

import asyncio
import functools
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, FrozenSet, Optional, Tuple, Type, TypeVar

import httpx
import openai

from helpai.app.core.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")

RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({408, 409, 500, 502, 503, 504})


def get_status_code(exception: BaseException) -> Optional[int]:
    """Best-effort HTTP status of a provider exception."""
    if isinstance(exception, openai.APIStatusError):
        return exception.status_code
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(exception, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exception, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


@dataclass
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (default: 2)
        base_delay: Delay before the first retry in seconds (default: 0.8)
        max_delay: Cap on the exponential part of the delay (default: 10.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        jitter: Upper bound of uniform random jitter added to each delay
        retryable_status_codes: HTTP statuses that trigger a retry
        retryable_exceptions: Exception types that trigger a retry

    Example:
        >>> policy = RetryPolicy(max_retries=2, base_delay=0.8, jitter=0.0)
        >>> policy.calculate_delay(attempt=1)
        1.6
    """

    max_retries: int = 2
    base_delay: float = 0.8
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: float = 0.25
    retryable_status_codes: FrozenSet[int] = RETRYABLE_STATUS_CODES
    retryable_exceptions: Tuple[Type[BaseException], ...] = field(
        default=(
            openai.APITimeoutError,
            openai.APIConnectionError,
            httpx.TimeoutException,
            httpx.NetworkError,
            asyncio.TimeoutError,
            ConnectionResetError,
        )
    )

    @classmethod
    def from_settings(cls, config: Any) -> "RetryPolicy":
        return cls(
            max_retries=config.llm_retry_max,
            base_delay=config.llm_retry_base_delay_ms / 1000,
            max_delay=config.llm_retry_max_delay_ms / 1000,
            jitter=config.llm_retry_jitter_ms / 1000,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay for a given retry attempt (0-indexed).

        delay = min(base_delay * exponential_base^attempt, max_delay) + uniform(0, jitter)
        """
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    def is_retryable(self, exception: BaseException) -> bool:
        """Check if an exception should trigger a retry."""
        status = get_status_code(exception)
        if status == 429:
            return False
        if status is not None and not isinstance(exception, self.retryable_exceptions):
            return status in self.retryable_status_codes
        return isinstance(exception, self.retryable_exceptions)


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Await ``func()``, retrying transient failures per ``policy``.

    Args:
        func: Zero-argument coroutine factory; called once per attempt
        policy: Retry configuration. Uses defaults if not provided.
        sleep: Awaitable sleep used between attempts
        on_retry: Called with (attempt, exception, delay) before each sleep

    Raises:
        The last exception once it is non-retryable or retries are exhausted.
    """
    retry_policy = policy or RetryPolicy()
    name = getattr(func, "__name__", "call")

    for attempt in range(retry_policy.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not retry_policy.is_retryable(e):
                logger.debug(f"Non-retryable exception in {name}: {type(e).__name__}: {e}")
                raise

            if attempt >= retry_policy.max_retries:
                logger.warning(
                    f"Max retries ({retry_policy.max_retries}) exceeded for {name}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            delay = retry_policy.calculate_delay(attempt)
            logger.warning(
                f"Retry {attempt + 1}/{retry_policy.max_retries} for {name} "
                f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s..."
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)

    raise RuntimeError("unreachable: retry loop exited without result")


def with_retry(policy: Optional[RetryPolicy] = None) -> Callable[[F], F]:
    """Decorator form of :func:`call_with_retry`.

    Example:
        >>> @with_retry(policy=RetryPolicy(max_retries=3))
        ... async def fetch(self, payload):
        ...     return await self._make_request(payload)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt_call = functools.partial(func, *args, **kwargs)
            functools.update_wrapper(attempt_call, func)
            return await call_with_retry(attempt_call, policy)

        return wrapper  # type: ignore

    return decorator
