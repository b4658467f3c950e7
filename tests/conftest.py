"""Shared fixtures: simulated time and provider error factories."""

import asyncio
from typing import Callable, Optional

import httpx
import openai
import pytest

from helpai.app.core.config import Settings
from helpai.app.services.llm import reset_llm_runtime

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


class FakeClock:
    """Monotonic clock whose ``sleep`` advances simulated time instantly."""

    def __init__(self, start: float = 1_000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)
        # Let other tasks run, like a real sleep would
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment, with no call spacing."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        openai_model="gpt-4o-mini",
        openai_rpm_limit=3,
        openai_tpm_limit=12_000,
        llm_min_gap_ms=0,
        llm_retry_max=2,
        llm_retry_base_delay_ms=800,
        llm_retry_jitter_ms=0,
        mock_provider=False,
    )


@pytest.fixture(autouse=True)
def _reset_runtime():
    reset_llm_runtime()
    yield
    reset_llm_runtime()


def _status_error(
    status: int,
    message: str = "error",
    *,
    code: Optional[str] = None,
    type_: Optional[str] = None,
    headers: Optional[dict] = None,
) -> openai.APIStatusError:
    request = httpx.Request("POST", OPENAI_URL)
    response = httpx.Response(status, request=request, headers=headers or {})
    body = {"message": message, "type": type_, "code": code}
    if status == 429:
        error_class = openai.RateLimitError
    elif status >= 500:
        error_class = openai.InternalServerError
    else:
        error_class = openai.APIStatusError
    return error_class(message, response=response, body=body)


@pytest.fixture
def status_error() -> Callable[..., openai.APIStatusError]:
    """Factory for SDK errors carrying an HTTP status, body and headers."""
    return _status_error


@pytest.fixture
def rate_limit_error() -> Callable[..., openai.APIStatusError]:
    def factory(retry_after: Optional[str] = None, message: str = "Rate limit reached for requests"):
        headers = {"retry-after": retry_after} if retry_after is not None else None
        return _status_error(429, message, code="rate_limit_exceeded", type_="requests", headers=headers)

    return factory


@pytest.fixture
def quota_error() -> Callable[[], openai.APIStatusError]:
    def factory():
        return _status_error(
            429,
            "You exceeded your current quota, please check your plan and billing details.",
            code="insufficient_quota",
            type_="insufficient_quota",
            headers={"retry-after": "20"},
        )

    return factory
