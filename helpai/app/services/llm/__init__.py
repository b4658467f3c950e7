"""Gated access to the language model.

One ``LLMRuntime`` per process bundles the shared admission gate, the
dispatcher that goes through it and the advisory serializer. Routes get it
from ``app.state.llm`` (set in the application lifespan) or, outside a
request, from ``get_llm_runtime()``.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from helpai.app.core.config import Settings, settings as default_settings
from helpai.app.core.logging import get_logger
from helpai.app.providers.base import BaseProvider
from helpai.app.providers.factory import build_provider
from helpai.app.providers.retry import RetryPolicy
from helpai.app.services.llm.classifier import ResultClassifier
from helpai.app.services.llm.dispatcher import LLMDispatcher, parse_json_object
from helpai.app.services.llm.models import LLMResult, LLMSignal, ProviderErrorInfo, SignalKind
from helpai.app.services.llm.rate_limiter import RateLimiter, SlidingWindow
from helpai.app.services.llm.serializer import LLMSerializer

logger = get_logger(__name__)


@dataclass
class LLMRuntime:
    """Process-wide LLM components."""

    dispatcher: LLMDispatcher
    limiter: RateLimiter
    serializer: LLMSerializer

    async def aclose(self) -> None:
        await self.dispatcher.provider.aclose()


def build_llm_runtime(
    config: Optional[Settings] = None,
    provider: Optional[BaseProvider] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> LLMRuntime:
    """Wire a provider, limiter, dispatcher and serializer from settings."""
    config = config or default_settings
    provider = provider or build_provider(config)
    limiter = RateLimiter.from_settings(config, clock=clock, sleep=sleep)
    dispatcher = LLMDispatcher(
        provider,
        limiter,
        retry_policy=RetryPolicy.from_settings(config),
        config=config,
        sleep=sleep,
    )
    serializer = LLMSerializer.from_settings(config, clock=clock, sleep=sleep)
    logger.info(
        "LLM runtime ready",
        extra={
            "provider": provider.name,
            "model": config.openai_model,
            "rpm_limit": limiter.rpm_limit,
            "tpm_limit": limiter.tpm_limit,
        },
    )
    return LLMRuntime(dispatcher=dispatcher, limiter=limiter, serializer=serializer)


# Global runtime instance
_llm_runtime: Optional[LLMRuntime] = None


def get_llm_runtime() -> LLMRuntime:
    """Get the global LLM runtime, building it on first use."""
    global _llm_runtime
    if _llm_runtime is None:
        _llm_runtime = build_llm_runtime()
    return _llm_runtime


def set_llm_runtime(runtime: Optional[LLMRuntime]) -> None:
    """Install ``runtime`` as the global instance."""
    global _llm_runtime
    _llm_runtime = runtime


def reset_llm_runtime() -> None:
    """Reset the global LLM runtime.

    Useful for testing.
    """
    global _llm_runtime
    _llm_runtime = None


__all__ = [
    "LLMDispatcher",
    "LLMResult",
    "LLMRuntime",
    "LLMSerializer",
    "LLMSignal",
    "ProviderErrorInfo",
    "RateLimiter",
    "ResultClassifier",
    "SignalKind",
    "SlidingWindow",
    "build_llm_runtime",
    "get_llm_runtime",
    "parse_json_object",
    "reset_llm_runtime",
    "set_llm_runtime",
]
