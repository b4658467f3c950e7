"""Services package for the backend.

This package provides:
- Gated LLM dispatch (admission control, retries, 429 classification)
- The per-user event log interface
"""

from helpai.app.services.event_store import EventRecord, EventStore, InMemoryEventStore
from helpai.app.services.llm import (
    LLMDispatcher,
    LLMRuntime,
    LLMSerializer,
    LLMSignal,
    RateLimiter,
    get_llm_runtime,
    reset_llm_runtime,
)

__all__ = [
    "EventRecord",
    "EventStore",
    "InMemoryEventStore",
    "LLMDispatcher",
    "LLMRuntime",
    "LLMSerializer",
    "LLMSignal",
    "RateLimiter",
    "get_llm_runtime",
    "reset_llm_runtime",
]
