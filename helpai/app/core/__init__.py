"""Core utilities for the backend."""

from helpai.app.core.config import Settings, settings
from helpai.app.core.logging import get_logger, log_llm_event, setup_logging
from helpai.app.core.tokenizer import (
    build_token_cost,
    build_vision_cost,
    estimate_text_tokens,
)

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "log_llm_event",
    "setup_logging",
    "build_token_cost",
    "build_vision_cost",
    "estimate_text_tokens",
]
