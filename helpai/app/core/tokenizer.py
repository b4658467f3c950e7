"""Approximate token accounting for admission control.

Estimates are character based rather than tokenizer exact: they only have
to be conservative enough to keep bursts under the provider's per-minute
token ceiling. Real usage reported by the provider is recorded separately.
"""

import math
from typing import Any, Optional

# ~4 characters per token for mixed Portuguese/English prose
CHARS_PER_TOKEN_ESTIMATE = 4

# Image token cost is not cheaply predictable; charge a flat weight per call
DEFAULT_VISION_TOKEN_SURCHARGE = 1000


def estimate_text_tokens(text: Optional[Any]) -> int:
    """Estimate the token count of a piece of text.

    Args:
        text: Prompt text. ``None`` and empty strings count as zero.

    Returns:
        ``ceil(len(text) / 4)``
    """
    if not text:
        return 0
    return math.ceil(len(str(text)) / CHARS_PER_TOKEN_ESTIMATE)


def _output_budget(max_tokens: Optional[Any]) -> int:
    try:
        return max(0, int(max_tokens or 0))
    except (TypeError, ValueError):
        return 0


def build_token_cost(
    system: Optional[str] = None,
    user: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> int:
    """Estimate the total cost of a text completion: input plus requested output."""
    return estimate_text_tokens(system) + estimate_text_tokens(user) + _output_budget(max_tokens)


def build_vision_cost(
    system: Optional[str] = None,
    text: Optional[str] = None,
    max_tokens: Optional[int] = None,
    surcharge: int = DEFAULT_VISION_TOKEN_SURCHARGE,
) -> int:
    """Estimate the cost of a vision completion, images charged at a flat surcharge."""
    return build_token_cost(system, text, max_tokens) + max(0, surcharge)
