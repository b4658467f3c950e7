"""Data types shared by the LLM gating components."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class SignalKind(str, Enum):
    """Why a dispatch was refused by the provider with HTTP 429."""

    RATE_LIMIT = "rate_limit"  # Transient throttling; cooldown armed
    INSUFFICIENT_QUOTA = "insufficient_quota"  # Billing/credits exhausted; terminal


@dataclass(frozen=True)
class LLMSignal:
    """Structured, actionable failure returned instead of an answer."""

    kind: SignalKind
    status: int = 429
    retry_after_sec: Optional[float] = None

    @property
    def is_rate_limit(self) -> bool:
        return self.kind is SignalKind.RATE_LIMIT

    @property
    def is_insufficient_quota(self) -> bool:
        return self.kind is SignalKind.INSUFFICIENT_QUOTA

    @property
    def retry_after_header(self) -> Optional[str]:
        """Whole seconds for a ``Retry-After`` header, rounded up."""
        if self.retry_after_sec is None:
            return None
        return str(max(0, math.ceil(self.retry_after_sec)))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.kind.value, "status": self.status}
        if self.retry_after_sec is not None:
            data["retryAfterSec"] = self.retry_after_sec
        return data

    @classmethod
    def rate_limited(cls, retry_after_sec: float) -> "LLMSignal":
        return cls(kind=SignalKind.RATE_LIMIT, retry_after_sec=retry_after_sec)

    @classmethod
    def insufficient_quota(cls) -> "LLMSignal":
        return cls(kind=SignalKind.INSUFFICIENT_QUOTA)


# Value returned by every dispatch operation: an answer (text or parsed JSON),
# a structured signal, or None for an opaque failure.
LLMResult = Union[str, dict, LLMSignal, None]


@dataclass
class ProviderErrorInfo:
    """Normalised view of an exception raised by the provider client."""

    status: Optional[int] = None
    code: str = ""
    type: str = ""
    message: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

