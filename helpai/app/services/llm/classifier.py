"""Classification of provider failures into actionable signals.

HTTP 429 means one of two different things upstream: the account is being
throttled (wait and retry) or it has run out of credits (waiting will not
help). Only throttling arms the shared cooldown. Every other failure is
reported to the caller as an opaque ``None``.

The billing check depends on the provider's error wording. It looks at the
machine-readable code/type first and falls back to message substrings;
anything ambiguous is treated as throttling. Keep the phrases below in sync
with the provider's current error payloads.
"""

import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional

import httpx
import openai

from helpai.app.core.logging import get_logger
from helpai.app.providers.retry import get_status_code
from helpai.app.services.llm.models import LLMSignal, ProviderErrorInfo, SignalKind
from helpai.app.services.llm.rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 30.0

QUOTA_ERROR_CODES = frozenset({"insufficient_quota"})
QUOTA_MESSAGE_PHRASES = (
    "insufficient quota",
    "insufficient_quota",
    "exceeded your current quota",
    "billing",
)

_TRY_AGAIN_RE = re.compile(r"try again in\s+(\d+(?:\.\d+)?)\s*(ms|s)\b", re.IGNORECASE)


def _error_body(exception: BaseException) -> Mapping[str, Any]:
    body = getattr(exception, "body", None)
    if body is None and isinstance(exception, httpx.HTTPStatusError):
        try:
            body = exception.response.json()
        except ValueError:
            body = None
    if not isinstance(body, Mapping):
        return {}
    inner = body.get("error")
    return inner if isinstance(inner, Mapping) else body


def _error_headers(exception: BaseException) -> dict[str, str]:
    headers = None
    response = getattr(exception, "response", None)
    if response is not None:
        headers = getattr(response, "headers", None)
    if headers is None:
        headers = getattr(exception, "headers", None)
    if not headers:
        return {}
    try:
        return {str(k).lower(): str(v) for k, v in dict(headers).items()}
    except (TypeError, ValueError):
        return {}


def describe_error(exception: BaseException) -> ProviderErrorInfo:
    """Extract status, code, type, message and headers from a provider exception."""
    body = _error_body(exception)
    code = getattr(exception, "code", None) or body.get("code") or ""
    err_type = getattr(exception, "type", None) or body.get("type") or ""
    message = body.get("message") or getattr(exception, "message", None) or str(exception)
    return ProviderErrorInfo(
        status=get_status_code(exception),
        code=str(code),
        type=str(err_type),
        message=str(message),
        headers=_error_headers(exception),
    )


def classify_429(info: ProviderErrorInfo) -> SignalKind:
    """Decide whether a 429 is billing exhaustion or throttling."""
    if info.code in QUOTA_ERROR_CODES or info.type in QUOTA_ERROR_CODES:
        return SignalKind.INSUFFICIENT_QUOTA
    message = info.message.lower()
    if any(phrase in message for phrase in QUOTA_MESSAGE_PHRASES):
        return SignalKind.INSUFFICIENT_QUOTA
    return SignalKind.RATE_LIMIT


def _parse_retry_after_header(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if math.isnan(seconds) or math.isinf(seconds):
        return None
    return max(0.0, seconds)


def parse_retry_after(info: ProviderErrorInfo) -> Optional[float]:
    """Retry hint in seconds from headers, then from the message text."""
    seconds = _parse_retry_after_header(info.header("retry-after"))
    if seconds is not None:
        return seconds

    millis = info.header("retry-after-ms")
    if millis:
        try:
            return max(0.0, float(millis) / 1000)
        except ValueError:
            pass

    match = _TRY_AGAIN_RE.search(info.message)
    if match:
        amount = float(match.group(1))
        return amount / 1000 if match.group(2).lower() == "ms" else amount
    return None


class ResultClassifier:
    """Turns dispatch exceptions into signals and arms the cooldown.

    Usage:
        classifier = ResultClassifier(limiter)
        try:
            ...
        except Exception as exc:
            return classifier.classify(exc)  # LLMSignal or None
    """

    def __init__(
        self,
        limiter: RateLimiter,
        fallback_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
    ):
        self.limiter = limiter
        self.fallback_retry_after = fallback_retry_after

    def classify(self, exception: BaseException) -> Optional[LLMSignal]:
        info = describe_error(exception)
        if info.status != 429:
            return None

        if classify_429(info) is SignalKind.INSUFFICIENT_QUOTA:
            logger.error("Provider reports insufficient quota: %s", info.message)
            return LLMSignal.insufficient_quota()

        retry_after = parse_retry_after(info)
        if retry_after is None:
            retry_after = self.fallback_retry_after
        self.limiter.arm_cooldown(retry_after)
        return LLMSignal.rate_limited(retry_after)


def is_provider_error(exception: BaseException) -> bool:
    """True for errors raised by the provider SDK or HTTP layer."""
    return isinstance(exception, (openai.OpenAIError, httpx.HTTPError))
