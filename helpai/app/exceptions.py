"""Custom exceptions for the backend."""

import math
from typing import Any, Optional


class GatewayException(Exception):
    """Base class for backend exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str = "Gateway error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> dict[str, Any]:
        return {"ok": False, "error": self.error, "detail": self.message}

    def response_headers(self) -> dict[str, str]:
        return {}


class LLMSetupError(GatewayException):
    """Raised on first use when the provider cannot be configured.

    A missing API credential is fatal and is never retried.
    """
    status_code = 500
    error = "llm_setup_error"


class LLMRateLimitedError(GatewayException):
    """The provider throttled us; the caller should retry after a delay.

    Maps to HTTP 429 Too Many Requests with a Retry-After header.
    """
    status_code = 429
    error = "rate_limit"

    def __init__(
        self,
        retry_after_sec: Optional[float] = None,
        cooldown_ms: int = 0,
        detail: str = "RPM or TPM exceeded",
    ):
        self.retry_after_sec = retry_after_sec
        self.cooldown_ms = cooldown_ms
        super().__init__(detail)

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["retryAfterSec"] = self.retry_after_sec
        body["cooldownMs"] = self.cooldown_ms
        return body

    def response_headers(self) -> dict[str, str]:
        if self.retry_after_sec is None:
            return {}
        return {"Retry-After": str(max(0, math.ceil(self.retry_after_sec)))}


class LLMQuotaExhaustedError(GatewayException):
    """The provider account is out of credits.

    Maps to HTTP 429 but never carries Retry-After: waiting does not help.
    """
    status_code = 429
    error = "insufficient_quota"

    def __init__(self, cooldown_ms: int = 0, detail: str = "Provider credits or billing insufficient"):
        self.cooldown_ms = cooldown_ms
        super().__init__(detail)

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["cooldownMs"] = self.cooldown_ms
        return body


class LLMUnavailableError(GatewayException):
    """The model produced no usable answer.

    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502
    error = "llm_failed"

    def __init__(self, detail: str = "LLM call failed; check /health, /diag/llm and logs"):
        super().__init__(detail)


def unwrap_llm_result(result: Any, cooldown_ms: int = 0) -> Any:
    """Return a dispatch answer, raising the matching error for failures.

    For routes that must fail loudly. Routes with a local fallback should
    inspect the result themselves instead.

    Raises:
        LLMRateLimitedError: result is a ``rate_limit`` signal
        LLMQuotaExhaustedError: result is an ``insufficient_quota`` signal
        LLMUnavailableError: result is None
    """
    from helpai.app.services.llm.models import LLMSignal

    if isinstance(result, LLMSignal):
        if result.is_insufficient_quota:
            raise LLMQuotaExhaustedError(cooldown_ms=cooldown_ms)
        raise LLMRateLimitedError(retry_after_sec=result.retry_after_sec, cooldown_ms=cooldown_ms)
    if result is None:
        raise LLMUnavailableError()
    return result
