"""Gated dispatch of chat, JSON and vision completions.

Every operation runs the same pipeline:

    estimate tokens -> RateLimiter.acquire (cooldown, TPM, RPM, spacing)
    -> provider call under the retry policy -> classify the outcome

and returns an answer, an ``LLMSignal`` for HTTP 429, or ``None`` for any
other failure. Deciding what the end user sees (a 502, a 429 with
Retry-After, a locally computed fallback) is left to the calling route.
The only exception that escapes is ``LLMSetupError``.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from helpai.app.core.config import Settings, settings as default_settings
from helpai.app.core.logging import log_llm_event
from helpai.app.core.tokenizer import build_token_cost, build_vision_cost
from helpai.app.exceptions import LLMSetupError
from helpai.app.providers.base import BaseProvider, ProviderResponse
from helpai.app.providers.retry import RetryPolicy, call_with_retry, get_status_code
from helpai.app.services.llm.classifier import ResultClassifier, is_provider_error
from helpai.app.services.llm.models import LLMSignal
from helpai.app.services.llm.rate_limiter import RateLimiter

VISION_TEXT_LIMIT = 1200
OCR_SYSTEM_PROMPT = "Extraia APENAS o texto visível. Não comente, não traduza."
OCR_USER_PROMPT = "Extraia apenas o texto desta imagem."

_json_decoder = json.JSONDecoder()


def parse_json_object(text: Optional[str]) -> Optional[dict]:
    """Parse a JSON object, salvaging one that trails other text.

    Strict parse first. Failing that, find the first ``{`` from which a
    complete object decodes and runs to the end of the text (ignoring
    trailing whitespace).
    """
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    stripped = text.rstrip()
    start = stripped.find("{")
    while start != -1:
        try:
            candidate, end = _json_decoder.raw_decode(stripped, start)
        except ValueError:
            candidate, end = None, -1
        if isinstance(candidate, dict) and end == len(stripped):
            return candidate
        start = stripped.find("{", start + 1)
    return None


def _build_messages(system: Optional[str], user_content: Any) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": str(system)})
    messages.append({"role": "user", "content": user_content})
    return messages


def _image_url(image_base64: str) -> str:
    if image_base64.startswith("data:"):
        return image_base64
    return f"data:image/jpeg;base64,{image_base64}"


class LLMDispatcher:
    """Sends gated model calls and reports typed outcomes.

    Args:
        provider: Client performing one completion per call
        limiter: Shared admission gate (also owns the cooldown)
        retry_policy: Policy for transient infrastructure failures
        config: Settings supplying the default model, timeout and surcharge
        sleep: Awaitable sleep used for retry backoff
    """

    def __init__(
        self,
        provider: BaseProvider,
        limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        config: Optional[Settings] = None,
        classifier: Optional[ResultClassifier] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or default_settings
        self.provider = provider
        self.limiter = limiter
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.config)
        self.classifier = classifier or ResultClassifier(
            limiter, fallback_retry_after=self.config.llm_cooldown_fallback_seconds
        )
        self._sleep = sleep

    async def complete(
        self,
        system: Optional[str] = None,
        user: Optional[str] = None,
        *,
        max_tokens: int = 480,
        temperature: float = 0.3,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Union[str, LLMSignal, None]:
        """Free-form chat completion.

        Returns:
            The stripped answer text, an ``LLMSignal`` on HTTP 429, or None
        """
        model = model or self.config.openai_model
        payload = {
            "model": model,
            "messages": _build_messages(system, str(user or "")),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        result = await self._dispatch(
            "chat",
            payload,
            build_token_cost(system, user, max_tokens),
            timeout_ms,
            log_info={"system": system, "user": user},
        )
        if not isinstance(result, ProviderResponse):
            return result

        content = (result.content or "").strip() or None
        log_llm_event("ok", kind="chat", model=model, haveContent=content is not None)
        return content

    async def complete_json(
        self,
        system: Optional[str] = None,
        user: Optional[str] = None,
        *,
        max_tokens: int = 900,
        temperature: float = 0.2,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Union[dict, LLMSignal, None]:
        """Completion constrained to a JSON object.

        Returns:
            The parsed object, an ``LLMSignal`` on HTTP 429, or None when the
            call failed or the output could not be parsed
        """
        model = model or self.config.openai_model
        payload = {
            "model": model,
            "response_format": {"type": "json_object"},
            "messages": _build_messages(system, str(user or "")),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        result = await self._dispatch(
            "json",
            payload,
            build_token_cost(system, user, max_tokens),
            timeout_ms,
            log_info={"system": system, "user": user},
        )
        if not isinstance(result, ProviderResponse):
            return result

        parsed = parse_json_object(result.content)
        if parsed is None:
            log_llm_event(
                "bad_json",
                level=logging.WARNING,
                kind="json",
                model=model,
                text=result.content,
            )
            return None
        log_llm_event("ok", kind="json", model=model, keys=sorted(parsed)[:10])
        return parsed

    async def complete_vision(
        self,
        system: Optional[str] = None,
        text: Optional[str] = None,
        images_base64: Iterable[str] = (),
        *,
        max_tokens: int = 480,
        temperature: float = 0.3,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Union[str, LLMSignal, None]:
        """Completion over text plus one or more base64 images.

        Image cost is not predictable up front, so the estimate carries a
        flat surcharge on top of the text and output budget.
        """
        model = model or self.config.openai_model
        images = [img for img in images_base64 if img]

        content: List[Dict[str, Any]] = []
        trimmed = (text or "").strip()
        if trimmed:
            content.append({"type": "text", "text": trimmed[:VISION_TEXT_LIMIT]})
        for image in images:
            content.append({"type": "image_url", "image_url": {"url": _image_url(image)}})

        payload = {
            "model": model,
            "messages": _build_messages(system, content),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        tokens_needed = build_vision_cost(
            system, text, max_tokens, surcharge=self.config.llm_vision_token_surcharge
        )
        result = await self._dispatch(
            "vision",
            payload,
            tokens_needed,
            timeout_ms,
            log_info={"system": system, "text": text, "images": len(images)},
        )
        if not isinstance(result, ProviderResponse):
            return result

        answer = (result.content or "").strip() or None
        log_llm_event("ok", kind="vision", model=model, haveContent=answer is not None)
        return answer

    async def ocr_image(
        self,
        image_base64: str,
        *,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Union[str, LLMSignal, None]:
        """Extract the visible text of one image."""
        return await self.complete_vision(
            system=OCR_SYSTEM_PROMPT,
            text=OCR_USER_PROMPT,
            images_base64=[image_base64],
            max_tokens=600,
            temperature=0,
            model=model,
            timeout_ms=timeout_ms,
        )

    async def _dispatch(
        self,
        kind: str,
        payload: Dict[str, Any],
        tokens_needed: int,
        timeout_ms: Optional[int],
        log_info: Optional[Dict[str, Any]] = None,
    ) -> Union[ProviderResponse, LLMSignal, None]:
        self.provider.ensure_ready()

        model = payload["model"]
        timeout = (timeout_ms / 1000) if timeout_ms else self.config.openai_timeout_seconds
        log_llm_event(
            "req",
            kind=kind,
            model=model,
            temperature=payload.get("temperature"),
            max_tokens=payload.get("max_tokens"),
            tokens=tokens_needed,
            **(log_info or {}),
        )

        await self.limiter.acquire(tokens_needed)

        attempts = 0

        async def send() -> ProviderResponse:
            nonlocal attempts
            attempts += 1
            return await self.provider.create_completion(payload, timeout=timeout)

        def on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            log_llm_event(
                "retry",
                level=logging.WARNING,
                kind=kind,
                model=model,
                attempt=attempt + 1,
                status=get_status_code(exc),
                error=type(exc).__name__,
                delay=round(delay, 3),
            )

        started = time.monotonic()
        try:
            response = await call_with_retry(
                send, self.retry_policy, sleep=self._sleep, on_retry=on_retry
            )
        except LLMSetupError:
            raise
        except Exception as exc:
            signal = self.classifier.classify(exc)
            info: Dict[str, Any] = {
                "kind": kind,
                "model": model,
                "attempts": attempts,
                "status": get_status_code(exc),
                "error": f"{type(exc).__name__}: {exc}",
            }
            if signal is not None:
                info["retryAfterSec"] = signal.retry_after_sec
            log_llm_event(
                signal.kind.value if signal else "error",
                level=logging.WARNING if signal or is_provider_error(exc) else logging.ERROR,
                **info,
            )
            return signal

        self.limiter.record_usage(response.total_tokens or tokens_needed)
        log_llm_event(
            "resp",
            kind=kind,
            model=response.model or model,
            attempts=attempts,
            duration_ms=int((time.monotonic() - started) * 1000),
            prompt_tokens=response.prompt_tokens,
            completion_tokens=response.completion_tokens,
        )
        return response
