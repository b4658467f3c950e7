"""Mock provider for development and tests.

This provider simulates chat completions without making external API calls.
It's useful for local development when real API keys are not available.

Enable by setting environment variable:
    MOCK_PROVIDER=true
"""

import asyncio
import json
import random
from typing import Any, Dict, Iterable, List, Optional

from helpai.app.providers.base import BaseProvider, ProviderResponse
from helpai.app.core.tokenizer import estimate_text_tokens


class MockProvider(BaseProvider):
    """Mock provider that returns simulated responses.

    Features:
    - Simulated response delay (defaults to none)
    - Plain text or a JSON object, depending on ``response_format``
    - A scripted queue of outcomes: each queued exception is raised by one
      call, each queued string is returned as that call's content
    - Records every payload it receives in ``calls``
    """

    name = "mock"

    def __init__(
        self,
        api_key: str = "mock-key",
        base_url: Optional[str] = None,
        timeout: float = 55.0,
        min_delay: float = 0.0,
        max_delay: float = 0.0,
        script: Optional[Iterable[Any]] = None,
    ):
        """Initialize the mock provider.

        Args:
            api_key: Not used, provided for API compatibility
            base_url: Not used, provided for API compatibility
            timeout: Not used, provided for API compatibility
            min_delay: Minimum response delay in seconds
            max_delay: Maximum response delay in seconds
            script: Outcomes to replay before falling back to generated content
        """
        super().__init__(api_key, base_url, timeout)
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.script: List[Any] = list(script or [])
        self.calls: List[Dict[str, Any]] = []

    def _last_user_text(self, payload: Dict[str, Any]) -> str:
        for msg in reversed(payload.get("messages", [])):
            if msg.get("role") != "user":
                continue
            content = msg.get("content", "")
            if isinstance(content, list):
                return " ".join(
                    part.get("text", "") for part in content if part.get("type") == "text"
                )
            return str(content)
        return ""

    def _generate_content(self, payload: Dict[str, Any]) -> str:
        user_text = self._last_user_text(payload)
        response_format = payload.get("response_format") or {}
        if response_format.get("type") == "json_object":
            return json.dumps({"ok": True, "echo": user_text[:80]}, ensure_ascii=False)
        if "diga ok" in user_text.lower():
            return "ok"
        return "This is a mock response for testing purposes."

    async def create_completion(
        self,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        self.calls.append(payload)

        if self.max_delay > 0:
            await asyncio.sleep(random.uniform(self.min_delay, self.max_delay))

        content = None
        if self.script:
            outcome = self.script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            content = outcome
        if content is None:
            content = self._generate_content(payload)

        return ProviderResponse(
            content=content,
            model=payload.get("model", "mock-model"),
            prompt_tokens=estimate_text_tokens(self._last_user_text(payload)) or 10,
            completion_tokens=estimate_text_tokens(content),
        )
