"""OpenAI API provider implementation.

Compatible with the OpenAI API and other OpenAI-compatible endpoints
(set ``OPENAI_BASE_URL``).
"""

from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from helpai.app.core.logging import get_logger
from helpai.app.providers.base import BaseProvider, ProviderResponse

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions through the official async SDK.

    The SDK client is created lazily on first use so that a missing key is
    reported at dispatch time rather than at import. SDK-level retries are
    disabled: the dispatcher owns the retry policy and must see 429s at once.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 55.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        super().__init__(api_key, base_url, timeout)
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self.ensure_ready()
            logger.debug("Creating OpenAI client (base_url=%s)", self.base_url or "default")
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def create_completion(
        self,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        """Send a non-streaming chat completion request.

        Raises:
            openai.APIStatusError: If the API returns an error status
            openai.APIConnectionError: On network failures and timeouts
        """
        client = self._get_client()
        response = await client.chat.completions.create(
            **payload,
            timeout=timeout or self.timeout,
        )

        content = None
        if response.choices:
            content = response.choices[0].message.content
        usage = response.usage
        return ProviderResponse(
            content=content,
            model=response.model or payload.get("model", ""),
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
