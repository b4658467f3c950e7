from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from helpai.app.exceptions import LLMSetupError


@dataclass
class ProviderResponse:
    """The parts of a chat completion response the dispatcher uses."""

    content: Optional[str] = None
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class BaseProvider(ABC):
    """Base class for language-model providers.

    A provider performs exactly one chat completion per call. It never
    retries, throttles or classifies failures; that is the dispatcher's job.
    Errors propagate as whatever the underlying client raises.
    """

    name: str = "base"

    def __init__(self, api_key: str, base_url: Optional[str] = None, timeout: float = 55.0):
        """Initialize the provider.

        Args:
            api_key: The API key for authentication
            base_url: Optional endpoint override
            timeout: Default per-call timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout

    def ensure_ready(self) -> None:
        """Raise LLMSetupError if the provider cannot be used at all."""
        if not (self.api_key or "").strip():
            raise LLMSetupError("OPENAI_API_KEY is not configured")

    @abstractmethod
    async def create_completion(
        self,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        """Send a non-streaming chat completion request.

        Args:
            payload: model, messages, temperature, max_tokens and optionally
                response_format
            timeout: Per-call wall-clock timeout in seconds

        Returns:
            The first choice's content and the reported usage
        """
        pass

    async def aclose(self) -> None:
        """Release any connections held by the provider."""
        return None
