"""Provider factory for creating provider instances from settings."""

from enum import Enum
from typing import Any, Dict, Optional, Type

from helpai.app.core.config import Settings, settings as default_settings
from helpai.app.core.logging import get_logger
from helpai.app.providers.base import BaseProvider
from helpai.app.providers.mock import MockProvider
from helpai.app.providers.openai import OpenAIProvider

logger = get_logger(__name__)


class ProviderType(str, Enum):
    """Supported provider types."""
    OPENAI = "openai"
    MOCK = "mock"


# Provider registry mapping types to classes
_PROVIDER_REGISTRY: Dict[ProviderType, Type[BaseProvider]] = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.MOCK: MockProvider,
}


def create_provider(
    provider_type: ProviderType,
    api_key: str,
    base_url: Optional[str] = None,
    timeout: float = 55.0,
    **kwargs: Any,
) -> BaseProvider:
    """Create a provider instance.

    Raises:
        ValueError: If the provider type is not registered
    """
    provider_class = _PROVIDER_REGISTRY.get(provider_type)
    if provider_class is None:
        raise ValueError(f"Unknown provider type: {provider_type}")
    return provider_class(api_key=api_key, base_url=base_url, timeout=timeout, **kwargs)


def build_provider(config: Optional[Settings] = None) -> BaseProvider:
    """Create the provider selected by settings (mock or OpenAI)."""
    config = config or default_settings
    provider_type = ProviderType.MOCK if config.mock_provider else ProviderType.OPENAI
    if provider_type is ProviderType.MOCK:
        logger.warning("MOCK_PROVIDER enabled: model calls are simulated")
        api_key = config.openai_api_key or "mock-key"
    else:
        api_key = config.openai_api_key
    return create_provider(
        provider_type,
        api_key=api_key,
        base_url=config.openai_base_url,
        timeout=config.openai_timeout_seconds,
    )
