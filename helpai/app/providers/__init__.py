"""Language-model providers package.

This package provides:
- Base provider interface (BaseProvider, ProviderResponse)
- Provider implementations (OpenAIProvider, MockProvider)
- Provider factory (ProviderType, create_provider, build_provider)
- Retry mechanism (RetryPolicy, call_with_retry, with_retry)
"""

from helpai.app.providers.base import BaseProvider, ProviderResponse
from helpai.app.providers.factory import ProviderType, build_provider, create_provider
from helpai.app.providers.mock import MockProvider
from helpai.app.providers.openai import OpenAIProvider
from helpai.app.providers.retry import RetryPolicy, call_with_retry, with_retry

__all__ = [
    # Base
    "BaseProvider",
    "ProviderResponse",
    # Providers
    "MockProvider",
    "OpenAIProvider",
    # Factory
    "ProviderType",
    "build_provider",
    "create_provider",
    # Retry
    "RetryPolicy",
    "call_with_retry",
    "with_retry",
]
