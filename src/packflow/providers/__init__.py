"""LLM provider abstraction."""

from .anthropic_provider import AnthropicProvider
from .base import (
    CompletionRequest,
    CompletionResponse,
    Provider,
    ProviderConfig,
    ProviderType,
    RateLimitError,
)
from .mock_provider import MockProvider

__all__ = [
    "AnthropicProvider",
    "CompletionRequest",
    "CompletionResponse",
    "MockProvider",
    "Provider",
    "ProviderConfig",
    "ProviderType",
    "RateLimitError",
]
