"""LLM provider abstraction module."""

from purrclaw.providers.base import LLMProvider, LLMResponse, ProviderError, ToolCallRequest
from purrclaw.providers.factory import create_provider
from purrclaw.providers.fallback import FallbackProvider
from purrclaw.providers.litellm_provider import LiteLLMProvider
from purrclaw.providers.openai_compat import OpenAICompatProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ProviderError",
    "ToolCallRequest",
    "FallbackProvider",
    "LiteLLMProvider",
    "OpenAICompatProvider",
    "create_provider",
]
