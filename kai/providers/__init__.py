"""LLM provider abstraction module."""

from kai.providers.base import LLMProvider, LLMResponse
from kai.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
