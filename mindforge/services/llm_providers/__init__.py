from .base import AuthenticationError, BaseLLMProvider, LLMProviderError, RateLimitError

__all__ = ["AuthenticationError", "BaseLLMProvider", "LLMProviderError", "RateLimitError"]
