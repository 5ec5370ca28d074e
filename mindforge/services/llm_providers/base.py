"""
LLM Provider Base Class
=======================

Abstract base class and exceptions for LLM providers.
Enforces a consistent interface for generation and streaming.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Dict, List, Optional


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(self, message: str, provider: str = "unknown", original_error: Exception = None):
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(self.message)


class RateLimitError(LLMProviderError):
    """Raised when provider rate limit is exceeded."""
    pass


class AuthenticationError(LLMProviderError):
    """Raised when API key is invalid or missing."""
    pass


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations must handle:
    - Non-streaming generation (optionally in JSON mode)
    - Streaming generation over a multi-turn message history
    - System prompts/instructions
    - Error mapping to common exceptions
    """

    provider_name: str = "unknown"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        json_mode: bool = False,
        **kwargs
    ) -> str:
        """
        Generate a complete response string.

        Args:
            prompt: The user prompt to respond to
            system_prompt: Optional system instructions
            temperature: Sampling temperature (0.0-1.0)
            max_tokens: Maximum tokens in response
            json_mode: Ask the provider for a JSON object where it supports it

        Returns:
            Generated text response (untrusted; run it through the normalizer)

        Raises:
            LLMProviderError: On generation failure
        """
        pass

    @abstractmethod
    async def generate_stream(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs
    ) -> AsyncGenerator[str, None]:
        """
        Yield response chunks for a chat history.

        Args:
            messages: ``[{"role": "user"|"assistant", "content": ...}]``

        Raises:
            LLMProviderError: On generation failure
        """
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """Return provider, model name and capabilities."""
        pass
