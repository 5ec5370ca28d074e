"""
OpenAI LLM Provider
===================

OpenAI implementation of BaseLLMProvider.
Uses official openai SDK with async support.
"""

from typing import Any, AsyncGenerator, Dict, List, Optional

from openai import (
    APIError,
    AsyncOpenAI,
    AuthenticationError as OpenAIAuthError,
    RateLimitError as OpenAIRateLimitError,
)

from mindforge.config import settings
from .base import AuthenticationError, BaseLLMProvider, LLMProviderError, RateLimitError

CONTEXT_WINDOWS = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
}


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider. Used for mindmaps, decision trees and tech
    recommendations, where ``response_format=json_object`` is available.
    """

    provider_name = "openai"

    def __init__(self, model: Optional[str] = None):
        if not settings.openai_api_key:
            raise AuthenticationError(
                "OpenAI API key not found. Set MINDFORGE_OPENAI_API_KEY in environment.",
                provider="openai",
            )

        self.client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.llm_timeout_s)
        self.model_name = model or "gpt-4o-mini"

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        json_mode: bool = False,
        **kwargs,
    ) -> str:
        """Generate a complete response using Chat Completions."""
        try:
            request: dict = {
                "model": self.model_name,
                "messages": self._build_messages([{"role": "user", "content": prompt}], system_prompt),
                "temperature": temperature,
                "max_tokens": max_tokens,
                "stream": False,
            }
            if json_mode:
                request["response_format"] = {"type": "json_object"}

            response = await self.client.chat.completions.create(**request)
            return response.choices[0].message.content or ""

        except OpenAIRateLimitError as e:
            raise RateLimitError(
                "OpenAI API rate limit exceeded. Please try again later.",
                provider="openai",
                original_error=e,
            )
        except OpenAIAuthError as e:
            raise AuthenticationError(
                "OpenAI API key is invalid.",
                provider="openai",
                original_error=e,
            )
        except APIError as e:
            raise LLMProviderError(
                f"OpenAI API error: {str(e)}",
                provider="openai",
                original_error=e,
            )
        except Exception as e:
            raise LLMProviderError(
                f"OpenAI generation failed: {str(e)}",
                provider="openai",
                original_error=e,
            )

    async def generate_stream(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> AsyncGenerator[str, None]:
        """Stream response chunks from OpenAI."""
        try:
            stream = await self.client.chat.completions.create(
                model=self.model_name,
                messages=self._build_messages(messages, system_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )

            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content

        except OpenAIRateLimitError as e:
            raise RateLimitError(
                "OpenAI API rate limit exceeded during streaming.",
                provider="openai",
                original_error=e,
            )
        except APIError as e:
            raise LLMProviderError(
                f"OpenAI streaming error: {str(e)}",
                provider="openai",
                original_error=e,
            )
        except Exception as e:
            raise LLMProviderError(
                f"OpenAI streaming failed: {str(e)}",
                provider="openai",
                original_error=e,
            )

    @staticmethod
    def _build_messages(messages: List[Dict[str, str]], system_prompt: Optional[str]) -> list:
        """Prepend the system prompt as a system message."""
        built = []
        if system_prompt:
            built.append({"role": "system", "content": system_prompt})
        built.extend(messages)
        return built

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "openai",
            "model": self.model_name,
            "capabilities": ["generate", "stream", "chat", "json_mode"],
            "max_context_window": CONTEXT_WINDOWS.get(self.model_name, 128_000),
        }
