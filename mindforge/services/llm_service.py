"""
LLM Service
===========

Main entry point for LLM interactions in MindForge.
Acts as a factory and facade for specific providers.

Each generation task has a profile (provider, model, temperature,
max tokens, JSON mode) resolved from settings, so routing a task to a
different model is a configuration change:

    mindmap / decision_tree / recommendations  → OpenAI, JSON mode
    prd / project_prd / code / chat            → Anthropic
"""

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Dict, List, Optional, Tuple

from mindforge.config import settings
from mindforge.services.llm_providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)

TASKS = ("mindmap", "decision_tree", "recommendations", "prd", "project_prd", "code", "chat")


@dataclass(frozen=True)
class TaskProfile:
    provider: str
    model: str
    temperature: float
    max_tokens: int
    json_mode: bool = False


def get_task_profile(task: str) -> TaskProfile:
    """Resolve the generation profile for ``task`` from settings."""
    if task == "mindmap":
        return TaskProfile(
            provider=settings.mindmap_provider,
            model=settings.mindmap_model,
            temperature=settings.mindmap_temperature,
            max_tokens=settings.mindmap_max_tokens,
            json_mode=settings.mindmap_provider == "openai",
        )
    if task == "decision_tree":
        return TaskProfile("openai", settings.decision_tree_model, 0.7, settings.decision_tree_max_tokens, json_mode=True)
    if task == "recommendations":
        return TaskProfile("openai", settings.recommendations_model, 0.7, 2000, json_mode=True)
    if task == "prd":
        return TaskProfile(settings.prd_provider, settings.prd_model, 0.7, settings.prd_max_tokens)
    if task == "project_prd":
        return TaskProfile(settings.prd_provider, settings.prd_model, 0.7, settings.project_prd_max_tokens)
    if task == "code":
        return TaskProfile(
            settings.code_provider, settings.code_model, settings.code_temperature, settings.code_max_tokens
        )
    if task == "chat":
        return TaskProfile("anthropic", settings.chat_model, 0.7, settings.chat_max_tokens)
    raise ValueError(f"Unknown generation task: {task!r}. Use one of {', '.join(TASKS)}.")


class LLMService:
    """
    Factory and facade over provider implementations.

    Provider instances are created lazily and reused per (provider, model).
    """

    def __init__(self) -> None:
        self._providers: Dict[Tuple[str, str], BaseLLMProvider] = {}

    def get_provider(self, provider_name: str, model: Optional[str] = None) -> BaseLLMProvider:
        from mindforge.services.llm_providers.anthropic import AnthropicProvider
        from mindforge.services.llm_providers.openai import OpenAIProvider

        key = (provider_name, model or "")
        if key not in self._providers:
            if provider_name == "openai":
                self._providers[key] = OpenAIProvider(model=model)
            elif provider_name == "anthropic":
                self._providers[key] = AnthropicProvider(model=model)
            else:
                raise ValueError(f"Unsupported LLM provider: {provider_name}. Use 'openai' or 'anthropic'.")
            logger.info("LLM provider initialized: %s/%s", provider_name, model)
        return self._providers[key]

    async def generate(self, task: str, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Run a one-shot generation for ``task`` and return the raw text."""
        profile = get_task_profile(task)
        provider = self.get_provider(profile.provider, profile.model)
        logger.info(
            "llm_generate_started",
            extra={"llm.task": task, "llm.provider": profile.provider, "llm.model": profile.model},
        )
        text = await provider.generate(
            prompt,
            system_prompt=system_prompt,
            temperature=profile.temperature,
            max_tokens=profile.max_tokens,
            json_mode=profile.json_mode,
        )
        logger.info("llm_generate_completed", extra={"llm.task": task, "llm.response_chars": len(text)})
        return text

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        profile = get_task_profile("chat")
        provider = self.get_provider(profile.provider, profile.model)
        async for chunk in provider.generate_stream(
            messages,
            system_prompt=system_prompt,
            temperature=profile.temperature,
            max_tokens=profile.max_tokens,
        ):
            yield chunk


# Module-level singleton
llm_service = LLMService()
