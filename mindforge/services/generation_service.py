"""
Generation Service: Gate → LLM → Normalize → Persist
====================================================

PURPOSE:
    The single pipeline behind every generation endpoint:

        1. validate input (before any quota is touched)
        2. usage gate: reserve a free-tier unit, or require a subscription
        3. call the LLM provider for the task
        4. normalize the raw text into JSON and check required keys
        5. persist the artifact and return it

POLICY:
    - A reserved unit is never refunded. If the provider fails after the
      reservation the caller gets UpstreamGenerationFailure with
      ``usageCounted`` set, so the client can say "usage counted, contact
      support".
    - Malformed or incomplete model output is surfaced as-is
      (MalformedAIResponse / SchemaMismatch) with the same ``usageCounted``
      flag; nothing is retried inside the request.
    - PRD and code artifacts are scrubbed of model attribution before
      they are stored or returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, List, Optional

from mindforge.core.errors import InvalidInputError, MindforgeError
from mindforge.services import prompts
from mindforge.services.llm_providers.base import LLMProviderError
from mindforge.services.llm_service import LLMService, llm_service
from mindforge.services.project_service import ProjectService, project_service
from mindforge.services.response_normalizer import (
    MalformedAIResponse,
    SchemaMismatch,
    normalize,
    require_keys,
    scrub_model_references,
)
from mindforge.services.usage_gate import MINDMAP_ACTION, GateDecision, UsageGate, usage_gate
from mindforge.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)

__all__ = [
    "GenerationResult",
    "GenerationService",
    "MIN_IDEA_LENGTH",
    "UpstreamGenerationFailure",
    "generation_service",
]

MIN_IDEA_LENGTH = 10


class UpstreamGenerationFailure(MindforgeError):
    """The LLM call failed or timed out."""

    def __init__(self, task: str, cause: LLMProviderError, usage_counted: bool) -> None:
        self.usage_counted = usage_counted
        super().__init__(
            "MF-LLM-001",
            detail=f"{task}: {cause.provider}: {cause.message}",
            context={"task": task, "provider": cause.provider, "error_type": type(cause).__name__},
            payload={"usageCounted": usage_counted},
        )


@dataclass(frozen=True)
class GenerationResult:
    data: Dict[str, Any]
    decision: Optional[GateDecision] = None
    saved_id: Optional[str] = None


def _get_db_session():
    from mindforge.core.database import get_session_context
    return get_session_context()


class GenerationService:
    def __init__(
        self,
        gate: UsageGate = usage_gate,
        llm: LLMService = llm_service,
        projects: ProjectService = project_service,
        users: UserService = user_service,
    ) -> None:
        self.gate = gate
        self.llm = llm
        self.projects = projects
        self.users = users

    # ------------------------------------------------------------------
    # Pipeline core
    # ------------------------------------------------------------------

    async def _generate_json(
        self,
        task: str,
        prompt: str,
        required_keys: tuple,
        system_prompt: Optional[str] = None,
        usage_counted: bool = False,
    ) -> Dict[str, Any]:
        try:
            raw = await self.llm.generate(task, prompt, system_prompt=system_prompt)
        except LLMProviderError as exc:
            logger.error(
                "generation_upstream_failed",
                extra={"task": task, "provider": exc.provider, "usage_counted": usage_counted, "error": exc.message},
            )
            raise UpstreamGenerationFailure(task, exc, usage_counted=usage_counted) from exc

        try:
            parsed = normalize(raw, context=task)
            return require_keys(parsed, required_keys, context=task)
        except (MalformedAIResponse, SchemaMismatch) as exc:
            exc.payload = {**(exc.payload or {}), "usageCounted": usage_counted}
            raise

    # ------------------------------------------------------------------
    # Metered: mindmaps
    # ------------------------------------------------------------------

    async def generate_mindmap(self, user_id: str, idea: str) -> GenerationResult:
        idea = (idea or "").strip()
        if len(idea) < MIN_IDEA_LENGTH:
            raise InvalidInputError(
                f"Please provide a more detailed app idea (at least {MIN_IDEA_LENGTH} characters)",
                field="idea",
            )

        decision = self.gate.reserve_or_raise(user_id, action=MINDMAP_ACTION)

        mindmap = await self._generate_json(
            "mindmap",
            prompts.mindmap_prompt(idea),
            prompts.MINDMAP_REQUIRED_KEYS,
            system_prompt=prompts.MINDMAP_SYSTEM_PROMPT,
            usage_counted=decision.reserved,
        )
        logger.info(
            "mindmap_generated",
            extra={"user_id": user_id, "features": len(mindmap.get("features") or []), "units": decision.units_consumed},
        )
        return GenerationResult(data=mindmap, decision=decision)

    async def generate_from_decisions(
        self,
        user_id: str,
        session_id: str,
        decisions: Dict[str, Any],
        app_purpose: str,
        app_type: str,
    ) -> GenerationResult:
        if not decisions:
            raise InvalidInputError("At least one decision is required", field="decisions")

        decision = self.gate.reserve_or_raise(user_id, action=MINDMAP_ACTION)

        mindmap = await self._generate_json(
            "decision_tree",
            prompts.decision_tree_prompt(decisions, app_purpose, app_type),
            prompts.MINDMAP_REQUIRED_KEYS,
            usage_counted=decision.reserved,
        )

        with _get_db_session() as session:
            path = self.projects.save_decision_path(
                session,
                user_id,
                session_id,
                decisions,
                app_purpose=app_purpose,
                app_type=app_type,
                completed=True,
            )
        return GenerationResult(data=mindmap, decision=decision, saved_id=path.id)

    # ------------------------------------------------------------------
    # Subscribers only: PRDs and code
    # ------------------------------------------------------------------

    async def generate_feature_prd(
        self,
        user_id: str,
        feature: Dict[str, Any],
        project_context: Optional[Dict[str, Any]] = None,
        mindmap_id: Optional[str] = None,
    ) -> GenerationResult:
        feature_name = feature.get("title") or feature.get("name")
        if not feature_name:
            raise InvalidInputError("Feature name is required", field="feature")

        self.gate.require_subscription(user_id, "feature_prd")

        prd = await self._generate_json(
            "prd",
            prompts.feature_prd_prompt(feature, project_context),
            prompts.FEATURE_PRD_REQUIRED_KEYS,
        )
        prd = scrub_model_references(prd)

        saved_id = None
        if mindmap_id:
            feature_id = str(feature.get("id") or feature_name)
            with _get_db_session() as session:
                row = self.projects.upsert_feature_prd(session, user_id, mindmap_id, feature_id, feature_name, prd)
                saved_id = row.id
            self.users.record_generation(user_id, "prd")

        return GenerationResult(data=prd, saved_id=saved_id)

    async def generate_project_prd(
        self,
        user_id: str,
        mindmap: Dict[str, Any],
        project_name: Optional[str] = None,
        idea: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> GenerationResult:
        """Whole-project PRD built from a mindmap; saved as a new PRD version when ``project_id`` is given."""
        if not mindmap:
            raise InvalidInputError("Mindmap data is required", field="mindmapData")
        project_name = project_name or mindmap.get("projectName")
        if not project_name:
            raise InvalidInputError("Project name is required", field="projectName")
        description = idea or mindmap.get("projectDescription") or mindmap.get("description")

        self.gate.require_subscription(user_id, "prd")
        if project_id:
            with _get_db_session() as session:
                self.projects.get_project(session, user_id, project_id)

        prd = await self._generate_json(
            "project_prd",
            prompts.project_prd_prompt(project_name, description, mindmap),
            prompts.PROJECT_PRD_REQUIRED_KEYS,
            system_prompt=prompts.PROJECT_PRD_SYSTEM_PROMPT,
        )
        prd = scrub_model_references(prd)
        logger.info(
            "project_prd_generated",
            extra={"user_id": user_id, "project_id": project_id, "features": len(prd.get("features") or [])},
        )

        saved_id = None
        if project_id:
            with _get_db_session() as session:
                row = self.projects.save_prd(session, user_id, project_id, prd)
                saved_id = row.id
            self.users.record_generation(user_id, "prd")

        return GenerationResult(data=prd, saved_id=saved_id)

    async def generate_code(
        self,
        user_id: str,
        prd: Any,
        feature_name: str,
        tech_stack: Any = None,
        mindmap_id: Optional[str] = None,
        feature_id: Optional[str] = None,
    ) -> GenerationResult:
        if not prd:
            raise InvalidInputError("PRD content is required", field="prd")

        self.gate.require_subscription(user_id, "code_generation")

        code = await self._generate_json(
            "code",
            prompts.code_prompt(prd, feature_name, tech_stack),
            prompts.CODE_REQUIRED_KEYS,
        )
        code = scrub_model_references(code)
        if not isinstance(code.get("files"), list):
            code["files"] = []

        saved_id = None
        if mindmap_id and feature_id:
            with _get_db_session() as session:
                row = self.projects.upsert_feature_code(session, user_id, mindmap_id, feature_id, feature_name, code)
                saved_id = row.id
            self.users.record_generation(user_id, "code")

        return GenerationResult(data=code, saved_id=saved_id)

    # ------------------------------------------------------------------
    # Unmetered
    # ------------------------------------------------------------------

    async def recommend_tech_stack(
        self,
        project_name: str,
        idea: str,
        features: Optional[List[Any]] = None,
        target_platforms: Optional[List[str]] = None,
    ) -> GenerationResult:
        recommendations = await self._generate_json(
            "recommendations",
            prompts.tech_recommendations_prompt(project_name, idea, features, target_platforms),
            prompts.RECOMMENDATIONS_REQUIRED_KEYS,
        )
        return GenerationResult(data=recommendations)

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        context: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[str, None]:
        """Plain-text chat stream; prose, so not normalized."""
        async for chunk in self.llm.stream_chat(messages, system_prompt=prompts.chat_system_prompt(context)):
            yield chunk


# Module-level singleton
generation_service = GenerationService()
