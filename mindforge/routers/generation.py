"""
Generation Router
=================

Endpoints that call an LLM. Every JSON-producing endpoint goes through
GenerationService (usage gate → provider → normalizer → persistence);
errors surface through the registry as structured JSON:

    402 MF-USG-001  free tier used up          403 MF-USG-003  Pro only
    500 MF-USG-002  reservation not recorded   502 MF-LLM-00x  upstream / output
"""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import Field

from mindforge.auth.clerk_auth import AuthenticatedUser, get_current_user
from mindforge.models.api import CamelModel
from mindforge.services.generation_service import generation_service
from mindforge.services.llm_providers.base import LLMProviderError

logger = logging.getLogger(__name__)

router = APIRouter()


class MindmapRequest(CamelModel):
    idea: str = Field(..., max_length=5000)


class DecisionTreeGenerateRequest(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=128)
    decisions: Dict[str, Any]
    app_purpose: str = Field(..., min_length=1)
    app_type: str = Field(..., min_length=1)


class FeaturePRDRequest(CamelModel):
    feature: Dict[str, Any]
    project_context: Optional[Dict[str, Any]] = None
    mindmap_id: Optional[str] = None


class ProjectPRDRequest(CamelModel):
    mindmap_data: Dict[str, Any]
    project_name: Optional[str] = None
    idea: Optional[str] = None
    project_id: Optional[str] = None


class CodeRequest(CamelModel):
    prd: Any
    feature: Dict[str, Any] = Field(default_factory=dict)
    tech_stack: Any = None
    mindmap_id: Optional[str] = None
    feature_id: Optional[str] = None


class TechRecommendationsRequest(CamelModel):
    project_name: str = Field(..., min_length=1)
    idea: str = Field(..., min_length=1)
    features: Optional[List[Any]] = None
    target_platforms: Optional[List[str]] = None


class ChatMessage(CamelModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class ChatRequest(CamelModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    context: Optional[Dict[str, Any]] = None


def _usage_block(decision) -> Dict[str, Any]:
    return {
        "unitsConsumed": decision.units_consumed,
        "limit": decision.limit,
        "isSubscribed": decision.is_subscribed,
    }


@router.post(
    "/generate-mindmap",
    summary="Generate a mindmap",
    description="Turn an app idea into a structured mindmap. Spends one free-tier unit before the LLM call.",
)
async def generate_mindmap(body: MindmapRequest, user: AuthenticatedUser = Depends(get_current_user)):
    result = await generation_service.generate_mindmap(user.user_id, body.idea)
    return {"success": True, "mindmap": result.data, "usage": _usage_block(result.decision)}


@router.post(
    "/decision-tree/generate",
    summary="Generate a mindmap from decision-tree answers",
    description="Metered like /generate-mindmap. Marks the decision path as completed.",
)
async def generate_from_decisions(
    body: DecisionTreeGenerateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
):
    result = await generation_service.generate_from_decisions(
        user.user_id, body.session_id, body.decisions, body.app_purpose, body.app_type
    )
    return {
        "success": True,
        "mindmap": result.data,
        "decisionPathId": result.saved_id,
        "usage": _usage_block(result.decision),
    }


@router.post(
    "/generate-feature-prd",
    summary="Generate a feature PRD",
    description="Pro only. Saved per (mindmap, feature) when mindmapId is given.",
)
async def generate_feature_prd(body: FeaturePRDRequest, user: AuthenticatedUser = Depends(get_current_user)):
    result = await generation_service.generate_feature_prd(
        user.user_id, body.feature, body.project_context, body.mindmap_id
    )
    return {"success": True, "prd": result.data, "saved": result.saved_id is not None, "id": result.saved_id}


@router.post(
    "/generate-prd",
    summary="Generate a project PRD",
    description="Pro only. Whole-project PRD from a mindmap; saved as a new PRD version when projectId is given.",
)
async def generate_project_prd(body: ProjectPRDRequest, user: AuthenticatedUser = Depends(get_current_user)):
    result = await generation_service.generate_project_prd(
        user.user_id,
        body.mindmap_data,
        project_name=body.project_name,
        idea=body.idea,
        project_id=body.project_id,
    )
    return {
        "success": True,
        "prd": result.data,
        "rawText": json.dumps(result.data, indent=2),
        "saved": result.saved_id is not None,
        "id": result.saved_id,
    }


@router.post(
    "/generate-code",
    summary="Generate code scaffolding",
    description="Pro only. Saved per (mindmap, feature) when mindmapId and featureId are given.",
)
async def generate_code(body: CodeRequest, user: AuthenticatedUser = Depends(get_current_user)):
    feature_name = body.feature.get("title") or body.feature.get("name") or "Feature"
    result = await generation_service.generate_code(
        user.user_id,
        body.prd,
        feature_name,
        tech_stack=body.tech_stack,
        mindmap_id=body.mindmap_id,
        feature_id=body.feature_id or body.feature.get("id"),
    )
    return {"success": True, "code": result.data, "saved": result.saved_id is not None, "id": result.saved_id}


@router.post("/tech-recommendations", summary="Recommend a tech stack")
async def tech_recommendations(
    body: TechRecommendationsRequest,
    user: AuthenticatedUser = Depends(get_current_user),
):
    result = await generation_service.recommend_tech_stack(
        body.project_name, body.idea, body.features, body.target_platforms
    )
    return {"success": True, "recommendations": result.data}


@router.post("/chat", summary="Chat with the product assistant", description="Streams plain text.")
async def chat(body: ChatRequest, user: AuthenticatedUser = Depends(get_current_user)):
    messages = [{"role": m.role, "content": m.content} for m in body.messages]

    async def _stream():
        try:
            async for chunk in generation_service.stream_chat(messages, body.context):
                yield chunk
        except LLMProviderError as exc:
            # Headers are already sent; end the stream and keep the cause in the log
            logger.error(
                "chat_stream_failed",
                extra={"user_id": user.user_id, "provider": exc.provider, "error": exc.message},
            )

    return StreamingResponse(_stream(), media_type="text/plain; charset=utf-8")
