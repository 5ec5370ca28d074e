"""Usage, subscription status, onboarding and event tracking for the current user."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlmodel import Session

from mindforge.auth.clerk_auth import AuthenticatedUser, get_current_user
from mindforge.config import settings
from mindforge.core.database import get_session
from mindforge.models.api import CamelModel
from mindforge.services.project_service import project_service
from mindforge.services.usage_gate import usage_gate
from mindforge.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter()


class TrackEventRequest(CamelModel):
    event_name: str = Field(..., min_length=1, max_length=128)
    properties: Optional[Dict[str, Any]] = None
    page: Optional[str] = Field(default=None, max_length=512)


@router.get(
    "/usage",
    summary="Usage and limits",
    description="Free-tier mindmap counter plus this month's PRD / code generation counts.",
)
def get_usage(user: AuthenticatedUser = Depends(get_current_user), db: Session = Depends(get_session)):
    state = usage_gate.peek(user.user_id)
    limit = settings.free_tier_mindmap_limit
    monthly = user_service.monthly_usage(db, user.user_id)
    return {
        "mindmapsCreated": state.units_consumed,
        "limit": None if state.is_subscribed else limit,
        "remaining": None if state.is_subscribed else max(limit - state.units_consumed, 0),
        "isProUser": state.is_subscribed,
        "monthly": {
            "month": monthly.month_year,
            "prdCount": monthly.prd_count,
            "prdLimit": settings.monthly_prd_limit,
            "codeGenCount": monthly.code_gen_count,
            "codeGenLimit": settings.monthly_code_gen_limit,
        },
    }


@router.get("/subscription", summary="Subscription status")
def get_subscription(user: AuthenticatedUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return user_service.subscription_info(db, user.user_id)


@router.get("/onboarding/status", summary="Onboarding status")
def onboarding_status(user: AuthenticatedUser = Depends(get_current_user), db: Session = Depends(get_session)):
    record = user_service.get(db, user.user_id)
    flag = bool(record and record.onboarding_completed)
    created_any = usage_gate.peek(user.user_id).units_consumed > 0 or bool(project_service.list_projects(db, user.user_id))
    return {"completed": flag or created_any, "onboardingCompleted": flag}


@router.post("/onboarding/complete", summary="Mark onboarding as completed")
def complete_onboarding(user: AuthenticatedUser = Depends(get_current_user), db: Session = Depends(get_session)):
    user_service.complete_onboarding(db, user.user_id)
    return {"success": True}


@router.post("/events/track", summary="Track a product event")
def track_event(
    body: TrackEventRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    event = project_service.track_event(db, user.user_id, body.event_name, body.properties, body.page)
    return {"success": True, "id": event.id}
