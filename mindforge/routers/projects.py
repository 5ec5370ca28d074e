"""
Projects Router
===============

User-scoped CRUD for projects and saved artifacts (mindmaps, PRDs,
feature PRDs / code, decision paths) and decision-tree navigation.
Nothing here calls an LLM.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlmodel import Session

from mindforge.auth.clerk_auth import AuthenticatedUser, get_current_user
from mindforge.core.database import get_session
from mindforge.models import Mindmap, Project
from mindforge.models.api import CamelModel
from mindforge.services.decision_tree import decision_tree
from mindforge.services.project_service import project_service
from mindforge.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter()


class ProjectUpdateRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[str] = Field(default=None, max_length=32)


class SaveMindmapRequest(CamelModel):
    mindmap: Dict[str, Any]
    idea: Optional[str] = None


class SavePRDRequest(CamelModel):
    project_id: str
    content: Dict[str, Any]
    status: str = "draft"


class SaveDecisionPathRequest(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=128)
    decisions: Dict[str, Any] = Field(default_factory=dict)
    app_purpose: Optional[str] = None
    app_type: Optional[str] = None
    current_step: int = 0
    total_steps: int = 0
    completed: bool = False


class NextQuestionRequest(CamelModel):
    current_decisions: Optional[Dict[str, Any]] = None
    app_purpose: Optional[str] = None
    app_type: Optional[str] = None


def _project_dict(project: Project, mindmap: Optional[Mindmap] = None) -> Dict[str, Any]:
    data = {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "idea": project.idea,
        "status": project.status,
        "createdAt": project.created_at.isoformat(),
        "updatedAt": project.updated_at.isoformat(),
        "lastAccessedAt": project.last_accessed_at.isoformat(),
    }
    if mindmap is not None:
        data["mindmap"] = {"id": mindmap.id, "data": mindmap.data}
    return data


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

@router.get("/projects", summary="List projects", description="Most recently opened first.")
def list_projects(user: AuthenticatedUser = Depends(get_current_user), db: Session = Depends(get_session)):
    projects = project_service.list_projects(db, user.user_id)
    return {"success": True, "projects": [_project_dict(p) for p in projects]}


@router.get("/projects/{project_id}", summary="Open a project")
def get_project(
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    project = project_service.open_project(db, user.user_id, project_id)
    mindmap = project_service.latest_mindmap(db, user.user_id, project_id)
    return {"success": True, "project": _project_dict(project, mindmap)}


@router.patch("/projects/{project_id}", summary="Update a project")
def update_project(
    project_id: str,
    body: ProjectUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    project = project_service.update_project(db, user.user_id, project_id, body.model_dump(exclude_none=True))
    return {"success": True, "project": _project_dict(project)}


@router.delete("/projects/{project_id}", summary="Delete a project and its artifacts")
def delete_project(
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    project_service.delete_project(db, user.user_id, project_id)
    return {"success": True}


@router.post("/projects/{project_id}/duplicate", summary="Duplicate a project")
def duplicate_project(
    project_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    copy = project_service.duplicate_project(db, user.user_id, project_id)
    return {"success": True, "project": _project_dict(copy)}


# ---------------------------------------------------------------------------
# Saved artifacts
# ---------------------------------------------------------------------------

@router.post("/save-mindmap", summary="Save a generated mindmap as a new project")
def save_mindmap(
    body: SaveMindmapRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    user_service.get_or_create(db, user.user_id, email=user.email)
    project, mindmap = project_service.save_mindmap(db, user.user_id, body.mindmap, idea=body.idea)
    return {"success": True, "projectId": project.id, "mindmapId": mindmap.id}


@router.post("/save-prd", summary="Save a new PRD version for a project")
def save_prd(
    body: SavePRDRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    prd = project_service.save_prd(db, user.user_id, body.project_id, body.content, status=body.status)
    return {"success": True, "data": {"id": prd.id, "projectId": prd.project_id, "version": prd.version, "status": prd.status}}


@router.get("/feature-prd", summary="Fetch a saved feature PRD")
def get_feature_prd(
    mindmap_id: str = Query(..., alias="mindmapId"),
    feature_id: str = Query(..., alias="featureId"),
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    row = project_service.get_feature_prd(db, user.user_id, mindmap_id, feature_id)
    return {"success": True, "prd": row.prd_data, "featureName": row.feature_name, "updatedAt": row.updated_at.isoformat()}


@router.get("/feature-code", summary="Fetch saved feature code")
def get_feature_code(
    mindmap_id: str = Query(..., alias="mindmapId"),
    feature_id: str = Query(..., alias="featureId"),
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    row = project_service.get_feature_code(db, user.user_id, mindmap_id, feature_id)
    return {"success": True, "code": row.code_data, "featureName": row.feature_name, "updatedAt": row.updated_at.isoformat()}


@router.post("/decision-tree/save", summary="Save decision-tree progress")
def save_decision_path(
    body: SaveDecisionPathRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    row = project_service.save_decision_path(
        db,
        user.user_id,
        body.session_id,
        body.decisions,
        app_purpose=body.app_purpose,
        app_type=body.app_type,
        current_step=body.current_step,
        total_steps=body.total_steps,
        completed=body.completed,
    )
    return {"success": True, "id": row.id, "completed": row.completed}


@router.post(
    "/decision-tree/next",
    summary="Next decision-tree question",
    description="Returns the next unanswered question and progress, or completed=true once the path is done.",
)
def next_decision_question(
    body: NextQuestionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
):
    step = decision_tree.next_step(body.current_decisions, body.app_purpose, body.app_type)
    return step.to_dict()
