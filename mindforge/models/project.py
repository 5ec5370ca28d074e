"""
Project Models
==============

SQLModel tables for generated artifacts:
- Project: a user's app idea workspace.
- Mindmap: normalized mindmap JSON attached to a project.
- PRD: versioned project-level PRD documents.
- FeaturePRD / FeatureCode: one row per (mindmap, feature), upserted.
- DecisionPath: guided decision-tree answers, one row per session.

All rows carry ``user_id`` and every read is scoped by it.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(default_factory=_uuid, primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=128)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, nullable=True)
    idea: Optional[str] = Field(default=None, nullable=True)
    status: str = Field(default="draft", max_length=32)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    last_accessed_at: datetime = Field(default_factory=_now, index=True)


class Mindmap(SQLModel, table=True):
    __tablename__ = "mindmaps"

    id: str = Field(default_factory=_uuid, primary_key=True, max_length=36)
    project_id: str = Field(index=True, max_length=36)
    user_id: str = Field(index=True, max_length=128)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class PRD(SQLModel, table=True):
    """Project-level PRD; each save appends a new version."""

    __tablename__ = "prds"

    id: str = Field(default_factory=_uuid, primary_key=True, max_length=36)
    project_id: str = Field(index=True, max_length=36)
    user_id: str = Field(index=True, max_length=128)
    content: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    version: int = Field(default=1)
    status: str = Field(default="draft", max_length=32)
    created_at: datetime = Field(default_factory=_now)


class FeaturePRD(SQLModel, table=True):
    __tablename__ = "feature_prds"
    __table_args__ = (UniqueConstraint("mindmap_id", "feature_id", name="uq_feature_prd"),)

    id: str = Field(default_factory=_uuid, primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=128)
    mindmap_id: str = Field(index=True, max_length=36)
    feature_id: str = Field(max_length=128)
    feature_name: Optional[str] = Field(default=None, nullable=True, max_length=255)
    prd_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class FeatureCode(SQLModel, table=True):
    __tablename__ = "feature_code"
    __table_args__ = (UniqueConstraint("mindmap_id", "feature_id", name="uq_feature_code"),)

    id: str = Field(default_factory=_uuid, primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=128)
    mindmap_id: str = Field(index=True, max_length=36)
    feature_id: str = Field(max_length=128)
    feature_name: Optional[str] = Field(default=None, nullable=True, max_length=255)
    code_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class DecisionPath(SQLModel, table=True):
    __tablename__ = "decision_paths"

    id: str = Field(default_factory=_uuid, primary_key=True, max_length=36)
    session_id: str = Field(unique=True, index=True, max_length=128)
    user_id: str = Field(index=True, max_length=128)
    app_purpose: Optional[str] = Field(default=None, nullable=True, max_length=64)
    app_type: Optional[str] = Field(default=None, nullable=True, max_length=64)
    decisions: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    current_step: int = Field(default=0)
    total_steps: int = Field(default=0)
    completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
