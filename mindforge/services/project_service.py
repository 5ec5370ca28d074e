"""
Project Service
===============

User-scoped persistence for projects and generated artifacts.
Every read and write filters on ``user_id``; a row owned by someone else
is indistinguishable from a missing one (NotFoundError).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlmodel import Session, col, select

from mindforge.core.errors import NotFoundError
from mindforge.models import PRD, DecisionPath, FeatureCode, FeaturePRD, Mindmap, Project, UserEvent

logger = logging.getLogger(__name__)

__all__ = ["ProjectService", "project_service"]

COPY_SUFFIX = " (Copy)"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProjectService:

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self, session: Session, user_id: str) -> List[Project]:
        return list(
            session.exec(
                select(Project)
                .where(Project.user_id == user_id)
                .order_by(col(Project.last_accessed_at).desc())
            ).all()
        )

    def get_project(self, session: Session, user_id: str, project_id: str) -> Project:
        project = session.exec(
            select(Project).where(Project.id == project_id, Project.user_id == user_id)
        ).first()
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def open_project(self, session: Session, user_id: str, project_id: str) -> Project:
        """Fetch a project and bump ``last_accessed_at``."""
        project = self.get_project(session, user_id, project_id)
        project.last_accessed_at = _now()
        session.add(project)
        session.commit()
        session.refresh(project)
        return project

    def latest_mindmap(self, session: Session, user_id: str, project_id: str) -> Optional[Mindmap]:
        return session.exec(
            select(Mindmap)
            .where(Mindmap.project_id == project_id, Mindmap.user_id == user_id)
            .order_by(col(Mindmap.created_at).desc())
        ).first()

    def update_project(self, session: Session, user_id: str, project_id: str, changes: Dict[str, Any]) -> Project:
        project = self.get_project(session, user_id, project_id)
        for field_name in ("name", "description", "status", "idea"):
            if changes.get(field_name) is not None:
                setattr(project, field_name, changes[field_name])
        project.updated_at = _now()
        session.add(project)
        session.commit()
        session.refresh(project)
        return project

    def delete_project(self, session: Session, user_id: str, project_id: str) -> None:
        """Delete a project with its mindmaps, PRDs and feature artifacts."""
        project = self.get_project(session, user_id, project_id)
        mindmap_ids = [
            m.id for m in session.exec(
                select(Mindmap).where(Mindmap.project_id == project_id, Mindmap.user_id == user_id)
            ).all()
        ]
        for model in (FeaturePRD, FeatureCode):
            if mindmap_ids:
                for row in session.exec(select(model).where(col(model.mindmap_id).in_(mindmap_ids))).all():
                    session.delete(row)
        for model in (Mindmap, PRD):
            for row in session.exec(select(model).where(model.project_id == project_id)).all():
                session.delete(row)
        session.delete(project)
        session.commit()
        logger.info("project_deleted", extra={"user_id": user_id, "project_id": project_id})

    def duplicate_project(self, session: Session, user_id: str, project_id: str) -> Project:
        source = self.get_project(session, user_id, project_id)
        copy = Project(
            user_id=user_id,
            name=f"{source.name}{COPY_SUFFIX}",
            description=source.description,
            idea=source.idea,
            status=source.status,
        )
        session.add(copy)
        mindmap = self.latest_mindmap(session, user_id, project_id)
        if mindmap is not None:
            session.add(Mindmap(project_id=copy.id, user_id=user_id, data=dict(mindmap.data)))
        session.commit()
        session.refresh(copy)
        logger.info("project_duplicated", extra={"user_id": user_id, "source_id": project_id, "project_id": copy.id})
        return copy

    # ------------------------------------------------------------------
    # Mindmaps / PRDs
    # ------------------------------------------------------------------

    def save_mindmap(
        self,
        session: Session,
        user_id: str,
        mindmap: Dict[str, Any],
        idea: Optional[str] = None,
    ) -> tuple[Project, Mindmap]:
        """Create a project from a generated mindmap."""
        project = Project(
            user_id=user_id,
            name=str(mindmap.get("projectName") or "Untitled Project")[:255],
            description=mindmap.get("projectDescription"),
            idea=idea,
            status="active",
        )
        session.add(project)
        row = Mindmap(project_id=project.id, user_id=user_id, data=mindmap)
        session.add(row)
        session.commit()
        session.refresh(project)
        session.refresh(row)
        logger.info("mindmap_saved", extra={"user_id": user_id, "project_id": project.id, "mindmap_id": row.id})
        return project, row

    def get_mindmap(self, session: Session, user_id: str, mindmap_id: str) -> Mindmap:
        row = session.exec(
            select(Mindmap).where(Mindmap.id == mindmap_id, Mindmap.user_id == user_id)
        ).first()
        if row is None:
            raise NotFoundError("mindmap", mindmap_id)
        return row

    def save_prd(
        self,
        session: Session,
        user_id: str,
        project_id: str,
        content: Dict[str, Any],
        status: str = "draft",
    ) -> PRD:
        """Append a new PRD version for a project."""
        self.get_project(session, user_id, project_id)
        latest = session.exec(
            select(PRD)
            .where(PRD.project_id == project_id, PRD.user_id == user_id)
            .order_by(col(PRD.version).desc())
        ).first()
        prd = PRD(
            project_id=project_id,
            user_id=user_id,
            content=content,
            version=(latest.version + 1) if latest else 1,
            status=status,
        )
        session.add(prd)
        session.commit()
        session.refresh(prd)
        return prd

    # ------------------------------------------------------------------
    # Feature artifacts (upsert on mindmap_id + feature_id)
    # ------------------------------------------------------------------

    def upsert_feature_prd(
        self,
        session: Session,
        user_id: str,
        mindmap_id: str,
        feature_id: str,
        feature_name: Optional[str],
        prd_data: Dict[str, Any],
    ) -> FeaturePRD:
        self.get_mindmap(session, user_id, mindmap_id)
        row = session.exec(
            select(FeaturePRD).where(FeaturePRD.mindmap_id == mindmap_id, FeaturePRD.feature_id == feature_id)
        ).first()
        if row is None:
            row = FeaturePRD(user_id=user_id, mindmap_id=mindmap_id, feature_id=feature_id)
        row.feature_name = feature_name
        row.prd_data = prd_data
        row.updated_at = _now()
        session.add(row)
        session.commit()
        session.refresh(row)
        return row

    def upsert_feature_code(
        self,
        session: Session,
        user_id: str,
        mindmap_id: str,
        feature_id: str,
        feature_name: Optional[str],
        code_data: Dict[str, Any],
    ) -> FeatureCode:
        self.get_mindmap(session, user_id, mindmap_id)
        row = session.exec(
            select(FeatureCode).where(FeatureCode.mindmap_id == mindmap_id, FeatureCode.feature_id == feature_id)
        ).first()
        if row is None:
            row = FeatureCode(user_id=user_id, mindmap_id=mindmap_id, feature_id=feature_id)
        row.feature_name = feature_name
        row.code_data = code_data
        row.updated_at = _now()
        session.add(row)
        session.commit()
        session.refresh(row)
        return row

    def get_feature_prd(self, session: Session, user_id: str, mindmap_id: str, feature_id: str) -> FeaturePRD:
        row = session.exec(
            select(FeaturePRD).where(
                FeaturePRD.mindmap_id == mindmap_id,
                FeaturePRD.feature_id == feature_id,
                FeaturePRD.user_id == user_id,
            )
        ).first()
        if row is None:
            raise NotFoundError("feature_prd", f"{mindmap_id}/{feature_id}")
        return row

    def get_feature_code(self, session: Session, user_id: str, mindmap_id: str, feature_id: str) -> FeatureCode:
        row = session.exec(
            select(FeatureCode).where(
                FeatureCode.mindmap_id == mindmap_id,
                FeatureCode.feature_id == feature_id,
                FeatureCode.user_id == user_id,
            )
        ).first()
        if row is None:
            raise NotFoundError("feature_code", f"{mindmap_id}/{feature_id}")
        return row

    # ------------------------------------------------------------------
    # Decision tree
    # ------------------------------------------------------------------

    def save_decision_path(
        self,
        session: Session,
        user_id: str,
        session_id: str,
        decisions: Dict[str, Any],
        app_purpose: Optional[str] = None,
        app_type: Optional[str] = None,
        current_step: int = 0,
        total_steps: int = 0,
        completed: bool = False,
    ) -> DecisionPath:
        row = session.exec(select(DecisionPath).where(DecisionPath.session_id == session_id)).first()
        if row is not None and row.user_id != user_id:
            raise NotFoundError("decision_path", session_id)
        if row is None:
            row = DecisionPath(session_id=session_id, user_id=user_id)
        row.decisions = dict(decisions)
        row.app_purpose = app_purpose or row.app_purpose
        row.app_type = app_type or row.app_type
        row.current_step = current_step or row.current_step
        row.total_steps = total_steps or row.total_steps
        row.completed = completed or row.completed
        row.updated_at = _now()
        session.add(row)
        session.commit()
        session.refresh(row)
        return row

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def track_event(
        self,
        session: Session,
        user_id: str,
        event_name: str,
        properties: Optional[Dict[str, Any]] = None,
        page: Optional[str] = None,
    ) -> UserEvent:
        event = UserEvent(user_id=user_id, event_name=event_name, properties=properties or {}, page=page)
        session.add(event)
        session.commit()
        session.refresh(event)
        return event


# Module-level singleton
project_service = ProjectService()
