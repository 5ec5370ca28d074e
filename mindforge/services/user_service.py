"""
User Service
============

Local user records mirrored from Clerk, subscription state written by
Stripe webhooks, onboarding flags and monthly usage statistics.

The subscription setters only ever touch ``users``; the free-tier
counters in ``usage_counters`` belong to the usage gate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from mindforge.models import (
    PRD,
    DecisionPath,
    FeatureCode,
    FeaturePRD,
    Mindmap,
    MonthlyUsage,
    Project,
    UsageCounter,
    User,
    UserEvent,
)
from mindforge.models.user import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_INACTIVE

logger = logging.getLogger(__name__)

__all__ = ["UserService", "current_month", "user_service"]

# Tables holding rows owned by a user, removed on account deletion
_OWNED_TABLES = (UsageCounter, MonthlyUsage, FeatureCode, FeaturePRD, PRD, Mindmap, Project, DecisionPath, UserEvent)


def current_month(now: Optional[datetime] = None) -> str:
    """Billing-month key, ``YYYY-MM`` in UTC."""
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


def _get_db_session():
    from mindforge.core.database import get_session_context
    return get_session_context()


class UserService:
    """User mirror plus subscription and onboarding state."""

    # ------------------------------------------------------------------
    # Lookup / lazy creation
    # ------------------------------------------------------------------

    def get(self, session: Session, user_id: str) -> Optional[User]:
        return session.get(User, user_id)

    def get_or_create(self, session: Session, user_id: str, email: Optional[str] = None) -> User:
        """Return the user row, creating a bare one if the webhook hasn't yet."""
        user = session.get(User, user_id)
        if user is not None:
            return user
        user = User(id=user_id, email=email)
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            # Created concurrently (webhook or parallel request)
            session.rollback()
            return session.get(User, user_id)
        session.refresh(user)
        logger.info("user_created_lazily", extra={"user_id": user_id})
        return user

    # ------------------------------------------------------------------
    # Clerk lifecycle
    # ------------------------------------------------------------------

    def upsert_from_clerk(self, data: Dict[str, Any]) -> User:
        """Mirror a Clerk ``user.created`` / ``user.updated`` payload.

        Subscription fields are left untouched.
        """
        user_id = data["id"]
        emails = data.get("email_addresses") or []
        primary_id = data.get("primary_email_address_id")
        email = None
        for entry in emails:
            if primary_id and entry.get("id") == primary_id:
                email = entry.get("email_address")
                break
        if email is None and emails:
            email = emails[0].get("email_address")

        with _get_db_session() as session:
            user = session.get(User, user_id)
            if user is None:
                user = User(id=user_id)
            user.email = email
            user.first_name = data.get("first_name")
            user.last_name = data.get("last_name")
            user.image_url = data.get("image_url")
            user.updated_at = datetime.now(timezone.utc)
            session.add(user)
            session.commit()
            session.refresh(user)
        logger.info("user_synced_from_clerk", extra={"user_id": user_id})
        return user

    def delete_account(self, user_id: str) -> None:
        """Remove the user and every row it owns, in one transaction."""
        from mindforge.core.database import get_engine

        with get_engine().begin() as conn:
            for model in _OWNED_TABLES:
                table = model.__table__
                conn.execute(table.delete().where(table.c.user_id == user_id))
            users = User.__table__
            conn.execute(users.delete().where(users.c.id == user_id))
        logger.info("user_account_deleted", extra={"user_id": user_id})

    # ------------------------------------------------------------------
    # Subscription (Stripe webhooks)
    # ------------------------------------------------------------------

    def activate_subscription(
        self,
        user_id: str,
        plan: Optional[str],
        stripe_customer_id: Optional[str],
    ) -> User:
        with _get_db_session() as session:
            user = session.get(User, user_id) or User(id=user_id)
            user.subscription_status = SUBSCRIPTION_ACTIVE
            user.subscription_plan = plan or "monthly"
            if stripe_customer_id:
                user.stripe_customer_id = stripe_customer_id
            user.subscription_started_at = datetime.now(timezone.utc)
            user.updated_at = datetime.now(timezone.utc)
            session.add(user)
            session.commit()
            session.refresh(user)
        logger.info("subscription_activated", extra={"user_id": user_id, "plan": user.subscription_plan})
        return user

    def set_status_by_customer(
        self,
        stripe_customer_id: str,
        status: str,
        plan: Optional[str] = None,
    ) -> Optional[User]:
        """Update subscription status for the user owning a Stripe customer."""
        if not stripe_customer_id:
            logger.warning("subscription_event_without_customer", extra={"status": status})
            return None
        with _get_db_session() as session:
            user = session.exec(select(User).where(User.stripe_customer_id == stripe_customer_id)).first()
            if user is None:
                logger.warning("subscription_customer_unknown", extra={"stripe_customer_id": stripe_customer_id})
                return None
            user.subscription_status = status
            if plan:
                user.subscription_plan = plan
            if status == SUBSCRIPTION_INACTIVE:
                user.subscription_plan = None
            user.updated_at = datetime.now(timezone.utc)
            session.add(user)
            session.commit()
            session.refresh(user)
        logger.info("subscription_status_changed", extra={"user_id": user.id, "status": status})
        return user

    def subscription_info(self, session: Session, user_id: str) -> Dict[str, Any]:
        user = session.get(User, user_id)
        if user is None:
            return {"status": SUBSCRIPTION_INACTIVE, "plan": None, "startedAt": None, "isSubscribed": False}
        return {
            "status": user.subscription_status,
            "plan": user.subscription_plan,
            "startedAt": user.subscription_started_at.isoformat() if user.subscription_started_at else None,
            "isSubscribed": user.is_subscribed,
        }

    # ------------------------------------------------------------------
    # Onboarding
    # ------------------------------------------------------------------

    def complete_onboarding(self, session: Session, user_id: str) -> User:
        user = self.get_or_create(session, user_id)
        user.onboarding_completed = True
        user.updated_at = datetime.now(timezone.utc)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    # ------------------------------------------------------------------
    # Monthly statistics (display only, never gate anything)
    # ------------------------------------------------------------------

    def monthly_usage(self, session: Session, user_id: str) -> MonthlyUsage:
        month = current_month()
        row = session.exec(
            select(MonthlyUsage).where(MonthlyUsage.user_id == user_id, MonthlyUsage.month_year == month)
        ).first()
        return row or MonthlyUsage(user_id=user_id, month_year=month)

    def record_generation(self, user_id: str, kind: str) -> None:
        """Best-effort bump of ``prd_count`` / ``code_gen_count``.

        Failures are logged and swallowed; the artifact is already saved.
        """
        column = {"prd": "prd_count", "code": "code_gen_count"}[kind]
        try:
            with _get_db_session() as session:
                row = self.monthly_usage(session, user_id)
                setattr(row, column, getattr(row, column) + 1)
                row.updated_at = datetime.now(timezone.utc)
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            logger.warning(
                "monthly_usage_update_failed",
                extra={"user_id": user_id, "kind": kind, "error": str(exc)},
            )


# Module-level singleton
user_service = UserService()
