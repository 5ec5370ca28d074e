"""
Billing Service: Stripe Subscriptions
=====================================

PURPOSE:
    1. **create_checkout_session()** - hosted Checkout for the monthly or
       yearly Pro plan; metadata carries userId + plan back to the webhook.
    2. **create_portal_session()** - Billing Portal for existing customers.
    3. **handle_event()** - applies verified Stripe webhook events to the
       user's subscription status. It never touches usage counters.

CONFIGURATION (env vars with MINDFORGE_ prefix):
    MINDFORGE_STRIPE_SECRET_KEY        - Stripe secret API key
    MINDFORGE_STRIPE_WEBHOOK_SECRET    - Stripe webhook signing secret
    MINDFORGE_STRIPE_PRICE_MONTHLY     - Price id of the monthly plan
    MINDFORGE_STRIPE_PRICE_YEARLY      - Price id of the yearly plan
    MINDFORGE_APP_URL                  - Base URL for success/cancel/return
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe

from mindforge.config import settings
from mindforge.core.errors import InvalidInputError, MindforgeError
from mindforge.models.user import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_INACTIVE, SUBSCRIPTION_PAST_DUE
from mindforge.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)

__all__ = [
    "BillingService",
    "CheckoutSession",
    "Plan",
    "PLANS",
    "billing_service",
    "map_subscription_status",
]


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price_cents: int
    interval: str


PLANS: Dict[str, Plan] = {
    "monthly": Plan(id="monthly", name="Pro Monthly", price_cents=3999, interval="month"),
    "yearly": Plan(id="yearly", name="Pro Yearly", price_cents=29999, interval="year"),
}


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: Optional[str]


def map_subscription_status(stripe_status: Optional[str]) -> str:
    """Collapse Stripe's subscription states onto ours."""
    if stripe_status in ("active", "trialing"):
        return SUBSCRIPTION_ACTIVE
    if stripe_status in ("past_due", "unpaid"):
        return SUBSCRIPTION_PAST_DUE
    return SUBSCRIPTION_INACTIVE


def _get_stripe():
    """Configure the stripe module with the current secret key."""
    if not settings.stripe_secret_key:
        raise MindforgeError("MF-BIL-001", detail="MINDFORGE_STRIPE_SECRET_KEY is not set")
    stripe.api_key = settings.stripe_secret_key
    return stripe


def _get_db_session():
    from mindforge.core.database import get_session_context
    return get_session_context()


class BillingService:
    """Stripe Checkout / Portal sessions and subscription webhook handling."""

    def __init__(self, users: UserService = user_service) -> None:
        self.users = users

    def list_plans(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": plan.id,
                "name": plan.name,
                "priceCents": plan.price_cents,
                "interval": plan.interval,
                "available": bool(self._price_id(plan.id)),
            }
            for plan in PLANS.values()
        ]

    @staticmethod
    def _price_id(plan: str) -> Optional[str]:
        return {"monthly": settings.stripe_price_monthly, "yearly": settings.stripe_price_yearly}.get(plan)

    # ------------------------------------------------------------------
    # Checkout / Portal
    # ------------------------------------------------------------------

    def create_checkout_session(self, user_id: str, plan: str) -> CheckoutSession:
        if plan not in PLANS:
            raise InvalidInputError(f"Unknown plan {plan!r}", field="plan")
        price_id = self._price_id(plan)
        if not price_id:
            raise MindforgeError("MF-BIL-001", detail=f"no Stripe price configured for plan {plan}")
        client = _get_stripe()

        with _get_db_session() as session:
            user = self.users.get(session, user_id)
            customer_id = user.stripe_customer_id if user else None
            email = user.email if user else None

        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{settings.app_url}/dashboard?payment=success",
            "cancel_url": f"{settings.app_url}/pricing?canceled=true",
            "metadata": {"userId": user_id, "plan": plan},
            "subscription_data": {"metadata": {"userId": user_id, "plan": plan}},
        }
        if customer_id:
            params["customer"] = customer_id
        elif email:
            params["customer_email"] = email

        try:
            checkout = client.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            raise MindforgeError(
                "MF-BIL-003",
                detail=f"checkout session failed: {exc}",
                context={"user_id": user_id, "plan": plan},
            ) from exc

        logger.info("checkout_session_created", extra={"user_id": user_id, "plan": plan, "session_id": checkout.id})
        return CheckoutSession(session_id=checkout.id, url=checkout.url)

    def create_portal_session(self, user_id: str) -> str:
        with _get_db_session() as session:
            user = self.users.get(session, user_id)
            customer_id = user.stripe_customer_id if user else None
        if not customer_id:
            raise MindforgeError("MF-BIL-002", detail=f"user {user_id} has no Stripe customer")

        client = _get_stripe()
        try:
            portal = client.billing_portal.Session.create(
                customer=customer_id,
                return_url=f"{settings.app_url}/dashboard/subscription",
            )
        except stripe.StripeError as exc:
            raise MindforgeError("MF-BIL-003", detail=f"portal session failed: {exc}") from exc
        return portal.url

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]):
        """Verify the Stripe signature and parse the event."""
        if not settings.stripe_webhook_secret:
            raise MindforgeError("MF-WHK-002", detail="MINDFORGE_STRIPE_WEBHOOK_SECRET is not set")
        if not signature:
            raise MindforgeError("MF-WHK-001", detail="missing stripe-signature header")
        try:
            return stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
        except ValueError as exc:
            raise MindforgeError("MF-WHK-001", detail=f"invalid payload: {exc}") from exc
        except stripe.SignatureVerificationError as exc:
            raise MindforgeError("MF-WHK-001", detail=f"invalid signature: {exc}") from exc

    def handle_event(self, event_type: str, obj: Dict[str, Any]) -> bool:
        """Apply one event. Returns False for event types we ignore."""
        if event_type == "checkout.session.completed":
            metadata = obj.get("metadata") or {}
            user_id = metadata.get("userId")
            if not user_id:
                logger.warning("checkout_missing_user", extra={"session_id": obj.get("id")})
                return True
            self.users.activate_subscription(
                user_id,
                plan=metadata.get("plan") or "monthly",
                stripe_customer_id=obj.get("customer"),
            )
            return True

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            metadata = obj.get("metadata") or {}
            self.users.set_status_by_customer(
                obj.get("customer"),
                map_subscription_status(obj.get("status")),
                plan=metadata.get("plan"),
            )
            return True

        if event_type == "customer.subscription.deleted":
            self.users.set_status_by_customer(obj.get("customer"), SUBSCRIPTION_INACTIVE)
            return True

        if event_type == "invoice.payment_succeeded":
            self.users.set_status_by_customer(obj.get("customer"), SUBSCRIPTION_ACTIVE)
            return True

        if event_type == "invoice.payment_failed":
            self.users.set_status_by_customer(obj.get("customer"), SUBSCRIPTION_PAST_DUE)
            return True

        logger.info("stripe_event_ignored", extra={"event_type": event_type})
        return False


# Module-level singleton
billing_service = BillingService()
