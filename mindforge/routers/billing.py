"""
Billing Router
==============

Stripe Checkout / Billing Portal sessions for the Pro plans.
Subscription state itself only changes through /api/webhooks/stripe.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends

from mindforge.auth.clerk_auth import AuthenticatedUser, get_current_user
from mindforge.models.api import CamelModel
from mindforge.services.billing_service import billing_service

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutRequest(CamelModel):
    plan: Literal["monthly", "yearly"] = "monthly"


@router.get("/plans", summary="List plans")
def list_plans():
    return {"plans": billing_service.list_plans()}


@router.post(
    "/checkout",
    summary="Start checkout",
    description="Create a Stripe Checkout session for a Pro plan and return its URL.",
)
def create_checkout(body: CheckoutRequest, user: AuthenticatedUser = Depends(get_current_user)):
    checkout = billing_service.create_checkout_session(user.user_id, body.plan)
    return {"sessionId": checkout.session_id, "url": checkout.url}


@router.post("/portal", summary="Open the billing portal")
def create_portal(user: AuthenticatedUser = Depends(get_current_user)):
    return {"url": billing_service.create_portal_session(user.user_id)}
