"""
Webhook receivers for Stripe (subscriptions) and Clerk (account lifecycle).

Both verify signatures on the raw body before parsing. Unknown event
types are acknowledged so the sender does not retry them.
"""

import json
import logging

from fastapi import APIRouter, Request

from mindforge.auth.webhook_signature import verify_svix_signature
from mindforge.config import settings
from mindforge.core.errors import MindforgeError
from mindforge.services.billing_service import billing_service
from mindforge.services.user_service import user_service

router = APIRouter()

logger = logging.getLogger(__name__)


@router.post("/stripe", summary="Stripe webhook", description="Subscription and invoice events from Stripe.")
async def stripe_webhook(request: Request):
    payload = await request.body()
    event = billing_service.construct_event(payload, request.headers.get("stripe-signature"))

    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info("stripe_webhook_received", extra={"event_type": event_type, "event_id": event.get("id")})
    billing_service.handle_event(event_type, obj)
    return {"received": True}


@router.post("/clerk", summary="Clerk webhook", description="User created / updated / deleted events from Clerk.")
async def clerk_webhook(request: Request):
    payload = await request.body()
    verify_svix_signature(settings.clerk_webhook_secret, payload, request.headers)

    try:
        event = json.loads(payload)
        event_type = event["type"]
        data = event["data"]
    except (ValueError, KeyError, TypeError) as exc:
        raise MindforgeError("MF-WHK-001", detail=f"invalid Clerk payload: {exc}") from exc

    logger.info("clerk_webhook_received", extra={"event_type": event_type, "clerk_user_id": data.get("id")})

    if event_type in ("user.created", "user.updated"):
        user_service.upsert_from_clerk(data)
    elif event_type == "user.deleted":
        if data.get("id"):
            user_service.delete_account(data["id"])
    else:
        logger.info("clerk_event_ignored", extra={"event_type": event_type})

    return {"received": True}
