"""
Tests for the Stripe and Clerk webhook receivers.

Stripe requests are signed with the test webhook secret the same way
Stripe signs them; Clerk requests are signed with svix HMAC.
"""

import hashlib
import hmac
import json
import time

import pytest
from sqlmodel import select

from mindforge.auth.webhook_signature import sign_svix_payload, verify_svix_signature
from mindforge.config import settings
from mindforge.core.errors import MindforgeError
from mindforge.models import Project, User
from mindforge.services.project_service import project_service
from mindforge.services.usage_gate import usage_gate


def _stripe_headers(payload: bytes, secret: str = None) -> dict:
    secret = secret or settings.stripe_webhook_secret
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return {"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"}


def _stripe_event(event_type: str, obj: dict) -> bytes:
    return json.dumps(
        {"id": "evt_test", "object": "event", "type": event_type, "data": {"object": obj}}
    ).encode()


def _svix_headers(payload: bytes, msg_id: str = "msg_1", timestamp: int = None) -> dict:
    ts = str(timestamp if timestamp is not None else int(time.time()))
    return {
        "svix-id": msg_id,
        "svix-timestamp": ts,
        "svix-signature": sign_svix_payload(settings.clerk_webhook_secret, msg_id, ts, payload),
        "content-type": "application/json",
    }


def _clerk_event(event_type: str, data: dict) -> bytes:
    return json.dumps({"type": event_type, "data": data}).encode()


class TestStripeWebhook:
    def test_checkout_completed_activates(self, anon_client, db, make_user):
        make_user("user_buyer")
        payload = _stripe_event(
            "checkout.session.completed",
            {"id": "cs_1", "customer": "cus_buyer", "metadata": {"userId": "user_buyer", "plan": "yearly"}},
        )

        response = anon_client.post("/api/webhooks/stripe", content=payload, headers=_stripe_headers(payload))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        db.expire_all()
        user = db.exec(select(User).where(User.id == "user_buyer")).one()
        assert user.subscription_status == "active"
        assert user.subscription_plan == "yearly"
        assert user.stripe_customer_id == "cus_buyer"

    def test_bad_signature_rejected(self, anon_client):
        payload = _stripe_event("customer.subscription.deleted", {"customer": "cus_x"})
        headers = _stripe_headers(payload, secret="whsec_wrong")

        response = anon_client.post("/api/webhooks/stripe", content=payload, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MF-WHK-001"

    def test_missing_signature_rejected(self, anon_client):
        response = anon_client.post("/api/webhooks/stripe", content=b"{}")
        assert response.status_code == 400

    def test_unconfigured_secret_503(self, anon_client, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", None)
        response = anon_client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "MF-WHK-002"

    def test_subscription_events_never_touch_units(self, anon_client, make_user):
        make_user("user_units", stripe_customer_id="cus_units")
        for _ in range(2):
            usage_gate.check_and_reserve("user_units", limit=3)

        for event_type, obj in [
            ("customer.subscription.updated", {"customer": "cus_units", "status": "active"}),
            ("invoice.payment_failed", {"customer": "cus_units"}),
            ("customer.subscription.deleted", {"customer": "cus_units"}),
        ]:
            payload = _stripe_event(event_type, obj)
            assert anon_client.post("/api/webhooks/stripe", content=payload, headers=_stripe_headers(payload)).status_code == 200

        assert usage_gate.peek("user_units").units_consumed == 2

    def test_unknown_event_acknowledged(self, anon_client):
        payload = _stripe_event("charge.refunded", {"id": "ch_1"})
        response = anon_client.post("/api/webhooks/stripe", content=payload, headers=_stripe_headers(payload))
        assert response.status_code == 200


class TestClerkWebhook:
    USER_DATA = {
        "id": "user_clerk",
        "email_addresses": [
            {"id": "idn_2", "email_address": "other@example.com"},
            {"id": "idn_1", "email_address": "primary@example.com"},
        ],
        "primary_email_address_id": "idn_1",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "image_url": "https://img.example.com/ada.png",
    }

    def test_user_created(self, anon_client, db):
        payload = _clerk_event("user.created", self.USER_DATA)

        response = anon_client.post("/api/webhooks/clerk", content=payload, headers=_svix_headers(payload))

        assert response.status_code == 200
        user = db.get(User, "user_clerk")
        assert user.email == "primary@example.com"
        assert user.first_name == "Ada"
        assert user.subscription_status == "inactive"

    def test_user_updated_keeps_subscription(self, anon_client, db, make_user):
        make_user("user_clerk", subscribed=True)
        payload = _clerk_event("user.updated", {**self.USER_DATA, "first_name": "Augusta"})

        anon_client.post("/api/webhooks/clerk", content=payload, headers=_svix_headers(payload))

        db.expire_all()
        user = db.get(User, "user_clerk")
        assert user.first_name == "Augusta"
        assert user.subscription_status == "active"

    def test_user_deleted_removes_owned_rows(self, anon_client, db, make_user):
        make_user("user_clerk")
        project_service.save_mindmap(db, "user_clerk", {"projectName": "X", "features": []})
        usage_gate.check_and_reserve("user_clerk", limit=3)
        payload = _clerk_event("user.deleted", {"id": "user_clerk", "deleted": True})

        response = anon_client.post("/api/webhooks/clerk", content=payload, headers=_svix_headers(payload))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(User, "user_clerk") is None
        assert db.exec(select(Project).where(Project.user_id == "user_clerk")).all() == []
        assert usage_gate.peek("user_clerk").units_consumed == 0

    def test_tampered_body_rejected(self, anon_client):
        payload = _clerk_event("user.created", self.USER_DATA)
        headers = _svix_headers(payload)

        response = anon_client.post("/api/webhooks/clerk", content=payload + b" ", headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MF-WHK-001"

    def test_missing_headers_rejected(self, anon_client):
        response = anon_client.post("/api/webhooks/clerk", content=_clerk_event("user.created", self.USER_DATA))
        assert response.status_code == 400


class TestSvixSignature:
    SECRET = "whsec_dGVzdC1zZWNyZXQ="

    def _headers(self, payload, ts):
        return {
            "svix-id": "msg_x",
            "svix-timestamp": str(ts),
            "svix-signature": "v1,bm90LWl0 " + sign_svix_payload(self.SECRET, "msg_x", str(ts), payload),
        }

    def test_any_listed_signature_accepted(self):
        now = 1_700_000_000
        verify_svix_signature(self.SECRET, b"{}", self._headers(b"{}", now), now=now)

    def test_stale_timestamp_rejected(self):
        now = 1_700_000_000
        with pytest.raises(MindforgeError) as exc_info:
            verify_svix_signature(self.SECRET, b"{}", self._headers(b"{}", now - 301), now=now)
        assert exc_info.value.code == "MF-WHK-001"

    def test_non_numeric_timestamp_rejected(self):
        headers = {"svix-id": "m", "svix-timestamp": "soon", "svix-signature": "v1,x"}
        with pytest.raises(MindforgeError):
            verify_svix_signature(self.SECRET, b"{}", headers)

    def test_missing_secret_is_config_error(self):
        with pytest.raises(MindforgeError) as exc_info:
            verify_svix_signature(None, b"{}", {})
        assert exc_info.value.code == "MF-WHK-002"
