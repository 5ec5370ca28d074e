"""
Tests for billing: plans, Stripe Checkout / Portal sessions and the
subscription event mapping. Stripe API calls are mocked.
"""

from unittest.mock import MagicMock

import pytest
import stripe

from mindforge.config import settings
from mindforge.core.errors import MindforgeError
from mindforge.models import User
from mindforge.services.billing_service import billing_service, map_subscription_status


@pytest.fixture
def checkout_create(monkeypatch):
    mock = MagicMock(return_value=MagicMock(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1"))
    monkeypatch.setattr(stripe.checkout.Session, "create", mock)
    return mock


@pytest.fixture
def portal_create(monkeypatch):
    mock = MagicMock(return_value=MagicMock(url="https://billing.stripe.test/p_1"))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", mock)
    return mock


class TestPlans:
    def test_list_plans(self, client):
        plans = {p["id"]: p for p in client.get("/api/billing/plans").json()["plans"]}

        assert plans["monthly"]["priceCents"] == 3999
        assert plans["yearly"]["priceCents"] == 29999
        assert plans["yearly"]["interval"] == "year"
        assert all(p["available"] for p in plans.values())


class TestCheckout:
    def test_new_customer_uses_email(self, client, checkout_create, make_user):
        make_user("user_test", email="buyer@example.com")

        response = client.post("/api/billing/checkout", json={"plan": "yearly"})

        assert response.status_code == 200
        assert response.json() == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
        params = checkout_create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_yearly_test", "quantity": 1}]
        assert params["metadata"] == {"userId": "user_test", "plan": "yearly"}
        assert params["customer_email"] == "buyer@example.com"
        assert "customer" not in params

    def test_existing_customer_reused(self, client, checkout_create, make_user):
        make_user("user_test", stripe_customer_id="cus_existing")

        client.post("/api/billing/checkout", json={"plan": "monthly"})

        params = checkout_create.call_args.kwargs
        assert params["customer"] == "cus_existing"
        assert params["success_url"].endswith("/dashboard?payment=success")

    def test_unknown_plan_rejected(self, client, checkout_create):
        response = client.post("/api/billing/checkout", json={"plan": "lifetime"})
        assert response.status_code == 422
        checkout_create.assert_not_called()

    def test_stripe_error_is_502(self, client, checkout_create):
        checkout_create.side_effect = stripe.StripeError("card network down")

        response = client.post("/api/billing/checkout", json={"plan": "monthly"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "MF-BIL-003"

    def test_unconfigured_stripe_503(self, client, checkout_create, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", None)

        response = client.post("/api/billing/checkout", json={"plan": "monthly"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "MF-BIL-001"


class TestPortal:
    def test_requires_customer(self, client, portal_create):
        response = client.post("/api/billing/portal")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "MF-BIL-002"

    def test_returns_portal_url(self, client, portal_create, make_user):
        make_user("user_test", stripe_customer_id="cus_portal")

        response = client.post("/api/billing/portal")

        assert response.json() == {"url": "https://billing.stripe.test/p_1"}
        assert portal_create.call_args.kwargs["customer"] == "cus_portal"


class TestEventMapping:
    @pytest.mark.parametrize(
        "stripe_status,expected",
        [
            ("active", "active"),
            ("trialing", "active"),
            ("past_due", "past_due"),
            ("unpaid", "past_due"),
            ("canceled", "inactive"),
            ("incomplete_expired", "inactive"),
            (None, "inactive"),
        ],
    )
    def test_map_subscription_status(self, stripe_status, expected):
        assert map_subscription_status(stripe_status) == expected

    def test_updated_maps_real_status(self, make_user, db):
        make_user("user_sub", subscribed=True, stripe_customer_id="cus_sub")

        billing_service.handle_event("customer.subscription.updated", {"customer": "cus_sub", "status": "past_due"})

        db.expire_all()
        assert db.get(User, "user_sub").subscription_status == "past_due"

    def test_deleted_clears_plan(self, make_user, db):
        make_user("user_sub", subscribed=True, stripe_customer_id="cus_sub")

        billing_service.handle_event("customer.subscription.deleted", {"customer": "cus_sub"})

        db.expire_all()
        user = db.get(User, "user_sub")
        assert user.subscription_status == "inactive"
        assert user.subscription_plan is None

    def test_invoice_success_reactivates(self, make_user, db):
        make_user("user_sub", subscription_status="past_due", stripe_customer_id="cus_sub")

        billing_service.handle_event("invoice.payment_succeeded", {"customer": "cus_sub"})

        db.expire_all()
        assert db.get(User, "user_sub").is_subscribed

    def test_checkout_without_user_id_ignored(self):
        assert billing_service.handle_event("checkout.session.completed", {"id": "cs_x", "metadata": {}}) is True

    def test_unknown_customer_is_noop(self):
        assert billing_service.handle_event("invoice.payment_failed", {"customer": "cus_ghost"}) is True

    def test_unhandled_type_returns_false(self):
        assert billing_service.handle_event("payout.paid", {}) is False

    def test_construct_event_requires_signature(self):
        with pytest.raises(MindforgeError) as exc_info:
            billing_service.construct_event(b"{}", None)
        assert exc_info.value.code == "MF-WHK-001"
