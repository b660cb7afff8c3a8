"""
Tests for src/api/billing.py - plans, checkout creation, subscription status,
and the Stripe webhook endpoint.
"""
import pytest
from unittest.mock import AsyncMock, patch

from src.api.auth import get_current_user
from src.services.billing import WebhookResult
from src.services.entitlements import EntitlementStore
from src.services.errors import InvalidPlan, ProviderError
from src.services.plan_limits import get_plan_config


@pytest.fixture
def mock_initiate():
    with (
        patch("src.api.billing.billing_service.initiate_checkout", new_callable=AsyncMock) as checkout,
        patch("src.api.billing.billing_service.initiate_storage_upgrade", new_callable=AsyncMock) as storage,
    ):
        checkout.return_value = {"url": "https://checkout.stripe.com/c/pay/cs_1", "session_id": "cs_1"}
        storage.return_value = {"url": "https://checkout.stripe.com/c/pay/cs_2", "session_id": "cs_2"}
        yield checkout, storage


# ---------------------------------------------------------------------------
# GET /api/v1/billing/plans
# ---------------------------------------------------------------------------

class TestGetPlans:
    async def test_public_catalog(self, client):
        resp = await client.get("/api/v1/billing/plans")

        assert resp.status_code == 200
        body = resp.json()
        assert [p["slug"] for p in body["plans"]] == ["basic", "premium"]
        assert body["addons"][0]["slug"] == "storage"


# ---------------------------------------------------------------------------
# POST /api/v1/billing/create-payment
# ---------------------------------------------------------------------------

class TestCreatePayment:
    async def test_returns_url(self, client, mock_initiate, no_rate_limit):
        checkout, _ = mock_initiate
        resp = await client.post(
            "/api/v1/billing/create-payment",
            json={"planType": "basic"},
            headers={"Origin": "https://app.example.com"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"url": "https://checkout.stripe.com/c/pay/cs_1"}
        checkout.assert_awaited_once_with(
            user_id="user-1",
            user_email="sarah@acme.com",
            plan_type="basic",
            origin="https://app.example.com",
        )

    async def test_origin_falls_back_to_base_url(self, client, mock_initiate, no_rate_limit):
        checkout, _ = mock_initiate
        with patch("src.api.auth.get_settings") as settings:
            settings.return_value.app_base_url = "https://app.leadgenai.com"
            await client.post("/api/v1/billing/create-payment", json={"planType": "premium"})

        assert checkout.call_args.kwargs["origin"] == "https://app.leadgenai.com"

    async def test_invalid_plan(self, client, mock_initiate, no_rate_limit):
        checkout, _ = mock_initiate
        checkout.side_effect = InvalidPlan('Invalid plan type "gold". Must be "basic" or "premium"')

        resp = await client.post("/api/v1/billing/create-payment", json={"planType": "gold"})

        assert resp.status_code == 400
        assert "Invalid plan type" in resp.json()["error"]

    async def test_provider_error(self, client, mock_initiate, no_rate_limit):
        checkout, _ = mock_initiate
        checkout.side_effect = ProviderError("No such price")

        resp = await client.post("/api/v1/billing/create-payment", json={"planType": "premium"})

        assert resp.status_code == 502
        assert resp.json() == {"error": "No such price"}

    async def test_unauthenticated(self, client, mock_initiate, no_rate_limit):
        from src.main import app
        del app.dependency_overrides[get_current_user]

        resp = await client.post("/api/v1/billing/create-payment", json={"planType": "basic"})

        assert resp.status_code == 401
        assert resp.json() == {"error": "User not authenticated"}
        mock_initiate[0].assert_not_called()

    async def test_rate_limited(self, client, mock_initiate):
        with patch("src.api.billing.check_user_rate_limit", AsyncMock(return_value=(False, 60))):
            resp = await client.post("/api/v1/billing/create-payment", json={"planType": "basic"})

        assert resp.status_code == 429
        mock_initiate[0].assert_not_called()


class TestCreateStorageUpgrade:
    async def test_returns_url(self, client, mock_initiate, no_rate_limit):
        _, storage = mock_initiate
        resp = await client.post("/api/v1/billing/create-storage-upgrade")

        assert resp.json() == {"url": "https://checkout.stripe.com/c/pay/cs_2"}
        assert storage.call_args.kwargs["user_id"] == "user-1"
        assert isinstance(storage.call_args.kwargs["store"], EntitlementStore)

    async def test_without_plan_rejected(self, client, no_rate_limit):
        with patch("src.services.billing._get_stripe") as get_stripe:
            resp = await client.post("/api/v1/billing/create-storage-upgrade")

        assert resp.status_code == 403
        assert "active plan" in resp.json()["error"]
        get_stripe.assert_not_called()


# ---------------------------------------------------------------------------
# GET /api/v1/subscription
# ---------------------------------------------------------------------------

class TestSubscription:
    async def test_before_first_purchase(self, client):
        body = (await client.get("/api/v1/subscription")).json()

        assert body["subscription"] is None
        assert body["can_generate"] is False
        assert body["can_save_package"] is False
        assert body["credits_remaining"] == 0

    async def test_after_purchase(self, client, session_factory):
        async with session_factory() as db:
            store = EntitlementStore(db)
            await store.create_or_replace_active("user-1", "basic", get_plan_config("basic"))
            await store.increment_leads("user-1", 20)
            await db.commit()

        body = (await client.get("/api/v1/subscription")).json()

        assert body["subscription"]["plan_type"] == "basic"
        assert body["subscription"]["current_month_leads"] == 20
        assert body["can_generate"] is True
        assert body["credits_remaining"] == 480
        assert body["storage_remaining"] == 15


# ---------------------------------------------------------------------------
# POST /api/v1/billing/webhook
# ---------------------------------------------------------------------------

class TestStripeWebhook:
    async def test_plain_text_ok(self, client):
        with patch(
            "src.api.billing.billing_service.handle_webhook",
            AsyncMock(return_value=WebhookResult(200, "OK", "checkout.session.completed", True)),
        ) as handler:
            resp = await client.post(
                "/api/v1/billing/webhook",
                content=b'{"id": "evt_1"}',
                headers={"stripe-signature": "t=1,v1=abc"},
            )

        assert resp.status_code == 200
        assert resp.text == "OK"
        handler.assert_awaited_once_with(b'{"id": "evt_1"}', "t=1,v1=abc")

    async def test_error_status_passed_through(self, client):
        with patch(
            "src.api.billing.billing_service.handle_webhook",
            AsyncMock(return_value=WebhookResult(400, "Webhook error: Invalid signature")),
        ):
            resp = await client.post("/api/v1/billing/webhook", content=b"{}")

        assert resp.status_code == 400
        assert resp.text == "Webhook error: Invalid signature"

    async def test_no_auth_required(self, client):
        from src.main import app
        app.dependency_overrides.pop(get_current_user, None)

        with patch(
            "src.api.billing.billing_service.handle_webhook",
            AsyncMock(return_value=WebhookResult(500, "Error: Entitlement upsert failed")),
        ):
            resp = await client.post("/api/v1/billing/webhook", content=b"{}", headers={"stripe-signature": "x"})

        assert resp.status_code == 500
