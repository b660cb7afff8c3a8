"""
Tests for src/services/billing.py - Stripe checkout initiation and metadata decoding.
Webhook reconciliation is covered in test_webhook_reconciler.py.
"""
import pytest
from unittest.mock import MagicMock, patch

from src.services.billing import (
    PlanGrant,
    StorageGrant,
    UnknownMetadata,
    build_plan_line_items,
    decode_metadata,
    find_customer_id,
    initiate_checkout,
    initiate_storage_upgrade,
)
from src.services.entitlements import EntitlementStore
from src.services.errors import EntitlementRequired, InvalidPlan, ProviderError, Unauthorized
from src.services.plan_limits import get_plan_config

ORIGIN = "https://app.leadgenai.com"


def _mock_stripe(existing_customer_id=None):
    mock_stripe = MagicMock()
    customers = MagicMock()
    if existing_customer_id:
        customer = MagicMock()
        customer.id = existing_customer_id
        customers.data = [customer]
    else:
        customers.data = []
    mock_stripe.Customer.list = MagicMock(return_value=customers)

    session = MagicMock()
    session.id = "cs_test_123"
    session.url = "https://checkout.stripe.com/c/pay/cs_test_123"
    mock_stripe.checkout.Session.create = MagicMock(return_value=session)
    return mock_stripe


# ---------------------------------------------------------------------------
# find_customer_id
# ---------------------------------------------------------------------------

class TestFindCustomer:
    async def test_existing_customer(self, mock_settings):
        mock_stripe = _mock_stripe(existing_customer_id="cus_abc")
        with patch("src.services.billing._get_stripe", return_value=mock_stripe):
            assert await find_customer_id("sarah@acme.com") == "cus_abc"
        mock_stripe.Customer.list.assert_called_once_with(email="sarah@acme.com", limit=1)

    async def test_no_customer(self):
        with patch("src.services.billing._get_stripe", return_value=_mock_stripe()):
            assert await find_customer_id("new@acme.com") is None


# ---------------------------------------------------------------------------
# initiate_checkout
# ---------------------------------------------------------------------------

class TestInitiateCheckout:
    async def test_basic_plan_session(self, mock_settings):
        mock_stripe = _mock_stripe()
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            result = await initiate_checkout("user-1", "sarah@acme.com", "basic", ORIGIN)

        assert result == {"url": "https://checkout.stripe.com/c/pay/cs_test_123", "session_id": "cs_test_123"}
        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["metadata"] == {"user_id": "user-1", "plan_type": "basic"}
        assert kwargs["success_url"] == f"{ORIGIN}/dashboard?payment=success&plan=basic"
        assert kwargs["cancel_url"] == f"{ORIGIN}/pricing?payment=cancelled"
        assert kwargs["allow_promotion_codes"] is True
        assert kwargs["billing_address_collection"] == "auto"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 4900

    async def test_new_customer_passes_email(self, mock_settings):
        mock_stripe = _mock_stripe()
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            await initiate_checkout("user-1", "sarah@acme.com", "basic", ORIGIN)

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["customer"] is None
        assert kwargs["customer_email"] == "sarah@acme.com"

    async def test_existing_customer_reused(self, mock_settings):
        mock_stripe = _mock_stripe(existing_customer_id="cus_abc")
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            await initiate_checkout("user-1", "sarah@acme.com", "premium", ORIGIN)

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["customer"] == "cus_abc"
        assert kwargs["customer_email"] is None

    async def test_invalid_plan_makes_no_provider_call(self, mock_settings):
        mock_stripe = _mock_stripe()
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            with pytest.raises(InvalidPlan):
                await initiate_checkout("user-1", "sarah@acme.com", "enterprise", ORIGIN)

        mock_stripe.Customer.list.assert_not_called()
        mock_stripe.checkout.Session.create.assert_not_called()

    async def test_missing_email_is_unauthorized(self, mock_settings):
        mock_stripe = _mock_stripe()
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            with pytest.raises(Unauthorized):
                await initiate_checkout("user-1", None, "basic", ORIGIN)
            with pytest.raises(Unauthorized):
                await initiate_checkout("", "sarah@acme.com", "basic", ORIGIN)

        mock_stripe.checkout.Session.create.assert_not_called()

    async def test_stripe_error_becomes_provider_error(self, mock_settings):
        mock_stripe = _mock_stripe()
        mock_stripe.checkout.Session.create = MagicMock(side_effect=Exception("Your card was declined"))
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            with pytest.raises(ProviderError) as exc_info:
                await initiate_checkout("user-1", "sarah@acme.com", "basic", ORIGIN)

        assert exc_info.value.message == "Your card was declined"
        assert exc_info.value.status_code == 502


class TestPlanLineItems:
    def test_premium_uses_configured_price(self, settings_factory):
        settings = settings_factory(stripe_premium_price_id="price_premium_69")
        with patch("src.services.billing.get_settings", return_value=settings):
            assert build_plan_line_items("premium") == [{"price": "price_premium_69", "quantity": 1}]

    def test_premium_inline_price_without_config(self, mock_settings):
        with patch("src.services.billing.get_settings", return_value=mock_settings):
            items = build_plan_line_items("premium")
        assert items[0]["price_data"]["unit_amount"] == 6900
        assert items[0]["price_data"]["currency"] == "usd"


# ---------------------------------------------------------------------------
# initiate_storage_upgrade
# ---------------------------------------------------------------------------

class TestInitiateStorageUpgrade:
    async def test_storage_session(self, db, mock_settings):
        store = EntitlementStore(db)
        await store.create_or_replace_active("user-1", "basic", get_plan_config("basic"))
        mock_stripe = _mock_stripe()
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            result = await initiate_storage_upgrade("user-1", "sarah@acme.com", ORIGIN + "/", store=store)

        assert result["session_id"] == "cs_test_123"
        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["metadata"] == {"user_id": "user-1", "upgrade_type": "storage"}
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1499
        assert kwargs["success_url"].startswith(f"{ORIGIN}/dashboard?payment=success")

    async def test_no_plan_rejected_before_stripe(self, db, mock_settings):
        mock_stripe = _mock_stripe()
        with (
            patch("src.services.billing.get_settings", return_value=mock_settings),
            patch("src.services.billing._get_stripe", return_value=mock_stripe),
        ):
            with pytest.raises(EntitlementRequired):
                await initiate_storage_upgrade("user-9", "new@acme.com", ORIGIN, store=EntitlementStore(db))

        mock_stripe.Customer.list.assert_not_called()
        mock_stripe.checkout.Session.create.assert_not_called()

    async def test_missing_identity_checked_first(self, db):
        with pytest.raises(Unauthorized):
            await initiate_storage_upgrade("user-1", "", ORIGIN, store=EntitlementStore(db))


# ---------------------------------------------------------------------------
# decode_metadata
# ---------------------------------------------------------------------------

class TestDecodeMetadata:
    def test_plan_grant(self):
        assert decode_metadata({"user_id": "u1", "plan_type": "basic"}) == [PlanGrant("u1", "basic")]

    def test_storage_grant(self):
        assert decode_metadata({"user_id": "u1", "upgrade_type": "storage"}) == [StorageGrant("u1")]

    def test_both_grants(self):
        grants = decode_metadata({"user_id": "u1", "plan_type": "premium", "upgrade_type": "storage"})
        assert grants == [PlanGrant("u1", "premium"), StorageGrant("u1")]

    def test_unknown_plan(self):
        [grant] = decode_metadata({"user_id": "u1", "plan_type": "gold"})
        assert isinstance(grant, UnknownMetadata)
        assert "gold" in grant.reason

    @pytest.mark.parametrize("metadata", [None, {}, {"plan_type": "basic"}, {"user_id": "u1"}])
    def test_undecodable(self, metadata):
        [grant] = decode_metadata(metadata)
        assert isinstance(grant, UnknownMetadata)
