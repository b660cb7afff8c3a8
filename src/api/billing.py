"""
Billing API - Stripe checkout for credit packs and storage upgrades, plan
catalog, entitlement status, and webhook.

The webhook endpoint has NO auth (Stripe signature verification only).
All other endpoints except the plan catalog require a Bearer token.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import CurrentUser, get_current_user, request_origin
from src.config import get_settings
from src.database import get_db
from src.schemas.api_responses import CheckoutRequest, SubscriptionResponse
from src.services import billing as billing_service
from src.services.entitlements import EntitlementStore
from src.services.guard import EntitlementGuard
from src.services.plan_limits import plan_catalog, storage_addon
from src.utils.rate_limiter import check_user_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(tags=["billing"])


async def _check_checkout_rate_limit(user: CurrentUser) -> None:
    allowed, retry_after = await check_user_rate_limit(
        user.id, "checkout", get_settings().checkout_rate_limit_per_minute,
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many checkout attempts",
            headers={"Retry-After": str(retry_after)},
        )


@router.get("/api/v1/billing/plans")
async def get_plans():
    """Return purchasable credit packs and the storage add-on."""
    return {"plans": plan_catalog(), "addons": [storage_addon()]}


@router.post("/api/v1/billing/create-payment")
async def create_payment(
    body: CheckoutRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Create a Stripe Checkout session for a one-time credit pack."""
    await _check_checkout_rate_limit(user)
    result = await billing_service.initiate_checkout(
        user_id=user.id,
        user_email=user.email,
        plan_type=body.planType.strip(),
        origin=request_origin(request),
    )
    return {"url": result["url"]}


@router.post("/api/v1/billing/create-storage-upgrade")
async def create_storage_upgrade(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Create a Stripe Checkout session for +200 package slots. Requires an active plan."""
    await _check_checkout_rate_limit(user)
    result = await billing_service.initiate_storage_upgrade(
        user_id=user.id,
        user_email=user.email,
        origin=request_origin(request),
        store=EntitlementStore(db),
    )
    return {"url": result["url"]}


@router.get("/api/v1/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Current entitlement and derived permissions. subscription is null before the first purchase."""
    guard = EntitlementGuard(EntitlementStore(db), user.id)
    await guard.refresh()
    return guard.snapshot()


@router.post("/api/v1/billing/webhook")
async def stripe_webhook(request: Request):
    """
    Stripe webhook endpoint. No JWT auth - uses Stripe signature verification.
    Non-2xx responses make Stripe redeliver the event.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    result = await billing_service.handle_webhook(payload, sig_header)
    if result.status_code >= 500:
        logger.error("Webhook processing error: %s", result.message)

    return PlainTextResponse(result.message, status_code=result.status_code)
