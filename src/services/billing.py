"""
Stripe billing service - one-time credit packs and storage upgrades.

Handles: customer lookup, checkout sessions, webhook reconciliation.
All Stripe calls are synchronous and run via run_in_executor to avoid blocking
the asyncio event loop.

The checkout metadata is the only channel through which the webhook learns
which user and plan to credit. Redirect query parameters are informational
for the UI and are never trusted here.
"""
import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.services.entitlements import EntitlementStore, is_active
from src.services.errors import (
    EntitlementRequired,
    InvalidPlan,
    ProviderError,
    SignatureInvalid,
    StoreWriteFailure,
    Unauthorized,
)
from src.services.plan_limits import (
    STORAGE_UPGRADE_AMOUNT_CENTS,
    STORAGE_UPGRADE_INCREMENT,
    get_plan_config,
)
from src.utils.logging import get_correlation_id, mask_email

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
STORAGE_UPGRADE_TYPE = "storage"


def _get_stripe():
    """Get configured Stripe module with per-request API key. Raises if not configured."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise ValueError("Stripe secret key not configured")
    stripe.api_key = settings.stripe_secret_key
    stripe.max_network_retries = 1
    return stripe


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous Stripe SDK call in the default thread pool executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def _provider_message(error: Exception) -> str:
    return getattr(error, "user_message", None) or str(error)


# === CHECKOUT ===

async def find_customer_id(email: str) -> Optional[str]:
    """Existing Stripe customer for this email, or None to let Checkout create one."""
    client = _get_stripe()
    customers = await _run_sync(client.Customer.list, email=email, limit=1)
    if customers.data:
        logger.info("Found existing Stripe customer %s", customers.data[0].id)
        return customers.data[0].id
    return None


def build_plan_line_items(plan_type: str) -> list[dict]:
    """One-time line item for a credit pack. Premium prefers a preconfigured price."""
    config = get_plan_config(plan_type)
    if config is None:
        raise InvalidPlan(f'Invalid plan type "{plan_type}". Must be "basic" or "premium"')

    settings = get_settings()
    if plan_type == "premium" and settings.stripe_premium_price_id:
        return [{"price": settings.stripe_premium_price_id, "quantity": 1}]

    return [{
        "price_data": {
            "currency": "usd",
            "product_data": {"name": config.name, "description": config.description},
            "unit_amount": config.amount_cents,
        },
        "quantity": 1,
    }]


def build_storage_line_items() -> list[dict]:
    return [{
        "price_data": {
            "currency": "usd",
            "product_data": {
                "name": "Storage Upgrade",
                "description": f"{STORAGE_UPGRADE_INCREMENT} additional lead package slots, valid for 12 months",
            },
            "unit_amount": STORAGE_UPGRADE_AMOUNT_CENTS,
        },
        "quantity": 1,
    }]


def _require_identity(user_id: Optional[str], user_email: Optional[str]) -> None:
    if not user_id:
        raise Unauthorized("User not authenticated")
    if not user_email:
        raise Unauthorized("User not authenticated or email not available")


async def _create_session(
    user_email: str,
    line_items: list[dict],
    metadata: dict,
    success_url: str,
    cancel_url: str,
) -> dict:
    try:
        client = _get_stripe()
        customer_id = await find_customer_id(user_email)
        session = await _run_sync(
            client.checkout.Session.create,
            customer=customer_id,
            customer_email=None if customer_id else user_email,
            line_items=line_items,
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            allow_promotion_codes=True,
            billing_address_collection="auto",
        )
    except Exception as e:
        logger.error(
            "Stripe checkout creation failed: %s", str(e),
            extra={"user_id": metadata.get("user_id"), "provider": "stripe"},
        )
        raise ProviderError(_provider_message(e)) from e

    logger.info(
        "Stripe checkout session created: %s for user %s",
        session.id, metadata["user_id"][:8],
        extra={"user_id": metadata["user_id"], "plan_type": metadata.get("plan_type")},
    )
    return {"url": session.url, "session_id": session.id}


async def initiate_checkout(
    user_id: str,
    user_email: str,
    plan_type: str,
    origin: str,
) -> dict:
    """
    Create a one-time Checkout session for a credit pack.

    Raises InvalidPlan before any Stripe call, Unauthorized without identity,
    ProviderError when Stripe rejects the request.
    Returns: {"url": str, "session_id": str}
    """
    line_items = build_plan_line_items(plan_type)
    _require_identity(user_id, user_email)

    base = origin.rstrip("/")
    logger.info(
        "Creating checkout for %s plan=%s", mask_email(user_email), plan_type,
        extra={"user_id": user_id, "plan_type": plan_type},
    )
    return await _create_session(
        user_email,
        line_items,
        metadata={"user_id": user_id, "plan_type": plan_type},
        success_url=f"{base}/dashboard?payment=success&plan={plan_type}",
        cancel_url=f"{base}/pricing?payment=cancelled",
    )


async def initiate_storage_upgrade(
    user_id: str,
    user_email: str,
    origin: str,
    *,
    store: EntitlementStore,
) -> dict:
    """
    Create a one-time Checkout session for +200 package slots.

    Only sold on top of an active plan: raises EntitlementRequired before any
    Stripe call when the user has none.
    """
    _require_identity(user_id, user_email)
    if not is_active(await store.get(user_id)):
        raise EntitlementRequired("An active plan is required before buying extra storage")

    base = origin.rstrip("/")
    return await _create_session(
        user_email,
        build_storage_line_items(),
        metadata={"user_id": user_id, "upgrade_type": STORAGE_UPGRADE_TYPE},
        success_url=f"{base}/dashboard?payment=success&upgrade={STORAGE_UPGRADE_TYPE}",
        cancel_url=f"{base}/packages?payment=cancelled",
    )


# === WEBHOOK METADATA ===

@dataclass(frozen=True)
class PlanGrant:
    user_id: str
    plan_type: str


@dataclass(frozen=True)
class StorageGrant:
    user_id: str


@dataclass(frozen=True)
class UnknownMetadata:
    reason: str


Grant = Union[PlanGrant, StorageGrant, UnknownMetadata]


def decode_metadata(metadata: Optional[dict]) -> list[Grant]:
    """
    Decode checkout metadata once into grants. A session may carry both a
    plan and a storage upgrade; each is applied independently. An empty
    result is never returned - undecodable metadata yields UnknownMetadata.
    """
    metadata = metadata or {}
    user_id = (metadata.get("user_id") or "").strip()
    plan_type = (metadata.get("plan_type") or "").strip()
    upgrade_type = (metadata.get("upgrade_type") or "").strip()

    if not user_id:
        return [UnknownMetadata("missing user_id")]

    grants: list[Grant] = []
    if plan_type:
        if get_plan_config(plan_type):
            grants.append(PlanGrant(user_id=user_id, plan_type=plan_type))
        else:
            grants.append(UnknownMetadata(f"unknown plan_type '{plan_type}'"))
    if upgrade_type == STORAGE_UPGRADE_TYPE:
        grants.append(StorageGrant(user_id=user_id))
    elif upgrade_type:
        grants.append(UnknownMetadata(f"unknown upgrade_type '{upgrade_type}'"))

    return grants or [UnknownMetadata("no plan_type or upgrade_type")]


# === WEBHOOK ===

@dataclass
class WebhookResult:
    status_code: int
    message: str
    event_type: Optional[str] = None
    handled: bool = False


async def verify_event(payload: bytes, sig_header: Optional[str]) -> dict:
    """
    Check the Stripe-Signature header and decode the event body.
    Raises SignatureInvalid; ValueError when Stripe is not configured.
    """
    if not sig_header:
        raise SignatureInvalid("No signature")

    client = _get_stripe()
    settings = get_settings()
    try:
        await _run_sync(
            client.Webhook.construct_event,
            payload, sig_header, settings.stripe_webhook_secret,
        )
        event = json.loads(payload)
    except stripe.SignatureVerificationError as e:
        raise SignatureInvalid("Invalid signature") from e
    except ValueError as e:
        raise SignatureInvalid(f"Invalid payload: {e}") from e

    if not isinstance(event, dict):
        raise SignatureInvalid("Invalid payload: expected a JSON object")
    return event


def _default_session_factory() -> AsyncSession:
    from src.database import async_session_factory
    return async_session_factory()


async def handle_webhook(
    payload: bytes,
    sig_header: str,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
) -> WebhookResult:
    """
    Verify and reconcile a Stripe event.

    400 on missing/invalid signature or unparseable body (no state change),
    200 for ignored, duplicate and applied events,
    500 when the entitlement write fails, or a storage upgrade arrives before
    any plan, so Stripe redelivers.
    """
    try:
        event = await verify_event(payload, sig_header)
    except SignatureInvalid as e:
        logger.warning("Stripe webhook rejected: %s", e.message, extra={"error_code": "signature_invalid"})
        return WebhookResult(e.status_code, f"Webhook error: {e.message}")
    except ValueError as e:
        logger.error("Stripe not configured: %s", str(e))
        return WebhookResult(500, f"Webhook error: {e}")

    event_type = event.get("type")
    event_id = event.get("id")
    logger.info("Stripe webhook received: %s", event_type, extra={"event_id": event_id})

    if event_type != CHECKOUT_COMPLETED:
        return WebhookResult(200, "OK", event_type=event_type, handled=False)

    session_obj = (event.get("data") or {}).get("object") or {}
    if session_obj.get("mode") != "payment":
        logger.info("Ignoring checkout session %s with mode=%s", session_obj.get("id"), session_obj.get("mode"))
        return WebhookResult(200, "OK", event_type=event_type, handled=False)

    if not event_id:
        return WebhookResult(400, "Webhook error: event id missing", event_type=event_type)

    grants = decode_metadata(session_obj.get("metadata"))
    factory = session_factory or _default_session_factory

    async with factory() as db:
        try:
            event_row = await _claim_event(db, event_id, event_type, payload, event, grants)
            if event_row is None:
                logger.info("Duplicate Stripe event %s ignored", event_id, extra={"event_id": event_id})
                return WebhookResult(200, "OK", event_type=event_type, handled=False)

            store = EntitlementStore(db)
            outcomes = [await _apply_grant(store, grant, session_obj) for grant in grants]
            if "no_entitlement" in outcomes:
                # Not claimed: Stripe redelivers until the plan grant has landed
                await db.rollback()
                return WebhookResult(500, "Error: no entitlement record for storage upgrade", event_type=event_type)


            event_row.processing_status = "processed" if "applied" in outcomes else outcomes[0]
            event_row.processed_at = datetime.now(timezone.utc)
            await db.commit()
        except StoreWriteFailure as e:
            await db.rollback()
            logger.error("Webhook processing failed for %s: %s", event_id, e.message, extra={"event_id": event_id})
            return WebhookResult(500, f"Error: {e.message}", event_type=event_type)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Webhook event bookkeeping failed for %s: %s", event_id, str(e), extra={"event_id": event_id})
            return WebhookResult(500, f"Error: {e}", event_type=event_type)

    return WebhookResult(200, "OK", event_type=event_type, handled="applied" in outcomes)


async def _claim_event(
    db: AsyncSession,
    event_id: str,
    event_type: str,
    payload: bytes,
    event: dict,
    grants: list[Grant],
):
    """
    Record the event id inside the current transaction. Returns None when the
    event was already applied (including a concurrent delivery racing us).
    """
    from src.models.webhook_event import WebhookEvent

    existing = await db.execute(
        select(WebhookEvent.id).where(
            WebhookEvent.source == "stripe",
            WebhookEvent.provider_event_id == event_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return None

    user_id = next((g.user_id for g in grants if not isinstance(g, UnknownMetadata)), None)
    row = WebhookEvent(
        provider_event_id=event_id,
        source="stripe",
        event_type=event_type,
        payload_hash=hashlib.sha256(payload).hexdigest(),
        raw_payload=event,
        user_id=user_id,
        processing_status="processing",
        correlation_id=get_correlation_id(),
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return None
    return row


async def _apply_grant(store: EntitlementStore, grant: Grant, session_obj: dict) -> str:
    """Apply one decoded grant. Returns an outcome label for the audit row."""
    if isinstance(grant, UnknownMetadata):
        logger.warning(
            "Checkout session %s not applied: %s", session_obj.get("id"), grant.reason,
            extra={"error_code": "unknown_metadata"},
        )
        return "ignored"

    if isinstance(grant, PlanGrant):
        current = await store.get(grant.user_id)
        if current is not None and current.stripe_session_id == session_obj.get("id"):
            logger.info("Plan grant for session %s already applied", session_obj.get("id"))
            return "duplicate"
        await store.create_or_replace_active(
            grant.user_id,
            grant.plan_type,
            get_plan_config(grant.plan_type),
            stripe_customer_id=session_obj.get("customer"),
            stripe_session_id=session_obj.get("id"),
        )
        logger.info(
            "Created subscription for user %s with plan %s", grant.user_id[:8], grant.plan_type,
            extra={"user_id": grant.user_id, "plan_type": grant.plan_type},
        )
        return "applied"

    new_ceiling = await store.increment_storage_ceiling(grant.user_id, STORAGE_UPGRADE_INCREMENT)
    if new_ceiling is None:
        logger.error(
            "Storage upgrade paid by user %s before any plan; awaiting redelivery", grant.user_id[:8],
            extra={"user_id": grant.user_id, "error_code": "storage_without_entitlement"},
        )
        return "no_entitlement"
    logger.info(
        "Added storage for user %s: ceiling now %d", grant.user_id[:8], new_ceiling,
        extra={"user_id": grant.user_id},
    )
    return "applied"
