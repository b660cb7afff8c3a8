"""
Entitlement store - the persisted plan and consumption counters of a user.

Every counter change is a single UPDATE ... SET x = x + :delta statement so two
browser tabs (or a tab and a webhook retry) can never lose each other's
writes. Nothing in this module reads a counter, computes a new value in
Python and writes it back.

The derived permissions (can_generate / can_save_package) are pure functions
of a record so the API and the guard evaluate them identically.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.subscription import Subscription, UNLIMITED
from src.services.errors import StoreWriteFailure
from src.services.plan_limits import PlanConfig, ENTITLEMENT_VALIDITY_DAYS

logger = logging.getLogger(__name__)

ACTIVE = "active"


def _dialect_insert(session: AsyncSession):
    """insert() construct with ON CONFLICT support for the bound dialect."""
    if session.bind is not None and session.bind.dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        from sqlalchemy.dialects.postgresql import insert
    return insert


class EntitlementStore:
    """Entitlement persistence over one AsyncSession. The caller owns commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, stmt, action: str, user_id: str):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Entitlement %s failed for user %s: %s",
                action, user_id[:8], str(e),
                extra={"user_id": user_id, "error_code": "store_write_failure"},
            )
            raise StoreWriteFailure(f"Entitlement {action} failed: {e}") from e

    async def get(self, user_id: Optional[str]) -> Optional[Subscription]:
        """The single active record for the user, or None if they never paid."""
        if not user_id:
            return None
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id, Subscription.status == ACTIVE)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_or_replace_active(
        self,
        user_id: str,
        plan_type: str,
        quotas: PlanConfig,
        *,
        stripe_customer_id: Optional[str] = None,
        stripe_session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Upsert keyed on user_id. A second purchase replaces plan and quota
        fields in place and resets both counters; it never adds a row.
        Storage add-on slots already bought stay on top of the new plan ceiling.
        """
        now = now or datetime.now(timezone.utc)
        values = {
            "plan_type": plan_type,
            "leads_per_month": quotas.leads_per_month,
            "max_storage_packages": quotas.max_storage_packages,
            "current_month_leads": 0,
            "used_storage_packages": 0,
            "status": ACTIVE,
            "stripe_customer_id": stripe_customer_id,
            "stripe_session_id": stripe_session_id,
            "current_period_start": now,
            "current_period_end": now + timedelta(days=ENTITLEMENT_VALIDITY_DAYS),
            "updated_at": now,
        }
        insert = _dialect_insert(self.session)
        stmt = insert(Subscription).values(
            id=uuid.uuid4(), user_id=user_id, created_at=now, storage_addon_slots=0, **values
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                **values,
                "max_storage_packages": Subscription.storage_addon_slots + quotas.max_storage_packages,
            },
        )
        await self._execute(stmt, "upsert", user_id)
        logger.info(
            "Entitlement set for user %s: plan=%s leads=%s storage=%d",
            user_id[:8], plan_type, quotas.leads_per_month, quotas.max_storage_packages,
            extra={"user_id": user_id, "plan_type": plan_type},
        )

    async def increment_leads(self, user_id: str, delta: int) -> Optional[int]:
        """Add delta consumed leads. Returns the new counter, or None without an active record."""
        _check_delta(delta)
        stmt = (
            update(Subscription)
            .where(Subscription.user_id == user_id, Subscription.status == ACTIVE)
            .values(
                current_month_leads=Subscription.current_month_leads + delta,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(Subscription.current_month_leads)
            .execution_options(synchronize_session=False)
        )
        row = (await self._execute(stmt, "lead increment", user_id)).first()
        return row[0] if row else None

    async def increment_storage_used(self, user_id: str, delta: int = 1) -> Optional[int]:
        """
        Consume delta package slots. The ceiling check is part of the UPDATE
        itself, so concurrent saves cannot push usage past the ceiling.
        Returns the new usage, or None (no active record / ceiling reached).
        """
        _check_delta(delta)
        stmt = (
            update(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == ACTIVE,
                Subscription.used_storage_packages + delta <= Subscription.max_storage_packages,
            )
            .values(
                used_storage_packages=Subscription.used_storage_packages + delta,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(Subscription.used_storage_packages)
            .execution_options(synchronize_session=False)
        )
        row = (await self._execute(stmt, "storage increment", user_id)).first()
        return row[0] if row else None

    async def increment_storage_ceiling(self, user_id: str, delta: int) -> Optional[int]:
        """
        Raise max_storage_packages by delta and remember it as add-on slots.
        Returns the new ceiling, or None if the user has no record.
        """
        _check_delta(delta)
        stmt = (
            update(Subscription)
            .where(Subscription.user_id == user_id)
            .values(
                max_storage_packages=Subscription.max_storage_packages + delta,
                storage_addon_slots=Subscription.storage_addon_slots + delta,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(Subscription.max_storage_packages)
            .execution_options(synchronize_session=False)
        )
        row = (await self._execute(stmt, "storage ceiling increment", user_id)).first()
        return row[0] if row else None

    async def reset_month_leads(self, user_id: Optional[str] = None) -> int:
        """Operator reset of current_month_leads. All active records when user_id is None."""
        stmt = (
            update(Subscription)
            .where(Subscription.status == ACTIVE)
            .values(current_month_leads=0, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if user_id:
            stmt = stmt.where(Subscription.user_id == user_id)
        result = await self._execute(stmt, "monthly reset", user_id or "all")
        return result.rowcount or 0


def _check_delta(delta: int) -> None:
    if delta < 0:
        raise ValueError("Entitlement counters only move up; delta must be >= 0")


# === DERIVED PERMISSIONS ===

def is_active(entitlement: Optional[Subscription]) -> bool:
    return entitlement is not None and entitlement.status == ACTIVE


def can_generate(entitlement: Optional[Subscription]) -> bool:
    if not is_active(entitlement):
        return False
    if entitlement.leads_per_month == UNLIMITED:
        return True
    return entitlement.current_month_leads < entitlement.leads_per_month


def can_save_package(entitlement: Optional[Subscription]) -> bool:
    if not is_active(entitlement):
        return False
    return entitlement.used_storage_packages < entitlement.max_storage_packages


def credits_remaining(entitlement: Optional[Subscription]) -> Optional[int]:
    """Leads left this period. None means unlimited; 0 without an active record."""
    if not is_active(entitlement):
        return 0
    if entitlement.leads_per_month == UNLIMITED:
        return None
    return max(entitlement.leads_per_month - entitlement.current_month_leads, 0)


def storage_remaining(entitlement: Optional[Subscription]) -> int:
    if not is_active(entitlement):
        return 0
    return max(entitlement.max_storage_packages - entitlement.used_storage_packages, 0)
