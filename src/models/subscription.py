"""
Subscription model - the entitlement record that gates lead generation and
package storage for one user.

Created only by the Stripe webhook reconciler (or the operator grant script).
Counters are only ever changed with single UPDATE statements at the database
layer - see src/services/entitlements.py.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, DateTime, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base

UNLIMITED = -1


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Externally issued identity (auth provider "sub" claim)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    plan_type: Mapped[str] = mapped_column(String(20), nullable=False)  # basic, premium
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active"
    )  # active, inactive, cancelled

    # Quotas - leads_per_month == -1 means unlimited
    leads_per_month: Mapped[int] = mapped_column(Integer, nullable=False)
    current_month_leads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_storage_packages: Mapped[int] = mapped_column(Integer, nullable=False)
    used_storage_packages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Slots bought as storage add-ons; kept when the plan is replaced
    storage_addon_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Stripe correlation
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(100))
    stripe_session_id: Mapped[Optional[str]] = mapped_column(String(255))

    # Validity window (informational)
    current_period_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_subscriptions_user_id"),
        Index("ix_subscriptions_status", "status"),
        CheckConstraint("current_month_leads >= 0", name="ck_subscriptions_leads_nonneg"),
        CheckConstraint("used_storage_packages >= 0", name="ck_subscriptions_storage_nonneg"),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.leads_per_month == UNLIMITED

    def __repr__(self) -> str:
        return f"<Subscription {self.user_id[:8]} plan={self.plan_type} status={self.status}>"
