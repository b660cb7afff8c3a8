"""Initial schema - entitlements, lead packages, leads, search history, webhook events.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Entitlements - one row per user, quotas + counters
    op.create_table(
        "subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("plan_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("leads_per_month", sa.Integer, nullable=False),
        sa.Column("current_month_leads", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_storage_packages", sa.Integer, nullable=False),
        sa.Column("used_storage_packages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("storage_addon_slots", sa.Integer, nullable=False, server_default="0"),
        sa.Column("stripe_customer_id", sa.String(100)),
        sa.Column("stripe_session_id", sa.String(255)),
        sa.Column("current_period_start", sa.DateTime(timezone=True)),
        sa.Column("current_period_end", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", name="uq_subscriptions_user_id"),
        sa.CheckConstraint("current_month_leads >= 0", name="ck_subscriptions_leads_nonneg"),
        sa.CheckConstraint("used_storage_packages >= 0", name="ck_subscriptions_storage_nonneg"),
    )
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])

    # Lead packages
    op.create_table(
        "lead_packages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("package_name", sa.String(255), nullable=False),
        sa.Column("search_query", sa.Text),
        sa.Column("lead_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_lead_packages_user_created", "lead_packages", ["user_id", "created_at"])

    # Leads
    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "package_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lead_packages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("website", sa.String(255)),
        sa.Column("industry", sa.String(100)),
        sa.Column("description", sa.Text),
        sa.Column("score", sa.Integer, server_default="75"),
        sa.Column("status", sa.String(30), nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_leads_user_id", "leads", ["user_id"])
    op.create_index("ix_leads_package_id", "leads", ["package_id"])
    op.create_index("ix_leads_created_at", "leads", ["created_at"])

    # Search history
    op.create_table(
        "search_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("query", sa.Text, nullable=False),
        sa.Column("results_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_search_history_user_created", "search_history", ["user_id", "created_at"])

    # Processed Stripe events
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider_event_id", sa.String(255), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("source", sa.String(50), nullable=False, server_default="stripe"),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("raw_payload", postgresql.JSONB, nullable=False),
        sa.Column("user_id", sa.String(64)),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("error_message", sa.Text),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("correlation_id", sa.String(64)),
        sa.UniqueConstraint("source", "provider_event_id", name="uq_webhook_events_source_event"),
    )
    op.create_index("ix_webhook_events_payload_hash", "webhook_events", ["payload_hash"])
    op.create_index("ix_webhook_events_user_id", "webhook_events", ["user_id"])
    op.create_index("ix_webhook_events_correlation_id", "webhook_events", ["correlation_id"])


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("search_history")
    op.drop_table("leads")
    op.drop_table("lead_packages")
    op.drop_table("subscriptions")
