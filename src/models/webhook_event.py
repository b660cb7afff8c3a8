"""
Processed payment-provider events.
A row is written in the same transaction as the entitlement change it caused,
so an existing provider_event_id means the event was already applied.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from src.database import Base


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_event_id = Column(String(255), nullable=False)
    received_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    source = Column(String(50), nullable=False, default="stripe")
    event_type = Column(String(100), nullable=False)
    payload_hash = Column(String(64), nullable=False, index=True)
    raw_payload = Column(JSONB, nullable=False)
    user_id = Column(String(64), nullable=True, index=True)
    processing_status = Column(
        String(20), nullable=False, default="received", server_default="received"
    )
    error_message = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)

    __table_args__ = (
        UniqueConstraint("source", "provider_event_id", name="uq_webhook_events_source_event"),
    )
