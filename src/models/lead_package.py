"""
Lead package - a named, saved collection of leads counted against the
user's storage ceiling. lead_count always equals the leads inserted with it.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from src.database import Base


class LeadPackage(Base):
    __tablename__ = "lead_packages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    search_query: Mapped[Optional[str]] = mapped_column(Text)
    lead_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    leads: Mapped[list["Lead"]] = relationship(
        back_populates="package", lazy="select", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_lead_packages_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LeadPackage {self.package_name} ({self.lead_count} leads)>"
