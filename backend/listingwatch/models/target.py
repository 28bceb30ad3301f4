"""Monitored keyword targets driven by the scheduler."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Integer, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from listingwatch.models.match import Match
    from listingwatch.models.credential import SiteCredential


class MonitoredTarget(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A keyword watched on one website at a fixed interval.

    Status transitions: active <-> paused (by the owner), active -> expired
    (by the worker once expires_at has passed).
    """

    __tablename__ = "monitored_targets"

    keyword: Mapped[str] = mapped_column(String(200), nullable=False)
    website_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    interval_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=60,
        comment="Check interval; 0 runs the target every few seconds for testing"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        index=True,
        comment="Status: 'active', 'paused', 'expired'"
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Filters
    in_stock_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Notification preferences
    notification_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="email",
        comment="One of: 'email', 'sms', 'both'"
    )
    notify_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notify_phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    credential_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("site_credentials.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Scrape bookkeeping
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Relationships
    matches: Mapped[list["Match"]] = relationship(back_populates="target", cascade="all, delete-orphan")
    credential: Mapped[Optional["SiteCredential"]] = relationship()

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<MonitoredTarget(id={self.id}, keyword='{self.keyword}', status='{self.status}')>"
