"""Persisted listing matches, one row per (target, url)."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Numeric, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from listingwatch.models.target import MonitoredTarget


class Match(UUIDPrimaryKeyMixin, Base):
    """A listing found for a target.

    Identity is the URL; title, price, thumbnail and seller are refreshed on
    every scrape that still sees the listing.
    """

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("target_id", "url", name="uq_matches_target_url"),
    )

    target_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("monitored_targets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    thumbnail: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    seller: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    post_date: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    first_found_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    target: Mapped["MonitoredTarget"] = relationship(back_populates="matches")

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, target_id={self.target_id}, url='{self.url}')>"
