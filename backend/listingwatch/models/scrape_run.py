"""Scrape run tracking and monitoring."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, Integer, Numeric, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from listingwatch.models.base import Base, UUIDPrimaryKeyMixin


class ScrapeRun(UUIDPrimaryKeyMixin, Base):
    """Tracks execution of scheduled target ticks.

    Each scheduler tick creates a ScrapeRun record to track status,
    timing, delta counts and errors.
    """

    __tablename__ = "scrape_runs"

    target_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("monitored_targets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="Status: 'pending', 'running', 'completed', 'failed'"
    )
    outcome: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Worker outcome, e.g. 'new_matches', 'no_change', 'expired'"
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timing
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)

    # Metrics
    items_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_new: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Error tracking
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_traceback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ScrapeRun(id={self.id}, target_id={self.target_id}, status='{self.status}')>"
