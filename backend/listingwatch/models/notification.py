"""Notification records and their links to matches."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from listingwatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Notification(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One outbound message on one channel for a batch of new matches."""

    __tablename__ = "notifications"

    target_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("monitored_targets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="Channel: 'email' or 'sms'"
    )
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="Status: 'pending', 'sent', 'failed'"
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[list["NotificationMatch"]] = relationship(
        back_populates="notification", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, channel='{self.channel}', status='{self.status}')>"


class NotificationMatch(Base):
    """Link table: which matches a notification announced."""

    __tablename__ = "notification_matches"

    notification_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("notifications.id", ondelete="CASCADE"),
        primary_key=True,
    )
    match_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("matches.id", ondelete="CASCADE"),
        primary_key=True,
    )

    notification: Mapped["Notification"] = relationship(back_populates="items")
