"""Notification records for new-match batches."""

from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.models.notification import Notification, NotificationMatch

logger = structlog.get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class NotificationService:
    """Creates notifications, links them to matches and records outcomes."""

    def __init__(self, db: AsyncSession):
        """Initialize notification service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="notification_service")

    async def create_notification(self, target_id: UUID, channel: str, recipient: str) -> Notification:
        """Create a pending notification.

        Args:
            target_id: Target the new matches belong to
            channel: "email" or "sms"
            recipient: Address or phone number

        Returns:
            Flushed Notification
        """
        notification = Notification(
            target_id=target_id,
            channel=channel,
            recipient=recipient,
            status=STATUS_PENDING,
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def link_notification_items(self, notification_id: UUID, match_ids: Iterable[UUID]) -> int:
        """Attach matches to a notification.

        Returns:
            Number of links created
        """
        count = 0
        for match_id in match_ids:
            self.db.add(NotificationMatch(notification_id=notification_id, match_id=match_id))
            count += 1
        await self.db.flush()
        return count

    async def mark_status(
        self,
        notification_id: UUID,
        status: str,
        error_message: Optional[str] = None,
    ) -> Optional[Notification]:
        """Record a delivery outcome."""
        result = await self.db.execute(select(Notification).where(Notification.id == notification_id))
        notification = result.scalar_one_or_none()
        if notification is None:
            self.logger.warning("notification_not_found", notification_id=str(notification_id))
            return None

        notification.status = status
        notification.error_message = error_message
        if status == STATUS_SENT:
            notification.sent_at = datetime.now(timezone.utc)
        await self.db.flush()
        return notification
