"""Monitored target lifecycle and bookkeeping."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from listingwatch.models.credential import SiteCredential
from listingwatch.models.target import MonitoredTarget

logger = structlog.get_logger(__name__)


class TargetService:
    """Service for reading and updating monitored targets."""

    def __init__(self, db: AsyncSession):
        """Initialize target service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="target_service")

    async def get_target(self, target_id: UUID) -> Optional[MonitoredTarget]:
        """Get a target with its credential loaded.

        Args:
            target_id: Target UUID

        Returns:
            MonitoredTarget or None if not found
        """
        result = await self.db.execute(
            select(MonitoredTarget)
            .options(selectinload(MonitoredTarget.credential))
            .where(MonitoredTarget.id == target_id)
        )
        return result.scalar_one_or_none()

    async def list_active_targets(self) -> List[MonitoredTarget]:
        result = await self.db.execute(
            select(MonitoredTarget)
            .where(MonitoredTarget.status == "active")
            .order_by(MonitoredTarget.created_at)
        )
        return list(result.scalars().all())

    async def update_target_checked(
        self,
        target_id: UUID,
        checked_at: datetime,
        content_hash: Optional[str] = None,
    ) -> None:
        """Record a completed check and, when given, the latest content hash.

        Args:
            target_id: Target UUID
            checked_at: When the scrape finished
            content_hash: Hash of the scrape's item URLs
        """
        values = {"last_checked_at": checked_at}
        if content_hash is not None:
            values["last_content_hash"] = content_hash
        await self.db.execute(
            update(MonitoredTarget).where(MonitoredTarget.id == target_id).values(**values)
        )
        await self.db.flush()

    async def mark_expired(self, target: MonitoredTarget) -> None:
        target.status = "expired"
        await self.db.flush()
        self.logger.info("target_expired", target_id=str(target.id), keyword=target.keyword)

    async def save_session(self, credential: SiteCredential, cookies: str) -> None:
        """Cache fresh login cookies on a credential."""
        credential.session_cookies = cookies
        credential.last_login_at = datetime.now(timezone.utc)
        await self.db.flush()

    async def clear_session(self, credential: SiteCredential) -> None:
        credential.session_cookies = None
        await self.db.flush()
