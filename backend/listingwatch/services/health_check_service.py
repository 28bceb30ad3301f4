"""Site health check records."""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.models.health_check import SiteHealthCheck
from listingwatch.models.site import MonitoredSite

logger = structlog.get_logger(__name__)


class HealthCheckService:
    """Stores health check results and reads back the latest per site."""

    def __init__(self, db: AsyncSession):
        """Initialize health check service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="health_check_service")

    async def record_check(
        self,
        site_id,
        is_reachable: bool,
        can_scrape: bool,
        response_time_ms: Optional[int],
        detected_site_type: Optional[str],
        error_message: Optional[str],
        checked_at: datetime,
    ) -> SiteHealthCheck:
        check = SiteHealthCheck(
            site_id=site_id,
            is_reachable=is_reachable,
            can_scrape=can_scrape,
            response_time_ms=response_time_ms,
            detected_site_type=detected_site_type,
            error_message=error_message,
            checked_at=checked_at,
        )
        self.db.add(check)
        await self.db.flush()
        return check

    async def prune_before(self, cutoff: datetime) -> int:
        """Delete checks older than cutoff.

        Returns:
            Number of rows deleted
        """
        result = await self.db.execute(
            delete(SiteHealthCheck).where(SiteHealthCheck.checked_at < cutoff)
        )
        await self.db.flush()
        return result.rowcount or 0

    async def latest_checks(self) -> List[Tuple[MonitoredSite, Optional[SiteHealthCheck]]]:
        """Every site (enabled or not) with its most recent check, by domain."""
        latest = (
            select(
                SiteHealthCheck.site_id,
                func.max(SiteHealthCheck.checked_at).label("checked_at"),
            )
            .group_by(SiteHealthCheck.site_id)
            .subquery()
        )
        result = await self.db.execute(
            select(MonitoredSite, SiteHealthCheck)
            .outerjoin(latest, latest.c.site_id == MonitoredSite.id)
            .outerjoin(
                SiteHealthCheck,
                and_(
                    SiteHealthCheck.site_id == latest.c.site_id,
                    SiteHealthCheck.checked_at == latest.c.checked_at,
                ),
            )
            .order_by(MonitoredSite.domain)
        )

        rows = []
        seen = set()
        for site, check in result.all():
            # Two checks stamped with the same instant would join twice
            if site.id in seen:
                continue
            seen.add(site.id)
            rows.append((site, check))
        return rows
