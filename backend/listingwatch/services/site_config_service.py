"""Monitored site configuration queries."""

from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.models.site import MonitoredSite
from listingwatch.scrapers.registry import SiteConfig
from listingwatch.scrapers.utils.normalizer import normalize_domain

logger = structlog.get_logger(__name__)


class SiteConfigService:
    """Reads MonitoredSite rows for the registry and batch scans."""

    def __init__(self, db: AsyncSession):
        """Initialize site config service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="site_config_service")

    async def list_enabled_sites(self) -> List[MonitoredSite]:
        result = await self.db.execute(
            select(MonitoredSite)
            .where(MonitoredSite.enabled == True)
            .order_by(MonitoredSite.domain)
        )
        return list(result.scalars().all())

    async def list_enabled_site_configs(self) -> List[SiteConfig]:
        """Enabled sites as registry SiteConfig values."""
        sites = await self.list_enabled_sites()
        return [
            SiteConfig(
                domain=normalize_domain(site.domain),
                adapter_type=site.adapter_type,
                site_type=site.site_type,
                search_url_pattern=site.search_url_pattern,
                requires_auth=site.requires_auth,
                requires_challenge=site.requires_challenge,
            )
            for site in sites
        ]

    async def get_site_by_domain(self, domain: str) -> Optional[MonitoredSite]:
        result = await self.db.execute(
            select(MonitoredSite).where(MonitoredSite.domain == normalize_domain(domain))
        )
        return result.scalar_one_or_none()
