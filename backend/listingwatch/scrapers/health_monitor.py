"""Daily reachability and structure checks for every enabled site.

Each check fetches the site's homepage, times the response and looks for
the markup its adapter family depends on. Results land in
``site_health_checks`` and records past the retention window are pruned.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple

import structlog
from bs4 import BeautifulSoup
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listingwatch.config import settings
from listingwatch.core.exceptions import FetchError
from listingwatch.models.site import MonitoredSite
from listingwatch.scrapers.http_client import FetchClient
from listingwatch.scrapers.registry import get_adapter_registry
from listingwatch.scrapers.utils.html import detect_site_type_from_html
from listingwatch.services.health_check_service import HealthCheckService
from listingwatch.services.site_config_service import SiteConfigService

logger = structlog.get_logger(__name__)

MIN_PAGE_LENGTH = 100
MIN_LINKS = 5
MIN_TEXT_LENGTH = 200

NAV_SELECTOR = "nav, header, [class*=menu], [class*=nav]"
PRODUCT_SELECTOR = "[data-product-id], [class*=product], [class*=item-card], [class*=collection]"
FORUM_SELECTOR = "[data-xf-init], [class*=threadbit], [class*=structItem], [class*=phpbb]"
AUCTION_SELECTOR = "[class*=lot], [class*=auction], [class*=catalog], [class*=bid]"
ERROR_PAGE_PHRASES = ("access denied", "403 forbidden", "site under maintenance", "coming soon")


@dataclass
class SiteHealth:
    site_id: Any
    domain: str
    is_reachable: bool
    can_scrape: bool
    response_time_ms: Optional[int] = None
    detected_site_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def failed(self) -> bool:
        return not (self.is_reachable and self.can_scrape)


@dataclass
class HealthRunSummary:
    total: int = 0
    reachable: int = 0
    can_scrape: int = 0
    failed: List[SiteHealth] = field(default_factory=list)
    pruned: int = 0


def assess_structure(html: str, expected_type: str) -> Tuple[bool, Optional[str], Optional[str]]:
    """Judge whether a homepage still looks scrapable for its site type.

    Returns:
        (can_scrape, error_message, detected_site_type)
    """
    if len(html.strip()) < MIN_PAGE_LENGTH:
        return False, "Page returned empty or very short content", None

    soup = BeautifulSoup(html, "html.parser")
    detected = detect_site_type_from_html(soup)
    body = soup.body or soup
    text = body.get_text(" ", strip=True)

    has_nav = soup.select_one(NAV_SELECTOR) is not None
    can_scrape = len(soup.select("a[href]")) > MIN_LINKS and len(text) > MIN_TEXT_LENGTH
    error = None if can_scrape else "Too little content on the homepage"

    if expected_type == "retailer":
        has_products = (
            detected == "retailer"
            or soup.select_one(PRODUCT_SELECTOR) is not None
            or "Shopify" in html
            or "WooCommerce" in html
        )
        if not has_products and not has_nav:
            can_scrape = False
            error = "No product elements or navigation found; site structure may have changed"
    elif expected_type == "forum":
        has_forum = detected == "forum" or soup.select_one(FORUM_SELECTOR) is not None
        if not has_forum:
            # Members-only boards show a login form to anonymous visitors
            if soup.select_one("input[type=password]") is not None:
                can_scrape, error = True, None
            else:
                can_scrape = False
                error = "No forum structure detected"
    elif expected_type == "auction":
        # Auction homepages often show categories rather than lots
        if not can_scrape and has_nav and soup.select_one(AUCTION_SELECTOR) is None:
            can_scrape, error = True, None

    lowered = text.lower()
    if any(phrase in lowered for phrase in ERROR_PAGE_PHRASES):
        can_scrape = False
        error = "Site returned access denied or maintenance page"

    return can_scrape, error, detected


class HealthMonitor:
    """Runs health checks in small staggered batches and stores the results."""

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        fetch_client: Optional[FetchClient] = None,
        batch_size: Optional[int] = None,
        batch_pause: float = 1.0,
        stagger: Tuple[float, float] = (0.2, 0.6),
        retention_days: Optional[int] = None,
    ):
        """Initialize health monitor.

        Args:
            db_session_factory: Async session factory for database access
            fetch_client: Client used for homepage fetches (defaults to the registry's)
            batch_size: Sites checked concurrently
            batch_pause: Pause between batches, in seconds
            stagger: Random delay range before each check within a batch
            retention_days: Age after which stored checks are pruned
        """
        self.db_session_factory = db_session_factory
        self.fetch_client = fetch_client or get_adapter_registry().fetch_client
        self.batch_size = batch_size or settings.HEALTH_CHECK_BATCH_SIZE
        self.batch_pause = batch_pause
        self.stagger = stagger
        self.retention_days = retention_days or settings.HEALTH_CHECK_RETENTION_DAYS
        self.logger = logger.bind(service="health_monitor")

    async def check_site(self, site: MonitoredSite) -> SiteHealth:
        """Fetch a site's homepage and assess it. Never raises for fetch failures."""
        start = time.monotonic()
        try:
            html = await self.fetch_client.fetch(site.origin_url)
        except FetchError as e:
            elapsed = int((time.monotonic() - start) * 1000)
            return SiteHealth(
                site_id=site.id,
                domain=site.domain,
                is_reachable=False,
                can_scrape=False,
                response_time_ms=elapsed or None,
                error_message=str(e),
            )

        elapsed = int((time.monotonic() - start) * 1000)
        can_scrape, error, detected = assess_structure(html, site.site_type)
        return SiteHealth(
            site_id=site.id,
            domain=site.domain,
            is_reachable=True,
            can_scrape=can_scrape,
            response_time_ms=elapsed,
            detected_site_type=detected,
            error_message=error,
        )

    async def _staggered_check(self, site: MonitoredSite) -> SiteHealth:
        low, high = self.stagger
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))
        return await self.check_site(site)

    async def run_health_checks(self) -> HealthRunSummary:
        """Check every enabled site, store the results and prune old records.

        Returns:
            HealthRunSummary with reachable/scrapable counts and failures
        """
        async with self.db_session_factory() as db:
            sites = await SiteConfigService(db).list_enabled_sites()

        self.logger.info("health_checks_started", sites=len(sites))

        results: List[SiteHealth] = []
        for offset in range(0, len(sites), self.batch_size):
            batch = sites[offset:offset + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._staggered_check(site) for site in batch),
                return_exceptions=True,
            )
            for site, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    self.logger.error(
                        "health_check_crashed", domain=site.domain, error=str(outcome), exc_info=outcome
                    )
                    outcome = SiteHealth(
                        site_id=site.id,
                        domain=site.domain,
                        is_reachable=False,
                        can_scrape=False,
                        error_message=str(outcome),
                    )
                results.append(outcome)

            self.logger.debug("health_checks_progress", done=len(results), total=len(sites))
            if offset + self.batch_size < len(sites) and self.batch_pause:
                await asyncio.sleep(self.batch_pause)

        checked_at = datetime.now(timezone.utc)
        async with self.db_session_factory() as db:
            checks = HealthCheckService(db)
            for result in results:
                await checks.record_check(
                    result.site_id,
                    is_reachable=result.is_reachable,
                    can_scrape=result.can_scrape,
                    response_time_ms=result.response_time_ms,
                    detected_site_type=result.detected_site_type,
                    error_message=result.error_message,
                    checked_at=checked_at,
                )
            await db.commit()

        summary = HealthRunSummary(
            total=len(results),
            reachable=sum(1 for result in results if result.is_reachable),
            can_scrape=sum(1 for result in results if result.can_scrape),
            failed=[result for result in results if result.failed],
        )
        summary.pruned = await self.prune_old_checks()

        for result in summary.failed:
            self.logger.warning(
                "site_health_failed",
                domain=result.domain,
                reachable=result.is_reachable,
                can_scrape=result.can_scrape,
                error=result.error_message,
            )
        self.logger.info(
            "health_checks_completed",
            total=summary.total,
            reachable=summary.reachable,
            can_scrape=summary.can_scrape,
            failed=len(summary.failed),
            pruned=summary.pruned,
        )
        return summary

    async def prune_old_checks(self) -> int:
        """Delete checks older than the retention window."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        async with self.db_session_factory() as db:
            pruned = await HealthCheckService(db).prune_before(cutoff)
            await db.commit()
        return pruned
