"""Fan-out scans across every enabled site or every active target."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listingwatch.config import settings
from listingwatch.scrapers.base import ScrapedItem, ScrapeOptions
from listingwatch.scrapers.scraper_service import ScrapeOrchestrator
from listingwatch.scrapers.worker import ScrapeWorker
from listingwatch.services.site_config_service import SiteConfigService
from listingwatch.services.target_service import TargetService

logger = structlog.get_logger(__name__)

UNREACHABLE_MESSAGE = "scrape failed - site unreachable"


@dataclass
class SiteScanResult:
    domain: str
    url: str
    items: List[ScrapedItem] = field(default_factory=list)
    error: Optional[str] = None
    login_required: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TargetScanResult:
    target_id: str
    outcome: Optional[str] = None
    items_new: int = 0
    error: Optional[str] = None


class BatchScanner:
    """Runs many scrapes concurrently, each under its own timeout.

    Every scan settles independently: a timeout or failure on one site is
    reported in its result and never cancels the others.
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        orchestrator: Optional[ScrapeOrchestrator] = None,
        worker: Optional[ScrapeWorker] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize batch scanner.

        Args:
            db_session_factory: Async session factory for database access
            orchestrator: Scrape orchestrator for site scans
            worker: Tick runner for target scans
            timeout_seconds: Per-scan timeout (defaults to BATCH_SCAN_TIMEOUT_SECONDS)
        """
        self.db_session_factory = db_session_factory
        self.orchestrator = orchestrator or ScrapeOrchestrator()
        self.worker = worker
        self.timeout_seconds = timeout_seconds or settings.BATCH_SCAN_TIMEOUT_SECONDS
        self.logger = logger.bind(service="batch_scanner")

    async def _settle(self, coroutines: List[Awaitable[Any]]) -> List[Any]:
        return await asyncio.gather(
            *(asyncio.wait_for(coro, timeout=self.timeout_seconds) for coro in coroutines),
            return_exceptions=True,
        )

    async def scan_all_sites(self, keyword: str, options: Optional[ScrapeOptions] = None) -> List[SiteScanResult]:
        """Scrape every enabled site for a keyword.

        Args:
            keyword: Keyword to search for
            options: Filters applied to every site (fast mode by default)

        Returns:
            One result per enabled site, in domain order
        """
        options = options or ScrapeOptions(fast=True)
        async with self.db_session_factory() as db:
            sites = await SiteConfigService(db).list_enabled_sites()

        self.logger.info("site_scan_started", keyword=keyword, sites=len(sites))
        outcomes = await self._settle(
            [self.orchestrator.scrape(site.origin_url, keyword, options) for site in sites]
        )

        results = []
        for site, outcome in zip(sites, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.warning(
                    "site_scan_failed",
                    domain=site.domain,
                    error=str(outcome) or outcome.__class__.__name__,
                )
                results.append(SiteScanResult(domain=site.domain, url=site.origin_url, error=UNREACHABLE_MESSAGE))
            else:
                results.append(
                    SiteScanResult(
                        domain=site.domain,
                        url=site.origin_url,
                        items=outcome.items,
                        login_required=outcome.login_required,
                    )
                )

        self.logger.info(
            "site_scan_completed",
            keyword=keyword,
            sites=len(results),
            failed=sum(1 for result in results if not result.ok),
            items=sum(len(result.items) for result in results),
        )
        return results

    async def scan_all_targets(self) -> List[TargetScanResult]:
        """Run one worker tick for every active target."""
        if self.worker is None:
            self.worker = ScrapeWorker(self.db_session_factory, orchestrator=self.orchestrator)

        async with self.db_session_factory() as db:
            target_ids = [target.id for target in await TargetService(db).list_active_targets()]

        self.logger.info("target_scan_started", targets=len(target_ids))
        outcomes = await self._settle([self.worker.process_target(target_id) for target_id in target_ids])

        results = []
        for target_id, outcome in zip(target_ids, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.warning("target_scan_failed", target_id=str(target_id), error=str(outcome))
                results.append(TargetScanResult(target_id=str(target_id), error=UNREACHABLE_MESSAGE))
            else:
                results.append(
                    TargetScanResult(
                        target_id=str(target_id),
                        outcome=outcome.outcome.value,
                        items_new=outcome.items_new,
                    )
                )
        return results
