"""Scrape orchestration service.

Connects the adapter registry, the fetch client and the site navigator.
It handles the end-to-end flow for one keyword on one site: API search,
HTML search, login-wall detection, pagination, listing-page fallback,
deduplication and the content hash.
"""

import asyncio
import hashlib
from typing import Iterable, List, Optional, Tuple
from urllib.parse import quote, urlparse

import structlog
from bs4 import BeautifulSoup

from listingwatch.config import settings
from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions, ScrapeResult
from listingwatch.scrapers.navigator import SiteMapResult, SiteNavigator
from listingwatch.scrapers.registry import AdapterLookup, AdapterRegistry, get_adapter_registry
from listingwatch.scrapers.utils.html import is_login_page
from listingwatch.scrapers.utils.normalizer import dedupe_key, is_bare_domain, origin_of

logger = structlog.get_logger(__name__)

CONTENT_HASH_LENGTH = 16


def compute_content_hash(urls: Iterable[str], target_url: str) -> str:
    """Order-independent fingerprint of a scrape's item URLs.

    Args:
        urls: Item URLs
        target_url: Scraped URL, hashed instead when there are no items

    Returns:
        First 16 lowercase hex characters of the SHA-256 digest
    """
    payload = "|".join(sorted(urls)) or f"empty:{target_url}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:CONTENT_HASH_LENGTH]


def dedupe_items(items: List[ScrapedItem]) -> List[ScrapedItem]:
    """Keep the first item per normalized URL."""
    seen = set()
    unique = []
    for item in items:
        key = dedupe_key(item.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


class ScrapeOrchestrator:
    """Service for running one keyword scrape against one site.

    Stage failures are collected in ScrapeResult.errors so a partial result
    still reaches the caller. Only a transport failure that left no page
    fetched at all is raised, so the scheduler's retry policy applies.
    """

    def __init__(
        self,
        registry: Optional[AdapterRegistry] = None,
        navigator: Optional[SiteNavigator] = None,
        pre_delay: Optional[float] = None,
        page_delay: Optional[float] = None,
    ):
        """Initialize orchestrator.

        Args:
            registry: Adapter registry (defaults to the global one)
            navigator: Site navigator for bare-domain targets
            pre_delay: Pause before the first request of a non-fast scrape
            page_delay: Pause between follow-up page fetches
        """
        self.registry = registry or get_adapter_registry()
        self.fetch_client = self.registry.fetch_client
        self.navigator = navigator or SiteNavigator(fetch_client=self.fetch_client)
        self.pre_delay = settings.SCRAPE_PRE_DELAY_SECONDS if pre_delay is None else pre_delay
        self.page_delay = settings.PAGINATION_DELAY_SECONDS if page_delay is None else page_delay
        self.logger = logger.bind(service="scrape_orchestrator")

    async def scrape(
        self,
        target_url: str,
        keyword: str,
        options: Optional[ScrapeOptions] = None,
    ) -> ScrapeResult:
        """Scrape a site for listings matching a keyword.

        Args:
            target_url: Site URL; a bare domain triggers a site search
            keyword: Keyword every match must contain
            options: Filters, session cookies and fast mode

        Returns:
            ScrapeResult with deduplicated items and their content hash

        Raises:
            FetchError: When no page could be fetched at all
        """
        options = options or ScrapeOptions()
        lookup = await self.registry.resolve(target_url)
        adapter = lookup.adapter
        origin = origin_of(target_url)
        hostname = urlparse(target_url).hostname or ""
        errors: List[str] = []
        login_required = False

        self.logger.info(
            "scrape_started",
            url=target_url,
            keyword=keyword,
            adapter=lookup.adapter_type,
            fast=options.fast,
        )

        if not options.fast and self.pre_delay:
            await asyncio.sleep(self.pre_delay)

        items: List[ScrapedItem] = []
        api_items: List[ScrapedItem] = []
        if adapter.supports_api:
            try:
                api_items = await adapter.search_via_api(origin, keyword, options)
            except Exception as e:
                errors.append(f"API search failed: {e}")
                self.logger.warning("api_search_failed", adapter=adapter.name, error=str(e))
            # Unpriced API results are thin; the HTML page usually has more
            if api_items and any(item.price is not None for item in api_items):
                items = api_items
            elif api_items:
                self.logger.info("api_results_unpriced", adapter=adapter.name, count=len(api_items))

        site_map: Optional[SiteMapResult] = None
        fetch_failure: Optional[FetchError] = None
        fetched_any = False

        if not items:
            bare = is_bare_domain(target_url)
            if bare and lookup.matched_domain is None and not lookup.search_url_pattern:
                site_map = await self._site_map(target_url, options, errors)

            scrape_url = self._scrape_url(target_url, keyword, lookup, site_map)
            html, fetch_failure = await self._fetch(scrape_url, options, errors, "HTML scrape")
            if html is not None:
                fetched_any = True
                soup = BeautifulSoup(html, "html.parser")
                if adapter.site_type == "forum" and is_login_page(soup):
                    login_required = True
                    self.logger.info("login_wall_detected", url=scrape_url)
                else:
                    items = self._extract(adapter, soup, keyword, scrape_url, options, hostname, errors)
                    if items and adapter.supports_pagination and not options.fast:
                        items.extend(
                            await self._paginate(adapter, soup, keyword, scrape_url, options, hostname, errors)
                        )

            if not items and bare and not login_required:
                if site_map is None:
                    site_map = await self._site_map(target_url, options, errors)
                if site_map is not None and site_map.listing_urls:
                    listing_items, listed = await self._scan_listing_pages(
                        adapter, site_map.listing_urls, keyword, options, hostname, errors
                    )
                    items = listing_items
                    fetched_any = fetched_any or listed

            if not items and api_items:
                items = api_items

        if not items and not fetched_any and not api_items and fetch_failure is not None:
            self.logger.warning("scrape_unreachable", url=target_url, error=str(fetch_failure))
            raise fetch_failure

        items = dedupe_items(items)
        content_hash = compute_content_hash((item.url for item in items), target_url)

        self.logger.info(
            "scrape_completed",
            url=target_url,
            keyword=keyword,
            adapter=lookup.adapter_type,
            items=len(items),
            login_required=login_required,
            errors=len(errors),
        )

        return ScrapeResult(
            items=items,
            content_hash=content_hash,
            login_required=login_required,
            adapter_used=lookup.adapter_type,
            errors=errors,
        )

    @staticmethod
    def _scrape_url(
        target_url: str,
        keyword: str,
        lookup: AdapterLookup,
        site_map: Optional[SiteMapResult],
    ) -> str:
        """Page to fetch: the URL itself, or a search page for bare domains."""
        if not is_bare_domain(target_url):
            return target_url

        origin = origin_of(target_url)
        encoded = quote(keyword)
        if lookup.search_url_pattern:
            return f"{origin}{lookup.search_url_pattern.replace('{keyword}', encoded)}"
        if site_map is not None and site_map.search_url_template:
            return site_map.search_url_template.replace("{keyword}", encoded)
        return lookup.adapter.get_search_url(origin, keyword)

    async def _fetch(
        self,
        url: str,
        options: ScrapeOptions,
        errors: List[str],
        stage: str,
    ) -> Tuple[Optional[str], Optional[FetchError]]:
        try:
            return await self.fetch_client.fetch(url, options.cookies), None
        except FetchError as e:
            errors.append(f"{stage} failed: {e}")
            self.logger.warning("page_fetch_failed", url=url, stage=stage, error=str(e))
            return None, e

    def _extract(
        self,
        adapter: BaseAdapter,
        soup: BeautifulSoup,
        keyword: str,
        page_url: str,
        options: ScrapeOptions,
        hostname: str,
        errors: List[str],
    ) -> List[ScrapedItem]:
        try:
            items = adapter.extract_matches(soup, keyword, page_url, options)
        except Exception as e:
            errors.append(f"Extraction failed on {page_url}: {e}")
            self.logger.error("extraction_failed", url=page_url, adapter=adapter.name, error=str(e), exc_info=True)
            return []

        for item in items:
            if not item.seller:
                item.seller = hostname
        return items

    async def _paginate(
        self,
        adapter: BaseAdapter,
        soup: BeautifulSoup,
        keyword: str,
        page_url: str,
        options: ScrapeOptions,
        hostname: str,
        errors: List[str],
    ) -> List[ScrapedItem]:
        """Follow "next page" links until max_pages, an empty page or a failure."""
        items: List[ScrapedItem] = []
        current_url = page_url
        for page in range(2, options.max_pages + 1):
            next_url = adapter.get_next_page_url(soup, current_url)
            if not next_url or next_url == current_url:
                break

            await asyncio.sleep(self.page_delay)
            html, _ = await self._fetch(next_url, options, errors, f"Page {page}")
            if html is None:
                break

            soup = BeautifulSoup(html, "html.parser")
            page_items = self._extract(adapter, soup, keyword, next_url, options, hostname, errors)
            if not page_items:
                break

            self.logger.debug("page_scraped", url=next_url, page=page, items=len(page_items))
            items.extend(page_items)
            current_url = next_url
        return items

    async def _site_map(
        self,
        target_url: str,
        options: ScrapeOptions,
        errors: List[str],
    ) -> Optional[SiteMapResult]:
        try:
            site_map = await self.navigator.get_listing_urls(target_url, options.cookies)
        except Exception as e:
            errors.append(f"Site discovery failed: {e}")
            self.logger.warning("site_discovery_unavailable", url=target_url, error=str(e))
            return None

        self.logger.debug(
            "site_map_loaded",
            url=target_url,
            listing_urls=len(site_map.listing_urls),
            site_type=site_map.site_type,
            from_cache=site_map.from_cache,
        )
        return site_map

    async def _scan_listing_pages(
        self,
        adapter: BaseAdapter,
        listing_urls: List[str],
        keyword: str,
        options: ScrapeOptions,
        hostname: str,
        errors: List[str],
    ) -> Tuple[List[ScrapedItem], bool]:
        """Extract from each discovered listing page; returns (items, any page fetched)."""
        items: List[ScrapedItem] = []
        fetched = False
        for listing_url in listing_urls:
            await asyncio.sleep(self.page_delay)
            html, _ = await self._fetch(listing_url, options, errors, "Listing page")
            if html is None:
                continue
            fetched = True
            page_items = self._extract(
                adapter, BeautifulSoup(html, "html.parser"), keyword, listing_url, options, hostname, errors
            )
            if page_items:
                self.logger.info("listing_page_matches", url=listing_url, items=len(page_items))
                items.extend(page_items)
        return items, fetched
