"""Base scraper adapter interface.

All site-family adapters inherit from BaseAdapter and implement
get_search_url() and extract_matches(). Adapters that can query a JSON API
or follow pagination declare it with supports_api / supports_pagination.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Set

import structlog
from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.utils.normalizer import resolve_url


SITE_TYPES = ("retailer", "forum", "classifieds", "auction", "generic")


@dataclass
class ScrapedItem:
    """One listing found on a page. Identity is the URL."""

    title: str
    url: str
    price: Optional[Decimal] = None
    in_stock: Optional[bool] = None
    thumbnail: Optional[str] = None
    post_date: Optional[str] = None
    seller: Optional[str] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.title:
            raise ValueError("title is required")
        if not self.url:
            raise ValueError("url is required")
        if self.price is not None and self.price <= 0:
            self.price = None


@dataclass
class ScrapeOptions:
    """Per-scrape knobs supplied by the caller."""

    in_stock_only: bool = False
    max_price: Optional[Decimal] = None
    cookies: Optional[str] = None  # Authenticated session Cookie header
    fast: bool = False  # Scheduled runs: no pre-delay, no pagination, smaller API pages
    max_pages: int = 3

    @property
    def api_limit(self) -> int:
        return 10 if self.fast else 25


@dataclass
class ScrapeResult:
    """Outcome of one scrape of one target."""

    items: List[ScrapedItem]
    content_hash: str
    scraped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    login_required: bool = False
    adapter_used: str = ""
    errors: List[str] = field(default_factory=list)


class BaseAdapter(ABC):
    """Abstract base class for all site-family adapters.

    Instances are shared across concurrent scrapes and must stay stateless;
    per-call state lives in local variables. The registry injects the
    fetch client used for API calls.
    """

    name: str = ""  # Human-readable name (e.g., "Shopify")
    adapter_type: str = ""  # Registry key (e.g., "shopify")
    site_type: str = "generic"
    supports_api: bool = False
    supports_pagination: bool = False

    # Listing containers, tried in order
    CONTAINER_SELECTORS: Sequence[str] = ()
    TITLE_CASCADE: Sequence[str] = extraction.TITLE_CASCADE

    def __init__(self):
        """Initialize the adapter with dependency injection points."""
        self.fetch_client = None  # Injected by the registry
        self.logger = structlog.get_logger(adapter=self.adapter_type)

    @abstractmethod
    def get_search_url(self, origin: str, keyword: str) -> str:
        """Build the site search URL for a keyword.

        Args:
            origin: scheme://host of the site
            keyword: Search keyword

        Returns:
            Absolute search URL
        """

    @abstractmethod
    def extract_matches(
        self,
        soup: BeautifulSoup,
        keyword: str,
        base_url: str,
        options: ScrapeOptions,
    ) -> List[ScrapedItem]:
        """Extract matching listings from a parsed page.

        Args:
            soup: Parsed page
            keyword: Keyword every match must contain
            base_url: URL the page was fetched from (for resolving links)
            options: Filters to apply (in_stock_only, max_price)

        Returns:
            Matches in page order, deduplicated by title within the page
        """

    async def search_via_api(
        self, origin: str, keyword: str, options: ScrapeOptions
    ) -> List[ScrapedItem]:
        """Search through a structured API. Only called when supports_api is set.

        Returns:
            Matches, or an empty list when the API is unavailable
        """
        return []

    def get_next_page_url(self, soup: BeautifulSoup, current_url: str) -> Optional[str]:
        """Next results page URL. Only called when supports_pagination is set."""
        return None

    # Shared container pipeline

    def _extract_from_containers(
        self,
        soup: BeautifulSoup,
        keyword: str,
        base_url: str,
        options: ScrapeOptions,
        selectors: Optional[Sequence[str]] = None,
        seen: Optional[Set[str]] = None,
    ) -> List[ScrapedItem]:
        """Run parse_container() over every container that mentions the keyword.

        Containers are taken selector by selector; a title already seen in
        this pass is skipped, and the target's filters are applied last.
        """
        seen = set() if seen is None else seen
        items: List[ScrapedItem] = []
        for selector in selectors or self.CONTAINER_SELECTORS:
            for element in soup.select(selector):
                text = extraction.element_text(element)
                if not extraction.contains_keyword(text, keyword):
                    continue
                item = self.parse_container(element, text, keyword, base_url)
                if item is None or not extraction.is_valid_title(item.title):
                    continue
                key = extraction.title_key(item.title)
                if key in seen:
                    continue
                if not extraction.passes_filters(
                    item.price, item.in_stock, options.in_stock_only, options.max_price
                ):
                    continue
                seen.add(key)
                items.append(item)
        return items

    def parse_container(
        self, element: Tag, text: str, keyword: str, base_url: str
    ) -> Optional[ScrapedItem]:
        """Build an item from a product-style container."""
        title = extraction.extract_title(element, text, self.TITLE_CASCADE)
        if not extraction.is_valid_title(title):
            return None
        return ScrapedItem(
            title=title,
            url=extraction.extract_link(element, base_url),
            price=extraction.extract_price_from_element(element),
            in_stock=extraction.is_in_stock(element),
            thumbnail=extraction.extract_thumbnail(element, base_url),
        )

    def _next_link(self, soup: BeautifulSoup, current_url: str, selector: str) -> Optional[str]:
        link = soup.select_one(selector)
        href = link.get("href") if link is not None else None
        return resolve_url(href, current_url) if href else None
