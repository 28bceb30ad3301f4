"""Site discovery: find the listing pages and search form of an unknown site.

Results are cached per domain in the ``site_maps`` table so a site is only
crawled once a week (once a day when nothing useful was found).
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listingwatch.config import settings
from listingwatch.core.exceptions import FetchError
from listingwatch.models.site_map import SiteMap
from listingwatch.scrapers.http_client import FetchClient
from listingwatch.scrapers.utils.html import detect_site_type_from_html
from listingwatch.scrapers.utils.normalizer import domain_of, normalize_domain, origin_of, resolve_url


logger = structlog.get_logger(__name__)

MAX_CANDIDATES = 8
MAX_LISTING_URLS = 5
MIN_LISTING_DENSITY = 2
DEEP_PATH_SEGMENTS = 4
TTL_WITH_LISTINGS = timedelta(days=7)
TTL_WITHOUT_LISTINGS = timedelta(days=1)


@dataclass(frozen=True)
class SiteOverride:
    listing_paths: Tuple[str, ...]
    site_type: str
    search_template: Optional[str] = None


# Sites whose navigation defeats discovery; paths are hand-maintained
SITE_OVERRIDES: Dict[str, SiteOverride] = {
    "canadiangunnutz.com": SiteOverride(
        listing_paths=(
            "/forum/index.php?forums/exchange-of-military-surplus-rifle.44/",
            "/forum/index.php?forums/exchange-of-handguns.7/",
            "/forum/index.php?forums/exchange-of-rifles.8/",
            "/forum/index.php?forums/exchange-of-shotguns.9/",
            "/forum/index.php?forums/exchange-of-firearm-parts.46/",
        ),
        search_template="/forum/search/?q={keyword}&t=post",
        site_type="forum",
    ),
    "gunownersofcanada.ca": SiteOverride(
        listing_paths=("/forums/equipment-exchange.35/",),
        search_template="/search/?q={keyword}&t=post",
        site_type="forum",
    ),
    "icollector.com": SiteOverride(
        listing_paths=("/Firearms-Gun-Auctions_aca880000",),
        site_type="auction",
    ),
}

URL_KEYWORDS: Dict[str, int] = {
    "exchange": 10, "for-sale": 10, "classifieds": 10, "marketplace": 10,
    "firearms": 9, "guns": 9, "rifles": 8, "handguns": 8, "shotguns": 8,
    "auction": 9, "lots": 8, "catalog": 8, "auctionlist": 9,
    "shop": 7, "store": 7, "products": 7, "collections": 7,
    "buy-sell": 9, "surplus": 7, "equipment": 5, "accessories": 4,
}

TEXT_KEYWORDS: Dict[str, int] = {
    "exchange": 10, "for sale": 10, "classifieds": 10, "marketplace": 10,
    "buy & sell": 9, "buy and sell": 9, "equipment exchange": 12,
    "firearms": 8, "guns": 8, "rifles": 7, "handguns": 7, "shotguns": 7,
    "auction": 9, "lots": 8, "catalog": 8, "current auctions": 10,
    "shop": 6, "store": 6, "products": 6, "all products": 7,
    "surplus": 6, "equipment": 5,
}

# (selector, region) pairs; region drives the position bonus
NAV_LINK_SELECTORS: Tuple[Tuple[str, str], ...] = (
    ("nav a[href]", "nav"),
    ("header a[href]", "header"),
    ("[role=navigation] a[href]", "nav"),
    ("[class*=menu] a[href]", "nav"),
    ("[class*=nav-] a[href]", "nav"),
    ("[class*=sidebar] a[href]", "sidebar"),
    ("[class*=categories] a[href]", "sidebar"),
    # XenForo
    (".node-title a[href]", "nav"),
    (".nodeTitle a[href]", "nav"),
    # vBulletin
    ("a[href*=forumdisplay]", "nav"),
    ("a[href*='forums/']", "nav"),
    ("[class*=category] a[href]", "sidebar"),
    ("[class*=department] a[href]", "sidebar"),
)

EXCLUDED_URL_PARTS = (
    "/login", "/register", "/signup", "/account", "/profile",
    "/contact", "/about", "/privacy", "/terms", "/faq", "/help",
    "/cart", "/checkout", "/wishlist", "/settings",
    "javascript:", "mailto:", "tel:",
    ".pdf", ".jpg", ".png", ".gif", ".zip", ".exe",
)

# Per site type: (URL fragments, bonus)
SITE_TYPE_AFFINITY: Dict[str, Tuple[Tuple[str, ...], int]] = {
    "forum": (("forum", "exchange"), 4),
    "auction": (("auction", "lot", "catalog"), 4),
    "retailer": (("product", "collection", "shop"), 4),
    "classifieds": (("classified", "ads", "listing"), 4),
}

DENSITY_SELECTOR_GROUPS: Tuple[Tuple[str, ...], ...] = (
    # Forum
    (".structItem", "[class*=structItem--thread]", "[class*=threadbit]", "li[id^=thread_]"),
    # Auction
    ("[class*=lot-item]", "[class*=lotItem]", "[class*=catalog-item]", "[class*=auction-item]", "[class*=catLot]"),
    # Retailer
    ("[data-product-id]", "[class*=product-card]", "[class*=product-item]", "[class*=product-tile]"),
    # Classifieds
    ("[class*=classified-ad]", "[class*=classified-item]", "[class*=listing-card]", "[class*=listing-item]", "[class*=gunpost-teaser]"),
)


@dataclass
class NavLink:
    url: str
    text: str
    region: str
    score: int = 0


@dataclass
class SiteMapResult:
    """Discovery outcome for one domain."""

    listing_urls: List[str] = field(default_factory=list)
    search_url_template: Optional[str] = None
    site_type: str = "generic"
    from_cache: bool = False


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_excluded_url(url: str) -> bool:
    lower = url.lower()
    return any(part in lower for part in EXCLUDED_URL_PARTS)


def www_origin(url: str) -> str:
    """Origin of a URL with a www. host; several forums only answer there."""
    parsed = urlparse(url)
    host = parsed.netloc
    if host and not host.lower().startswith("www."):
        host = f"www.{host}"
    return f"{parsed.scheme or 'https'}://{host}"


def extract_nav_links(soup: BeautifulSoup, base_url: str) -> List[NavLink]:
    """Same-origin navigation links in selector order, each URL once."""
    origin = origin_of(base_url)
    seen = set()
    links = []
    for selector, region in NAV_LINK_SELECTORS:
        for anchor in soup.select(selector):
            href = (anchor.get("href") or "").strip()
            if not href or href == "#":
                continue
            url = resolve_url(href, base_url)
            if not url.startswith(origin) or is_excluded_url(url):
                continue
            if url in (base_url, f"{base_url}/") or url in seen:
                continue
            seen.add(url)
            text = " ".join(anchor.get_text(" ").split())[:100]
            links.append(NavLink(url=url, text=text, region=region))
    return links


def score_link(link: NavLink, site_type: str) -> int:
    """Affinity of a link to listing content."""
    url = link.url.lower()
    text = link.text.lower()

    score = sum(points for keyword, points in URL_KEYWORDS.items() if keyword in url)
    score += sum(points for keyword, points in TEXT_KEYWORDS.items() if keyword in text)

    if link.region in ("nav", "header"):
        score += 3
    elif link.region == "sidebar":
        score += 1

    affinity = SITE_TYPE_AFFINITY.get(site_type)
    if affinity and any(fragment in url for fragment in affinity[0]):
        score += affinity[1]

    # Deep paths are usually single items, not listings
    depth = len([segment for segment in urlparse(link.url).path.split("/") if segment])
    if depth > DEEP_PATH_SEGMENTS:
        score -= 3

    return score


def rank_candidates(links: List[NavLink], site_type: str) -> List[NavLink]:
    """Positive-scoring links, best first, capped at MAX_CANDIDATES."""
    for link in links:
        link.score = score_link(link, site_type)
    ranked = sorted((link for link in links if link.score > 0), key=lambda l: (-l.score, l.url))
    return ranked[:MAX_CANDIDATES]


def measure_listing_density(soup: BeautifulSoup) -> int:
    """Largest count of listing-like elements across the selector groups."""
    best = 0
    for group in DENSITY_SELECTOR_GROUPS:
        for selector in group:
            best = max(best, len(soup.select(selector)))
    if best == 0:
        best = len(soup.find_all("article"))
    return best


def detect_search_template(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    """``{action}?{input}={keyword}`` from the first form with a text or search input."""
    for form in soup.select("form[action]"):
        search_input = form.select_one("input[type=search], input[type=text]")
        if search_input is None or not search_input.get("name"):
            continue
        action = (form.get("action") or "").strip()
        if not action or action == "#":
            continue
        resolved = resolve_url(action, base_url)
        separator = "&" if "?" in resolved else "?"
        return f"{resolved}{separator}{search_input['name']}={{keyword}}"
    return None


class SiteNavigator:
    """Discovers and caches where a site keeps its listings."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        fetch_client: Optional[FetchClient] = None,
        page_delay: Optional[float] = None,
    ):
        """Initialize navigator.

        Args:
            session_factory: Factory for database sessions (SiteMap cache)
            fetch_client: Client used for homepage and candidate fetches
            page_delay: Pause between candidate page fetches, in seconds
        """
        if session_factory is None:
            from listingwatch.db.session import async_session_factory

            session_factory = async_session_factory
        self.session_factory = session_factory
        self.fetch_client = fetch_client or FetchClient()
        self.page_delay = settings.DISCOVERY_PAGE_DELAY_SECONDS if page_delay is None else page_delay
        self.logger = logger.bind(service="site_navigator")

    async def get_listing_urls(self, url: str, cookies: Optional[str] = None) -> SiteMapResult:
        """Cached discovery result for a site, discovering it when needed.

        Args:
            url: Any URL (or bare domain URL) of the site
            cookies: Optional session cookies for member-only forums

        Returns:
            SiteMapResult; an empty generic result when the homepage is unreachable
        """
        domain = domain_of(url)

        async with self.session_factory() as db:
            cached = await self._fresh_entry(db, domain)
            if cached is not None:
                cached.hit_count = (cached.hit_count or 0) + 1
                await db.commit()
                return self._to_result(cached)

        result = await self.discover(url, cookies)

        ttl = TTL_WITH_LISTINGS if result.listing_urls else TTL_WITHOUT_LISTINGS
        async with self.session_factory() as db:
            # Another worker may have finished discovering this domain meanwhile
            cached = await self._fresh_entry(db, domain)
            if cached is not None:
                return self._to_result(cached)

            now = datetime.now(timezone.utc)
            entry = await db.scalar(select(SiteMap).where(SiteMap.domain == domain))
            if entry is None:
                entry = SiteMap(domain=domain)
                db.add(entry)
            entry.listing_urls = list(result.listing_urls)
            entry.search_url_template = result.search_url_template
            entry.site_type = result.site_type
            entry.discovered_at = now
            entry.expires_at = now + ttl
            entry.hit_count = 0
            try:
                await db.commit()
            except IntegrityError:
                # Lost the insert race; the other writer's row stands
                await db.rollback()
                self.logger.info("site_map_insert_raced", domain=domain)
                cached = await self._fresh_entry(db, domain)
                return self._to_result(cached) if cached is not None else result

        self.logger.info(
            "site_map_cached",
            domain=domain,
            listing_urls=len(result.listing_urls),
            ttl_days=ttl.days,
        )
        return result

    async def invalidate(self, domain: str) -> None:
        """Drop the cached entry for a domain (accepts URLs and www. hosts)."""
        normalized = domain_of(domain) if "://" in domain else normalize_domain(domain.split("/")[0])
        async with self.session_factory() as db:
            await db.execute(delete(SiteMap).where(SiteMap.domain == normalized))
            await db.commit()
        self.logger.info("site_map_invalidated", domain=normalized)

    async def discover(self, url: str, cookies: Optional[str] = None) -> SiteMapResult:
        """Crawl a site's homepage and navigation. Never raises for fetch failures."""
        domain = domain_of(url)
        origin = www_origin(url)

        override = SITE_OVERRIDES.get(domain)
        if override is not None:
            self.logger.info("site_override_used", domain=domain)
            return SiteMapResult(
                listing_urls=[f"{origin}{path}" for path in override.listing_paths],
                search_url_template=(
                    f"{origin}{override.search_template}" if override.search_template else None
                ),
                site_type=override.site_type,
            )

        self.logger.info("site_discovery_started", domain=domain)
        try:
            html = await self.fetch_client.fetch(url, cookies)
        except FetchError as e:
            self.logger.warning("site_discovery_failed", domain=domain, error=str(e))
            return SiteMapResult()

        soup = BeautifulSoup(html, "html.parser")
        site_type = detect_site_type_from_html(soup)
        links = extract_nav_links(soup, url)
        candidates = rank_candidates(links, site_type)
        self.logger.debug("nav_links_scored", domain=domain, links=len(links), candidates=len(candidates))

        listing_urls = await self._evaluate_candidates(candidates, cookies)
        search_template = detect_search_template(soup, url)

        self.logger.info(
            "site_discovery_completed",
            domain=domain,
            site_type=site_type,
            listing_urls=len(listing_urls),
            has_search=search_template is not None,
        )
        return SiteMapResult(
            listing_urls=listing_urls,
            search_url_template=search_template,
            site_type=site_type,
        )

    async def _evaluate_candidates(self, candidates: List[NavLink], cookies: Optional[str]) -> List[str]:
        scored: List[Tuple[int, str]] = []
        for candidate in candidates:
            await asyncio.sleep(self.page_delay)
            try:
                html = await self.fetch_client.fetch(candidate.url, cookies)
            except FetchError as e:
                self.logger.debug("candidate_skipped", url=candidate.url, error=str(e))
                continue
            density = measure_listing_density(BeautifulSoup(html, "html.parser"))
            if density >= MIN_LISTING_DENSITY:
                self.logger.debug("listing_page_found", url=candidate.url, density=density)
                scored.append((density, candidate.url))

        scored.sort(key=lambda pair: (-pair[0], pair[1]))
        return [page_url for _, page_url in scored[:MAX_LISTING_URLS]]

    @staticmethod
    async def _fresh_entry(db: AsyncSession, domain: str) -> Optional[SiteMap]:
        entry = await db.scalar(select(SiteMap).where(SiteMap.domain == domain))
        if entry is None or _as_utc(entry.expires_at) <= datetime.now(timezone.utc):
            return None
        return entry

    @staticmethod
    def _to_result(entry: SiteMap) -> SiteMapResult:
        return SiteMapResult(
            listing_urls=list(entry.listing_urls or []),
            search_url_template=entry.search_url_template,
            site_type=entry.site_type,
            from_cache=True,
        )
