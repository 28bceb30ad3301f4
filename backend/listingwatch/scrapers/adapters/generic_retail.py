"""Generic retail adapter for storefronts without a dedicated platform adapter.

Tries product-card markup used by BigCommerce, Magento, LightSpeed and
custom themes first, then falls back to keyword-bearing product links.
"""

import re
from typing import List, Optional, Set
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import origin_of, resolve_url


_NAV_URL_RE = re.compile(
    r"/(product-category|category|categories|collections|brands|departments|tags|subcategory|shop/?\?|manufacturer)\b",
    re.IGNORECASE,
)
_ACCOUNT_URL_RE = re.compile(r"/(cart|login|register|account|page/\d|search)\b", re.IGNORECASE)

PRODUCT_CONTAINER_SELECTOR = (
    "[class*=productborder], [class*=product-card], [class*=product-item], "
    "[class*=product-tile], [class*=item-card], [class*=grid-item], "
    "li.product, div.product, article, .card, [data-product-id], [data-product]"
)


def is_nav_url(url: str) -> bool:
    """True for category and navigation pages rather than product pages."""
    return bool(_NAV_URL_RE.search(url or ""))


class GenericRetailAdapter(BaseAdapter):
    """Retailers on BigCommerce, Magento, nopCommerce and custom platforms."""

    name = "GenericRetail"
    adapter_type = "generic-retail"
    site_type = "retailer"

    CONTAINER_SELECTORS = [
        "[data-product-id]",
        "li.product",
        "li[class*=product]",
        "[class*=product-card]",
        "[class*=product-item]",
        "[class*=product-tile]",
        "[class*=ProductItem]",
        "[class*=item-card]",
        "[class*=grid-item]",
        "[data-product]",
        "article[class*=product]",
        ".card",  # BigCommerce
        ".products-list .item",  # Magento
        ".products-grid .item",  # Magento
        "li.product-item",  # Magento
        ".product-items > .product-item",  # Magento
        ".productborder",  # LightSpeed
        "div.product",
    ]

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/search?q={quote(keyword)}"

    def extract_matches(
        self,
        soup: BeautifulSoup,
        keyword: str,
        base_url: str,
        options: ScrapeOptions,
    ) -> List[ScrapedItem]:
        seen: Set[str] = set()
        items = self._extract_from_containers(soup, keyword, base_url, options, seen=seen)
        if items:
            return items
        return self._extract_from_links(soup, keyword, base_url, options, seen)

    def parse_container(
        self, element: Tag, text: str, keyword: str, base_url: str
    ) -> Optional[ScrapedItem]:
        item = super().parse_container(element, text, keyword, base_url)
        if item is None or is_nav_url(item.url):
            return None
        return item

    def _extract_from_links(
        self,
        soup: BeautifulSoup,
        keyword: str,
        base_url: str,
        options: ScrapeOptions,
        seen: Set[str],
    ) -> List[ScrapedItem]:
        """Same-origin product links whose text carries the keyword."""
        origin = origin_of(base_url)
        items: List[ScrapedItem] = []

        for link in soup.select("a[href]"):
            text = extraction.clean_text(extraction.element_text(link), limit=None)
            href = link.get("href") or ""

            if not extraction.contains_keyword(text, keyword):
                continue
            if len(text) < 8 or len(text) > 200 or not extraction.is_valid_title(text):
                continue
            if href in ("#", base_url) or _ACCOUNT_URL_RE.search(href) or is_nav_url(href):
                continue

            full_url = resolve_url(href, base_url)
            if origin and not full_url.startswith(origin):
                continue

            title = text[:extraction.MAX_TITLE_LENGTH]
            key = extraction.title_key(title)
            if key in seen:
                continue

            container = self.find_product_container(link)
            price = thumbnail = None
            if container is not None:
                price = extraction.extract_price_from_element(container)
                thumbnail = extraction.extract_thumbnail(container, base_url)

            if not extraction.passes_filters(price, True, options.in_stock_only, options.max_price):
                continue

            seen.add(key)
            items.append(
                ScrapedItem(title=title, url=full_url, price=price, in_stock=True, thumbnail=thumbnail)
            )
        return items

    @staticmethod
    def find_product_container(link: Tag) -> Optional[Tag]:
        """Nearest ancestor that looks like a product card."""
        for ancestor in link.parents:
            if not isinstance(ancestor, Tag) or ancestor.name == "[document]":
                break
            if ancestor.css.match(PRODUCT_CONTAINER_SELECTOR):
                return ancestor

        # Walk up a few levels for anything holding an image or a price
        current = link.parent
        for _ in range(6):
            if current is None or current.name == "[document]":
                break
            if current.find("img") is not None or extraction.looks_priced(current):
                return current
            current = current.parent

        return link.find_parent(["li", "div", "article", "section", "tr"])
