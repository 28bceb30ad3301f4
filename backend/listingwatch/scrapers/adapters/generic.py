"""Last-resort adapter for sites nothing else recognizes."""

from typing import List, Optional, Set
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import PriceNormalizer, resolve_url


class GenericAdapter(BaseAdapter):
    """Broad selector sweep, then keyword links, then a page-level detection.

    When the keyword appears on the page but no structure around it can be
    recognized, a single synthetic match pointing at the page is returned so
    the target still learns the keyword showed up.
    """

    name = "Generic"
    adapter_type = "generic"
    site_type = "generic"

    CONTAINER_SELECTORS = [
        "[class*=product-card]", "[class*=product-item]", "[class*=product-tile]",
        "[data-product-id]", "[data-product]", "article[class*=product]", "li[class*=product]",
        "[class*=listing]", "[class*=classified]", "[class*=post-card]",
        "[class*=ad-card]", "[class*=search-result]",
        "[class*=lot]", "[class*=auction]",
        "article.post", "article",
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

        items = self._extract_keyword_links(soup, keyword, base_url, seen)
        if items:
            return items

        body = soup.body or soup
        if extraction.contains_keyword(extraction.element_text(body), keyword):
            return [
                ScrapedItem(
                    title=f'Keyword "{keyword}" detected on page',
                    url=base_url,
                )
            ]
        return []

    def parse_container(
        self, element: Tag, text: str, keyword: str, base_url: str
    ) -> Optional[ScrapedItem]:
        item = super().parse_container(element, text, keyword, base_url)
        if item is not None and item.price is None:
            item.price = PriceNormalizer.extract_price_from_title(item.title)
        return item

    @staticmethod
    def _extract_keyword_links(
        soup: BeautifulSoup, keyword: str, base_url: str, seen: Set[str]
    ) -> List[ScrapedItem]:
        items: List[ScrapedItem] = []
        for link in soup.select("a[href]"):
            title = extraction.clean_text(extraction.element_text(link))
            href = link.get("href") or ""
            if not extraction.contains_keyword(title, keyword) or not extraction.is_valid_title(title):
                continue
            if href.startswith(("#", "javascript:", "mailto:")):
                continue
            key = extraction.title_key(title)
            if key in seen:
                continue
            seen.add(key)
            items.append(ScrapedItem(title=title, url=resolve_url(href, base_url)))
        return items
