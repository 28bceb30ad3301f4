"""vBulletin forum adapter.

Search: {origin}/forum/search.php?do=process&query={keyword}&titleonly=1
Threads: .threadbit, li[id^=thread_], .threadtitle
"""

from typing import List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import PriceNormalizer, resolve_url


class VBulletinAdapter(BaseAdapter):
    """vBulletin 3/4 boards."""

    name = "vBulletin"
    adapter_type = "forum-vbulletin"
    site_type = "forum"

    CONTAINER_SELECTORS = ["[class*=threadbit], li[id^=thread_], [class*=threadtitle]"]
    TITLE_LINK_CASCADE = [
        ".threadtitle a, a[id^=thread_title_]",
        "a[href*=showthread]",
        "h3 a, h4 a",
    ]

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/forum/search.php?do=process&query={quote(keyword)}&titleonly=1"

    def extract_matches(
        self,
        soup: BeautifulSoup,
        keyword: str,
        base_url: str,
        options: ScrapeOptions,
    ) -> List[ScrapedItem]:
        return self._extract_from_containers(soup, keyword, base_url, options)

    def parse_container(
        self, element: Tag, text: str, keyword: str, base_url: str
    ) -> Optional[ScrapedItem]:
        title_link = extraction.select_first(element, self.TITLE_LINK_CASCADE)
        if title_link is None and element.name == "a":
            title_link = element
        title = extraction.clean_text(extraction.element_text(title_link) if title_link is not None else text)
        if not extraction.is_valid_title(title):
            return None
        href = title_link.get("href") if title_link is not None else None
        return ScrapedItem(
            title=title,
            url=resolve_url(href, base_url),
            price=PriceNormalizer.extract_price_from_title(title),
            post_date=extraction.extract_post_date(element),
        )
