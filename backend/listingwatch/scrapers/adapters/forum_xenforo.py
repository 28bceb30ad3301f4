"""XenForo forum adapter.

Search: {origin}/search/?q={keyword}&t=post
Threads: .structItem with the title link in .structItem-title
"""

from typing import List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import PriceNormalizer, resolve_url


class XenForoAdapter(BaseAdapter):
    """XenForo boards; asking prices come from "$N" in thread titles."""

    name = "XenForo"
    adapter_type = "forum-xenforo"
    site_type = "forum"

    CONTAINER_SELECTORS = [".structItem, [class*=structItem--thread]"]
    TITLE_LINK_CASCADE = [".structItem-title a", "[class*=title] a"]

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/search/?q={quote(keyword)}&t=post"

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
        title = extraction.clean_text(extraction.element_text(title_link) if title_link is not None else text)
        if not extraction.is_valid_title(title):
            return None
        href = title_link.get("href") if title_link is not None else None
        return ScrapedItem(
            title=title,
            url=resolve_url(href, base_url),
            price=PriceNormalizer.extract_price_from_title(title),
            post_date=extraction.extract_post_date(element),
            thumbnail=extraction.extract_thumbnail(element, base_url),
        )
