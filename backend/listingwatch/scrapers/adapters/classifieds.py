"""Classifieds adapter for Drupal-style ad listings (GunPost and similar)."""

from typing import List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import PriceNormalizer


class ClassifiedsAdapter(BaseAdapter):
    """Classified ad teasers; price from the price field, else from the title."""

    name = "Classifieds"
    adapter_type = "classifieds-gunpost"
    site_type = "classifieds"

    CONTAINER_SELECTORS = [
        "[class*=node--type-classified]",
        "[class*=gunpost-teaser]",
        "[class*=node--type-][class*=teaser]",
        "[class*=classified-ad]",
        "[class*=classified-item]",
        "[class*=listing-card]",
        "[class*=listing-item]",
        "[class*=ad-card]",
        "[class*=post-card]",
        "[class*=search-result]",
        "article[class*=classified]",
        "article[class*=listing]",
        "article.post",
        "article",
    ]
    TITLE_CASCADE = [
        "h1, h2, h3, h4",
        "[class*=title], [class*=name], [class*=heading], [class*=field-name-title]",
    ]
    PRICE_SELECTOR = "[class*=price], [class*=cost], [class*=amount], [class*=field-price]"

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/ads?key={quote(keyword)}"

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
        title = extraction.extract_title(element, text, self.TITLE_CASCADE)
        if not extraction.is_valid_title(title):
            return None
        price_el = element.select_one(self.PRICE_SELECTOR)
        price = PriceNormalizer.extract_price(extraction.element_text(price_el)) if price_el is not None else None
        if price is None:
            price = PriceNormalizer.extract_price_from_title(title)
        return ScrapedItem(
            title=title,
            url=extraction.extract_link(element, base_url),
            price=price,
            thumbnail=extraction.extract_thumbnail(element, base_url),
            post_date=extraction.extract_post_date(element),
        )
