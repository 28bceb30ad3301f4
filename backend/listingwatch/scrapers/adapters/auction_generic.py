"""Generic auction-house adapter and the lot parsing shared by auction adapters."""

from typing import List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions


class GenericAuctionAdapter(BaseAdapter):
    """Auction catalogues without a platform-specific adapter.

    Lot titles must contain the keyword themselves (catalogue pages repeat
    category names in every lot), and lot numbering is stripped from titles.
    Prices are current or opening bids.
    """

    name = "GenericAuction"
    adapter_type = "auction-generic"
    site_type = "auction"

    CONTAINER_SELECTORS = [
        "[class*=lot-item]",
        "[class*=lotItem]",
        "[class*=lot-card]",
        "[class*=catalog-item]",
        "[class*=auction-item]",
        "[class*=auction-lot]",
        ".lot",
        "[class*=item-card]",
        "[class*=item-listing]",
        "[class*=asset-card]",
    ]
    TITLE_CASCADE = [
        "[class*=lot-title], [class*=lot-name], [class*=lotTitle]",
        "h3, h4, h2",
        "[class*=title], [class*=name], [class*=description]",
    ]
    BID_SELECTOR = (
        "[class*=current-bid], [class*=winning-bid], [class*=bid-amount], "
        "[class*=estimate], [class*=price], [class*=hammer]"
    )

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/search?q={quote(keyword)}"

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
        raw_title = extraction.extract_title(element, text, self.TITLE_CASCADE)
        return self._build_lot(element, raw_title, keyword, base_url)

    def _build_lot(
        self,
        element: Tag,
        raw_title: str,
        keyword: str,
        base_url: str,
        url: Optional[str] = None,
    ) -> Optional[ScrapedItem]:
        if not extraction.is_valid_title(raw_title) or not extraction.contains_keyword(raw_title, keyword):
            return None
        title = extraction.strip_lot_prefix(raw_title) or raw_title
        return ScrapedItem(
            title=title,
            url=url or extraction.extract_link(element, base_url),
            price=extraction.extract_bid_from_element(element, self.BID_SELECTOR),
            thumbnail=extraction.extract_thumbnail(element, base_url),
        )
