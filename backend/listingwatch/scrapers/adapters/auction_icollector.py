"""iCollector auction adapter.

Search is served by a CloudSearch JSON handler that covers every current
catalogue; the HTML grid is parsed when the handler is unavailable.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Set
from urllib.parse import quote

from bs4 import Tag

from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers import extraction
from listingwatch.scrapers.adapters.auction_generic import GenericAuctionAdapter
from listingwatch.scrapers.base import ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import resolve_url


ICOLLECTOR_ORIGIN = "https://www.icollector.com"
CLOUDSEARCH_URL = f"{ICOLLECTOR_ORIGIN}/handlers/controls/CloudsearchItemSearch.ashx"

_SLUG_INVALID_RE = re.compile(r"[^a-zA-Z0-9\- ]")
_WHITESPACE_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")


def icollector_item_url(title: str, item_id: Any) -> str:
    """Friendly lot URL, e.g. "Winchester Model 94" + 123 -> /Winchester-Model-94_i123."""
    slug = _SLUG_INVALID_RE.sub(" ", title).strip()
    slug = _DASHES_RE.sub("-", _WHITESPACE_RE.sub("-", slug))
    return f"{ICOLLECTOR_ORIGIN}/{slug}_i{item_id}"


class ICollectorAdapter(GenericAuctionAdapter):
    """iCollector.com lots."""

    name = "iCollector"
    adapter_type = "auction-icollector"
    supports_api = True

    CONTAINER_SELECTORS = [
        ".gridItem",
        "[class*=catLot]",
        "[class*=lot-item]",
        "[class*=lotItem]",
        "[class*=catalog-item]",
        "[class*=auction-item]",
    ]
    TITLE_CASCADE = [
        "[class*=lot-title], [class*=lotTitle]",
        "h3, h4, h2",
        "[class*=title], [class*=name]",
    ]
    TITLE_LINK_SELECTOR = (
        ".gridView_itemListing a[href*=_i], .gridView_heading a[href*=_i], a.row_thumbnail[title]"
    )
    BID_SELECTOR = "[class*=current-bid], [class*=bid-amount], [class*=price]"

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/search/?q={quote(keyword)}"

    async def search_via_api(
        self, origin: str, keyword: str, options: ScrapeOptions
    ) -> List[ScrapedItem]:
        """Query the CloudSearch handler for current lots whose name matches."""
        params = {
            "command": "searchitems",
            "unitsPerPage": 50 if options.fast else 100,
            "page": 1,
            "isCurrent": 1,
            "keywords": keyword,
            "sortBy": "TimeLeft",
            "searchFields": "ItemName",
            "exactKeywords": "false",
            "hasImage": "false",
        }
        headers = {
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "X-Requested-With": "XMLHttpRequest",
            "Referer": f"{ICOLLECTOR_ORIGIN}/search.aspx",
        }
        try:
            data = await self.fetch_client.fetch_json(CLOUDSEARCH_URL, params=params, headers=headers)
        except FetchError as e:
            self.logger.warning("icollector_api_failed", keyword=keyword, error=str(e))
            return []

        items = self._parse_api_items((data or {}).get("ItemResults") or [], keyword, options)
        self.logger.info(
            "icollector_api_search",
            keyword=keyword,
            matches=len(items),
            total=(data or {}).get("ItemCount", 0),
        )
        return items

    @staticmethod
    def _parse_api_items(
        results: List[Dict[str, Any]], keyword: str, options: ScrapeOptions
    ) -> List[ScrapedItem]:
        items: List[ScrapedItem] = []
        seen: Set[str] = set()
        for result in results:
            title = extraction.clean_text(result.get("ItemTitle"))
            if not title or not extraction.contains_keyword(title, keyword):
                continue
            key = extraction.title_key(title)
            if key in seen:
                continue

            try:
                price = Decimal(str(result.get("ItemCurrentBidAmount") or 0))
            except InvalidOperation:
                price = Decimal(0)
            price = price if price > 0 else None
            if not extraction.passes_filters(price, None, options.in_stock_only, options.max_price):
                continue

            seen.add(key)
            items.append(
                ScrapedItem(
                    title=title,
                    url=icollector_item_url(title, result.get("ItemID")),
                    price=price,
                    seller=result.get("AuctioneerName") or None,
                    thumbnail=result.get("ImageUrl") or None,
                )
            )
        return items

    def parse_container(
        self, element: Tag, text: str, keyword: str, base_url: str
    ) -> Optional[ScrapedItem]:
        title_link = element.select_one(self.TITLE_LINK_SELECTOR)
        if title_link is not None:
            raw_title = extraction.clean_text(title_link.get("title") or extraction.element_text(title_link))
            if raw_title:
                url = resolve_url(title_link.get("href"), base_url) if title_link.get("href") else None
                return self._build_lot(element, raw_title, keyword, base_url, url=url)
        return super().parse_container(element, text, keyword, base_url)
