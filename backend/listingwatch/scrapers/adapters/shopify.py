"""Shopify storefront adapter.

Search: {origin}/search?q={keyword}&type=product
API: /search/suggest.json (predictive search, public on every store)
Pagination: ?page=N via rel=next or the pagination "Next" link
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup

from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions


def _shopify_price(raw: Any) -> Optional[Decimal]:
    """Suggest API prices are integer cents on older themes, decimal amounts on newer ones."""
    if raw in (None, ""):
        return None
    try:
        if isinstance(raw, float) or (isinstance(raw, str) and "." in raw):
            value = Decimal(str(raw))
        else:
            value = Decimal(str(raw)) / 100
    except InvalidOperation:
        return None
    return value if value > 0 else None


class ShopifyAdapter(BaseAdapter):
    """Shopify storefronts (the bulk of independent retailers)."""

    name = "Shopify"
    adapter_type = "shopify"
    site_type = "retailer"
    supports_api = True
    supports_pagination = True

    CONTAINER_SELECTORS = [
        "[data-product-id]",
        "[class*=product-card]",
        "[class*=product-item]",
        "[class*=product-tile]",
        "[class*=ProductItem]",
        ".grid__item [class*=product]",
        "li[class*=product]",
        "article[class*=product]",
        "[class*=grid-item]",
    ]

    NEXT_PAGE_SELECTOR = (
        'a[rel=next], [class*=pagination] a:-soup-contains("Next"), '
        '[class*=pagination] a:-soup-contains("›")'
    )

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/search?q={quote(keyword)}&type=product"

    async def search_via_api(
        self, origin: str, keyword: str, options: ScrapeOptions
    ) -> List[ScrapedItem]:
        """Query the predictive search endpoint.

        Returns:
            Matches whose title contains the keyword, or [] if the store has
            the endpoint disabled
        """
        params = {
            "q": keyword,
            "resources[type]": "product",
            "resources[limit]": options.api_limit,
        }
        try:
            data = await self.fetch_client.fetch_json(f"{origin}/search/suggest.json", params=params)
        except FetchError as e:
            self.logger.debug("shopify_api_unavailable", origin=origin, error=str(e))
            return []

        products = (((data or {}).get("resources") or {}).get("results") or {}).get("products") or []
        if not isinstance(products, list):
            return []
        return self._parse_suggest_products(products, keyword, origin, options)

    def _parse_suggest_products(
        self,
        products: List[Dict[str, Any]],
        keyword: str,
        origin: str,
        options: ScrapeOptions,
    ) -> List[ScrapedItem]:
        items: List[ScrapedItem] = []
        for product in products:
            title = extraction.clean_text(product.get("title"))
            if not title or not extraction.contains_keyword(title, keyword):
                continue

            url = product.get("url") or ""
            if url and not url.startswith("http"):
                url = f"{origin}{url}"

            price = _shopify_price(product.get("price"))
            in_stock = product.get("available") is not False
            if not extraction.passes_filters(price, in_stock, options.in_stock_only, options.max_price):
                continue

            image = product.get("image") or (product.get("featured_image") or {}).get("url")
            items.append(
                ScrapedItem(
                    title=title,
                    url=url or origin,
                    price=price,
                    in_stock=in_stock,
                    thumbnail=image or None,
                )
            )
        return items

    def extract_matches(
        self,
        soup: BeautifulSoup,
        keyword: str,
        base_url: str,
        options: ScrapeOptions,
    ) -> List[ScrapedItem]:
        return self._extract_from_containers(soup, keyword, base_url, options)

    def get_next_page_url(self, soup: BeautifulSoup, current_url: str) -> Optional[str]:
        return self._next_link(soup, current_url, self.NEXT_PAGE_SELECTOR)
