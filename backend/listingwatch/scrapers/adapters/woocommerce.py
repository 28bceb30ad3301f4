"""WooCommerce storefront adapter.

API search (tried first):
  1. WooCommerce Store API: /wp-json/wc/store/v1/products?search={keyword}
  2. WordPress REST API:    /wp-json/wp/v2/product?search={keyword}

HTML fallback:
  Search URL: {origin}/?s={keyword}&post_type=product
  Pagination: .woocommerce-pagination a.next
"""

import html
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers import extraction
from listingwatch.scrapers.base import BaseAdapter, ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.normalizer import PriceNormalizer


class WooCommerceAdapter(BaseAdapter):
    """WordPress + WooCommerce storefronts."""

    name = "WooCommerce"
    adapter_type = "woocommerce"
    site_type = "retailer"
    supports_api = True
    supports_pagination = True

    CONTAINER_SELECTORS = [
        "li.product",
        ".woocommerce-loop-product",
        "li[class*=product]",
        "[class*=product-card]",
        "[class*=product-item]",
        "[data-product-id]",
        ".wd-product",  # Woodmart theme
        "div[class*=product]",
    ]
    TITLE_CASCADE = [
        ".woocommerce-loop-product__title, h2.wc-block-grid__product-title",
        ".wd-entities-title",
        "h2, h3, h4",
        "[class*=title], [class*=name]",
    ]
    PRICE_SELECTOR = ".price, .woocommerce-Price-amount, [class*=price]"
    NEXT_PAGE_SELECTOR = ".woocommerce-pagination a.next, a.next.page-numbers"

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/?s={quote(keyword)}&post_type=product"

    async def search_via_api(
        self, origin: str, keyword: str, options: ScrapeOptions
    ) -> List[ScrapedItem]:
        """Try the Store API, then the WP REST API; [] when neither answers."""
        params = {"search": keyword, "per_page": options.api_limit}

        try:
            data = await self.fetch_client.fetch_json(
                f"{origin}/wp-json/wc/store/v1/products", params=params
            )
            if isinstance(data, list) and data:
                return self._parse_store_api_products(data, keyword, origin, options)
        except FetchError as e:
            self.logger.debug("woocommerce_store_api_unavailable", origin=origin, error=str(e))

        try:
            data = await self.fetch_client.fetch_json(f"{origin}/wp-json/wp/v2/product", params=params)
            if isinstance(data, list) and data:
                return self._parse_wp_api_products(data, keyword, origin)
        except FetchError as e:
            self.logger.debug("woocommerce_wp_api_unavailable", origin=origin, error=str(e))

        return []

    @staticmethod
    def _minor_units(prices: Dict[str, Any]) -> Optional[Decimal]:
        raw = prices.get("price") or prices.get("regular_price")
        if not raw:
            return None
        try:
            minor_unit = int(prices.get("currency_minor_unit", 2))
            value = Decimal(str(raw)) / (Decimal(10) ** minor_unit)
        except (InvalidOperation, ValueError, TypeError):
            return None
        return value if value > 0 else None

    def _parse_store_api_products(
        self,
        products: List[Dict[str, Any]],
        keyword: str,
        origin: str,
        options: ScrapeOptions,
    ) -> List[ScrapedItem]:
        items: List[ScrapedItem] = []
        for product in products:
            title = extraction.clean_text(html.unescape(product.get("name") or ""))
            if not title or not extraction.contains_keyword(title, keyword):
                continue

            price = self._minor_units(product.get("prices") or {})
            in_stock = product.get("is_purchasable") is not False
            if not extraction.passes_filters(price, in_stock, options.in_stock_only, options.max_price):
                continue

            images = product.get("images") or []
            thumbnail = (images[0].get("src") or images[0].get("thumbnail")) if images else None
            items.append(
                ScrapedItem(
                    title=title,
                    url=product.get("permalink") or f"{origin}/?p={product.get('id')}",
                    price=price,
                    in_stock=in_stock,
                    thumbnail=thumbnail or None,
                )
            )
        return items

    def _parse_wp_api_products(
        self,
        products: List[Dict[str, Any]],
        keyword: str,
        origin: str,
    ) -> List[ScrapedItem]:
        # The WP REST API carries no prices or stock
        items: List[ScrapedItem] = []
        for product in products:
            rendered = (product.get("title") or {}).get("rendered") or product.get("name") or ""
            title = extraction.clean_text(html.unescape(rendered))
            if not title or not extraction.contains_keyword(title, keyword):
                continue
            items.append(
                ScrapedItem(
                    title=title,
                    url=product.get("link") or f"{origin}/?p={product.get('id')}",
                    in_stock=True,
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

    def parse_container(
        self, element: Tag, text: str, keyword: str, base_url: str
    ) -> Optional[ScrapedItem]:
        title = extraction.extract_title(element, text, self.TITLE_CASCADE)
        if not extraction.is_valid_title(title):
            return None
        price_el = element.select_one(self.PRICE_SELECTOR)
        price = PriceNormalizer.extract_price(extraction.element_text(price_el)) if price_el is not None else None
        return ScrapedItem(
            title=title,
            url=extraction.extract_link(element, base_url),
            price=price,
            in_stock=extraction.is_in_stock(element),
            thumbnail=extraction.extract_thumbnail(element, base_url),
        )

    def get_next_page_url(self, soup: BeautifulSoup, current_url: str) -> Optional[str]:
        return self._next_link(soup, current_url, self.NEXT_PAGE_SELECTOR)
