"""Tests for normalization helpers, extraction heuristics and site-family adapters."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from bs4 import BeautifulSoup

from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers import extraction
from listingwatch.scrapers.adapters import (
    ClassifiedsAdapter,
    GenericAdapter,
    GenericAuctionAdapter,
    ICollectorAdapter,
    ShopifyAdapter,
    VBulletinAdapter,
    WooCommerceAdapter,
    XenForoAdapter,
)
from listingwatch.scrapers.adapters.auction_icollector import icollector_item_url
from listingwatch.scrapers.adapters.shopify import _shopify_price
from listingwatch.scrapers.base import ScrapedItem, ScrapeOptions
from listingwatch.scrapers.utils.html import detect_site_type, is_login_page
from listingwatch.scrapers.utils.normalizer import (
    PriceNormalizer,
    dedupe_key,
    is_bare_domain,
    normalize_url,
    resolve_url,
)


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ============================================================================
# NORMALIZATION
# ============================================================================

class TestPriceNormalizer:
    def test_currency_prices(self):
        assert PriceNormalizer.extract_price("CAD $1,299.99") == Decimal("1299.99")
        assert PriceNormalizer.extract_price("Now only C$ 849") == Decimal("849")

    def test_small_currency_amounts_are_specs(self):
        assert PriceNormalizer.extract_price("$5.56 NATO") is None

    def test_plain_amounts_need_two_decimals(self):
        assert PriceNormalizer.extract_price("Price 1299.99") == Decimal("1299.99")
        assert PriceNormalizer.extract_price("7.62x39 surplus") is None
        assert PriceNormalizer.extract_price("Model 94") is None

    def test_title_price(self):
        assert PriceNormalizer.extract_price_from_title("WTS Glock 19 - $800") == Decimal("800")
        assert PriceNormalizer.extract_price_from_title("WTB Glock 19") is None

    def test_bid_price(self):
        assert PriceNormalizer.extract_bid_price("Current Bid: $1,200") == Decimal("1200")
        assert PriceNormalizer.extract_bid_price("No bids yet") is None

    def test_invalid_values(self):
        assert PriceNormalizer.clean_price_string("") is None
        assert PriceNormalizer.clean_price_string("0.00") is None


class TestUrlHelpers:
    def test_normalize_url_strips_tracking_and_fragment(self):
        url = "https://shop.example.com/p/1?utm_source=mail&variant=2#reviews"
        assert normalize_url(url) == "https://shop.example.com/p/1?variant=2"

    def test_dedupe_key_is_case_insensitive(self):
        assert dedupe_key("https://Shop.example.com/P/1?utm_campaign=x") == dedupe_key(
            "https://shop.example.com/p/1"
        )

    def test_bare_domain(self):
        assert is_bare_domain("https://example.com")
        assert is_bare_domain("https://www.example.com/")
        assert not is_bare_domain("https://example.com/forums/")
        assert not is_bare_domain("https://example.com/?s=tikka")
        assert not is_bare_domain("example.com")

    def test_resolve_url(self):
        base = "https://auction.example.com/catalog/list"
        assert resolve_url(None, base) == base
        assert resolve_url("#", base) == base
        assert resolve_url("/lot/1", base) == "https://auction.example.com/lot/1"
        assert resolve_url("LotDetail.aspx?id=5", base) == "https://auction.example.com/LotDetail.aspx?id=5"
        assert resolve_url("https://cdn.example.com/x", base) == "https://cdn.example.com/x"


class TestExtractionHelpers:
    def test_title_validation(self):
        assert extraction.is_valid_title("Tikka T3x")
        assert not extraction.is_valid_title("$12.99")
        assert not extraction.is_valid_title("ab")

    def test_strip_lot_prefix(self):
        assert extraction.strip_lot_prefix("123A - Winchester 94") == "Winchester 94"
        assert extraction.strip_lot_prefix("Winchester 94") == "Winchester 94"

    def test_filters_let_unknown_values_pass(self):
        assert extraction.passes_filters(None, None, True, Decimal("100"))
        assert not extraction.passes_filters(Decimal("150"), True, False, Decimal("100"))
        assert not extraction.passes_filters(Decimal("50"), False, True, None)

    def test_thumbnail_prefers_lazy_source(self):
        element = soup_of('<div><img src="/spinner.gif" data-src="//cdn.example.com/a.jpg"></div>').div
        assert extraction.extract_thumbnail(element, "https://x.example.com/") == "https://cdn.example.com/a.jpg"

    def test_thumbnail_ignores_placeholders(self):
        element = soup_of('<div><img src="/img/placeholder.png"></div>').div
        assert extraction.extract_thumbnail(element, "https://x.example.com/") is None

    def test_scraped_item_drops_non_positive_price(self):
        item = ScrapedItem(title="Tikka", url="https://x.example.com/1", price=Decimal("0"))
        assert item.price is None
        with pytest.raises(ValueError):
            ScrapedItem(title="", url="https://x.example.com/1")


class TestPageClassification:
    def test_xenforo_page_is_forum(self):
        soup = soup_of('<html data-xf-init="x"><div class="p-body"></div></html>')
        assert detect_site_type("https://unknown.example.com", soup) == "forum"

    def test_known_domain_wins(self):
        assert detect_site_type("https://ontario.hibid.com/lots", soup_of("<html></html>")) == "auction"

    def test_shopify_page_is_retailer(self):
        soup = soup_of('<div class="product-card"></div><script>Shopify.shop = "x";</script>')
        assert detect_site_type("https://unknown.example.com", soup) == "retailer"

    def test_login_wall(self):
        login = soup_of(
            '<form action="/login/login"><input name="login"><input type="password" name="password"></form>'
        )
        assert is_login_page(login)
        assert not is_login_page(soup_of('<form action="/search/"><input name="q"></form>'))


# ============================================================================
# ADAPTERS
# ============================================================================

SHOPIFY_SEARCH_PAGE = """
<div class="grid">
  <div data-product-id="1">
    <a href="/products/tikka-t3x-lite"><h3 class="card-title">Tikka T3x Lite</h3></a>
    <span class="price">$1,099.99</span>
  </div>
  <div data-product-id="2">
    <a href="/products/tikka-t1x"><h3 class="card-title">Tikka T1x MTR</h3></a>
    <span class="price">$899.00</span>
    <span class="badge">Sold out</span>
  </div>
  <div data-product-id="3">
    <a href="/products/ruger-1022"><h3 class="card-title">Ruger 10/22</h3></a>
    <span class="price">$449.99</span>
  </div>
  <nav class="pagination"><a rel="next" href="/search?q=tikka&page=2">Next</a></nav>
</div>
"""


class TestShopifyAdapter:
    base_url = "https://shop.example.com/search?q=tikka&type=product"

    def test_search_url(self):
        assert (
            ShopifyAdapter().get_search_url("https://shop.example.com", "tikka t3x")
            == "https://shop.example.com/search?q=tikka%20t3x&type=product"
        )

    def test_extracts_keyword_matches(self):
        items = ShopifyAdapter().extract_matches(
            soup_of(SHOPIFY_SEARCH_PAGE), "tikka", self.base_url, ScrapeOptions()
        )

        assert [item.title for item in items] == ["Tikka T3x Lite", "Tikka T1x MTR"]
        assert items[0].url == "https://shop.example.com/products/tikka-t3x-lite"
        assert items[0].price == Decimal("1099.99")
        assert items[0].in_stock is True
        assert items[1].in_stock is False

    def test_filters_are_applied_during_extraction(self):
        adapter = ShopifyAdapter()
        in_stock = adapter.extract_matches(
            soup_of(SHOPIFY_SEARCH_PAGE), "tikka", self.base_url, ScrapeOptions(in_stock_only=True)
        )
        cheap = adapter.extract_matches(
            soup_of(SHOPIFY_SEARCH_PAGE), "tikka", self.base_url, ScrapeOptions(max_price=Decimal("1000"))
        )

        assert [item.title for item in in_stock] == ["Tikka T3x Lite"]
        assert [item.title for item in cheap] == ["Tikka T1x MTR"]

    def test_next_page(self):
        next_url = ShopifyAdapter().get_next_page_url(soup_of(SHOPIFY_SEARCH_PAGE), self.base_url)
        assert next_url == "https://shop.example.com/search?q=tikka&page=2"

    def test_suggest_price_formats(self):
        assert _shopify_price(129999) == Decimal("1299.99")
        assert _shopify_price("1299.99") == Decimal("1299.99")
        assert _shopify_price(1299.99) == Decimal("1299.99")
        assert _shopify_price(1300.0) == Decimal("1300.0")
        assert _shopify_price(0) is None
        assert _shopify_price("n/a") is None

    @pytest.mark.asyncio
    async def test_suggest_api(self):
        adapter = ShopifyAdapter()
        adapter.fetch_client = AsyncMock()
        adapter.fetch_client.fetch_json.return_value = {
            "resources": {
                "results": {
                    "products": [
                        {"title": "Tikka T3x Lite", "url": "/products/t3x", "price": "1099.99", "available": True},
                        {"title": "Tikka Magazine", "url": "/products/mag", "price": 8999, "available": False},
                        {"title": "Ruger 10/22", "url": "/products/ruger", "price": "449.99"},
                    ]
                }
            }
        }

        items = await adapter.search_via_api("https://shop.example.com", "tikka", ScrapeOptions())

        assert [item.url for item in items] == [
            "https://shop.example.com/products/t3x",
            "https://shop.example.com/products/mag",
        ]
        assert items[0].price == Decimal("1099.99")
        assert items[1].price == Decimal("89.99")
        assert items[1].in_stock is False

    @pytest.mark.asyncio
    async def test_suggest_api_unavailable(self):
        adapter = ShopifyAdapter()
        adapter.fetch_client = AsyncMock()
        adapter.fetch_client.fetch_json.side_effect = FetchError(
            FetchError.HTTP_ERROR, "https://shop.example.com/search/suggest.json", status_code=404
        )

        assert await adapter.search_via_api("https://shop.example.com", "tikka", ScrapeOptions()) == []


class TestWooCommerceAdapter:
    @pytest.mark.asyncio
    async def test_store_api_prices_use_minor_units(self):
        adapter = WooCommerceAdapter()
        adapter.fetch_client = AsyncMock()
        adapter.fetch_client.fetch_json.return_value = [
            {
                "id": 7,
                "name": "Tikka T3x &amp; Scope",
                "permalink": "https://www.leverarms.com/product/t3x/",
                "prices": {"price": "109999", "currency_minor_unit": 2},
                "is_purchasable": True,
                "images": [{"src": "https://www.leverarms.com/t3x.jpg"}],
            },
        ]

        items = await adapter.search_via_api("https://www.leverarms.com", "tikka", ScrapeOptions())

        assert len(items) == 1
        assert items[0].title == "Tikka T3x & Scope"
        assert items[0].price == Decimal("1099.99")
        assert items[0].thumbnail == "https://www.leverarms.com/t3x.jpg"

    @pytest.mark.asyncio
    async def test_falls_back_to_wp_rest_api(self):
        adapter = WooCommerceAdapter()
        adapter.fetch_client = AsyncMock()
        adapter.fetch_client.fetch_json.side_effect = [
            FetchError(FetchError.HTTP_ERROR, "store", status_code=404),
            [{"id": 9, "title": {"rendered": "Tikka T1x"}, "link": "https://www.leverarms.com/product/t1x/"}],
        ]

        items = await adapter.search_via_api("https://www.leverarms.com", "tikka", ScrapeOptions())

        assert [item.url for item in items] == ["https://www.leverarms.com/product/t1x/"]
        assert items[0].price is None

    def test_html_listing(self):
        html = """
        <ul class="products">
          <li class="product">
            <a href="https://www.leverarms.com/product/t3x/">
              <h2 class="woocommerce-loop-product__title">Tikka T3x Hunter</h2>
            </a>
            <span class="price"><span class="woocommerce-Price-amount">$1,249.99</span></span>
            <a class="button add_to_cart_button">Add to cart</a>
          </li>
        </ul>
        """
        items = WooCommerceAdapter().extract_matches(
            soup_of(html), "tikka", "https://www.leverarms.com/?s=tikka&post_type=product", ScrapeOptions()
        )

        assert len(items) == 1
        assert items[0].price == Decimal("1249.99")
        assert items[0].in_stock is True


class TestForumAdapters:
    def test_xenforo_threads(self):
        html = """
        <div class="structItem structItem--thread">
          <div class="structItem-title"><a href="/forum/threads/wts-tikka-t3x.123/">WTS Tikka T3x - $950</a></div>
          <time datetime="2024-05-01T10:00:00-0400">May 1</time>
        </div>
        <div class="structItem structItem--thread">
          <div class="structItem-title"><a href="/forum/threads/wtb-glock.124/">WTB Glock 19</a></div>
        </div>
        """
        items = XenForoAdapter().extract_matches(
            soup_of(html),
            "tikka",
            "https://www.canadiangunnutz.com/forum/search/?q=tikka&t=post",
            ScrapeOptions(),
        )

        assert len(items) == 1
        assert items[0].title == "WTS Tikka T3x - $950"
        assert items[0].url == "https://www.canadiangunnutz.com/forum/threads/wts-tikka-t3x.123/"
        assert items[0].price == Decimal("950")
        assert items[0].post_date == "2024-05-01T10:00:00-0400"

    def test_vbulletin_threads(self):
        html = """
        <ol>
          <li id="thread_55" class="threadbit">
            <h3 class="threadtitle"><a href="showthread.php?t=55">FS: Tikka T3 Lite $800</a></h3>
            <span class="date">2024-04-02</span>
          </li>
        </ol>
        """
        items = VBulletinAdapter().extract_matches(
            soup_of(html), "tikka", "https://www.example-forum.ca/forum/search.php", ScrapeOptions()
        )

        assert len(items) == 1
        assert items[0].url == "https://www.example-forum.ca/forum/showthread.php?t=55"
        assert items[0].price == Decimal("800")
        assert items[0].post_date == "2024-04-02"


class TestClassifiedsAdapter:
    base_url = "https://www.gunpost.ca/ads?key=sks"

    def test_price_field_then_title(self):
        html = """
        <div class="node node--type-classified node--view-mode-teaser">
          <h2><a href="/ad/sks-rifle-123">SKS Rifle with bayonet</a></h2>
          <div class="field-price">$450.00</div>
          <img src="/loading.gif" data-src="/files/sks.jpg">
          <time datetime="2024-06-01">June 1</time>
        </div>
        <div class="node node--type-classified node--view-mode-teaser">
          <h2><a href="/ad/sks-stock-124">WTS SKS stock - $300</a></h2>
        </div>
        """
        items = ClassifiedsAdapter().extract_matches(soup_of(html), "sks", self.base_url, ScrapeOptions())

        assert [item.url for item in items] == [
            "https://www.gunpost.ca/ad/sks-rifle-123",
            "https://www.gunpost.ca/ad/sks-stock-124",
        ]
        assert items[0].price == Decimal("450.00")
        assert items[0].thumbnail == "https://www.gunpost.ca/files/sks.jpg"
        assert items[0].post_date == "2024-06-01"
        assert items[1].price == Decimal("300")


class TestAuctionAdapters:
    def test_lot_title_must_contain_keyword(self):
        html = """
        <div class="lot-item">
          <h3 class="lot-title">123A - Winchester Model 94</h3>
          <a href="/lot/123">View</a>
          <span class="current-bid">Current Bid: $450</span>
        </div>
        <div class="lot-item">
          <h3 class="lot-title">124 - Remington 700</h3>
          <p>Shoots winchester ammunition</p>
        </div>
        """
        items = GenericAuctionAdapter().extract_matches(
            soup_of(html), "winchester", "https://auction.example.com/catalog", ScrapeOptions()
        )

        assert len(items) == 1
        assert items[0].title == "Winchester Model 94"
        assert items[0].url == "https://auction.example.com/lot/123"
        assert items[0].price == Decimal("450")

    def test_icollector_item_url(self):
        assert (
            icollector_item_url("Colt 1911 (.45 ACP)", 9)
            == "https://www.icollector.com/Colt-1911-45-ACP_i9"
        )

    def test_icollector_api_results(self):
        results = [
            {"ItemTitle": "Winchester Model 94 Rifle", "ItemID": 123, "ItemCurrentBidAmount": 450, "AuctioneerName": "Ace"},
            {"ItemTitle": "Winchester Model 94 Rifle", "ItemID": 124, "ItemCurrentBidAmount": 0},
            {"ItemTitle": "Browning A5", "ItemID": 125, "ItemCurrentBidAmount": 900},
        ]
        items = ICollectorAdapter._parse_api_items(results, "winchester", ScrapeOptions())

        assert len(items) == 1
        assert items[0].url == "https://www.icollector.com/Winchester-Model-94-Rifle_i123"
        assert items[0].price == Decimal("450")
        assert items[0].seller == "Ace"


class TestGenericAdapter:
    def test_keyword_links(self):
        html = '<div><a href="/used/tikka-t3x">Used Tikka T3x</a><a href="#">Tikka top</a></div>'
        items = GenericAdapter().extract_matches(
            soup_of(html), "tikka", "https://unknown.example.com/", ScrapeOptions()
        )

        assert [item.url for item in items] == ["https://unknown.example.com/used/tikka-t3x"]

    def test_page_level_detection(self):
        html = "<html><body><p>We sometimes stock Tikka rifles.</p></body></html>"
        items = GenericAdapter().extract_matches(
            soup_of(html), "tikka", "https://unknown.example.com/", ScrapeOptions()
        )

        assert len(items) == 1
        assert items[0].url == "https://unknown.example.com/"
        assert "tikka" in items[0].title

    def test_no_keyword_no_matches(self):
        items = GenericAdapter().extract_matches(
            soup_of("<html><body>Nothing here</body></html>"),
            "tikka",
            "https://unknown.example.com/",
            ScrapeOptions(),
        )
        assert items == []
