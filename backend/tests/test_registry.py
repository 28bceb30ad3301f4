"""Tests for the adapter registry and adapter registration."""

from unittest.mock import MagicMock

import pytest

from listingwatch.scrapers.adapters import ClassifiedsAdapter, GenericAdapter, ShopifyAdapter
from listingwatch.scrapers.register_adapters import ADAPTER_CLASSES, register_all_adapters
from listingwatch.scrapers.registry import AdapterRegistry, SiteConfig


SITES = [
    SiteConfig(domain="hibid.com", adapter_type="auction-hibid", site_type="auction"),
    SiteConfig(domain="leverarms.com", adapter_type="woocommerce", site_type="retailer"),
    SiteConfig(
        domain="irunguns.ca",
        adapter_type="generic-retail",
        site_type="retailer",
        search_url_pattern="/product.php?product_name={keyword}",
    ),
    SiteConfig(domain="gunpost.ca", adapter_type="classifieds", site_type="classifieds"),
    SiteConfig(domain="mystery.ca", adapter_type="not-a-real-type"),
]


class CountingLoader:
    def __init__(self, sites):
        self.sites = sites
        self.calls = 0
        self.fail = False

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise ConnectionError("database unavailable")
        return list(self.sites)


@pytest.fixture
def loader():
    return CountingLoader(SITES)


@pytest.fixture
def registry(loader):
    registry = AdapterRegistry(site_loader=loader, fetch_client=MagicMock(), cache_ttl_seconds=300)
    register_all_adapters(registry)
    return registry


class TestRegistration:
    def test_every_family_is_registered(self, registry):
        for adapter_class in ADAPTER_CLASSES:
            assert registry.has_adapter(adapter_class.adapter_type)
        assert isinstance(registry.get_adapter("classifieds"), ClassifiedsAdapter)

    def test_fetch_client_is_injected(self, registry):
        assert registry.get_adapter("shopify").fetch_client is registry.fetch_client

    def test_unknown_type_gets_generic(self, registry):
        assert isinstance(registry.get_adapter("nope"), GenericAdapter)
        assert isinstance(registry.get_adapter(None), GenericAdapter)

    def test_rejects_non_adapters(self, registry):
        with pytest.raises(ValueError):
            registry.register_adapter("bogus", object())

    def test_empty_registry_has_no_fallback(self):
        registry = AdapterRegistry(site_loader=CountingLoader([]), fetch_client=MagicMock())
        with pytest.raises(LookupError):
            registry.get_adapter("shopify")


class TestResolve:
    @pytest.mark.asyncio
    async def test_exact_domain_ignores_www(self, registry):
        lookup = await registry.resolve("https://www.leverarms.com/")

        assert lookup.adapter_type == "woocommerce"
        assert lookup.matched_domain == "leverarms.com"
        assert lookup.site_type == "retailer"

    @pytest.mark.asyncio
    async def test_subdomain_resolves_to_parent(self, registry):
        lookup = await registry.resolve("https://ontario.auctions.hibid.com/catalog/123")

        assert lookup.adapter_type == "auction-hibid"
        assert lookup.matched_domain == "hibid.com"

    @pytest.mark.asyncio
    async def test_unknown_domain_is_generic(self, registry):
        lookup = await registry.resolve("https://never-seen.example.com/shop")

        assert lookup.adapter_type == "generic"
        assert lookup.matched_domain is None
        assert lookup.search_url_pattern is None

    @pytest.mark.asyncio
    async def test_search_pattern_is_carried(self, registry):
        lookup = await registry.resolve("https://www.irunguns.ca")

        assert lookup.search_url_pattern == "/product.php?product_name={keyword}"

    @pytest.mark.asyncio
    async def test_legacy_and_unknown_adapter_types(self, registry):
        legacy = await registry.resolve("https://www.gunpost.ca/ads")
        unknown = await registry.resolve("https://mystery.ca/")

        assert legacy.adapter_type == "classifieds-gunpost"
        assert unknown.adapter_type == "generic"
        assert unknown.matched_domain == "mystery.ca"

    @pytest.mark.asyncio
    async def test_domain_table_is_cached(self, registry, loader):
        await registry.resolve("https://leverarms.com")
        await registry.resolve("https://hibid.com")

        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, registry, loader):
        await registry.resolve("https://leverarms.com")
        registry.invalidate()
        await registry.resolve("https://leverarms.com")

        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_table(self, registry, loader):
        await registry.resolve("https://leverarms.com")
        registry.invalidate()
        loader.fail = True

        lookup = await registry.resolve("https://leverarms.com")

        assert loader.calls == 2
        assert lookup.adapter_type == "woocommerce"

    @pytest.mark.asyncio
    async def test_registration_replaces_existing_adapter(self, registry):
        replacement = ShopifyAdapter()
        registry.register_adapter("woocommerce", replacement)

        lookup = await registry.resolve("https://leverarms.com")
        assert lookup.adapter is replacement
