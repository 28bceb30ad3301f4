"""Adapter registry: maps URLs onto site-family adapters."""

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from listingwatch.config import settings
from listingwatch.scrapers.base import BaseAdapter
from listingwatch.scrapers.http_client import FetchClient
from listingwatch.scrapers.utils.normalizer import domain_of


logger = structlog.get_logger(__name__)

GENERIC_ADAPTER_TYPE = "generic"


@dataclass(frozen=True)
class SiteConfig:
    """The slice of a MonitoredSite row the registry needs."""

    domain: str
    adapter_type: str
    site_type: str = "generic"
    search_url_pattern: Optional[str] = None
    requires_auth: bool = False
    requires_challenge: bool = False


@dataclass
class AdapterLookup:
    """Result of resolving a URL."""

    adapter: BaseAdapter
    adapter_type: str
    search_url_pattern: Optional[str] = None
    requires_challenge: bool = False
    site_type: Optional[str] = None
    matched_domain: Optional[str] = None


SiteLoader = Callable[[], Awaitable[List[SiteConfig]]]


async def load_enabled_sites() -> List[SiteConfig]:
    """Default site loader: enabled MonitoredSite rows from the database."""
    from listingwatch.db.session import async_session_factory
    from listingwatch.services.site_config_service import SiteConfigService

    async with async_session_factory() as db:
        return await SiteConfigService(db).list_enabled_site_configs()


class AdapterRegistry:
    """Explicit adapter-type -> instance map plus a cached domain table.

    The domain table is loaded from enabled site configuration and refreshed
    at most every REGISTRY_CACHE_TTL_SECONDS. A failed refresh keeps the
    previous table so lookups keep working while the database is away.
    """

    def __init__(
        self,
        site_loader: Optional[SiteLoader] = None,
        fetch_client: Optional[FetchClient] = None,
        cache_ttl_seconds: Optional[float] = None,
    ):
        """Initialize the registry.

        Args:
            site_loader: Async callable returning enabled SiteConfigs
            fetch_client: Client injected into adapters for API calls
            cache_ttl_seconds: Domain table lifetime
        """
        self.site_loader = site_loader or load_enabled_sites
        self.fetch_client = fetch_client or FetchClient()
        self.cache_ttl_seconds = (
            settings.REGISTRY_CACHE_TTL_SECONDS if cache_ttl_seconds is None else cache_ttl_seconds
        )
        self._adapters: Dict[str, BaseAdapter] = {}
        self._sites: Dict[str, SiteConfig] = {}
        self._expires_at = 0.0

    def register_adapter(self, adapter_type: str, adapter: BaseAdapter) -> None:
        """Register an adapter instance under a type key.

        Args:
            adapter_type: Registry key (e.g., "shopify")
            adapter: Adapter instance (must inherit from BaseAdapter)
        """
        if not isinstance(adapter, BaseAdapter):
            raise ValueError(f"Adapter must inherit from BaseAdapter: {adapter!r}")

        adapter.fetch_client = self.fetch_client
        self._adapters[adapter_type] = adapter
        logger.info("adapter_registered", adapter_type=adapter_type, adapter=adapter.name)

    def get_adapter(self, adapter_type: Optional[str]) -> BaseAdapter:
        """Adapter for a type key; unknown keys get the generic adapter."""
        adapter = self._adapters.get(adapter_type or "")
        if adapter is None:
            adapter = self._adapters.get(GENERIC_ADAPTER_TYPE)
        if adapter is None:
            raise LookupError("generic adapter is not registered")
        return adapter

    def get_registered_types(self) -> List[str]:
        return list(self._adapters.keys())

    def has_adapter(self, adapter_type: str) -> bool:
        return adapter_type in self._adapters

    async def refresh(self, force: bool = False) -> None:
        """Reload the domain table if it has expired."""
        if not force and time.monotonic() < self._expires_at:
            return
        try:
            sites = await self.site_loader()
        except Exception as e:
            logger.error("registry_refresh_failed", error=str(e), stale_sites=len(self._sites))
            return

        self._sites = {site.domain.lower(): site for site in sites}
        self._expires_at = time.monotonic() + self.cache_ttl_seconds
        logger.info("registry_refreshed", sites=len(self._sites))

    def invalidate(self) -> None:
        """Force a reload on the next resolve (after sites are added or edited)."""
        self._expires_at = 0.0

    def _lookup_site(self, domain: str) -> Optional[SiteConfig]:
        site = self._sites.get(domain)
        if site is not None:
            return site

        # Parent domains, never the bare TLD: a.b.hibid.com -> b.hibid.com -> hibid.com
        labels = domain.split(".")
        for i in range(1, len(labels) - 1):
            site = self._sites.get(".".join(labels[i:]))
            if site is not None:
                return site
        return None

    async def resolve(self, url: str) -> AdapterLookup:
        """Find the adapter for a URL.

        Exact domain first, then parent domains, then the generic adapter.

        Args:
            url: Any URL on the site

        Returns:
            AdapterLookup with the adapter and the site's configuration
        """
        await self.refresh()

        domain = domain_of(url)
        site = self._lookup_site(domain) if domain else None
        if site is None:
            return AdapterLookup(
                adapter=self.get_adapter(GENERIC_ADAPTER_TYPE),
                adapter_type=GENERIC_ADAPTER_TYPE,
            )

        adapter = self.get_adapter(site.adapter_type)
        if not self.has_adapter(site.adapter_type):
            logger.warning("unknown_adapter_type", domain=site.domain, adapter_type=site.adapter_type)
        return AdapterLookup(
            adapter=adapter,
            adapter_type=adapter.adapter_type,
            search_url_pattern=site.search_url_pattern,
            requires_challenge=site.requires_challenge,
            site_type=site.site_type,
            matched_domain=site.domain,
        )


# Global registry instance
adapter_registry = AdapterRegistry()


def get_adapter_registry() -> AdapterRegistry:
    """Get the global adapter registry instance.

    Returns:
        AdapterRegistry instance
    """
    return adapter_registry
