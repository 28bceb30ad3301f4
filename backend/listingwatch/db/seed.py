"""Database seeding for monitored sites.

Populates monitored_sites with the retailers, forums, classifieds and
auction houses the adapters were built for. Safe to re-run: existing rows
are updated in place and retired domains are disabled.
Run with: python -m listingwatch.db.seed
"""

import asyncio
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.models.site import MonitoredSite


SITES: List[Dict[str, Any]] = [
    # Shopify
    {"domain": "fishingworldgc.ca", "name": "Fish World Guns", "origin_url": "https://fishingworldgc.ca", "site_type": "retailer", "adapter_type": "shopify"},
    {"domain": "jobrookoutdoors.com", "name": "Jo Brook Outdoors", "origin_url": "https://www.jobrookoutdoors.com", "site_type": "retailer", "adapter_type": "shopify"},
    # WooCommerce
    {"domain": "leverarms.com", "name": "Lever Arms", "origin_url": "https://www.leverarms.com", "site_type": "retailer", "adapter_type": "woocommerce"},
    {"domain": "corwin-arms.com", "name": "Corwin Arms", "origin_url": "https://www.corwin-arms.com", "site_type": "retailer", "adapter_type": "woocommerce"},
    {"domain": "marstar.ca", "name": "Marstar Canada", "origin_url": "https://www.marstar.ca", "site_type": "retailer", "adapter_type": "woocommerce"},
    {"domain": "canadafirstammo.ca", "name": "Canada First Ammo", "origin_url": "https://www.canadafirstammo.ca", "site_type": "retailer", "adapter_type": "woocommerce"},
    {"domain": "dlaskarms.com", "name": "Dlask Arms", "origin_url": "https://www.dlaskarms.com", "site_type": "retailer", "adapter_type": "woocommerce"},
    {"domain": "precisionoptics.net", "name": "Precision Optics", "origin_url": "https://www.precisionoptics.net", "site_type": "retailer", "adapter_type": "woocommerce", "notes": "Behind Cloudflare WAF"},
    # Other storefronts
    {"domain": "irunguns.ca", "name": "iRunGuns", "origin_url": "https://www.irunguns.ca", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/product.php?product_name={keyword}", "notes": "Custom PHP, product_detail.php URLs"},
    {"domain": "alflahertys.com", "name": "Al Flaherty's", "origin_url": "https://www.alflahertys.com", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/search.php?search_query={keyword}", "notes": "BigCommerce"},
    {"domain": "theammosource.com", "name": "The Ammo Source", "origin_url": "https://www.theammosource.com", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/search.php?search_query={keyword}", "notes": "BigCommerce"},
    {"domain": "store.prophetriver.com", "name": "Prophet River", "origin_url": "https://store.prophetriver.com", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/search.php?search_query={keyword}", "notes": "BigCommerce"},
    {"domain": "ellwoodepps.com", "name": "Ellwood Epps", "origin_url": "https://www.ellwoodepps.com", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/catalogsearch/result/?q={keyword}", "notes": "Magento"},
    {"domain": "rdsc.ca", "name": "RDSC", "origin_url": "https://www.rdsc.ca", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/catalogsearch/result/?q={keyword}", "notes": "Magento"},
    {"domain": "reliablegun.com", "name": "Reliable Gun", "origin_url": "https://www.reliablegun.com", "site_type": "retailer", "adapter_type": "generic-retail", "notes": "nopCommerce"},
    {"domain": "gotenda.com", "name": "GoTenda", "origin_url": "https://www.gotenda.com", "site_type": "retailer", "adapter_type": "generic-retail", "requires_challenge": True, "notes": "Headless storefront behind a JS cookie challenge"},
    {"domain": "cabelas.ca", "name": "Cabela's Canada", "origin_url": "https://www.cabelas.ca", "site_type": "retailer", "adapter_type": "generic-retail", "search_url_pattern": "/search?q={keyword}&lang=en_CA"},
    # Forums
    {"domain": "canadiangunnutz.com", "name": "Canadian Gun Nutz", "origin_url": "https://www.canadiangunnutz.com", "site_type": "forum", "adapter_type": "forum-xenforo", "requires_auth": True, "search_url_pattern": "/forum/search/?q={keyword}&t=post"},
    {"domain": "gunownersofcanada.ca", "name": "Gun Owners of Canada", "origin_url": "https://www.gunownersofcanada.ca", "site_type": "forum", "adapter_type": "forum-xenforo", "requires_auth": True, "search_url_pattern": "/search/?q={keyword}&t=post"},
    # Classifieds
    {"domain": "gunpost.ca", "name": "GunPost", "origin_url": "https://www.gunpost.ca", "site_type": "classifieds", "adapter_type": "classifieds-gunpost", "search_url_pattern": "/ads?key={keyword}"},
    {"domain": "townpost.ca", "name": "TownPost", "origin_url": "https://www.townpost.ca", "site_type": "classifieds", "adapter_type": "generic", "notes": "General classifieds with firearms section"},
    # Auctions
    {"domain": "icollector.com", "name": "iCollector", "origin_url": "https://www.icollector.com", "site_type": "auction", "adapter_type": "auction-icollector"},
    {"domain": "canada.hibid.com", "name": "HiBid Canada", "origin_url": "https://canada.hibid.com", "site_type": "auction", "adapter_type": "auction-hibid", "search_url_pattern": "/search?searchPhrase={keyword}"},
    {"domain": "millerandmillerauctions.com", "name": "Miller & Miller Auctions", "origin_url": "https://www.millerandmillerauctions.com", "site_type": "auction", "adapter_type": "auction-generic"},
    {"domain": "switzersauction.com", "name": "Switzer's Auction", "origin_url": "https://www.switzersauction.com", "site_type": "auction", "adapter_type": "auction-generic"},
]

# Dead or hijacked domains kept disabled if present
RETIRED_DOMAINS = [
    "bullseyelondon.com",
    "prophetsriver.com",
    "tendarmsco.com",
    "corwinarms.com",
    "triggersnbows.com",
    "herbsgunshop.com",
    "dfrankfirearms.com",
    "guns4u.ca",
    "wanstallsonline.com",
]


async def seed_sites(session: AsyncSession) -> Dict[str, int]:
    """Upsert SITES by domain and disable retired domains.

    Returns:
        Counts of created, updated and disabled rows
    """
    result = await session.execute(select(MonitoredSite))
    existing = {site.domain: site for site in result.scalars().all()}

    created = updated = 0
    for site_data in SITES:
        values = {
            "requires_auth": False,
            "requires_challenge": False,
            "search_url_pattern": None,
            "notes": None,
            **site_data,
            "enabled": True,
        }
        site = existing.get(site_data["domain"])
        if site is None:
            session.add(MonitoredSite(**values))
            created += 1
        else:
            for key, value in values.items():
                setattr(site, key, value)
            updated += 1

    disabled = await session.execute(
        update(MonitoredSite)
        .where(MonitoredSite.domain.in_(RETIRED_DOMAINS), MonitoredSite.enabled == True)
        .values(enabled=False)
    )
    await session.commit()
    return {"created": created, "updated": updated, "disabled": disabled.rowcount or 0}


async def main():
    """Run site seeding against the configured database."""
    from listingwatch.db.session import async_session_factory

    print(f"Seeding {len(SITES)} monitored sites...")
    async with async_session_factory() as session:
        counts = await seed_sites(session)
    print(f"Done. Created: {counts['created']}, Updated: {counts['updated']}, Disabled: {counts['disabled']}")


if __name__ == "__main__":
    asyncio.run(main())
