"""Register all site-family adapters with the registry.

This module should be imported during application startup to register
all available adapters with the adapter registry.
"""

from typing import Optional

import structlog

from listingwatch.scrapers.registry import AdapterRegistry, get_adapter_registry
from listingwatch.scrapers.adapters import (
    # Storefronts
    ShopifyAdapter,
    WooCommerceAdapter,
    GenericRetailAdapter,
    # Forums and classifieds
    XenForoAdapter,
    VBulletinAdapter,
    ClassifiedsAdapter,
    # Auctions
    ICollectorAdapter,
    HiBidAdapter,
    GenericAuctionAdapter,
    # Fallback
    GenericAdapter,
)

logger = structlog.get_logger(__name__)

ADAPTER_CLASSES = [
    ShopifyAdapter,
    WooCommerceAdapter,
    GenericRetailAdapter,
    XenForoAdapter,
    VBulletinAdapter,
    ClassifiedsAdapter,
    ICollectorAdapter,
    HiBidAdapter,
    GenericAuctionAdapter,
    GenericAdapter,
]


def register_all_adapters(registry: Optional[AdapterRegistry] = None) -> AdapterRegistry:
    """Register all available adapters.

    Args:
        registry: Registry to populate (defaults to the global one)

    Returns:
        The populated registry
    """
    registry = registry or get_adapter_registry()

    for adapter_class in ADAPTER_CLASSES:
        try:
            registry.register_adapter(adapter_class.adapter_type, adapter_class())
        except Exception as e:
            logger.error(
                "adapter_registration_failed",
                adapter_type=adapter_class.adapter_type,
                error=str(e),
                exc_info=True,
            )

    # Older site rows use the bare family name
    registry.register_adapter("classifieds", registry.get_adapter("classifieds-gunpost"))

    logger.info(
        "all_adapters_registered",
        count=len(registry.get_registered_types()),
        adapter_types=registry.get_registered_types(),
    )
    return registry
