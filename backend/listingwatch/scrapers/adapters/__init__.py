"""Site-family adapter implementations.

Each adapter module implements a class that inherits from BaseAdapter and
is registered with the AdapterRegistry under its adapter_type.
"""

# Storefront platforms
from .shopify import ShopifyAdapter
from .woocommerce import WooCommerceAdapter
from .generic_retail import GenericRetailAdapter

# Forums and classifieds
from .forum_xenforo import XenForoAdapter
from .forum_vbulletin import VBulletinAdapter
from .classifieds import ClassifiedsAdapter

# Auction houses
from .auction_generic import GenericAuctionAdapter
from .auction_hibid import HiBidAdapter
from .auction_icollector import ICollectorAdapter

# Fallback
from .generic import GenericAdapter

__all__ = [
    "ShopifyAdapter",
    "WooCommerceAdapter",
    "GenericRetailAdapter",
    "XenForoAdapter",
    "VBulletinAdapter",
    "ClassifiedsAdapter",
    "GenericAuctionAdapter",
    "HiBidAdapter",
    "ICollectorAdapter",
    "GenericAdapter",
]
