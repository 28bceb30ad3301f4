"""HiBid auction platform adapter."""

from urllib.parse import quote

from listingwatch.scrapers.adapters.auction_generic import GenericAuctionAdapter


class HiBidAdapter(GenericAuctionAdapter):
    """HiBid catalogues (canada.hibid.com and auctioneer subdomains)."""

    name = "HiBid"
    adapter_type = "auction-hibid"

    CONTAINER_SELECTORS = [
        "[class*=lotContainer]",
        "[class*=LotTile]",
        "[class*=lot-tile]",
        "[class*=lot-item]",
        "[class*=lotItem]",
        "[class*=catalog-item]",
        "[class*=auction-item]",
        "[class*=item-card]",
    ]
    TITLE_CASCADE = [
        "[class*=lot-title], [class*=lotTitle], [class*=lot-name]",
        "h3, h4, h2",
        "[class*=title], [class*=name], [class*=description]",
    ]
    BID_SELECTOR = "[class*=current-bid], [class*=winning-bid], [class*=bid-amount], [class*=price]"

    def get_search_url(self, origin: str, keyword: str) -> str:
        return f"{origin}/search?searchPhrase={quote(keyword)}"
