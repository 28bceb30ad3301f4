"""Page classification helpers: site type and login walls."""

from typing import Dict, Optional

from bs4 import BeautifulSoup

from listingwatch.scrapers.utils.normalizer import domain_of


SITE_TYPES = ("retailer", "forum", "classifieds", "auction", "generic")

# Domains whose type is known without looking at markup
KNOWN_DOMAINS: Dict[str, str] = {
    "canadiangunnutz.com": "forum",
    "gunownersofcanada.ca": "forum",
    "gunpost.ca": "classifieds",
    "hibid.com": "auction",
    "icollector.com": "auction",
    "proxibid.com": "auction",
    "millerandmillerauctions.com": "auction",
    "gotenda.com": "retailer",
    "ellwoodepps.com": "retailer",
    "alflahertys.com": "retailer",
    "irunguns.com": "retailer",
    "theammosource.com": "retailer",
    "cabelas.ca": "retailer",
}


def detect_site_type_from_domain(url: str) -> Optional[str]:
    """Classify a URL by its domain (subdomains inherit the parent's type)."""
    domain = domain_of(url)
    if not domain:
        return None
    if domain in KNOWN_DOMAINS:
        return KNOWN_DOMAINS[domain]
    for known, site_type in KNOWN_DOMAINS.items():
        if domain.endswith(f".{known}"):
            return site_type
    return None


def _any(soup: BeautifulSoup, *selectors: str) -> bool:
    return any(soup.select_one(sel) is not None for sel in selectors)


def detect_site_type_from_html(soup: BeautifulSoup) -> str:
    """Classify a page by forum, auction, classifieds and retailer markers."""
    html = str(soup)

    # vBulletin
    if _any(soup, "#vbulletin_html", "[class*=vb_]", "[class*=threadbit]", "li[id^=thread_]") or (
        "vbulletin" in html.lower()
    ):
        return "forum"
    # XenForo
    if _any(soup, "[class*=p-body]", "[data-xf-init]", "[class*=structItem--thread]") or (
        "XenForo" in html or "xf-init" in html
    ):
        return "forum"
    # phpBB
    if _any(soup, "[class*=phpbb]", "#phpbb") or "phpBB" in html:
        return "forum"

    if _any(
        soup,
        "[class*=lot-item]",
        "[class*=lotItem]",
        "[class*=catalog-item]",
        "[class*=auction-item]",
        "[class*=current-bid]",
        "[class*=winning-bid]",
    ) or (len(soup.select("[class*=lot]")) >= 3 and _any(soup, "[class*=bid]")):
        return "auction"

    if _any(
        soup,
        "[class*=node--type-classified]",
        "[class*=gunpost-teaser]",
        "[class*=classified-ad]",
    ) or len(soup.select("[class*=classified]")) >= 2 or (
        len(soup.select("[class*=listing]")) >= 3 and _any(soup, "[class*=ad]")
    ):
        return "classifieds"

    if _any(
        soup,
        "[data-product-id]",
        "[class*=product-card]",
        "[class*=product-item]",
        "[class*=add-to-cart]",
        "[class*=shopify]",
        "[class*=woocommerce]",
    ) or "Shopify" in html or "WooCommerce" in html:
        return "retailer"

    return "generic"


def detect_site_type(url: str, soup: BeautifulSoup) -> str:
    """Domain lookup first, markup inspection second."""
    return detect_site_type_from_domain(url) or detect_site_type_from_html(soup)


def is_login_page(soup: BeautifulSoup) -> bool:
    """True when the page is a forum login wall rather than content."""
    html = str(soup).lower()
    if "vb_login_username" in html or "do=login" in html:
        return True
    # XenForo
    if soup.select_one("form[action*=login]") and soup.select_one("input[name=login]"):
        return True
    has_login_form = any(
        "login" in (form.get("action") or "") or "signin" in (form.get("action") or "")
        for form in soup.find_all("form")
    )
    return has_login_form and soup.select_one("input[type=password]") is not None
