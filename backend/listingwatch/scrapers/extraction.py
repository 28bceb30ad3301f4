"""Shared listing-extraction heuristics.

Pure functions over BeautifulSoup elements. Adapters combine them into
site-family specific pipelines; nothing here performs I/O.
"""

import re
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from bs4 import Tag

from listingwatch.scrapers.utils.normalizer import PriceNormalizer, resolve_url


MAX_TITLE_LENGTH = 160
TITLE_KEY_LENGTH = 60
MIN_TITLE_LENGTH = 3

# Ordered selector groups; the first group with any match wins
TITLE_CASCADE: Sequence[str] = (
    ".card-title, .product-title, .product-name, .product_name",
    "[class*=product-title], [class*=product-name], [class*=item-title]",
    "[class*=title], [class*=name], [class*=heading]",
    "h1, h2, h3, h4",
)

SPECIFIC_PRICE_SELECTORS: Sequence[str] = (
    ".price--withoutTax",  # BigCommerce current price
    ".price--main",  # BigCommerce variant
    ".current-price .price",  # BigCommerce sale price
    ".woocommerce-Price-amount",
    "[itemprop=price]",
    ".special-price .price",  # Magento sale price
)
GENERIC_PRICE_SELECTOR = "[class*=price], [class*=cost], [class*=amount], [class*=field-price]"

OUT_OF_STOCK_TERMS = ("out of stock", "sold out", "unavailable", "backordered", "discontinued")
IN_STOCK_TERMS = ("in stock", "add to cart", "buy now", "available", "order now")
CART_BUTTON_SELECTOR = "button[class*=cart], button[class*=buy], [id*=add-to-cart]"

_WHITESPACE_RE = re.compile(r"\s+")
_PRICE_ONLY_RE = re.compile(r"^\$?\d[\d,.]*$")
_LOT_PREFIX_RE = re.compile(r"^\d+[A-Za-z]?\s*-\s*")
_PLACEHOLDER_IMG_RE = re.compile(r"loading|placeholder|blank|spacer|spinner|\.svg$", re.IGNORECASE)
_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})|([A-Za-z]{3}\s+\d{1,2},?\s+\d{4})|(\d{1,2}/\d{1,2}/\d{2,4})")
_INLINE_PRICE_RE = re.compile(r"C?\$\s*[\d,]+\.\d{2}")


def clean_text(text: Optional[str], limit: Optional[int] = MAX_TITLE_LENGTH) -> str:
    """Collapse whitespace and trim; optionally cap the length."""
    collapsed = _WHITESPACE_RE.sub(" ", text or "").strip()
    return collapsed[:limit] if limit else collapsed


def element_text(element: Tag) -> str:
    return element.get_text(" ")


def contains_keyword(text: str, keyword: str) -> bool:
    return keyword.lower() in (text or "").lower()


def is_valid_title(title: str) -> bool:
    """Reject empty, very short and price-only titles."""
    return bool(title) and len(title) >= MIN_TITLE_LENGTH and not _PRICE_ONLY_RE.match(title)


def title_key(title: str) -> str:
    """Within-pass dedupe key: first 60 characters, case-folded."""
    return title.lower()[:TITLE_KEY_LENGTH]


def strip_lot_prefix(title: str) -> str:
    """Drop auction lot numbering such as "123A - "."""
    return _LOT_PREFIX_RE.sub("", title, count=1)


def select_first(element: Tag, groups: Iterable[str]) -> Optional[Tag]:
    """First element matched by the earliest selector group that matches anything."""
    for group in groups:
        found = element.select_one(group)
        if found is not None:
            return found
    return None


def extract_title(element: Tag, fallback_text: str, cascade: Sequence[str] = TITLE_CASCADE) -> str:
    """Title from the first matching cascade group, else the fallback text."""
    title_el = select_first(element, cascade)
    return clean_text(element_text(title_el) if title_el is not None else fallback_text)


def extract_link(element: Tag, base_url: str) -> str:
    """The element itself if it is a link, else its enclosing link, else its first link."""
    if element.name == "a":
        link = element
    else:
        link = element.find_parent("a") or element.select_one("a[href]")
    href = link.get("href") if link is not None else None
    return resolve_url(href, base_url)


def extract_price_from_element(element: Tag) -> Optional[Decimal]:
    """Current-price selectors, then any price-ish element, then the whole text."""
    for selector in SPECIFIC_PRICE_SELECTORS:
        price_el = element.select_one(selector)
        if price_el is not None:
            price = PriceNormalizer.extract_price(element_text(price_el))
            if price is not None:
                return price

    for price_el in element.select(GENERIC_PRICE_SELECTOR):
        price = PriceNormalizer.extract_price(element_text(price_el).strip())
        if price is not None:
            return price

    return PriceNormalizer.extract_price(element_text(element))


def extract_bid_from_element(element: Tag, bid_selector: str) -> Optional[Decimal]:
    """Auction bid from the first bid element, else from the whole lot text."""
    bid_el = element.select_one(bid_selector)
    source = bid_el if bid_el is not None else element
    return PriceNormalizer.extract_bid_price(element_text(source))


def is_in_stock(element: Tag) -> bool:
    """Out-of-stock wording wins, then in-stock wording, then a disabled buy button."""
    text = element_text(element).lower()
    if any(term in text for term in OUT_OF_STOCK_TERMS):
        return False
    if any(term in text for term in IN_STOCK_TERMS):
        return True

    button = element.select_one(CART_BUTTON_SELECTOR)
    if button is not None and (button.has_attr("disabled") or "disabled" in (button.get("class") or [])):
        return False
    return True


def extract_thumbnail(element: Tag, base_url: str) -> Optional[str]:
    """Lazy-load attributes first; placeholder and spinner sources are ignored."""
    img = element.find("img")
    if img is None:
        return None

    data_src = img.get("data-src") or img.get("data-lazy-src") or img.get("data-original") or ""
    src = img.get("src") or ""
    chosen = data_src or ("" if _PLACEHOLDER_IMG_RE.search(src) else src)
    if not chosen:
        return None
    if chosen.startswith("http"):
        return chosen
    if chosen.startswith("//"):
        return f"https:{chosen}"
    return resolve_url(chosen, base_url)


def extract_post_date(element: Tag) -> Optional[str]:
    """``time[datetime]`` first, then a date-looking string in date/time/posted elements."""
    time_el = element.select_one("time[datetime]")
    if time_el is not None:
        return time_el.get("datetime") or None

    date_el = element.select_one("[class*=date], [class*=time], [class*=posted]")
    if date_el is not None:
        match = _DATE_RE.search(element_text(date_el).strip())
        if match:
            return match.group(0)
    return None


def looks_priced(element: Tag) -> bool:
    """True when an element shows a price element or an inline "$12.34" amount."""
    if element.select_one("[class*=price]") is not None:
        return True
    return bool(_INLINE_PRICE_RE.search(element_text(element)[:500]))


def passes_filters(
    price: Optional[Decimal],
    in_stock: Optional[bool],
    in_stock_only: bool,
    max_price: Optional[Decimal],
) -> bool:
    """Apply the target's stock and price filters; unknown values pass."""
    if in_stock_only and in_stock is False:
        return False
    if max_price is not None and price is not None and price > max_price:
        return False
    return True
