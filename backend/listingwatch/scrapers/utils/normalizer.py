"""Price and URL normalization helpers shared by every adapter."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urljoin, urlparse, parse_qs, urlencode, urlunparse

import structlog


logger = structlog.get_logger(__name__)

# $, C$ and CAD $ followed by an amount
_CURRENCY_PRICE_RE = re.compile(r"(?:CAD\s*|C)?\$\s*([\d,]+(?:\.\d{1,2})?)")
# Plain "1299.99" style amounts; two decimals keeps model numbers out
_PLAIN_PRICE_RE = re.compile(r"([\d,]+\.\d{2})\b")
_TITLE_PRICE_RE = re.compile(r"\$\s*([\d,]+(?:\.\d{1,2})?)")
_BID_PRICE_RES = [
    re.compile(
        r"(?:Current Bid|Winning Bid|High Bid|Starting Bid|Estimate|Hammer)[:\s]*\$?\s*([\d,]+(?:\.\d{1,2})?)",
        re.IGNORECASE,
    ),
    re.compile(r"\$\s*([\d,]+(?:\.\d{1,2})?)"),
]
_ASPX_RELATIVE_RE = re.compile(r"^[a-zA-Z][\w-]*\.aspx", re.IGNORECASE)

# Common tracking parameters to remove
TRACKING_PARAMS = frozenset([
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "_pos",
    "_sid",
    "_ss",
])


class PriceNormalizer:
    """Pulls prices out of listing text.

    All helpers return a positive Decimal or None; they never raise.
    """

    MIN_CURRENCY_PRICE = Decimal("10")

    @staticmethod
    def clean_price_string(raw: str) -> Optional[Decimal]:
        """Convert a matched amount like "1,299.99" to Decimal.

        Args:
            raw: Digits with optional thousands separators and decimals

        Returns:
            Decimal value, or None if unparsable or not positive
        """
        if not raw:
            return None
        try:
            value = Decimal(raw.replace(",", ""))
        except InvalidOperation:
            return None
        return value if value > 0 else None

    @classmethod
    def extract_price(cls, text: str) -> Optional[Decimal]:
        """Extract a listing price from free text.

        Currency-marked amounts under 10 are treated as calibers or specs
        ("7.62", "$5.56") and rejected. Without a currency marker only
        two-decimal amounts count as prices.

        Args:
            text: Text containing a price (e.g., "CAD $1,299.99")

        Returns:
            Decimal price or None
        """
        if not text:
            return None
        match = _CURRENCY_PRICE_RE.search(text)
        if not match:
            plain = _PLAIN_PRICE_RE.search(text)
            return cls.clean_price_string(plain.group(1)) if plain else None
        value = cls.clean_price_string(match.group(1))
        if value is None or value < cls.MIN_CURRENCY_PRICE:
            return None
        return value

    @classmethod
    def extract_price_from_title(cls, title: str) -> Optional[Decimal]:
        """Extract an asking price from a forum thread title ("WTS Glock 19 - $800")."""
        if not title:
            return None
        match = _TITLE_PRICE_RE.search(title)
        return cls.clean_price_string(match.group(1)) if match else None

    @classmethod
    def extract_bid_price(cls, text: str) -> Optional[Decimal]:
        """Extract a bid amount from auction text ("Current Bid: $1,200")."""
        if not text:
            return None
        for pattern in _BID_PRICE_RES:
            match = pattern.search(text)
            if match:
                value = cls.clean_price_string(match.group(1))
                if value is not None:
                    return value
        return None


def normalize_domain(hostname: str) -> str:
    """Strip the www. prefix and lowercase a hostname."""
    hostname = (hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def domain_of(url: str) -> str:
    """Normalized domain of a URL, or "" when it has no host."""
    try:
        return normalize_domain(urlparse(url).hostname or "")
    except ValueError:
        return ""


def origin_of(url: str) -> str:
    """scheme://host[:port] of a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_url(href: Optional[str], base_url: str) -> str:
    """Resolve an href against the page URL.

    Empty and "#" links resolve to the page itself. Bare ``Foo.aspx?...``
    links resolve from the origin root, which is how ASP.NET auction
    catalogues link their lots.
    """
    try:
        if not href or href == "#":
            return base_url
        href = href.strip()
        if href.startswith("http"):
            return href
        if _ASPX_RELATIVE_RE.match(href):
            return f"{origin_of(base_url)}/{href}"
        return urljoin(base_url, href)
    except ValueError:
        return base_url


def is_bare_domain(url: str) -> bool:
    """True when the URL has no path beyond "/" and no query string."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if not parsed.scheme or not parsed.netloc:
        return False
    return parsed.path in ("", "/") and not parsed.query


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and the fragment.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query, keep_blank_values=True)

    # Remove tracking parameters
    filtered_params = {
        k: v for k, v in query_params.items() if k.lower() not in TRACKING_PARAMS
    }

    # Rebuild query string
    new_query = urlencode(filtered_params, doseq=True)

    # Rebuild URL
    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )


def dedupe_key(url: str) -> str:
    """Case-insensitive identity key for a listing URL."""
    return normalize_url(url).lower()
