"""Anti-bot-aware page fetching.

FetchClient wraps httpx with the behaviour uncooperative sites need:
stable per-domain user agents, per-domain pacing, manually followed
redirects (so a challenge served mid-chain is caught), challenge solving,
Set-Cookie carry-over across hops and retries for transient failures.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx
import structlog

from listingwatch.config import settings
from listingwatch.core.exceptions import FetchError
from listingwatch.scrapers.challenge import (
    ChallengeCookieCache,
    get_challenge_cookie_cache,
    is_challenge_page,
    solve_challenge,
)
from listingwatch.scrapers.utils.normalizer import normalize_domain
from listingwatch.scrapers.utils.rate_limiter import DomainPacer, get_domain_pacer
from listingwatch.scrapers.utils.retry import fetch_retrying
from listingwatch.scrapers.utils.user_agents import get_user_agent_for_domain


logger = structlog.get_logger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
LAST_RESORT_MAX_REDIRECTS = 5

_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "no address associated", "temporary failure in name resolution")
_REFUSED_MARKERS = ("connection refused", "errno 111", "errno 61")
_TLS_MARKERS = ("ssl", "certificate", "tls")


def _hostname(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def classify_transport_error(exc: httpx.HTTPError, url: str) -> FetchError:
    """Map an httpx transport exception onto a FetchError kind."""
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if isinstance(exc, httpx.TimeoutException):
        kind = FetchError.TIMEOUT
    elif isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        kind = FetchError.INVALID_URL
    elif isinstance(exc, httpx.TooManyRedirects):
        kind = FetchError.EXHAUSTED_REDIRECTS
    elif isinstance(exc, httpx.ConnectError) and any(m in lowered for m in _DNS_MARKERS):
        kind = FetchError.DNS
    elif isinstance(exc, httpx.ConnectError) and any(m in lowered for m in _REFUSED_MARKERS):
        kind = FetchError.CONNECTION_REFUSED
    elif isinstance(exc, httpx.ConnectError) and any(m in lowered for m in _TLS_MARKERS):
        kind = FetchError.TLS
    else:
        kind = FetchError.CONNECTION
    return FetchError(kind, url, message)


def parse_set_cookies(response: httpx.Response) -> List[str]:
    """``name=value`` pairs from every Set-Cookie header of a response."""
    pairs = []
    for raw in response.headers.get_list("set-cookie"):
        pair = raw.split(";", 1)[0].strip()
        if "=" in pair:
            pairs.append(pair)
    return pairs


class FetchClient:
    """Fetches HTML pages the way a patient, consistent browser would.

    The pacer and challenge cache are process-wide by default so every
    client in the process shares one per-domain budget and one set of solved
    challenge cookies. Tests inject their own along with an httpx transport.
    """

    def __init__(
        self,
        pacer: Optional[DomainPacer] = None,
        challenge_cache: Optional[ChallengeCookieCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        max_redirects: Optional[int] = None,
    ):
        """Initialize fetch client.

        Args:
            pacer: Per-domain pacer (defaults to the global one)
            challenge_cache: Solved challenge cookie cache (defaults to the global one)
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
            timeout: Per-request timeout in seconds
            max_retries: Total attempts for transient failures
            retry_base_seconds: Backoff before the second attempt
            max_redirects: Manually followed hops before the last-resort fetch
        """
        self.pacer = pacer or get_domain_pacer()
        self.challenge_cache = challenge_cache or get_challenge_cookie_cache()
        self._transport = transport
        self.timeout = timeout or settings.FETCH_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.FETCH_MAX_RETRIES
        self.retry_base_seconds = (
            settings.FETCH_RETRY_BASE_SECONDS if retry_base_seconds is None else retry_base_seconds
        )
        self.max_redirects = max_redirects or settings.FETCH_MAX_REDIRECTS

    def _client(self, follow_redirects: bool = False, max_redirects: int = 20) -> httpx.AsyncClient:
        # Created per call to avoid lifecycle issues across event loops
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout,
            follow_redirects=follow_redirects,
            max_redirects=max_redirects,
        )

    @staticmethod
    def build_headers(url: str) -> Dict[str, str]:
        """Browser-like request headers with the domain's user agent."""
        domain = normalize_domain(_hostname(url)) or None
        return {
            "User-Agent": get_user_agent_for_domain(domain),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-CA,en;q=0.9,fr-CA;q=0.8",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Upgrade-Insecure-Requests": "1",
        }

    async def fetch(self, url: str, cookies: Optional[str] = None) -> str:
        """Fetch a page body.

        Args:
            url: Absolute URL
            cookies: Optional caller Cookie header (e.g., a forum session)

        Returns:
            Response body. An unsolvable challenge page is returned as-is.

        Raises:
            FetchError: After retries for transient failures, immediately for
                permanent ones (DNS, refused, TLS, 4xx, redirect loops)
        """
        base_headers = self.build_headers(url)
        async for attempt in fetch_retrying(self.max_retries, self.retry_base_seconds):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info("fetch_retry", url=url, attempt=number, max_attempts=self.max_retries)
                return await self._fetch_with_redirects(url, cookies, base_headers)
        raise FetchError(FetchError.CONNECTION, url, "retries exhausted")

    async def _fetch_with_redirects(
        self,
        url: str,
        cookies: Optional[str],
        base_headers: Dict[str, str],
    ) -> str:
        current_url = url
        collected: Dict[str, str] = {}

        async with self._client() as client:
            for _ in range(self.max_redirects):
                hostname = _hostname(current_url)
                if hostname:
                    await self.pacer.acquire(hostname)

                headers = dict(base_headers)
                cookie_parts = []
                if cookies:
                    cookie_parts.append(cookies)
                challenge_cookie = self.challenge_cache.get(hostname) if hostname else None
                if challenge_cookie:
                    cookie_parts.append(challenge_cookie)
                if collected:
                    cookie_parts.append("; ".join(collected.values()))
                if cookie_parts:
                    headers["Cookie"] = "; ".join(cookie_parts)

                try:
                    response = await client.get(current_url, headers=headers)
                except httpx.HTTPError as e:
                    raise classify_transport_error(e, current_url) from e

                for pair in parse_set_cookies(response):
                    collected[pair.split("=", 1)[0]] = pair

                body = response.text

                if is_challenge_page(body):
                    cookie = solve_challenge(body)
                    if cookie:
                        logger.info("challenge_solved", hostname=hostname)
                        if hostname:
                            self.challenge_cache.set(hostname, cookie)
                        continue
                    logger.warning("challenge_unsolved", hostname=hostname, url=current_url)
                    return body

                location = response.headers.get("location")
                if response.status_code in REDIRECT_STATUSES and location:
                    next_url = urljoin(current_url, location)
                    logger.debug(
                        "redirect_followed",
                        status=response.status_code,
                        from_url=current_url,
                        to_url=next_url,
                    )
                    current_url = next_url
                    continue

                if response.status_code >= 400:
                    raise FetchError(
                        FetchError.HTTP_ERROR, current_url, status_code=response.status_code
                    )

                return body

        logger.warning("redirect_hops_exhausted", url=current_url, hops=self.max_redirects)
        return await self._last_resort_fetch(current_url, base_headers)

    async def _last_resort_fetch(self, url: str, base_headers: Dict[str, str]) -> str:
        hostname = _hostname(url)
        if hostname:
            await self.pacer.acquire(hostname)
        async with self._client(follow_redirects=True, max_redirects=LAST_RESORT_MAX_REDIRECTS) as client:
            try:
                response = await client.get(url, headers=base_headers)
            except httpx.HTTPError as e:
                raise classify_transport_error(e, url) from e
        if response.status_code in REDIRECT_STATUSES:
            raise FetchError(FetchError.EXHAUSTED_REDIRECTS, url)
        if response.status_code >= 400:
            raise FetchError(FetchError.HTTP_ERROR, url, status_code=response.status_code)
        return response.text

    async def fetch_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET a JSON endpoint with pacing and the domain's user agent.

        Used by adapters for platform search APIs. No challenge handling:
        a challenge or non-JSON body surfaces as a FetchError so the caller
        falls back to HTML.

        Raises:
            FetchError: On transport failures, HTTP errors or invalid JSON
        """
        request_headers = self.build_headers(url)
        request_headers["Accept"] = "application/json, text/plain, */*"
        if headers:
            request_headers.update(headers)

        hostname = _hostname(url)
        if hostname:
            await self.pacer.acquire(hostname)

        async with self._client(follow_redirects=True, max_redirects=LAST_RESORT_MAX_REDIRECTS) as client:
            try:
                response = await client.get(url, params=params, headers=request_headers)
            except httpx.HTTPError as e:
                raise classify_transport_error(e, url) from e

        if response.status_code >= 400:
            raise FetchError(FetchError.HTTP_ERROR, url, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(FetchError.HTTP_ERROR, url, "response is not JSON") from e
