"""Forum authentication for member-only listings.

Logs in to XenForo and vBulletin forums and returns the session cookies
as a Cookie header value for the fetch client.
"""

from typing import Dict, Optional, Tuple

import httpx
import structlog
from bs4 import BeautifulSoup

from listingwatch.config import settings
from listingwatch.core.exceptions import FetchError, LoginFailedError
from listingwatch.scrapers.http_client import FetchClient, parse_set_cookies
from listingwatch.scrapers.utils.normalizer import normalize_domain
from listingwatch.scrapers.utils.retry import http_retry
from listingwatch.scrapers.utils.user_agents import get_user_agent_for_domain


logger = structlog.get_logger(__name__)

XENFORO = "xenforo"
VBULLETIN = "vbulletin"

# domain -> (forum software, path the forum is mounted under)
KNOWN_FORUMS: Dict[str, Tuple[str, str]] = {
    "canadiangunnutz.com": (XENFORO, "/forum"),
    "gunownersofcanada.ca": (XENFORO, ""),
}

ADAPTER_FORUM_TYPES = {
    "forum-xenforo": XENFORO,
    "forum-vbulletin": VBULLETIN,
}

SESSION_COOKIES = {
    XENFORO: ("xf_session", "xf_user"),
    VBULLETIN: ("bbsessionhash", "bblastvisit"),
}


def _bare_domain(domain: str) -> str:
    domain = domain.strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return normalize_domain(domain.split("/")[0])


class ForumAuthenticator:
    """Obtains and validates forum sessions."""

    def __init__(
        self,
        fetch_client: Optional[FetchClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize authenticator.

        Args:
            fetch_client: Client for login pages and session checks
            transport: Optional httpx transport for the login POST (tests)
        """
        self.fetch_client = fetch_client or FetchClient()
        self._transport = transport
        self.logger = logger.bind(service="forum_authenticator")

    def forum_for(self, domain: str, adapter_type: Optional[str] = None) -> Tuple[str, str]:
        """(forum software, base URL) for a domain.

        Raises:
            LoginFailedError: If the forum software is unknown
        """
        bare = _bare_domain(domain)
        forum_type, path = KNOWN_FORUMS.get(bare, (ADAPTER_FORUM_TYPES.get(adapter_type or ""), ""))
        if forum_type is None:
            raise LoginFailedError(bare, "unsupported forum software")
        return forum_type, f"https://www.{bare}{path}"

    async def login(
        self,
        domain: str,
        username: str,
        password: str,
        adapter_type: Optional[str] = None,
    ) -> str:
        """Log in and return the session cookies.

        Args:
            domain: Forum domain
            username: Account username
            password: Account password (plaintext)
            adapter_type: Registry adapter type, used for unlisted forums

        Returns:
            Cookie header value ("name=value; name2=value2")

        Raises:
            LoginFailedError: If the forum is unsupported or rejects the login
        """
        bare = _bare_domain(domain)
        forum_type, base_url = self.forum_for(bare, adapter_type)
        self.logger.info("forum_login_started", domain=bare, forum=forum_type)

        if forum_type == XENFORO:
            login_page = f"{base_url}/login/"
            try:
                html = await self.fetch_client.fetch(login_page)
            except FetchError as e:
                raise LoginFailedError(bare, f"login page unreachable: {e}") from e
            token_input = BeautifulSoup(html, "html.parser").select_one("input[name=_xfToken]")
            token = token_input.get("value") if token_input is not None else None
            if not token:
                raise LoginFailedError(bare, "CSRF token not found")

            form = {"login": username, "password": password, "_xfToken": token, "remember": "1"}
            cookies = await self._post_login(bare, f"{base_url}/login/login", form, login_page)
        else:
            form = {
                "vb_login_username": username,
                "vb_login_password": password,
                "do": "login",
                "securitytoken": "guest",
                "cookieuser": "1",
            }
            cookies = await self._post_login(
                bare, f"{base_url}/login.php?do=login", form, f"{base_url}/"
            )

        if not any(name in cookies for name in SESSION_COOKIES[forum_type]):
            raise LoginFailedError(bare, "session cookie not found")

        self.logger.info("forum_login_succeeded", domain=bare, forum=forum_type)
        return cookies

    async def _post_login(self, domain: str, url: str, form: Dict[str, str], referer: str) -> str:
        try:
            response = await self._post(url, form, referer)
        except httpx.HTTPError as e:
            raise LoginFailedError(domain, f"login request failed: {e}") from e

        if not 200 <= response.status_code < 400:
            raise LoginFailedError(domain, f"HTTP {response.status_code}")

        pairs = parse_set_cookies(response)
        if not pairs:
            raise LoginFailedError(domain, "no cookies received")
        return "; ".join(pairs)

    @http_retry
    async def _post(self, url: str, form: Dict[str, str], referer: str) -> httpx.Response:
        headers = {
            "User-Agent": get_user_agent_for_domain(_bare_domain(url)),
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Referer": referer,
        }
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=settings.FETCH_TIMEOUT_SECONDS,
            follow_redirects=False,
        ) as client:
            return await client.post(url, data=form, headers=headers)

    async def validate_session(self, domain: str, cookies: str) -> bool:
        """Check stored cookies against the forum homepage.

        Logout links mean the session is live; a login form means it expired.
        Ambiguous pages count as live. Fetch failures count as expired.
        """
        url = f"https://www.{_bare_domain(domain)}"
        try:
            html = await self.fetch_client.fetch(url, cookies)
        except FetchError as e:
            self.logger.info("session_check_failed", domain=domain, error=str(e))
            return False

        soup = BeautifulSoup(html, "html.parser")
        lowered = html.lower()
        if (
            soup.select_one("a[href*=logout]") is not None
            or "log out" in lowered
            or "sign out" in lowered
            or soup.select_one("[class*=logged-in], [class*=userinfo]") is not None
        ):
            return True
        if "vb_login_username" in lowered or (
            soup.select_one("input[name=login]") is not None
            and soup.select_one("input[type=password]") is not None
        ):
            return False
        return True


# Global authenticator instance
forum_authenticator: Optional[ForumAuthenticator] = None


def get_forum_authenticator() -> ForumAuthenticator:
    global forum_authenticator
    if forum_authenticator is None:
        forum_authenticator = ForumAuthenticator()
    return forum_authenticator
