"""Custom exception classes for the application."""

from typing import Optional


class ListingWatchException(Exception):
    """Base exception for all ListingWatch errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class FetchError(ListingWatchException):
    """Raised by the fetch layer when a page cannot be retrieved.

    ``kind`` is one of the FetchError.* constants. Transient kinds are retried
    by the fetch client; permanent kinds fail immediately.
    """

    TIMEOUT = "timeout"
    DNS = "dns"
    CONNECTION_REFUSED = "connection_refused"
    TLS = "tls"
    CONNECTION = "connection"
    EXHAUSTED_REDIRECTS = "exhausted_redirects"
    HTTP_ERROR = "http_error"
    INVALID_URL = "invalid_url"

    def __init__(
        self,
        kind: str,
        url: str,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.url = url
        self.status_code = status_code
        detail = message or kind
        if status_code is not None:
            detail = f"HTTP {status_code}"
        super().__init__(f"Fetch failed for {url}: {detail}")

    @property
    def transient(self) -> bool:
        """True when retrying the same request may succeed."""
        if self.kind in (self.TIMEOUT, self.CONNECTION):
            return True
        if self.kind == self.HTTP_ERROR:
            return self.status_code is not None and self.status_code >= 500
        return False


class LoginFailedError(ListingWatchException):
    """Raised when a forum login attempt does not yield a session."""

    def __init__(self, domain: str, reason: str):
        self.domain = domain
        super().__init__(f"Login failed for {domain}: {reason}")
