"""Per-domain request pacing."""

import asyncio
import time
from typing import Dict, Optional

import structlog

from listingwatch.config import settings
from listingwatch.scrapers.utils.normalizer import normalize_domain


logger = structlog.get_logger(__name__)


class DomainPacer:
    """Enforces a minimum gap between request starts to the same domain.

    One asyncio.Lock per domain serializes callers for that domain; the lock
    is held across the sleep so concurrent callers queue up instead of all
    waking at the same instant. Different domains never block each other.
    Domains are keyed without the www. prefix so www.example.com and
    example.com share a budget.
    """

    def __init__(self, min_gap_seconds: Optional[float] = None):
        """Initialize pacer.

        Args:
            min_gap_seconds: Minimum seconds between two request starts to one
                domain (defaults to DOMAIN_MIN_GAP_SECONDS)
        """
        self.min_gap_seconds = (
            settings.DOMAIN_MIN_GAP_SECONDS if min_gap_seconds is None else min_gap_seconds
        )
        self._last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, domain: str) -> asyncio.Lock:
        lock = self._locks.get(domain)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[domain] = lock
        return lock

    async def acquire(self, hostname: str) -> float:
        """Wait until a request to this host may start.

        Args:
            hostname: Host name of the URL about to be requested

        Returns:
            Seconds spent waiting
        """
        domain = normalize_domain(hostname)
        if not domain or self.min_gap_seconds <= 0:
            return 0.0

        async with self._get_lock(domain):
            waited = 0.0
            last = self._last_request.get(domain)
            if last is not None:
                elapsed = time.monotonic() - last
                if elapsed < self.min_gap_seconds:
                    waited = self.min_gap_seconds - elapsed
                    logger.debug("domain_pacing_wait", domain=domain, wait_seconds=round(waited, 3))
                    await asyncio.sleep(waited)
            self._last_request[domain] = time.monotonic()
            return waited

    def last_request_at(self, hostname: str) -> Optional[float]:
        """Monotonic timestamp of the last request start to this host."""
        return self._last_request.get(normalize_domain(hostname))


# Global pacer shared by every fetch client in the process
domain_pacer = DomainPacer()


def get_domain_pacer() -> DomainPacer:
    """Get the global domain pacer instance.

    Returns:
        DomainPacer instance
    """
    return domain_pacer
