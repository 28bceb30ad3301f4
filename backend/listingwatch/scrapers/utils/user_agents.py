"""User-Agent selection for outbound requests."""

import hashlib
from typing import List, Optional


# Desktop browsers only; a domain always sees the same one
USER_AGENTS: List[str] = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Firefox on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
]


def get_user_agent_for_domain(domain: Optional[str] = None) -> str:
    """Pick a stable user-agent for a domain.

    Sites that fingerprint visitors see one consistent browser across
    requests, redirects and challenge retries.

    Args:
        domain: Normalized domain, or None

    Returns:
        User-agent string (the first pool entry when no domain is given)
    """
    if not domain:
        return USER_AGENTS[0]
    digest = hashlib.md5(domain.encode("utf-8")).digest()
    return USER_AGENTS[digest[0] % len(USER_AGENTS)]
