"""Scraper utilities for pacing, user agents, retries and normalization."""

from .rate_limiter import DomainPacer, get_domain_pacer
from .user_agents import USER_AGENTS, get_user_agent_for_domain
from .normalizer import (
    PriceNormalizer,
    dedupe_key,
    domain_of,
    is_bare_domain,
    normalize_domain,
    normalize_url,
    origin_of,
    resolve_url,
)
from .retry import fetch_retrying, http_retry, job_retrying
from .html import detect_site_type, detect_site_type_from_html, is_login_page


__all__ = [
    # Pacing
    "DomainPacer",
    "get_domain_pacer",
    # User agents
    "USER_AGENTS",
    "get_user_agent_for_domain",
    # Normalization
    "PriceNormalizer",
    "dedupe_key",
    "domain_of",
    "is_bare_domain",
    "normalize_domain",
    "normalize_url",
    "origin_of",
    "resolve_url",
    # Retry
    "fetch_retrying",
    "http_retry",
    "job_retrying",
    # Page classification
    "detect_site_type",
    "detect_site_type_from_html",
    "is_login_page",
]
