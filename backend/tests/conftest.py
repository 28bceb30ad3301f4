"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point them at a throwaway database first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from listingwatch.core.exceptions import FetchError
from listingwatch.models import Base
from listingwatch.scrapers.challenge import ChallengeCookieCache
from listingwatch.scrapers.http_client import FetchClient
from listingwatch.scrapers.utils.rate_limiter import DomainPacer


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def session_factory():
    """Session factory bound to an in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# FETCHING
# ============================================================================

class StubFetchClient:
    """In-memory stand-in for FetchClient keyed by exact URL.

    Values may be a body string, a parsed JSON payload (for fetch_json) or
    an exception to raise. Unknown URLs raise a 404 FetchError.
    """

    def __init__(self, pages: Optional[Dict[str, object]] = None, json: Optional[Dict[str, object]] = None):
        self.pages = dict(pages or {})
        self.json = dict(json or {})
        self.fetched: List[str] = []
        self.cookies_seen: List[Optional[str]] = []

    async def fetch(self, url: str, cookies: Optional[str] = None) -> str:
        self.fetched.append(url)
        self.cookies_seen.append(cookies)
        return self._lookup(self.pages, url)

    async def fetch_json(self, url: str, params=None, headers=None):
        self.fetched.append(url)
        return self._lookup(self.json, url)

    @staticmethod
    def _lookup(table: Dict[str, object], url: str):
        if url not in table:
            raise FetchError(FetchError.HTTP_ERROR, url, status_code=404)
        value = table[url]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def stub_fetch_client():
    """Factory for StubFetchClient instances."""
    return StubFetchClient


@pytest.fixture
def make_fetch_client():
    """Factory for a real FetchClient over an httpx.MockTransport.

    Pacing is disabled and retries do not wait.
    """

    def _make(handler, max_retries: int = 3) -> FetchClient:
        return FetchClient(
            pacer=DomainPacer(min_gap_seconds=0),
            challenge_cache=ChallengeCookieCache(),
            transport=httpx.MockTransport(handler),
            timeout=5.0,
            max_retries=max_retries,
            retry_base_seconds=0,
            max_redirects=5,
        )

    return _make
