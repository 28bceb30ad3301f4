"""API endpoint tests over the ASGI app (lifespan not run)."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from listingwatch.api.v1.scan import get_batch_scanner, get_scrape_worker
from listingwatch.core.exceptions import FetchError
from listingwatch.db.utils import get_db
from listingwatch.main import app
from listingwatch.models import MonitoredSite, SiteHealthCheck
from listingwatch.scrapers.base import ScrapedItem, ScrapeResult
from listingwatch.scrapers.batch import UNREACHABLE_MESSAGE, BatchScanner
from listingwatch.scrapers.worker import TickOutcome, TickReport


class EchoOrchestrator:
    def __init__(self):
        self.options = []

    async def scrape(self, target_url, keyword, options=None):
        self.options.append(options)
        return ScrapeResult(
            items=[ScrapedItem(title=f"{keyword} T3x", url=f"{target_url}/t3x", price=None)],
            content_hash="0" * 16,
        )


@pytest.fixture
def worker():
    worker = MagicMock()
    worker.process_target = AsyncMock(return_value=TickReport(TickOutcome.NEW_MATCHES, items_found=2, items_new=1))
    return worker


@pytest_asyncio.fixture
async def client(session_factory, worker):
    orchestrator = EchoOrchestrator()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_batch_scanner] = lambda: BatchScanner(
        session_factory, orchestrator=orchestrator, timeout_seconds=5
    )
    app.dependency_overrides[get_scrape_worker] = lambda: worker

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.orchestrator = orchestrator
        yield ac

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["scheduler"] == "disabled"


@pytest.mark.asyncio
async def test_site_health(client, session_factory):
    async with session_factory() as db:
        checked = MonitoredSite(domain="shop.example.com", name="Shop", origin_url="https://shop.example.com")
        db.add_all([checked, MonitoredSite(domain="new.example.com", name="New", origin_url="https://new.example.com")])
        await db.flush()
        db.add(
            SiteHealthCheck(
                site_id=checked.id, is_reachable=True, can_scrape=False, error_message="No product elements"
            )
        )
        await db.commit()

    response = await client.get("/api/v1/health/sites")

    assert response.status_code == 200
    new, shop = response.json()["data"]
    assert new["domain"] == "new.example.com"
    assert new["checked_at"] is None
    assert shop["is_reachable"] is True
    assert shop["can_scrape"] is False
    assert shop["error_message"] == "No product elements"


@pytest.mark.asyncio
async def test_scan_sites(client, session_factory):
    async with session_factory() as db:
        db.add(MonitoredSite(domain="shop.example.com", name="Shop", origin_url="https://shop.example.com"))
        await db.commit()

    response = await client.post("/api/v1/scan/sites", json={"keyword": "tikka", "max_price": "1500"})

    assert response.status_code == 200
    [site] = response.json()["data"]
    assert site["domain"] == "shop.example.com"
    assert site["items"][0]["url"] == "https://shop.example.com/t3x"
    assert site["error"] is None
    [options] = client.orchestrator.options
    assert options.fast
    assert str(options.max_price) == "1500"


@pytest.mark.asyncio
async def test_scan_sites_validates_keyword(client):
    response = await client.post("/api/v1/scan/sites", json={"keyword": ""})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_scan_target(client, worker):
    target_id = uuid.uuid4()

    response = await client.post(f"/api/v1/scan/targets/{target_id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["target_id"] == str(target_id)
    assert data["outcome"] == "new_matches"
    assert data["items_new"] == 1
    worker.process_target.assert_awaited_once_with(target_id)


@pytest.mark.asyncio
async def test_scan_missing_target(client, worker):
    worker.process_target.return_value = TickReport(TickOutcome.NOT_FOUND)

    response = await client.post(f"/api/v1/scan/targets/{uuid.uuid4()}")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_scan_unreachable_target(client, worker):
    worker.process_target.side_effect = FetchError(FetchError.DNS, "https://gone.example.com")

    response = await client.post(f"/api/v1/scan/targets/{uuid.uuid4()}")

    assert response.status_code == 502
    assert response.json()["detail"] == UNREACHABLE_MESSAGE


@pytest.mark.asyncio
async def test_scheduler_jobs_when_not_started(client):
    response = await client.get("/api/v1/scheduler/jobs")

    assert response.status_code == 200
    assert response.json()["data"] == {"running": False, "jobs": [], "job_count": 0}
