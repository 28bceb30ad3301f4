"""Tests for the daily site health monitor."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from listingwatch.core.exceptions import FetchError
from listingwatch.models import MonitoredSite, SiteHealthCheck
from listingwatch.scrapers.health_monitor import HealthMonitor, assess_structure
from listingwatch.scrapers.scheduler import HEALTH_JOB_ID, TargetScheduler
from listingwatch.services import HealthCheckService


FILLER = "Canadian outdoor supply with new and used inventory arriving every week. " * 4


def homepage(extra: str = "", text: str = FILLER) -> str:
    links = "".join(f'<a href="/section-{n}/">Section {n}</a>' for n in range(6))
    return f"<html><body><nav>{links}</nav><p>{text}</p>{extra}</body></html>"


class TestAssessStructure:
    def test_short_page(self):
        assert assess_structure("<html></html>", "retailer") == (
            False,
            "Page returned empty or very short content",
            None,
        )

    def test_storefront(self):
        can_scrape, error, detected = assess_structure(
            homepage('<div data-product-id="7">Tikka T3x</div>'), "retailer"
        )

        assert can_scrape
        assert error is None
        assert detected == "retailer"

    def test_forum_markup(self):
        can_scrape, error, detected = assess_structure(
            homepage('<div class="structItem structItem--thread">WTS Tikka</div>'), "forum"
        )

        assert can_scrape
        assert detected == "forum"

    def test_forum_login_wall_is_expected(self):
        page = homepage('<form action="/login"><input type="password" name="password"></form>')

        assert assess_structure(page, "forum")[:2] == (True, None)

    def test_forum_without_forum_markup(self):
        assert assess_structure(homepage(), "forum")[:2] == (False, "No forum structure detected")

    def test_auction_category_page(self):
        page = "<html><body><nav><a href='/c'>Categories</a></nav><p>" + FILLER + "</p></body></html>"

        assert assess_structure(page, "auction")[0]

    def test_maintenance_page(self):
        page = homepage(text="Site under maintenance. We will be back shortly. " * 6)

        assert assess_structure(page, "retailer")[:2] == (
            False,
            "Site returned access denied or maintenance page",
        )


async def add_site(session_factory, domain, site_type="retailer", enabled=True) -> MonitoredSite:
    site = MonitoredSite(
        domain=domain,
        name=domain,
        origin_url=f"https://{domain}",
        site_type=site_type,
        enabled=enabled,
    )
    async with session_factory() as db:
        db.add(site)
        await db.commit()
    return site


def build_monitor(session_factory, fetch_client, batch_size=2):
    return HealthMonitor(
        session_factory,
        fetch_client=fetch_client,
        batch_size=batch_size,
        batch_pause=0,
        stagger=(0, 0),
    )


class TestHealthMonitor:
    @pytest.mark.asyncio
    async def test_run_records_every_enabled_site(self, session_factory, stub_fetch_client):
        shop = await add_site(session_factory, "shop.example.com")
        forum = await add_site(session_factory, "forum.example.com", site_type="forum")
        down = await add_site(session_factory, "down.example.com")
        await add_site(session_factory, "retired.example.com", enabled=False)
        fetch_client = stub_fetch_client(
            pages={
                "https://shop.example.com": homepage('<div data-product-id="1">Tikka</div>'),
                "https://forum.example.com": homepage(),
                "https://down.example.com": FetchError(FetchError.DNS, "https://down.example.com"),
            }
        )

        summary = await build_monitor(session_factory, fetch_client).run_health_checks()

        assert (summary.total, summary.reachable, summary.can_scrape) == (3, 2, 1)
        assert sorted(result.domain for result in summary.failed) == ["down.example.com", "forum.example.com"]
        assert "https://retired.example.com" not in fetch_client.fetched

        async with session_factory() as db:
            checks = {check.site_id: check for check in await db.scalars(select(SiteHealthCheck))}
        assert set(checks) == {shop.id, forum.id, down.id}
        assert checks[shop.id].can_scrape
        assert checks[shop.id].response_time_ms is not None
        assert checks[forum.id].error_message == "No forum structure detected"
        assert not checks[down.id].is_reachable
        assert "dns" in checks[down.id].error_message

    @pytest.mark.asyncio
    async def test_old_checks_are_pruned(self, session_factory, stub_fetch_client):
        site = await add_site(session_factory, "shop.example.com", enabled=False)
        now = datetime.now(timezone.utc)
        async with session_factory() as db:
            checks = HealthCheckService(db)
            await checks.record_check(site.id, True, True, 120, "retailer", None, now - timedelta(days=45))
            await checks.record_check(site.id, True, True, 110, "retailer", None, now - timedelta(days=2))
            await db.commit()

        summary = await build_monitor(session_factory, stub_fetch_client()).run_health_checks()

        assert summary.total == 0
        assert summary.pruned == 1
        async with session_factory() as db:
            [kept] = list(await db.scalars(select(SiteHealthCheck)))
        assert kept.response_time_ms == 110

    @pytest.mark.asyncio
    async def test_latest_check_per_site(self, session_factory):
        checked = await add_site(session_factory, "b.example.com")
        await add_site(session_factory, "a.example.com")
        now = datetime.now(timezone.utc)
        async with session_factory() as db:
            checks = HealthCheckService(db)
            await checks.record_check(checked.id, False, False, None, None, "timeout", now - timedelta(days=1))
            await checks.record_check(checked.id, True, True, 95, "retailer", None, now)
            await db.commit()

        async with session_factory() as db:
            rows = await HealthCheckService(db).latest_checks()

        assert [site.domain for site, _ in rows] == ["a.example.com", "b.example.com"]
        assert rows[0][1] is None
        assert rows[1][1].response_time_ms == 95


class FailingMonitor:
    async def run_health_checks(self):
        raise RuntimeError("database went away")


class TestHealthJob:
    @pytest.mark.asyncio
    async def test_health_job_is_registered_once(self, session_factory, stub_fetch_client):
        scheduler = TargetScheduler(
            session_factory,
            worker=object(),
            health_monitor=build_monitor(session_factory, stub_fetch_client()),
            jobstore="memory",
        )

        scheduler.add_health_job()
        scheduler.add_health_job(interval_hours=12)

        jobs = scheduler.get_jobs_status()
        assert list(jobs) == [HEALTH_JOB_ID]
        assert "12:00:00" in jobs[HEALTH_JOB_ID]["trigger"]

    @pytest.mark.asyncio
    async def test_crashed_run_does_not_raise(self, session_factory):
        scheduler = TargetScheduler(
            session_factory, worker=object(), health_monitor=FailingMonitor(), jobstore="memory"
        )

        assert await scheduler.run_health_check() is None
