"""Tests for the target scheduler: job bookkeeping, retries and run tracking."""

import uuid

import pytest
from sqlalchemy import select

from listingwatch.core.exceptions import FetchError
from listingwatch.models import MonitoredTarget, ScrapeRun
from listingwatch.scrapers.scheduler import (
    TargetScheduler,
    interval_seconds,
    job_id_for,
    redis_connect_args,
)
from listingwatch.scrapers.worker import TickOutcome, TickReport


class FakeWorker:
    """Plays back queued reports or exceptions, one per call."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def process_target(self, target_id):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def build_scheduler(session_factory, worker, max_attempts=3):
    return TargetScheduler(
        session_factory,
        worker=worker,
        jobstore="memory",
        concurrency=2,
        max_attempts=max_attempts,
        retry_base_seconds=0,
    )


async def add_target(session_factory) -> MonitoredTarget:
    target = MonitoredTarget(keyword="tikka", website_url="https://shop.example.com/", interval_minutes=5)
    async with session_factory() as db:
        db.add(target)
        await db.commit()
    return target


async def runs_for(session_factory, target_id):
    async with session_factory() as db:
        return list(await db.scalars(select(ScrapeRun).where(ScrapeRun.target_id == target_id)))


class TestSchedulingHelpers:
    def test_job_id(self):
        target_id = uuid.uuid4()
        assert job_id_for(target_id) == f"target:{target_id}"

    def test_interval_seconds(self):
        assert interval_seconds(0) == 10
        assert interval_seconds(5) == 300

    def test_redis_connect_args(self):
        assert redis_connect_args("redis://:pw@cache.internal:6380/2") == {
            "host": "cache.internal",
            "port": 6380,
            "db": 2,
            "password": "pw",
        }


class TestTargetJobs:
    @pytest.mark.asyncio
    async def test_rescheduling_keeps_one_job(self, session_factory):
        scheduler = build_scheduler(session_factory, FakeWorker())
        target_id = uuid.uuid4()

        scheduler.add_target_job(target_id, 5)
        scheduler.add_target_job(target_id, 0, run_now=False)

        jobs = scheduler.get_jobs_status()
        assert list(jobs) == [job_id_for(target_id)]

    @pytest.mark.asyncio
    async def test_remove_job(self, session_factory):
        scheduler = build_scheduler(session_factory, FakeWorker())
        target_id = uuid.uuid4()
        scheduler.add_target_job(target_id, 5)

        assert scheduler.remove_target_job(target_id)
        assert not scheduler.remove_target_job(target_id)
        assert scheduler.get_jobs_status() == {}

    @pytest.mark.asyncio
    async def test_load_active_targets(self, session_factory):
        target = await add_target(session_factory)
        async with session_factory() as db:
            db.add(MonitoredTarget(keyword="glock", website_url="https://x.example.com/", status="paused"))
            await db.commit()
        scheduler = build_scheduler(session_factory, FakeWorker())

        assert await scheduler.load_target_jobs() == 1
        assert list(scheduler.get_jobs_status()) == [job_id_for(target.id)]


class TestRunTargetTick:
    @pytest.mark.asyncio
    async def test_completed_tick_is_recorded(self, session_factory):
        target = await add_target(session_factory)
        report = TickReport(TickOutcome.NEW_MATCHES, items_found=3, items_new=2, items_updated=1)
        scheduler = build_scheduler(session_factory, FakeWorker(report))
        scheduler.add_target_job(target.id, 5)

        assert await scheduler.run_target_tick(target.id) is report

        [run] = await runs_for(session_factory, target.id)
        assert run.status == "completed"
        assert run.outcome == "new_matches"
        assert (run.items_found, run.items_new, run.items_updated) == (3, 2, 1)
        assert run.completed_at is not None
        assert job_id_for(target.id) in scheduler.get_jobs_status()

    @pytest.mark.asyncio
    async def test_expired_target_is_unscheduled(self, session_factory):
        target = await add_target(session_factory)
        scheduler = build_scheduler(session_factory, FakeWorker(TickReport(TickOutcome.EXPIRED)))
        scheduler.add_target_job(target.id, 5)

        await scheduler.run_target_tick(target.id)

        assert scheduler.get_jobs_status() == {}

    @pytest.mark.asyncio
    async def test_failing_tick_is_retried_then_recorded(self, session_factory):
        target = await add_target(session_factory)
        worker = FakeWorker(RuntimeError("parser exploded"))
        scheduler = build_scheduler(session_factory, worker, max_attempts=2)

        assert await scheduler.run_target_tick(target.id) is None

        assert worker.calls == 2
        [run] = await runs_for(session_factory, target.id)
        assert run.status == "failed"
        assert run.attempt == 2
        assert run.error_message == "parser exploded"
        assert "RuntimeError" in run.error_traceback

    @pytest.mark.asyncio
    async def test_retry_recovers(self, session_factory):
        target = await add_target(session_factory)
        worker = FakeWorker(
            FetchError(FetchError.TIMEOUT, "https://shop.example.com/"),
            TickReport(TickOutcome.NO_CHANGE),
        )
        scheduler = build_scheduler(session_factory, worker)

        report = await scheduler.run_target_tick(target.id)

        assert report.outcome == TickOutcome.NO_CHANGE
        [run] = await runs_for(session_factory, target.id)
        assert run.status == "completed"
        assert run.attempt == 2

    @pytest.mark.asyncio
    async def test_permanent_fetch_error_is_not_retried(self, session_factory):
        target = await add_target(session_factory)
        worker = FakeWorker(FetchError(FetchError.DNS, "https://shop.example.com/"))
        scheduler = build_scheduler(session_factory, worker)

        assert await scheduler.run_target_tick(target.id) is None
        assert worker.calls == 1

    @pytest.mark.asyncio
    async def test_missing_target_drops_its_job(self, session_factory):
        target_id = uuid.uuid4()
        worker = FakeWorker(TickReport(TickOutcome.NO_CHANGE))
        scheduler = build_scheduler(session_factory, worker)
        scheduler.add_target_job(target_id, 5)

        assert await scheduler.run_target_tick(target_id) is None
        assert worker.calls == 0
        assert scheduler.get_jobs_status() == {}
        assert await runs_for(session_factory, target_id) == []
