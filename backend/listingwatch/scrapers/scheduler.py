"""APScheduler-based target scheduler.

One repeating job per monitored target. Ticks are bounded by a shared
semaphore, retried with exponential backoff and recorded in scrape_runs.
"""

import asyncio
import traceback
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlparse
from uuid import UUID

import structlog
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listingwatch.config import settings
from listingwatch.models.scrape_run import ScrapeRun
from listingwatch.models.target import MonitoredTarget
from listingwatch.scrapers.health_monitor import HealthMonitor, HealthRunSummary
from listingwatch.scrapers.utils.retry import job_retrying
from listingwatch.scrapers.worker import ScrapeWorker, TickReport
from listingwatch.services.target_service import TargetService

logger = structlog.get_logger(__name__)


def job_id_for(target_id: Any) -> str:
    return f"target:{target_id}"


def interval_seconds(interval_minutes: int) -> int:
    """Repeat interval; 0 minutes means the short test interval."""
    if interval_minutes <= 0:
        return settings.TEST_INTERVAL_SECONDS
    return interval_minutes * 60


def redis_connect_args(url: str) -> Dict[str, Any]:
    """RedisJobStore connection kwargs from a redis:// URL."""
    parsed = urlparse(url)
    args: Dict[str, Any] = {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "db": int(parsed.path.lstrip("/") or 0),
    }
    if parsed.password:
        args["password"] = parsed.password
    return args


def build_jobstores(kind: str) -> Dict[str, Any]:
    if kind == "redis":
        from apscheduler.jobstores.redis import RedisJobStore

        return {"default": RedisJobStore(**redis_connect_args(settings.REDIS_URL))}
    return {}


HEALTH_JOB_ID = "health:daily"


def _next_run(job: Job) -> Optional[str]:
    # Jobs added before start() have no next_run_time yet
    next_run = getattr(job, "next_run_time", None)
    return next_run.isoformat() if next_run else None


async def run_scheduled_tick(target_id: str) -> None:
    """Job entry point; a plain function so Redis-stored jobs can reference it."""
    await get_target_scheduler().run_target_tick(UUID(target_id))


async def run_scheduled_health_check() -> None:
    await get_target_scheduler().run_health_check()


class TargetScheduler:
    """Manages repeating scrape jobs for monitored targets.

    This scheduler:
    - Keeps exactly one repeating job per target (rescheduling replaces it)
    - Bounds concurrently running ticks with a shared semaphore
    - Retries failed ticks with exponential backoff
    - Records every tick to the scrape_runs table
    - Handles errors gracefully without stopping the scheduler
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        worker: Optional[ScrapeWorker] = None,
        health_monitor: Optional[HealthMonitor] = None,
        jobstore: Optional[str] = None,
        concurrency: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
    ):
        """Initialize target scheduler.

        Args:
            db_session_factory: Async session factory for database access
            worker: Tick runner (defaults to a ScrapeWorker on the same factory)
            health_monitor: Daily site checker (defaults to one on the same factory)
            jobstore: "memory" or "redis" (defaults to SCHEDULER_JOBSTORE)
            concurrency: Maximum ticks running at once
            max_attempts: Attempts per tick, including the first
            retry_base_seconds: Backoff before the first retry
        """
        self.db_session_factory = db_session_factory
        self.worker = worker or ScrapeWorker(db_session_factory)
        self.health_monitor = health_monitor or HealthMonitor(db_session_factory)
        self.scheduler = AsyncIOScheduler(
            jobstores=build_jobstores(jobstore or settings.SCHEDULER_JOBSTORE),
            timezone="UTC",
        )
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.max_attempts = max_attempts or settings.JOB_MAX_ATTEMPTS
        self.retry_base_seconds = (
            settings.JOB_RETRY_BASE_SECONDS if retry_base_seconds is None else retry_base_seconds
        )
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self.logger = logger.bind(service="target_scheduler")

    def start(self) -> None:
        """Start the scheduler.

        This does NOT automatically add jobs. Call add_target_job() or
        load_target_jobs() to register targets.
        """
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("scheduler_started", concurrency=self.concurrency)
        else:
            self.logger.warning("scheduler_already_running")

    def stop(self) -> None:
        """Stop the scheduler without interrupting in-flight ticks' awaits."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    async def load_target_jobs(self) -> int:
        """Schedule every active target.

        Returns:
            Number of jobs scheduled
        """
        self.logger.info("loading_target_jobs")

        async with self.db_session_factory() as db:
            targets = await TargetService(db).list_active_targets()

        for target in targets:
            self.add_target_job(target.id, target.interval_minutes)

        self.logger.info("target_jobs_loaded", count=len(targets))
        return len(targets)

    def add_target_job(self, target_id: Any, interval_minutes: int, run_now: bool = True) -> Job:
        """Register (or re-register) the repeating job for a target.

        Any existing job for the target is removed first so an interval
        change never leaves two registrations behind.

        Args:
            target_id: MonitoredTarget UUID
            interval_minutes: Minutes between ticks (0 = test interval)
            run_now: Fire the first tick immediately

        Returns:
            APScheduler Job instance
        """
        job_id = job_id_for(target_id)
        self.remove_target_job(target_id)

        seconds = interval_seconds(interval_minutes)
        trigger = IntervalTrigger(seconds=seconds, timezone="UTC")
        extra = {}
        if run_now:
            # Omitting next_run_time lets the trigger pick the first run; None would pause the job
            extra["next_run_time"] = datetime.now(timezone.utc)
        job = self.scheduler.add_job(
            func=run_scheduled_tick,
            trigger=trigger,
            args=[str(target_id)],
            id=job_id,
            name=f"Scrape target {target_id}",
            replace_existing=True,
            max_instances=1,  # Prevent concurrent ticks of the same target
            coalesce=True,
            **extra,
        )

        self.logger.info(
            "target_job_added",
            target_id=str(target_id),
            interval_seconds=seconds,
            next_run=_next_run(job),
        )
        return job

    def remove_target_job(self, target_id: Any) -> bool:
        """Remove a target's job. In-flight ticks finish but are not rescheduled.

        Returns:
            True if a job was removed, False if none existed
        """
        try:
            self.scheduler.remove_job(job_id_for(target_id))
        except JobLookupError:
            return False
        self.logger.info("target_job_removed", target_id=str(target_id))
        return True

    def add_health_job(self, interval_hours: Optional[int] = None) -> Job:
        """Register the repeating site health check (first run after one interval)."""
        hours = interval_hours or settings.HEALTH_CHECK_INTERVAL_HOURS
        try:
            self.scheduler.remove_job(HEALTH_JOB_ID)
        except JobLookupError:
            pass
        job = self.scheduler.add_job(
            func=run_scheduled_health_check,
            trigger=IntervalTrigger(hours=hours, timezone="UTC"),
            id=HEALTH_JOB_ID,
            name="Site health checks",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("health_job_added", interval_hours=hours, next_run=_next_run(job))
        return job

    async def run_health_check(self) -> Optional[HealthRunSummary]:
        """Run the site health checks. Never raises; a crashed run is logged."""
        try:
            return await self.health_monitor.run_health_checks()
        except Exception as e:
            self.logger.error("health_check_run_failed", error=str(e), exc_info=True)
            return None

    async def run_target_tick(self, target_id: UUID) -> Optional[TickReport]:
        """Run one tick with concurrency limit, retries and run tracking.

        Never raises: failures are logged and recorded so the scheduler
        keeps running.

        Args:
            target_id: MonitoredTarget UUID

        Returns:
            TickReport, or None if every attempt failed
        """
        async with self._semaphore:
            async with self.db_session_factory() as db:
                if await db.get(MonitoredTarget, target_id) is None:
                    self.logger.warning("target_missing", target_id=str(target_id))
                    self.remove_target_job(target_id)
                    return None

                run = ScrapeRun(
                    target_id=target_id,
                    status="running",
                    started_at=datetime.now(timezone.utc),
                )
                db.add(run)
                await db.commit()

                start_time = datetime.now(timezone.utc)
                try:
                    report = await self._run_with_retries(target_id, db, run)
                except Exception as e:
                    end_time = datetime.now(timezone.utc)
                    duration = (end_time - start_time).total_seconds()
                    run.status = "failed"
                    run.completed_at = end_time
                    run.duration_seconds = Decimal(str(round(duration, 2)))
                    run.error_message = str(e)
                    run.error_traceback = traceback.format_exc()
                    await db.commit()

                    self.logger.error(
                        "target_tick_failed",
                        target_id=str(target_id),
                        attempts=run.attempt,
                        error=str(e),
                        exc_info=True,
                    )
                    return None

                end_time = datetime.now(timezone.utc)
                duration = (end_time - start_time).total_seconds()
                run.status = "completed"
                run.outcome = report.outcome.value
                run.completed_at = end_time
                run.duration_seconds = Decimal(str(round(duration, 2)))
                run.items_found = report.items_found
                run.items_new = report.items_new
                run.items_updated = report.items_updated
                await db.commit()

        if report.outcome.unschedules:
            self.remove_target_job(target_id)

        self.logger.info(
            "target_tick_completed",
            target_id=str(target_id),
            outcome=report.outcome.value,
            new=report.items_new,
            duration_seconds=float(duration),
        )
        return report

    async def _run_with_retries(self, target_id: UUID, db: AsyncSession, run: ScrapeRun) -> TickReport:
        async for attempt in job_retrying(self.max_attempts, self.retry_base_seconds):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    run.attempt = number
                    await db.commit()
                return await self.worker.process_target(target_id)
        raise RuntimeError("retry loop exited without a result")

    def get_jobs_status(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Get status of all scheduled jobs.

        Returns:
            Dict with job information keyed by job id
        """
        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": _next_run(job),
                "trigger": str(job.trigger),
            }
        return jobs

    def is_running(self) -> bool:
        """Check if scheduler is running.

        Returns:
            True if scheduler is running
        """
        return self.scheduler.running


# Global scheduler instance, created at application startup
target_scheduler: Optional[TargetScheduler] = None


def init_target_scheduler(db_session_factory: async_sessionmaker[AsyncSession], **kwargs) -> TargetScheduler:
    global target_scheduler
    target_scheduler = TargetScheduler(db_session_factory, **kwargs)
    return target_scheduler


def get_target_scheduler() -> TargetScheduler:
    """Get the global target scheduler instance.

    Raises:
        RuntimeError: If the scheduler has not been initialized
    """
    if target_scheduler is None:
        raise RuntimeError("Target scheduler is not initialized")
    return target_scheduler
