"""Scheduler API endpoints."""

from fastapi import APIRouter

from listingwatch.schemas import ApiResponse, SchedulerJobResponse, SchedulerStatusResponse
from listingwatch.scrapers.scheduler import get_target_scheduler

router = APIRouter()


@router.get("/jobs", response_model=ApiResponse[SchedulerStatusResponse])
async def list_jobs():
    """List the scheduled target jobs and their next run times."""
    try:
        scheduler = get_target_scheduler()
    except RuntimeError:
        return ApiResponse(data=SchedulerStatusResponse(running=False))

    jobs = [
        SchedulerJobResponse(job_id=job_id, **info)
        for job_id, info in scheduler.get_jobs_status().items()
    ]
    return ApiResponse(
        data=SchedulerStatusResponse(running=scheduler.is_running(), jobs=jobs, job_count=len(jobs))
    )
