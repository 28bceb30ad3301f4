"""Health check endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.db.utils import get_db
from listingwatch.schemas import ApiResponse, HealthCheckResponse, SiteHealthResponse
from listingwatch.scrapers.scheduler import get_target_scheduler
from listingwatch.services.health_check_service import HealthCheckService

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Return service health status.

    Checks connectivity to the database and whether the target scheduler
    is running. The scheduler is reported as "disabled" when it was never
    started (e.g., in the test environment).
    """
    services = {}

    # Check database connectivity
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    services["database"] = db_status

    try:
        scheduler_status = "ok" if get_target_scheduler().is_running() else "stopped"
    except RuntimeError:
        scheduler_status = "disabled"

    services["scheduler"] = scheduler_status

    overall_status = "ok" if db_status == "ok" and scheduler_status != "stopped" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        scheduler=scheduler_status,
        services=services,
    )


@router.get("/health/sites", response_model=ApiResponse[List[SiteHealthResponse]])
async def site_health(db: AsyncSession = Depends(get_db)):
    """Latest daily health check for every monitored site, by domain.

    Sites that have not been checked yet are listed with empty check fields.
    """
    rows = await HealthCheckService(db).latest_checks()
    data = []
    for site, check in rows:
        last = {}
        if check is not None:
            last = {
                "is_reachable": check.is_reachable,
                "can_scrape": check.can_scrape,
                "response_time_ms": check.response_time_ms,
                "detected_site_type": check.detected_site_type,
                "error_message": check.error_message,
                "checked_at": check.checked_at,
            }
        data.append(
            SiteHealthResponse(
                domain=site.domain,
                name=site.name,
                site_type=site.site_type,
                enabled=site.enabled,
                **last,
            )
        )
    return ApiResponse(data=data)
