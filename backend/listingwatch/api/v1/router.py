"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from listingwatch.api.v1 import health, scan, scheduler

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(scan.router, prefix="/scan", tags=["scan"])
api_v1_router.include_router(scheduler.router, prefix="/scheduler", tags=["scheduler"])
