"""Pydantic schemas for the ListingWatch API.

All request/response models are defined here for easy import.
"""

from listingwatch.schemas.common import ApiResponse
from listingwatch.schemas.health import HealthCheckResponse, SiteHealthResponse
from listingwatch.schemas.scan import (
    SchedulerJobResponse,
    SchedulerStatusResponse,
    ScrapedItemResponse,
    SiteScanRequest,
    SiteScanResponse,
    TargetScanResponse,
    TickResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    # Health
    "HealthCheckResponse",
    "SiteHealthResponse",
    # Scans
    "ScrapedItemResponse",
    "SiteScanRequest",
    "SiteScanResponse",
    "TargetScanResponse",
    "TickResponse",
    # Scheduler
    "SchedulerJobResponse",
    "SchedulerStatusResponse",
]
