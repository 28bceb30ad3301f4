"""Health check schemas."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str
    database: str
    scheduler: Optional[str] = None
    services: Dict[str, str] = {}


class SiteHealthResponse(BaseModel):
    """Latest health check of one monitored site."""

    domain: str
    name: str
    site_type: str
    enabled: bool
    is_reachable: Optional[bool] = None
    can_scrape: Optional[bool] = None
    response_time_ms: Optional[int] = None
    detected_site_type: Optional[str] = None
    error_message: Optional[str] = None
    checked_at: Optional[datetime] = None
