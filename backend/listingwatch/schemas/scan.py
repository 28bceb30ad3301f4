"""Scan request and response schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SiteScanRequest(BaseModel):
    """Keyword scan across every enabled site."""

    keyword: str = Field(..., min_length=1, max_length=200)
    in_stock_only: bool = False
    max_price: Optional[Decimal] = Field(None, gt=0)


class ScrapedItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    url: str
    price: Optional[Decimal] = None
    in_stock: Optional[bool] = None
    thumbnail: Optional[str] = None
    post_date: Optional[str] = None
    seller: Optional[str] = None


class SiteScanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain: str
    url: str
    items: List[ScrapedItemResponse] = []
    error: Optional[str] = None
    login_required: bool = False


class TargetScanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    target_id: str
    outcome: Optional[str] = None
    items_new: int = 0
    error: Optional[str] = None


class TickResponse(BaseModel):
    """Result of a single target tick."""

    target_id: str
    outcome: str
    items_found: int = 0
    items_new: int = 0
    items_updated: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0


class SchedulerJobResponse(BaseModel):
    job_id: str
    name: Optional[str] = None
    next_run: Optional[str] = None
    trigger: Optional[str] = None


class SchedulerStatusResponse(BaseModel):
    running: bool
    jobs: List[SchedulerJobResponse] = []
    job_count: int = 0
