"""Scan API endpoints.

On-demand counterparts of the scheduled work: a keyword scan across every
enabled site, a tick for every active target, and a tick for one target.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from listingwatch.core.exceptions import FetchError
from listingwatch.db.session import async_session_factory
from listingwatch.schemas import (
    ApiResponse,
    SiteScanRequest,
    SiteScanResponse,
    TargetScanResponse,
    TickResponse,
)
from listingwatch.scrapers.base import ScrapeOptions
from listingwatch.scrapers.batch import UNREACHABLE_MESSAGE, BatchScanner
from listingwatch.scrapers.worker import ScrapeWorker, TickOutcome

router = APIRouter()


def get_batch_scanner() -> BatchScanner:
    return BatchScanner(async_session_factory)


def get_scrape_worker() -> ScrapeWorker:
    return ScrapeWorker(async_session_factory)


@router.post("/sites", response_model=ApiResponse[List[SiteScanResponse]])
async def scan_sites(
    request: SiteScanRequest,
    scanner: BatchScanner = Depends(get_batch_scanner),
):
    """Search every enabled site for a keyword.

    Each site settles independently; a site that times out or cannot be
    reached is reported with an error instead of failing the request.
    """
    options = ScrapeOptions(
        in_stock_only=request.in_stock_only,
        max_price=request.max_price,
        fast=True,
    )
    results = await scanner.scan_all_sites(request.keyword, options)
    return ApiResponse(data=[SiteScanResponse.model_validate(result) for result in results])


@router.post("/targets", response_model=ApiResponse[List[TargetScanResponse]])
async def scan_targets(scanner: BatchScanner = Depends(get_batch_scanner)):
    """Run one tick for every active target."""
    results = await scanner.scan_all_targets()
    return ApiResponse(data=[TargetScanResponse.model_validate(result) for result in results])


@router.post("/targets/{target_id}", response_model=ApiResponse[TickResponse])
async def scan_target(target_id: UUID, worker: ScrapeWorker = Depends(get_scrape_worker)):
    """Run one tick for a single target.

    Raises:
        HTTPException: 404 if the target does not exist, 502 if its site
            cannot be reached
    """
    try:
        report = await worker.process_target(target_id)
    except FetchError:
        raise HTTPException(status_code=502, detail=UNREACHABLE_MESSAGE)

    if report.outcome == TickOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"Target '{target_id}' not found")

    return ApiResponse(
        data=TickResponse(
            target_id=str(target_id),
            outcome=report.outcome.value,
            items_found=report.items_found,
            items_new=report.items_new,
            items_updated=report.items_updated,
            notifications_sent=report.notifications_sent,
            notifications_failed=report.notifications_failed,
        )
    )
