"""
Scan API Routes

No business logic lives here.
Routes validate input, call the scan pipeline or record store, return responses.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from findable.api.deps import CurrentAccount, Pipeline, Store, enforce_scan_rate_limit
from findable.core.exceptions import Forbidden, ScanNotFound, SiteNotFound
from findable.engines.base import RobotsDecision, ScanRecord, ScanTip, SitemapResult
from findable.services.scan_service import ScanRequest

logger = structlog.get_logger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CreateScanRequest(BaseModel):
    site_id: UUID | None = None
    url: str | None = None


class ScanResponse(BaseModel):
    scan: ScanRecord
    url: str
    metadata: dict[str, Any]
    performance: dict[str, Any]
    robots: RobotsDecision
    sitemap: SitemapResult
    tips: list[ScanTip]


class ScanListResponse(BaseModel):
    site_id: UUID
    items: list[ScanRecord]
    total: int


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "/scans",
    response_model=ScanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Scan a site",
    description="Runs one discoverability scan synchronously and returns the persisted record.",
    dependencies=[Depends(enforce_scan_rate_limit)],
)
async def create_scan(
    body: CreateScanRequest,
    account: CurrentAccount,
    pipeline: Pipeline,
) -> ScanResponse:
    outcome = await pipeline.run(
        ScanRequest(account_id=account.id, site_id=body.site_id, url=body.url)
    )
    return ScanResponse(
        scan=outcome.record,
        url=outcome.target.url,
        metadata=outcome.record.metadata,
        performance=outcome.record.performance,
        robots=outcome.robots,
        sitemap=outcome.sitemap,
        tips=outcome.tips,
    )


@router.get("/scans/{scan_id}", response_model=ScanRecord)
async def get_scan(scan_id: UUID, account: CurrentAccount, store: Store) -> ScanRecord:
    record = await store.get_scan(scan_id)
    if record is None:
        raise ScanNotFound(details={"scan_id": str(scan_id)})

    site = await store.get_site(record.site_id)
    if site is None or site.account_id != account.id:
        # Do not reveal scans owned by other accounts
        raise ScanNotFound(details={"scan_id": str(scan_id)})
    return record


@router.get("/sites/{site_id}/scans", response_model=ScanListResponse)
async def list_site_scans(
    site_id: UUID,
    account: CurrentAccount,
    store: Store,
    limit: int = Query(20, ge=1, le=100),
) -> ScanListResponse:
    site = await store.get_site(site_id)
    if site is None:
        raise SiteNotFound(details={"site_id": str(site_id)})
    if site.account_id != account.id:
        raise Forbidden(details={"site_id": str(site_id)})

    items = await store.list_scans(site_id, limit=limit)
    return ScanListResponse(site_id=site_id, items=items, total=len(items))
