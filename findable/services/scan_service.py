"""
Scan Pipeline - orchestrates one discoverability scan end to end.

Resolving → RobotsCheck ∥ Sitemap → Fetching → Extracting → Scoring → Persisting

Every error raised before the robots probe is fatal and happens before any
network I/O. A robots Disallow stops the scan before the page is fetched; no
record is written and no usage is counted for a failed scan.
"""

from __future__ import annotations

import asyncio
import time
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel, model_validator

from findable.core.exceptions import (
    FetchFailed,
    Forbidden,
    MissingTarget,
    QuotaExceeded,
    RobotsBlocked,
    SiteNotFound,
)
from findable.engines.base import (
    LimitType,
    MetadataBag,
    NetworkProbe,
    PerformanceSample,
    ResolvedTarget,
    RobotsDecision,
    ScanRecord,
    ScanTip,
    ScoreResult,
    SitemapResult,
    build_http_client,
)
from findable.engines.crawler.engine import PageFetcher, URLNormalizer
from findable.engines.crawler.robots import RobotsEvaluator
from findable.engines.crawler.sitemap import SitemapProber
from findable.engines.onpage.engine import MarkupSignalExtractor
from findable.engines.prioritization.engine import generate_tips
from findable.engines.scoring.engine import score_scan
from findable.services.record_store import RecordStore
from findable.services.usage_ledger import UsageLedger, upgrade_hint

logger = structlog.get_logger(__name__)


class ScanRequest(BaseModel):
    account_id: UUID
    site_id: UUID | None = None
    url: str | None = None

    @model_validator(mode="after")
    def blank_url_is_absent(self) -> ScanRequest:
        if self.url is not None and not self.url.strip():
            self.url = None
        return self


class ScanOutcome(BaseModel):
    """Everything one successful scan produced, persisted or not."""

    record: ScanRecord
    target: ResolvedTarget
    robots: RobotsDecision
    sitemap: SitemapResult
    metadata: MetadataBag
    performance: PerformanceSample
    scores: ScoreResult
    tips: list[ScanTip]


class ScanPipeline:
    """
    Runs scans against the given record store and usage ledger.

    An injected http_client is reused and left open; otherwise each scan opens
    and closes its own client.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: UsageLedger,
        http_client: httpx.AsyncClient | None = None,
        extractor: MarkupSignalExtractor | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.http_client = http_client
        self.extractor = extractor or MarkupSignalExtractor()

    # ── Resolving ────────────────────────────

    async def resolve(self, request: ScanRequest) -> ResolvedTarget:
        has_site = request.site_id is not None
        has_url = request.url is not None
        if has_site == has_url:
            raise MissingTarget()

        if has_site:
            site = await self.store.get_site(request.site_id)
            if site is None:
                raise SiteNotFound(details={"site_id": str(request.site_id)})
            if site.account_id != request.account_id:
                raise Forbidden(details={"site_id": str(request.site_id)})
            await self._require_quota(request.account_id, LimitType.SCANS)
        else:
            url = URLNormalizer.normalize(request.url)
            site = await self.store.find_site(request.account_id, url)
            if site is None:
                await self._require_quota(request.account_id, LimitType.SITES)
            # Both quotas are checked before the site row is written
            await self._require_quota(request.account_id, LimitType.SCANS)
            if site is None:
                site = await self.store.resolve_or_create_site(request.account_id, url)

        return ResolvedTarget(site_id=site.id, url=site.url, origin=URLNormalizer.origin(site.url))

    async def _require_quota(self, account_id: UUID, limit_type: LimitType) -> None:
        if await self.ledger.check_quota(account_id, limit_type):
            return

        plan = await self.ledger.plan_for(account_id)
        logger.info("Quota denied", account_id=str(account_id), limit_type=limit_type.value, plan=plan)
        raise QuotaExceeded(
            f"You've reached your {limit_type.value} limit for the {plan} plan",
            details={
                "limit_type": limit_type.value,
                "current_plan": plan,
                "upgrade_suggestion": upgrade_hint(plan),
            },
        )

    # ── Scanning ─────────────────────────────

    async def run(self, request: ScanRequest) -> ScanOutcome:
        target = await self.resolve(request)

        if self.http_client is not None:
            return await self._scan(request.account_id, target, self.http_client)

        async with build_http_client() as client:
            return await self._scan(request.account_id, target, client)

    async def _scan(self, account_id: UUID, target: ResolvedTarget, client: httpx.AsyncClient) -> ScanOutcome:
        start = time.perf_counter()
        log = logger.bind(site_id=str(target.site_id), url=target.url)
        log.info("Scan started")

        sitemap_task = asyncio.create_task(SitemapProber(client).execute(target))
        try:
            robots: RobotsDecision = await RobotsEvaluator(client).execute(target)
            if not robots.allowed:
                log.info("Scan blocked by robots.txt", reason=robots.reason)
                raise RobotsBlocked(details={"url": target.url, "reason": robots.reason})

            try:
                page = await PageFetcher(client).execute(target)
            except FetchFailed as exc:
                log.warning("Page fetch failed", error=exc.message, details=exc.details)
                raise

            sitemap: SitemapResult = await sitemap_task
        finally:
            if not sitemap_task.done():
                sitemap_task.cancel()
            await asyncio.gather(sitemap_task, return_exceptions=True)

        # Extraction scans untrusted markup off the event loop
        metadata = await asyncio.to_thread(self.extractor.extract, page.html, page.url)
        text_length = await asyncio.to_thread(self.extractor.text_length, page.html)
        scores = score_scan(robots, sitemap, metadata, text_length)
        tips = generate_tips(metadata, robots, sitemap, page.performance)

        record = await self.store.insert_scan(
            site_id=target.site_id,
            metadata={
                **metadata.model_dump(),
                "robots_txt_checked": robots.checked,
                "robots_txt_allowed": robots.allowed,
                "sitemap_exists": sitemap.exists,
                "sitemap_url": sitemap.url,
            },
            structured_data=metadata.structured_data,
            performance=page.performance,
            scores=scores,
            tips=tips,
        )
        await self.ledger.increment_usage(account_id, LimitType.SCANS)

        log.info(
            "Scan completed",
            scan_id=str(record.id),
            crawlability=scores.crawlability,
            summarizability=scores.summarizability,
            findability=scores.findability,
            tips=len(tips),
            duration_ms=NetworkProbe.elapsed_ms(start),
        )

        return ScanOutcome(
            record=record,
            target=target,
            robots=robots,
            sitemap=sitemap,
            metadata=metadata,
            performance=page.performance,
            scores=scores,
            tips=tips,
        )
