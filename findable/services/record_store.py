"""
Record Store - site identities and the append-only scan history.

RecordStore is the boundary the scan pipeline depends on; SqlRecordStore is
the SQLAlchemy implementation used by the API. Writes are flushed, not
committed: the request session owns the transaction.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlsplit
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from findable.engines.base import PerformanceSample, ScanRecord, ScanTip, ScoreResult
from findable.models.models import Scan, ScanTipRecord, Site

logger = structlog.get_logger(__name__)


class SiteRef(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    account_id: UUID
    url: str


class RecordStore(ABC):

    @abstractmethod
    async def get_site(self, site_id: UUID) -> SiteRef | None:
        ...

    @abstractmethod
    async def find_site(self, account_id: UUID, url: str) -> SiteRef | None:
        ...

    @abstractmethod
    async def resolve_or_create_site(self, account_id: UUID, url: str) -> SiteRef:
        """Idempotent: the same (account_id, url) always yields the same site."""
        ...

    @abstractmethod
    async def insert_scan(
        self,
        site_id: UUID,
        metadata: dict[str, Any],
        structured_data: list[dict[str, Any]],
        performance: PerformanceSample,
        scores: ScoreResult,
        tips: Sequence[ScanTip] = (),
    ) -> ScanRecord:
        """Persist one scan. The returned record's id is the scan id."""
        ...

    @abstractmethod
    async def get_scan(self, scan_id: UUID) -> ScanRecord | None:
        ...

    @abstractmethod
    async def list_scans(self, site_id: UUID, limit: int = 20) -> list[ScanRecord]:
        """Newest first."""
        ...


def scan_to_record(scan: Scan) -> ScanRecord:
    return ScanRecord(
        id=scan.id,
        site_id=scan.site_id,
        metadata=scan.metadata_,
        schema_data=scan.schema_data,
        performance=scan.performance,
        scores=ScoreResult(
            crawlability=scan.crawlability_score,
            summarizability=scan.summarizability_score,
            findability=scan.findability_score,
        ),
        created_at=scan.created_at,
    )


class SqlRecordStore(RecordStore):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_site(self, site_id: UUID) -> SiteRef | None:
        site = await self.session.get(Site, site_id)
        return SiteRef.model_validate(site) if site else None

    async def find_site(self, account_id: UUID, url: str) -> SiteRef | None:
        result = await self.session.execute(
            select(Site).where(Site.account_id == account_id, Site.url == url)
        )
        site = result.scalar_one_or_none()
        return SiteRef.model_validate(site) if site else None

    async def resolve_or_create_site(self, account_id: UUID, url: str) -> SiteRef:
        existing = await self.find_site(account_id, url)
        if existing:
            return existing

        site = Site(account_id=account_id, url=url, name=urlsplit(url).hostname)
        try:
            async with self.session.begin_nested():
                self.session.add(site)
                await self.session.flush()
        except IntegrityError:
            # Lost a race against a concurrent request for the same URL
            winner = await self.find_site(account_id, url)
            if winner is None:
                raise
            return winner

        logger.info("Site created", site_id=str(site.id), account_id=str(account_id), url=url)
        return SiteRef.model_validate(site)

    async def insert_scan(
        self,
        site_id: UUID,
        metadata: dict[str, Any],
        structured_data: list[dict[str, Any]],
        performance: PerformanceSample,
        scores: ScoreResult,
        tips: Sequence[ScanTip] = (),
    ) -> ScanRecord:
        scan = Scan(
            site_id=site_id,
            metadata_=metadata,
            schema_data={"schemas": structured_data, "count": len(structured_data)},
            performance=performance.model_dump(mode="json"),
            crawlability_score=scores.crawlability,
            summarizability_score=scores.summarizability,
            findability_score=scores.findability,
        )
        self.session.add(scan)
        await self.session.flush()

        for position, tip in enumerate(tips):
            self.session.add(ScanTipRecord(
                scan_id=scan.id,
                rule_id=tip.rule_id,
                title=tip.title,
                description=tip.description,
                severity=tip.severity,
                position=position,
            ))
        await self.session.flush()
        await self.session.refresh(scan, attribute_names=["created_at"])

        return scan_to_record(scan)

    async def get_scan(self, scan_id: UUID) -> ScanRecord | None:
        scan = await self.session.get(Scan, scan_id)
        return scan_to_record(scan) if scan else None

    async def list_scans(self, site_id: UUID, limit: int = 20) -> list[ScanRecord]:
        result = await self.session.execute(
            select(Scan)
            .where(Scan.site_id == site_id)
            .order_by(Scan.created_at.desc())
            .limit(limit)
        )
        return [scan_to_record(scan) for scan in result.scalars().all()]
