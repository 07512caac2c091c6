"""
Base class and type contracts for the scan engines.

Design principles:
- Engines are stateless: every input arrives as an argument
- Engines are independent: no engine imports another
- Network probes carry their own timeout and never share state across scans
- Pure engines (extraction, scoring, tips) are total: they never raise
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from findable.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LimitType(str, Enum):
    SITES = "sites"
    SCANS = "scans"


# ─────────────────────────────────────────────
# Core data types
# ─────────────────────────────────────────────

class ResolvedTarget(BaseModel):
    """The site a scan runs against. Immutable for the duration of one scan."""
    model_config = ConfigDict(frozen=True)

    site_id: UUID
    url: str
    origin: str


class RobotsDecision(BaseModel):
    checked: bool = False
    allowed: bool = True
    reason: str | None = None


class SitemapResult(BaseModel):
    exists: bool = False
    url: str | None = None


class MetadataBag(BaseModel):
    """Signals extracted from a page's static markup. Every field may be absent."""
    title: str | None = None
    description: str | None = None
    keywords: str | None = None
    author: str | None = None
    canonical: str | None = None
    robots_directives: list[str] = Field(default_factory=list)
    open_graph: dict[str, str] = Field(default_factory=dict)
    twitter: dict[str, str] = Field(default_factory=dict)
    structured_data: list[dict[str, Any]] = Field(default_factory=list)


class PerformanceSample(BaseModel):
    http_status: int
    load_time_ms: int
    content_length: int
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ScoreResult(BaseModel):
    crawlability: int = Field(ge=0, le=100)
    summarizability: int = Field(ge=0, le=100)
    findability: int = Field(ge=0, le=100)


class ScanTip(BaseModel):
    """An actionable recommendation attached to a scan."""
    rule_id: str
    title: str
    description: str
    severity: Severity

    model_config = ConfigDict(use_enum_values=True)


class ScanRecord(BaseModel):
    """Persisted, append-only result of one successful scan."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    site_id: UUID
    metadata: dict[str, Any]
    schema_data: dict[str, Any]
    performance: dict[str, Any]
    scores: ScoreResult
    created_at: datetime


class FetchedPage(BaseModel):
    """Raw page body plus the timing sample taken while fetching it."""
    url: str
    html: str
    performance: PerformanceSample


# ─────────────────────────────────────────────
# HTTP client
# ─────────────────────────────────────────────

def scanner_headers() -> dict[str, str]:
    return {
        "User-Agent": settings.SCANNER_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def build_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Client for one scan. Per-request timeouts are set by each probe."""
    return httpx.AsyncClient(
        headers=scanner_headers(),
        follow_redirects=True,
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        **kwargs,
    )


# ─────────────────────────────────────────────
# Base Probe
# ─────────────────────────────────────────────

class NetworkProbe(ABC):
    """
    Abstract base class for every outbound probe of a scan.

    All probes MUST:
    1. Implement run(target)
    2. Bound each request end to end with asyncio.timeout(self.timeout);
       httpx timeouts only limit the gap between reads
    3. Let asyncio.CancelledError propagate so the caller can abort the scan
    """

    ENGINE_NAME: str = "probe"

    def __init__(self, client: httpx.AsyncClient, timeout: float):
        self.client = client
        self.timeout = timeout
        self.logger = structlog.get_logger(self.__class__.__name__)

    @abstractmethod
    async def run(self, target: ResolvedTarget) -> Any:
        ...

    async def execute(self, target: ResolvedTarget) -> Any:
        """
        Wrapper around run() that adds timing and logging.
        Call this instead of run() directly.
        """
        start = time.perf_counter()
        try:
            return await self.run(target)
        finally:
            self.logger.debug(
                "Probe finished",
                probe=self.ENGINE_NAME,
                url=target.url,
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )

    async def read_capped(self, response: httpx.Response, max_bytes: int) -> bytes:
        """Stream the body, stopping once max_bytes have been read."""
        chunks: list[bytes] = []
        size = 0
        async for chunk in response.aiter_bytes():
            if size + len(chunk) > max_bytes:
                chunks.append(chunk[: max_bytes - size])
                self.logger.info(
                    "Response body truncated",
                    probe=self.ENGINE_NAME,
                    url=str(response.url),
                    max_bytes=max_bytes,
                )
                break
            chunks.append(chunk)
            size += len(chunk)
        return b"".join(chunks)

    @staticmethod
    def elapsed_ms(start: float) -> int:
        return int(round((time.perf_counter() - start) * 1000))
