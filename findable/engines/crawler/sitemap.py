"""
Sitemap Prober - best-effort existence check of the well-known sitemap locations.

Never raises for network reasons: every failure counts as "no sitemap here".
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from findable.core.config import get_settings
from findable.engines.base import NetworkProbe, ResolvedTarget, SitemapResult

logger = structlog.get_logger(__name__)
settings = get_settings()


class SitemapProber(NetworkProbe):

    ENGINE_NAME = "sitemap"

    CANDIDATE_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemaps.xml")

    # HEAD answers that say nothing about the resource itself
    AMBIGUOUS_HEAD_STATUSES = {403, 405, 501}

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None):
        super().__init__(client, timeout if timeout is not None else settings.SCANNER_SITEMAP_TIMEOUT)

    async def run(self, target: ResolvedTarget) -> SitemapResult:
        return await self.probe(target.origin)

    async def probe(self, origin: str) -> SitemapResult:
        base = origin.rstrip("/")
        for path in self.CANDIDATE_PATHS:
            url = f"{base}{path}"
            if await self._exists(url):
                self.logger.info("Sitemap found", url=url)
                return SitemapResult(exists=True, url=url)
        return SitemapResult(exists=False)

    async def _exists(self, url: str) -> bool:
        try:
            async with asyncio.timeout(self.timeout):
                response = await self.client.head(url, timeout=self.timeout)
                if response.is_success:
                    return True
                if response.status_code not in self.AMBIGUOUS_HEAD_STATUSES:
                    return False

                # Streamed so the sitemap body itself is never downloaded
                async with self.client.stream("GET", url, timeout=self.timeout) as get_response:
                    return get_response.is_success

        except (TimeoutError, httpx.HTTPError) as e:
            self.logger.debug("Sitemap check failed", url=url, error=str(e) or e.__class__.__name__)
            return False
