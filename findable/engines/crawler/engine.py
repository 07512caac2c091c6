"""
Crawler Engine - URL canonicalization and the single timed page fetch.

Architecture:
- URLNormalizer turns free-form input into an absolute http(s) URL and
  refuses hosts that point back into private infrastructure
- PageFetcher performs the one GET a scan is allowed, streams the body up to a
  byte cap and records a PerformanceSample
- No JavaScript execution, no link following
"""

from __future__ import annotations

import asyncio
import ipaddress
import re
import time
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog

from findable.core.config import get_settings
from findable.core.exceptions import FetchFailed, InvalidURL
from findable.engines.base import FetchedPage, NetworkProbe, PerformanceSample, ResolvedTarget

logger = structlog.get_logger(__name__)
settings = get_settings()


# ─────────────────────────────────────────────
# URL Utilities
# ─────────────────────────────────────────────

class URLNormalizer:
    """Canonicalizes scan targets and guards against SSRF."""

    ALLOWED_SCHEMES = ("http", "https")
    BLOCKED_HOSTS = {
        "localhost",
        "metadata.google.internal",
        "169.254.169.254",  # AWS metadata service
        "metadata.packet.net",
        "metadata.digitalocean.com",
    }
    BLOCKED_HOST_SUFFIXES = (".localhost", ".local", ".internal")

    _SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")

    @classmethod
    def normalize(cls, raw: str | None, allow_private: bool | None = None) -> str:
        """
        Normalize user input into an absolute URL.
        Raises InvalidURL when the input cannot be parsed or targets a blocked host.
        """
        if raw is None or not raw.strip():
            raise InvalidURL("URL cannot be empty")

        candidate = raw.strip()
        if any(ch.isspace() for ch in candidate):
            raise InvalidURL("Invalid URL format", details={"url": raw})

        if not cls._SCHEME_RE.match(candidate):
            candidate = f"https://{candidate.lstrip('/')}"

        try:
            parsed = urlsplit(candidate)
            host = parsed.hostname
            port = parsed.port  # Raises ValueError on a non-numeric or out-of-range port
        except ValueError as exc:
            raise InvalidURL("Invalid URL format", details={"url": raw}) from exc

        scheme = parsed.scheme.lower()
        if scheme not in cls.ALLOWED_SCHEMES:
            raise InvalidURL("Only HTTP and HTTPS protocols are allowed", details={"scheme": scheme})
        if not host:
            raise InvalidURL("Invalid URL format: missing domain", details={"url": raw})

        if allow_private is None:
            allow_private = settings.SCANNER_ALLOW_PRIVATE_HOSTS
        if not allow_private:
            cls._guard_host(host)

        netloc = f"[{host}]" if ":" in host else host
        if port is not None:
            netloc = f"{netloc}:{port}"

        return urlunsplit((scheme, netloc, parsed.path, parsed.query, ""))

    @classmethod
    def _guard_host(cls, host: str) -> None:
        if host in cls.BLOCKED_HOSTS or host.endswith(cls.BLOCKED_HOST_SUFFIXES):
            raise InvalidURL("This domain is not allowed", details={"host": host})

        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return  # Hostname, left to DNS

        if (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_multicast
            or ip.is_reserved
            or ip.is_unspecified
        ):
            raise InvalidURL("Private IP addresses are not allowed", details={"host": host})

    @staticmethod
    def origin(url: str) -> str:
        """scheme://host[:port] of an already-normalized URL."""
        parsed = urlsplit(url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @staticmethod
    def robots_path(url: str) -> str:
        """Path (plus query) that robots rules are matched against."""
        parsed = urlsplit(url)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        return path


# ─────────────────────────────────────────────
# Page Fetcher
# ─────────────────────────────────────────────

class PageFetcher(NetworkProbe):
    """
    Fetches the scanned page over plain HTTP.

    Transport faults and non-2xx answers raise FetchFailed; the caller decides
    whether to retry. The body is streamed and truncated at max_bytes.
    """

    ENGINE_NAME = "page_fetch"

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ):
        super().__init__(client, timeout if timeout is not None else settings.SCANNER_PAGE_TIMEOUT)
        self.max_bytes = max_bytes if max_bytes is not None else settings.SCANNER_MAX_PAGE_BYTES

    async def run(self, target: ResolvedTarget) -> FetchedPage:
        return await self.fetch(target.url)

    async def fetch(self, url: str) -> FetchedPage:
        start = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout):
                async with self.client.stream("GET", url, timeout=self.timeout) as response:
                    body = await self.read_capped(response, self.max_bytes)
                    status = response.status_code
                    encoding = response.encoding or "utf-8"
                    final_url = str(response.url)
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise FetchFailed(
                "Timed out fetching webpage",
                details={"url": url, "timeout_s": self.timeout},
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchFailed(
                details={"url": url, "reason": str(exc) or exc.__class__.__name__},
            ) from exc

        load_time_ms = self.elapsed_ms(start)

        if not 200 <= status < 300:
            raise FetchFailed(
                f"Failed to fetch webpage: HTTP {status}",
                details={"url": url, "http_status": status},
            )

        return FetchedPage(
            url=final_url,
            html=self._decode(body, encoding),
            performance=PerformanceSample(
                http_status=status,
                load_time_ms=load_time_ms,
                content_length=len(body),
            ),
        )

    @staticmethod
    def _decode(body: bytes, encoding: str) -> str:
        try:
            return body.decode(encoding, errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")
