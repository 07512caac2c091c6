"""
Robots Policy Evaluator.

Implements the minimal robots.txt subset the scanner honours:
- only groups addressed to `User-agent: *`
- plain prefix Allow/Disallow rules (no `*` or `$` wildcards)
- longest match wins, ties go to Allow, empty Disallow allows everything

Fetch failures fail open (no enforceable policy), an explicit Disallow match
fails closed and stops the scan.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx
import structlog

from findable.core.config import get_settings
from findable.engines.base import NetworkProbe, ResolvedTarget, RobotsDecision
from findable.engines.crawler.engine import URLNormalizer

logger = structlog.get_logger(__name__)
settings = get_settings()

ROBOTS_MAX_BYTES = 512 * 1024


@dataclass
class RobotsRules:
    """Allow/Disallow prefixes collected from `User-agent: *` groups, in declaration order."""
    allow: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> RobotsRules:
        rules = cls()
        group_agents: list[str] = []
        in_rules = False  # A rule line closes the run of User-agent lines

        for raw_line in text.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue

            key, value = line.split(":", 1)
            key = key.strip().lower()
            value = value.strip()

            if key == "user-agent":
                if in_rules:
                    group_agents = []
                    in_rules = False
                group_agents.append(value.lower())
                continue

            if key not in ("allow", "disallow"):
                continue

            in_rules = True
            if "*" not in group_agents:
                continue
            if key == "allow":
                rules.allow.append(value)
            else:
                rules.disallow.append(value)

        return rules

    @staticmethod
    def _longest_match(prefixes: list[str], path: str) -> str | None:
        best: str | None = None
        for prefix in prefixes:
            if path.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        return best

    def is_allowed(self, path: str) -> tuple[bool, str | None]:
        """Return (allowed, reason). Reason names the winning Disallow rule when blocked."""
        allow = self._longest_match(self.allow, path)
        disallow = self._longest_match(self.disallow, path)

        if disallow is None:
            return True, None
        if disallow == "":
            return True, None
        if allow is not None and len(allow) >= len(disallow):
            return True, None
        return False, f"Disallow: {disallow}"


class RobotsEvaluator(NetworkProbe):
    """Fetches /robots.txt for an origin and decides whether a path may be probed."""

    ENGINE_NAME = "robots"

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None):
        super().__init__(client, timeout if timeout is not None else settings.SCANNER_ROBOTS_TIMEOUT)

    async def run(self, target: ResolvedTarget) -> RobotsDecision:
        return await self.evaluate(target.origin, URLNormalizer.robots_path(target.url))

    async def evaluate(self, origin: str, path: str) -> RobotsDecision:
        robots_url = f"{origin.rstrip('/')}/robots.txt"
        try:
            async with asyncio.timeout(self.timeout):
                async with self.client.stream("GET", robots_url, timeout=self.timeout) as response:
                    if not response.is_success:
                        return RobotsDecision(
                            checked=False, allowed=True, reason=f"robots.txt HTTP {response.status_code}"
                        )
                    body = await self.read_capped(response, ROBOTS_MAX_BYTES)
        except (TimeoutError, httpx.HTTPError) as exc:
            self.logger.debug("Could not fetch robots.txt", url=robots_url, error=str(exc) or exc.__class__.__name__)
            return RobotsDecision(checked=False, allowed=True, reason="robots.txt unreachable")

        allowed, reason = RobotsRules.parse(body.decode("utf-8", errors="replace")).is_allowed(path)
        return RobotsDecision(checked=True, allowed=allowed, reason=reason)
