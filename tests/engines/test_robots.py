"""
Tests for the Robots Policy Evaluator.
"""

import asyncio
import time

import httpx
import pytest

from findable.engines.crawler.robots import ROBOTS_MAX_BYTES, RobotsEvaluator, RobotsRules


# ─────────────────────────────────────────────
# Rule parsing and matching
# ─────────────────────────────────────────────

class TestRobotsRules:

    def test_empty_file_allows_everything(self):
        assert RobotsRules.parse("").is_allowed("/anything") == (True, None)

    def test_disallow_prefix_blocks(self):
        rules = RobotsRules.parse("User-agent: *\nDisallow: /admin")
        assert rules.is_allowed("/admin/users") == (False, "Disallow: /admin")
        assert rules.is_allowed("/about") == (True, None)

    def test_disallow_root_blocks_everything(self):
        rules = RobotsRules.parse("User-agent: *\nDisallow: /")
        allowed, reason = rules.is_allowed("/")
        assert allowed is False
        assert reason == "Disallow: /"

    def test_empty_disallow_allows(self):
        rules = RobotsRules.parse("User-agent: *\nDisallow:")
        assert rules.is_allowed("/") == (True, None)

    def test_longer_allow_wins(self):
        rules = RobotsRules.parse("User-agent: *\nDisallow: /a\nAllow: /a/b")
        assert rules.is_allowed("/a/b/c")[0] is True
        assert rules.is_allowed("/a/x")[0] is False

    def test_longer_disallow_wins(self):
        rules = RobotsRules.parse("User-agent: *\nAllow: /a\nDisallow: /a/private")
        assert rules.is_allowed("/a/private/x") == (False, "Disallow: /a/private")
        assert rules.is_allowed("/a/public")[0] is True

    def test_equal_length_tie_goes_to_allow(self):
        rules = RobotsRules.parse("User-agent: *\nDisallow: /page\nAllow: /page")
        assert rules.is_allowed("/page")[0] is True

    def test_ignores_groups_for_other_agents(self):
        text = "User-agent: Googlebot\nDisallow: /\n\nUser-agent: *\nDisallow: /tmp"
        rules = RobotsRules.parse(text)
        assert rules.is_allowed("/")[0] is True
        assert rules.is_allowed("/tmp/file")[0] is False

    def test_consecutive_user_agent_lines_share_a_group(self):
        text = "User-agent: Googlebot\nUser-agent: *\nDisallow: /shared"
        rules = RobotsRules.parse(text)
        assert rules.is_allowed("/shared")[0] is False

    def test_agent_after_rules_starts_new_group(self):
        text = "User-agent: *\nDisallow: /a\nUser-agent: Bingbot\nDisallow: /b"
        rules = RobotsRules.parse(text)
        assert rules.is_allowed("/a")[0] is False
        assert rules.is_allowed("/b")[0] is True

    def test_comments_and_case_are_tolerated(self):
        text = "# robots\nUSER-AGENT: *   # everyone\nDISALLOW: /secret # hidden\nsitemap: /sitemap.xml"
        rules = RobotsRules.parse(text)
        assert rules.is_allowed("/secret")[0] is False
        assert rules.disallow == ["/secret"]

    def test_matches_query_string(self):
        rules = RobotsRules.parse("User-agent: *\nDisallow: /search?q=")
        assert rules.is_allowed("/search?q=shoes")[0] is False
        assert rules.is_allowed("/search")[0] is True


# ─────────────────────────────────────────────
# Evaluator (network)
# ─────────────────────────────────────────────

class TestRobotsEvaluator:

    @pytest.mark.asyncio
    async def test_fetches_robots_from_origin(self, make_client):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, text="User-agent: *\nDisallow: /private")

        decision = await RobotsEvaluator(make_client(handler)).evaluate("https://example.com", "/")

        assert requested == ["https://example.com/robots.txt"]
        assert decision.checked is True
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_disallowed_path(self, make_client):
        client = make_client(lambda request: httpx.Response(200, text="User-agent: *\nDisallow: /"))

        decision = await RobotsEvaluator(client).evaluate("https://example.com", "/")

        assert decision.checked is True
        assert decision.allowed is False
        assert decision.reason == "Disallow: /"

    @pytest.mark.asyncio
    async def test_missing_robots_fails_open(self, make_client):
        client = make_client(lambda request: httpx.Response(404))

        decision = await RobotsEvaluator(client).evaluate("https://example.com", "/")

        assert decision.checked is False
        assert decision.allowed is True
        assert decision.reason == "robots.txt HTTP 404"

    @pytest.mark.asyncio
    async def test_server_error_fails_open(self, make_client):
        client = make_client(lambda request: httpx.Response(500))

        decision = await RobotsEvaluator(client).evaluate("https://example.com", "/")

        assert (decision.checked, decision.allowed) == (False, True)

    @pytest.mark.asyncio
    async def test_transport_error_fails_open(self, make_client):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        decision = await RobotsEvaluator(make_client(handler), timeout=0.1).evaluate("https://example.com", "/")

        assert decision.checked is False
        assert decision.allowed is True
        assert decision.reason == "robots.txt unreachable"

    @pytest.mark.asyncio
    async def test_rules_past_size_cap_are_ignored(self, make_client):
        padding = "# " + "x" * ROBOTS_MAX_BYTES + "\n"
        body = "User-agent: *\n" + padding + "Disallow: /"
        client = make_client(lambda request: httpx.Response(200, text=body))

        decision = await RobotsEvaluator(client).evaluate("https://example.com", "/")

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_trickling_robots_fails_open_within_timeout(self, make_client):
        async def trickle():
            yield b"User-agent: *\n"
            for _ in range(40):
                await asyncio.sleep(0.2)
                yield b"#"

        client = make_client(lambda request: httpx.Response(200, content=trickle()))

        start = time.perf_counter()
        decision = await RobotsEvaluator(client, timeout=0.5).evaluate("https://example.com", "/")

        assert time.perf_counter() - start < 2.0
        assert decision.checked is False
        assert decision.allowed is True
        assert decision.reason == "robots.txt unreachable"

    @pytest.mark.asyncio
    async def test_stops_reading_at_size_cap(self, make_client):
        sent = 0

        async def endless():
            nonlocal sent
            yield b"User-agent: *\nDisallow: /private\n"
            while True:
                sent += 64 * 1024
                yield b"#" * (64 * 1024)

        client = make_client(lambda request: httpx.Response(200, content=endless()))

        decision = await RobotsEvaluator(client).evaluate("https://example.com", "/private/page")

        assert decision.allowed is False
        assert sent <= ROBOTS_MAX_BYTES + 64 * 1024

    @pytest.mark.asyncio
    async def test_run_uses_target_path(self, make_client):
        from uuid import uuid4

        from findable.engines.base import ResolvedTarget

        client = make_client(lambda request: httpx.Response(200, text="User-agent: *\nDisallow: /blog"))
        target = ResolvedTarget(site_id=uuid4(), url="https://example.com/blog/post", origin="https://example.com")

        decision = await RobotsEvaluator(client).execute(target)

        assert decision.allowed is False
