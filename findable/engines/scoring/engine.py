"""
Scoring Engine - Reduces extracted signals to three deterministic 0-100 scores.

Scoring Model:
- Crawlability:     base + bonuses for robots access, sitemap, canonical, description
- Summarizability:  banded on the length of visible prose
- Findability:      mean of the two above plus Open Graph bonuses

All point values live in this module so the policy can be audited in one place.
Every function is pure and total: no I/O, no state.
"""

from __future__ import annotations

from collections.abc import Mapping

from findable.engines.base import MetadataBag, RobotsDecision, ScoreResult, SitemapResult

SCORE_MIN = 0
SCORE_MAX = 100

# ─────────────────────────────────────────────
# Crawlability
# ─────────────────────────────────────────────

CRAWL_BASE = 50
CRAWL_ROBOTS_ALLOWED_BONUS = 15   # Also granted when robots.txt was unavailable (fail-open)
CRAWL_SITEMAP_BONUS = 10
CRAWL_CANONICAL_BONUS = 10
CRAWL_DESCRIPTION_BONUS = 15

# ─────────────────────────────────────────────
# Summarizability: (exclusive upper bound of visible text length, score)
# ─────────────────────────────────────────────

SUMMARY_BANDS: tuple[tuple[int, int], ...] = (
    (200, 30),
    (800, 60),
    (2000, 80),
)
SUMMARY_TOP_SCORE = 90

# ─────────────────────────────────────────────
# Findability
# ─────────────────────────────────────────────

FIND_OG_TITLE_BONUS = 5
FIND_OG_DESCRIPTION_BONUS = 5


def clamp(value: int, low: int = SCORE_MIN, high: int = SCORE_MAX) -> int:
    return max(low, min(high, value))


def crawlability(
    robots_allowed: bool,
    has_sitemap: bool,
    has_canonical: bool,
    has_description: bool,
) -> int:
    score = CRAWL_BASE
    if robots_allowed:
        score += CRAWL_ROBOTS_ALLOWED_BONUS
    if has_sitemap:
        score += CRAWL_SITEMAP_BONUS
    if has_canonical:
        score += CRAWL_CANONICAL_BONUS
    if has_description:
        score += CRAWL_DESCRIPTION_BONUS
    return clamp(score)


def summarizability(text_length: int) -> int:
    """Coarse proxy for whether there is enough extractable prose to summarize."""
    for upper_bound, score in SUMMARY_BANDS:
        if text_length < upper_bound:
            return score
    return SUMMARY_TOP_SCORE


def findability(crawl_score: int, summary_score: int, open_graph: Mapping[str, str]) -> int:
    # Half-up rounding of the mean; both inputs are non-negative ints
    score = (crawl_score + summary_score + 1) // 2
    if open_graph.get("og:title"):
        score += FIND_OG_TITLE_BONUS
    if open_graph.get("og:description"):
        score += FIND_OG_DESCRIPTION_BONUS
    return clamp(score)


def score_scan(
    robots: RobotsDecision,
    sitemap: SitemapResult,
    metadata: MetadataBag,
    text_length: int,
) -> ScoreResult:
    """Compute all three scores for one scan."""
    crawl = crawlability(
        robots_allowed=robots.allowed,
        has_sitemap=sitemap.exists,
        has_canonical=bool(metadata.canonical),
        has_description=bool(metadata.description),
    )
    summary = summarizability(text_length)
    return ScoreResult(
        crawlability=crawl,
        summarizability=summary,
        findability=findability(crawl, summary, metadata.open_graph),
    )
