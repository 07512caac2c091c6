"""
Prioritization Engine

Turns a scan's signals into actionable tips, ordered most severe first.
Tips within the same severity keep their rule declaration order, so the
output is deterministic for identical inputs.
"""

from __future__ import annotations

import structlog

from findable.engines.base import (
    MetadataBag,
    PerformanceSample,
    RobotsDecision,
    ScanTip,
    Severity,
    SitemapResult,
)

logger = structlog.get_logger(__name__)


SEVERITY_RANK = {
    Severity.HIGH: 0,
    Severity.MEDIUM: 1,
    Severity.LOW: 2,
}

TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 60
META_DESC_MAX_LENGTH = 160
SLOW_PAGE_MS = 3000


def _title_tips(metadata: MetadataBag) -> list[ScanTip]:
    if not metadata.title:
        return [ScanTip(
            rule_id="missing-title",
            title="Missing Page Title",
            description="Add a descriptive <title> tag to help search engines and AI understand your page content.",
            severity=Severity.HIGH,
        )]
    if len(metadata.title) > TITLE_MAX_LENGTH:
        return [ScanTip(
            rule_id="title-too-long",
            title="Title Too Long",
            description=(
                f"Your page title is {len(metadata.title)} characters long. Consider shortening it "
                f"to under {TITLE_MAX_LENGTH} characters for better search engine display."
            ),
            severity=Severity.MEDIUM,
        )]
    if len(metadata.title) < TITLE_MIN_LENGTH:
        return [ScanTip(
            rule_id="title-too-short",
            title="Title Too Short",
            description=(
                "Your page title is very short. Consider adding more descriptive content "
                "to help AI and search engines understand your page better."
            ),
            severity=Severity.MEDIUM,
        )]
    return []


def _description_tips(metadata: MetadataBag) -> list[ScanTip]:
    if not metadata.description:
        return [ScanTip(
            rule_id="missing-meta-description",
            title="Missing Meta Description",
            description=(
                "Add a meta description to provide a clear summary of your page content "
                "for search engines and AI systems."
            ),
            severity=Severity.HIGH,
        )]
    if len(metadata.description) > META_DESC_MAX_LENGTH:
        return [ScanTip(
            rule_id="meta-description-too-long",
            title="Meta Description Too Long",
            description=(
                f"Your meta description exceeds {META_DESC_MAX_LENGTH} characters "
                "and may be truncated in search results."
            ),
            severity=Severity.MEDIUM,
        )]
    return []


def generate_tips(
    metadata: MetadataBag,
    robots: RobotsDecision,
    sitemap: SitemapResult,
    performance: PerformanceSample,
) -> list[ScanTip]:
    """Build the ranked tip list for one scan. Pure; never raises for valid models."""
    tips: list[ScanTip] = []
    tips.extend(_title_tips(metadata))
    tips.extend(_description_tips(metadata))

    if not metadata.structured_data:
        tips.append(ScanTip(
            rule_id="missing-structured-data",
            title="Add Structured Data",
            description=(
                "Implement JSON-LD schema markup to help AI systems better understand "
                "and categorize your content."
            ),
            severity=Severity.MEDIUM,
        ))

    if not metadata.open_graph.get("og:title") and not metadata.open_graph.get("og:description"):
        tips.append(ScanTip(
            rule_id="missing-open-graph",
            title="Add Open Graph Tags",
            description=(
                "Add Open Graph meta tags (og:title, og:description) to control how your "
                "content appears when shared on social media."
            ),
            severity=Severity.LOW,
        ))

    if not metadata.canonical:
        tips.append(ScanTip(
            rule_id="missing-canonical",
            title="Add Canonical URL",
            description=(
                "Add a canonical link tag to help search engines understand the preferred "
                "version of your page."
            ),
            severity=Severity.LOW,
        ))

    if not robots.checked:
        tips.append(ScanTip(
            rule_id="missing-robots-txt",
            title="Create robots.txt",
            description=(
                "Add a robots.txt file to guide search engine crawlers and improve "
                "your site's crawlability."
            ),
            severity=Severity.LOW,
        ))

    if not sitemap.exists:
        tips.append(ScanTip(
            rule_id="missing-sitemap",
            title="Add XML Sitemap",
            description=(
                "Create and submit an XML sitemap to help search engines discover and "
                "index your pages more efficiently."
            ),
            severity=Severity.MEDIUM,
        ))

    if performance.load_time_ms > SLOW_PAGE_MS:
        tips.append(ScanTip(
            rule_id="slow-page-load",
            title="Improve Page Load Speed",
            description=(
                f"Your page took {round(performance.load_time_ms / 1000)} seconds to load. "
                "Faster pages perform better in search results and provide better user experience."
            ),
            severity=Severity.MEDIUM,
        ))

    # sorted() is stable, so declaration order survives within a severity
    return sorted(tips, key=lambda tip: SEVERITY_RANK[Severity(tip.severity)])
