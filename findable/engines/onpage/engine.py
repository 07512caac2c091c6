"""
On-Page Signal Extractor

Pulls discoverability signals out of raw, untrusted markup:
- Document title
- Standard, Open Graph and Twitter meta tags
- Canonical link
- JSON-LD structured data blocks
- Visible text (for the summarizability score)

No DOM is built. Each field is an independent pattern scan over the raw text,
so malformed markup around one signal cannot corrupt another, and any internal
failure only leaves that field empty. extract() never raises.
"""

from __future__ import annotations

import html as html_lib
import json
import re
from typing import Any, Callable, Iterator, TypeVar
from urllib.parse import urljoin

import structlog

from findable.engines.base import MetadataBag

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# ─────────────────────────────────────────────
# Patterns
# ─────────────────────────────────────────────

# Tag interiors are bounded and may not contain '<', and closing tags are
# searched for once per element, so unterminated markup scans in linear time.
MAX_TAG_INTERIOR = 4096

META_RE = re.compile(rf"<meta\b([^<>]{{0,{MAX_TAG_INTERIOR}}})>", re.IGNORECASE)
LINK_RE = re.compile(rf"<link\b([^<>]{{0,{MAX_TAG_INTERIOR}}})>", re.IGNORECASE)
TITLE_OPEN_RE = re.compile(rf"<(title)\b([^<>]{{0,{MAX_TAG_INTERIOR}}})>", re.IGNORECASE)
SCRIPT_OPEN_RE = re.compile(rf"<(script)\b([^<>]{{0,{MAX_TAG_INTERIOR}}})>", re.IGNORECASE)
NON_CONTENT_OPEN_RE = re.compile(
    rf"<(script|style|noscript)\b([^<>]{{0,{MAX_TAG_INTERIOR}}})>", re.IGNORECASE
)
CLOSE_TAG_RES = {
    name: re.compile(rf"</{name}\s*>", re.IGNORECASE)
    for name in ("title", "script", "style", "noscript")
}
ATTR_RE = re.compile(
    r"""([^\s"'<>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+)))?"""
)

TAG_RE = re.compile(r"<[^<>]*>")
WHITESPACE_RE = re.compile(r"\s+")

JSON_LD_TYPE = "application/ld+json"
TYPE_DISCRIMINATOR = "@type"

# meta identifier -> (bag section, is URL-valued)
META_FIELDS: dict[str, tuple[str, bool]] = {
    "description": ("description", False),
    "keywords": ("keywords", False),
    "author": ("author", False),
    "robots": ("robots_directives", False),
    "og:title": ("open_graph", False),
    "og:description": ("open_graph", False),
    "og:image": ("open_graph", True),
    "og:url": ("open_graph", True),
    "og:type": ("open_graph", False),
    "twitter:card": ("twitter", False),
    "twitter:title": ("twitter", False),
    "twitter:description": ("twitter", False),
    "twitter:image": ("twitter", True),
}


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────

def parse_attributes(raw: str) -> dict[str, str]:
    """
    Tolerant attribute parser for the inside of a start tag.
    Names are lower-cased; the first occurrence of a name wins; bare
    attributes map to an empty string.
    """
    attrs: dict[str, str] = {}
    for match in ATTR_RE.finditer(raw):
        name = match.group(1).lower()
        if name in attrs:
            continue
        value = next((g for g in match.groups()[1:] if g is not None), "")
        attrs[name] = value
    return attrs


def resolve_url(value: str, base_url: str) -> str:
    """Absolute form of value against base_url, or value unchanged if that fails."""
    try:
        return urljoin(base_url, value)
    except ValueError:
        return value


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def iter_elements(text: str, open_re: re.Pattern[str]) -> Iterator[tuple[re.Match[str], re.Match[str]]]:
    """
    Yield (opening tag, closing tag) matches for each element found by open_re
    that is closed somewhere later in text. Group 1 of open_re is the tag name.
    """
    unclosed: set[str] = set()
    pos = 0
    while True:
        opener = open_re.search(text, pos)
        if opener is None:
            return
        name = opener.group(1).lower()
        closer = None if name in unclosed else CLOSE_TAG_RES[name].search(text, opener.end())
        if closer is None:
            # No closer after this point means none after any later opener either
            unclosed.add(name)
            pos = opener.end()
            continue
        yield opener, closer
        pos = closer.end()


def strip_comments(markup: str) -> str:
    parts: list[str] = []
    pos = 0
    while True:
        start = markup.find("<!--", pos)
        if start == -1:
            break
        end = markup.find("-->", start + 4)
        if end == -1:
            break
        parts.append(markup[pos:start])
        parts.append(" ")
        pos = end + 3
    parts.append(markup[pos:])
    return "".join(parts)


def strip_non_content_blocks(markup: str) -> str:
    parts: list[str] = []
    pos = 0
    for opener, closer in iter_elements(markup, NON_CONTENT_OPEN_RE):
        parts.append(markup[pos:opener.start()])
        parts.append(" ")
        pos = closer.end()
    parts.append(markup[pos:])
    return "".join(parts)


def visible_text(markup: str) -> str:
    """Markup with comments, script/style/noscript blocks and tags removed, whitespace collapsed."""
    text = strip_comments(markup)
    text = strip_non_content_blocks(text)
    text = TAG_RE.sub(" ", text)
    return collapse_whitespace(text)


def _unwrap_json_ld(body: str) -> str:
    body = body.strip()
    for prefix, suffix in (("<!--", "-->"), ("<![CDATA[", "]]>")):
        if body.startswith(prefix) and body.endswith(suffix):
            body = body[len(prefix):-len(suffix)].strip()
    return body


# ─────────────────────────────────────────────
# Extractor
# ─────────────────────────────────────────────

class MarkupSignalExtractor:
    """Stateless extractor. One instance may be shared by any number of scans."""

    def extract(self, markup: str | bytes | None, base_url: str) -> MetadataBag:
        text = self._as_text(markup)
        bag = MetadataBag()

        bag.title = self._safe("title", lambda: self._extract_title(text), None)
        self._safe("meta", lambda: self._apply_meta_tags(text, base_url, bag), None)
        bag.canonical = self._safe("canonical", lambda: self._extract_canonical(text, base_url), None)
        bag.structured_data = self._safe("structured_data", lambda: self._extract_json_ld(text), [])

        return bag

    def text_length(self, markup: str | bytes | None) -> int:
        """Length of the visible prose. Zero if the markup cannot be processed."""
        return self._safe("visible_text", lambda: len(visible_text(self._as_text(markup))), 0)

    # ── Fields ───────────────────────────────────────

    @staticmethod
    def _extract_title(text: str) -> str | None:
        element = next(iter_elements(text, TITLE_OPEN_RE), None)
        if element is None:
            return None
        opener, closer = element
        body = text[opener.end():closer.start()]
        title = collapse_whitespace(html_lib.unescape(TAG_RE.sub("", body)))
        return title or None

    @staticmethod
    def _apply_meta_tags(text: str, base_url: str, bag: MetadataBag) -> None:
        for match in META_RE.finditer(text):
            attrs = parse_attributes(match.group(1))

            content = attrs.get("content")
            if content is None:
                continue
            content = html_lib.unescape(content).strip()
            if not content:
                continue

            identifier = (attrs.get("name") or attrs.get("property") or "").strip().lower()
            target = META_FIELDS.get(identifier)
            if target is None:
                continue

            section, is_url = target
            if is_url:
                content = resolve_url(content, base_url)

            if section == "open_graph":
                bag.open_graph[identifier] = content
            elif section == "twitter":
                bag.twitter[identifier] = content
            elif section == "robots_directives":
                bag.robots_directives = [d.strip().lower() for d in content.split(",") if d.strip()]
            else:
                setattr(bag, section, content)

    @staticmethod
    def _extract_canonical(text: str, base_url: str) -> str | None:
        for match in LINK_RE.finditer(text):
            attrs = parse_attributes(match.group(1))
            rel_tokens = attrs.get("rel", "").lower().split()
            href = attrs.get("href", "").strip()
            if "canonical" in rel_tokens and href:
                return resolve_url(html_lib.unescape(href), base_url)
        return None

    @staticmethod
    def _extract_json_ld(text: str) -> list[dict[str, Any]]:
        blocks: list[dict[str, Any]] = []
        for opener, closer in iter_elements(text, SCRIPT_OPEN_RE):
            attrs = parse_attributes(opener.group(2))
            script_type = attrs.get("type", "").split(";", 1)[0].strip().lower()
            if script_type != JSON_LD_TYPE:
                continue

            try:
                data = json.loads(_unwrap_json_ld(text[opener.end():closer.start()]))
            except (ValueError, RecursionError) as e:
                logger.debug("Dropping malformed JSON-LD block", error=str(e)[:200])
                continue

            if isinstance(data, dict) and TYPE_DISCRIMINATOR in data:
                blocks.append(data)
        return blocks

    # ── Plumbing ─────────────────────────────────────

    @staticmethod
    def _as_text(markup: str | bytes | None) -> str:
        if markup is None:
            return ""
        if isinstance(markup, bytes):
            return markup.decode("utf-8", errors="replace")
        return markup

    @staticmethod
    def _safe(field_name: str, fn: Callable[[], T], default: T) -> T:
        try:
            return fn()
        except Exception as e:
            logger.debug("Field extraction failed", field=field_name, error=str(e))
            return default


def extract_metadata(markup: str | bytes | None, base_url: str) -> MetadataBag:
    """Module-level convenience around MarkupSignalExtractor.extract()."""
    return MarkupSignalExtractor().extract(markup, base_url)
