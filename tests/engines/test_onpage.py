"""
Tests for the On-Page Signal Extractor.
"""

import time

import pytest

from findable.engines.onpage.engine import (
    MarkupSignalExtractor,
    extract_metadata,
    parse_attributes,
    visible_text,
)

BASE = "https://example.com/page"


@pytest.fixture
def extractor():
    return MarkupSignalExtractor()


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────

class TestHelpers:

    def test_parse_attributes_quoting_styles(self):
        attrs = parse_attributes(""" name="description" content='Hi there' data-x=1 hidden""")
        assert attrs == {"name": "description", "content": "Hi there", "data-x": "1", "hidden": ""}

    def test_parse_attributes_first_occurrence_wins(self):
        assert parse_attributes('content="a" CONTENT="b"') == {"content": "a"}

    def test_visible_text_strips_non_content(self):
        markup = (
            "<html><head><style>body{color:red}</style><script>var x = 1;</script></head>"
            "<body><!-- hidden --><noscript>enable js</noscript><p>Hello   <b>world</b></p></body></html>"
        )
        assert visible_text(markup) == "Hello world"


# ─────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────

class TestMarkupSignalExtractor:

    def test_title_and_description(self, extractor):
        bag = extractor.extract('<title>Example</title><meta name="description" content="Hi">', BASE)
        assert bag.title == "Example"
        assert bag.description == "Hi"

    def test_title_is_unescaped_and_collapsed(self, extractor):
        bag = extractor.extract("<TITLE lang='en'>\n  Fish &amp;   Chips \n</TITLE>", BASE)
        assert bag.title == "Fish & Chips"

    def test_empty_title_is_absent(self, extractor):
        assert extractor.extract("<title>   </title>", BASE).title is None

    def test_attribute_order_does_not_matter(self, extractor):
        bag = extractor.extract('<meta content="Kw1, kw2" name="keywords"><meta content="Ann" name="author">', BASE)
        assert bag.keywords == "Kw1, kw2"
        assert bag.author == "Ann"

    def test_later_duplicate_meta_overrides(self, extractor):
        markup = '<meta name="description" content="first"><meta name="description" content="second">'
        assert extractor.extract(markup, BASE).description == "second"

    def test_open_graph_and_twitter(self, extractor):
        markup = (
            '<meta property="og:title" content="OG Title">'
            '<meta property="og:description" content="OG Desc">'
            '<meta property="og:type" content="website">'
            '<meta name="twitter:card" content="summary_large_image">'
            '<meta name="twitter:image" content="/card.png">'
        )
        bag = extractor.extract(markup, BASE)
        assert bag.open_graph == {"og:title": "OG Title", "og:description": "OG Desc", "og:type": "website"}
        assert bag.twitter == {
            "twitter:card": "summary_large_image",
            "twitter:image": "https://example.com/card.png",
        }

    def test_og_image_is_absolutized(self, extractor):
        bag = extractor.extract('<meta property="og:image" content="/x.png">', BASE)
        assert bag.open_graph["og:image"] == "https://example.com/x.png"

    def test_absolute_og_image_unchanged(self, extractor):
        bag = extractor.extract('<meta property="og:image" content="https://cdn.example.net/x.png">', BASE)
        assert bag.open_graph["og:image"] == "https://cdn.example.net/x.png"

    def test_canonical_is_absolutized(self, extractor):
        bag = extractor.extract('<link href="/canonical-page" rel="canonical">', BASE)
        assert bag.canonical == "https://example.com/canonical-page"

    def test_canonical_matches_rel_token(self, extractor):
        markup = '<link rel="stylesheet" href="/a.css"><link rel="Canonical alternate" href="https://example.com/">'
        assert extractor.extract(markup, BASE).canonical == "https://example.com/"

    def test_robots_directives(self, extractor):
        bag = extractor.extract('<meta name="robots" content="NoIndex, nofollow">', BASE)
        assert bag.robots_directives == ["noindex", "nofollow"]

    def test_unknown_meta_ignored(self, extractor):
        bag = extractor.extract('<meta name="generator" content="Hugo"><meta charset="utf-8">', BASE)
        assert bag.model_dump() == extractor.extract("", BASE).model_dump()

    def test_json_ld_blocks(self, extractor):
        markup = (
            '<script type="application/ld+json">{"@context": "https://schema.org", "@type": "Organization"}</script>'
            '<script type="application/ld+json">{"@type": "WebSite", "name": "Example"}</script>'
        )
        data = extractor.extract(markup, BASE).structured_data
        assert [block["@type"] for block in data] == ["Organization", "WebSite"]

    def test_malformed_json_ld_is_skipped(self, extractor):
        markup = (
            '<script type="application/ld+json">{"@type": "Broken",</script>'
            '<script type="application/ld+json">{"@type": "Article"}</script>'
        )
        data = extractor.extract(markup, BASE).structured_data
        assert data == [{"@type": "Article"}]

    def test_json_ld_without_type_or_not_object_is_skipped(self, extractor):
        markup = (
            '<script type="application/ld+json">[{"@type": "A"}]</script>'
            '<script type="application/ld+json">{"name": "untyped"}</script>'
            '<script type="text/javascript">{"@type": "NotJsonLd"}</script>'
        )
        assert extractor.extract(markup, BASE).structured_data == []

    def test_missing_everything(self, extractor):
        bag = extractor.extract("<html><body>plain</body></html>", BASE)
        assert bag.title is None
        assert bag.description is None
        assert bag.canonical is None
        assert bag.open_graph == {}
        assert bag.structured_data == []

    @pytest.mark.parametrize(
        "markup",
        [
            None,
            "",
            b"\xff\xfe<title>bytes</title>",
            "<title>unterminated",
            "<meta name=description content=>>>",
            "<<<<>>>>" * 1000,
            '<script type="application/ld+json">' + "[" * 5000 + "</script>",
            "<link rel=canonical href='http://[bad'>",
        ],
    )
    def test_extraction_never_raises(self, extractor, markup):
        bag = extractor.extract(markup, BASE)
        assert bag is not None
        assert extractor.text_length(markup) >= 0

    @pytest.mark.parametrize("fragment", ["<meta ", "<link ", "<title>", "<script>", "<style>", "<!--", "<"])
    def test_unterminated_markup_is_linear(self, extractor, fragment):
        markup = fragment * 50_000

        start = time.perf_counter()
        extractor.extract(markup, BASE)
        extractor.text_length(markup)

        assert time.perf_counter() - start < 2.0

    def test_unclosed_style_does_not_hide_later_scripts(self):
        markup = "<style>a{}<p>kept</p><script>dropped()</script>"
        assert visible_text(markup) == "a{} kept"

    def test_text_length_counts_visible_prose(self, extractor):
        markup = "<title>Example</title><script>ignored()</script><p>" + "x" * 100 + "</p>"
        assert extractor.text_length(markup) == len("Example " + "x" * 100)

    def test_module_helper(self):
        assert extract_metadata("<title>Hi there</title>", BASE).title == "Hi there"
