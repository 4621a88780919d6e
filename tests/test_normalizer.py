"""Tests for raw entry -> Article normalization."""

import time
from datetime import datetime, timezone

import feedparser

from finfeed.normalizer import (
    clean_html_content,
    clean_title,
    first_field,
    generate_article_id,
    generate_summary,
    normalize_item,
    parse_published,
)

from .helpers import NOW, make_source, rss_bytes


def _now():
    return NOW


class TestCleanHtml:
    def test_entities_and_tags(self):
        assert clean_html_content("Apple &amp; Co announces Q3 results") == (
            "Apple & Co announces Q3 results"
        )
        assert clean_html_content("<p>Breaking: <b>TSLA</b> surges 10%</p>") == (
            "Breaking: TSLA surges 10%"
        )

    def test_whitespace_and_empty(self):
        assert clean_html_content("Multiple&nbsp;&nbsp;spaces   here") == (
            "Multiple spaces here"
        )
        assert clean_html_content(None) == ""
        assert clean_html_content("") == ""

    def test_list_items_get_spaces(self):
        assert clean_html_content("<ul><li>A</li><li>B</li></ul>") == "A B"


class TestFieldTables:
    def test_title_falls_back_to_dc_title(self):
        assert first_field({"dc_title": "Alt title"}, ("title", "dc_title")) == "Alt title"

    def test_content_list_is_flattened(self):
        raw = {"content": [{"type": "text/html", "value": "<p>Body text</p>"}]}
        assert first_field(raw, ("content",)) == "<p>Body text</p>"

    def test_blank_values_are_skipped(self):
        raw = {"summary": "   ", "description": "Real body"}
        assert first_field(raw, ("summary", "description")) == "Real body"


class TestParsePublished:
    def test_rfc822(self):
        d = parse_published({"published": "Mon, 02 Mar 2026 14:00:00 GMT"})
        assert d == datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)

    def test_iso_with_offset_converted_to_utc(self):
        d = parse_published({"updated": "2026-03-02T09:00:00-05:00"})
        assert d == datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)

    def test_naive_assumed_utc(self):
        d = parse_published({"date": "2026-03-02 14:00:00"})
        assert d.tzinfo is not None
        assert d.hour == 14

    def test_parsed_struct_fallback(self):
        st = time.struct_time((2026, 3, 1, 8, 30, 0, 6, 60, 0))
        d = parse_published({"published": "garbage", "published_parsed": st})
        assert d == datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)

    def test_unparseable_falls_back_to_now(self):
        assert parse_published({"published": "not a date"}, now=_now) == NOW
        assert parse_published({}, now=_now) == NOW


class TestTitleAndSummary:
    def test_clean_title_trims_edges(self):
        assert clean_title("  ** Breaking:  Fed holds rates!! ") == "Breaking: Fed holds rates"

    def test_clean_title_caps_length(self):
        assert len(clean_title("A" * 500)) == 200

    def test_summary_first_long_sentence(self):
        body = "Short one. This sentence is definitely long enough. Another one follows."
        assert generate_summary(body) == "This sentence is definitely long enough"

    def test_summary_strips_title(self):
        title = "Fed holds rates"
        body = "Fed holds rates steady as inflation cools across the economy"
        assert generate_summary(body, title) == (
            "steady as inflation cools across the economy"
        )

    def test_summary_truncated(self):
        body = "word " * 200
        summary = generate_summary(body)
        assert len(summary) == 300
        assert summary.endswith("...")

    def test_summary_short_body_kept(self):
        assert generate_summary("Tiny body") == "Tiny body"


class TestArticleId:
    def test_deterministic(self):
        d = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)
        a = generate_article_id("Apple beats", "https://x.com/a", d)
        b = generate_article_id("Apple beats", "https://x.com/a", d)
        assert a == b
        assert len(a) == 16

    def test_same_day_same_id_scheme_ignored(self):
        morning = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)
        evening = datetime(2026, 3, 2, 22, 0, tzinfo=timezone.utc)
        assert generate_article_id("T", "https://x.com/a", morning) == (
            generate_article_id("T", "http://x.com/a", evening)
        )

    def test_distinct_inputs_differ(self):
        d = datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert generate_article_id("A story", "https://x.com/a", d) != (
            generate_article_id("B story", "https://x.com/a", d)
        )


class TestNormalizeItem:
    def test_from_feedparser_entry(self):
        parsed = feedparser.parse(
            rss_bytes(
                [
                    {
                        "title": "Apple &amp; partners rally",
                        "link": "https://example.com/apple",
                        "description": "&lt;p&gt;Shares of Apple jumped after earnings.&lt;/p&gt;",
                        "published": "Mon, 02 Mar 2026 14:00:00 GMT",
                    }
                ]
            )
        )
        src = make_source("Test Feed", category="Business", credibility=0.7)
        art = normalize_item(parsed.entries[0], src, now=_now)
        assert art is not None
        assert art.title == "Apple & partners rally"
        assert art.summary == "Shares of Apple jumped after earnings"
        assert art.url == "https://example.com/apple"
        assert art.source == "Test Feed"
        assert art.category == "Business"
        assert art.published_at == datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)
        assert art.raw_summary == "Shares of Apple jumped after earnings."

    def test_idempotent_id(self):
        raw = {
            "title": "Same story",
            "link": "https://example.com/s",
            "summary": "A body long enough to be a sentence.",
            "published": "2026-03-02T10:00:00Z",
        }
        src = make_source()
        assert normalize_item(raw, src).id == normalize_item(dict(raw), src).id

    def test_reject_missing_title(self):
        assert normalize_item({"summary": "Body only"}, make_source()) is None

    def test_reject_missing_body(self):
        assert normalize_item({"title": "Title only"}, make_source()) is None

    def test_bad_date_does_not_reject(self):
        raw = {"title": "T", "summary": "Body", "published": "??"}
        art = normalize_item(raw, make_source(), now=_now)
        assert art is not None
        assert art.published_at == NOW

    def test_image_from_enclosure(self):
        raw = {
            "title": "T",
            "summary": "Body",
            "enclosures": [{"type": "image/jpeg", "href": "https://img.example/x.jpg"}],
        }
        assert normalize_item(raw, make_source()).image_url == "https://img.example/x.jpg"
