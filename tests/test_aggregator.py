"""Tests for a full aggregation run over scripted feeds."""

import asyncio
from datetime import timedelta

import pytest

from finfeed.aggregator import (
    AggregationState,
    NewsAggregator,
    filter_by_age,
    sort_by_relevance,
)
from finfeed.config import AggregationOptions
from finfeed.errors import AggregationError, FeedHTTPError
from finfeed.failure_tracker import FailureTracker
from finfeed.feed_registry import FeedRegistry
from finfeed.feeds import FeedFetcher

from .helpers import NOW, FakeHttp, make_article, make_source, no_sleep, rss_bytes


def _items(prefix, n, age_hours=1):
    return [
        {
            "title": f"{prefix} story {i}: AAPL rises on strong earnings",
            "link": f"https://example.com/{prefix.lower()}/{i}",
            "description": f"Apple shares climb as analysts lift targets, report {i}.",
            "published": NOW - timedelta(hours=age_hours + i),
        }
        for i in range(n)
    ]


def _aggregator(settings, sources, http, tracker=None):
    fetcher = FeedFetcher(
        tracker or FailureTracker(threshold=3, cooldown=300),
        settings=settings,
        http_get=http,
        sleep=no_sleep,
    )
    return NewsAggregator(
        FeedRegistry(sources),
        fetcher,
        settings=settings,
        sleep=no_sleep,
        clock=lambda: NOW,
    )


class TestFilterAndSort:
    def test_age_filter_boundary(self, hours_ago):
        fresh = make_article("Fresh", published_at=hours_ago(47))
        old = make_article("Old", published_at=hours_ago(49))
        edge = make_article("Edge", published_at=hours_ago(48))
        assert filter_by_age([fresh, old, edge], 48, NOW) == [fresh]

    def test_watchlist_boost(self):
        plain = make_article("Plain", relevance=0.7)
        watched = make_article("Watched", relevance=0.6, tickers=["TSLA"])
        assert sort_by_relevance([plain, watched]) == [plain, watched]
        assert sort_by_relevance([plain, watched], ["tsla"]) == [watched, plain]

    def test_sort_is_stable(self):
        a = make_article("A", relevance=0.5)
        b = make_article("B", relevance=0.5)
        assert sort_by_relevance([a, b]) == [a, b]


class TestAggregate:
    @pytest.mark.asyncio
    async def test_end_to_end_partial_failure(self, settings):
        good = make_source("Good Feed", category="Markets")
        slow = make_source("Slow Feed", category="Economy")
        messy = make_source("Messy Feed", category="Business")
        messy_body = rss_bytes(_items("Messy", 3)).replace(
            b"report 0.", b"report 0.\x0b"
        )
        http = FakeHttp(
            {
                good.url: [rss_bytes(_items("Good", 5))],
                slow.url: [asyncio.TimeoutError()],
                messy.url: [messy_body],
            }
        )
        agg = _aggregator(settings, [good, slow, messy], http)

        articles = await agg.aggregate(AggregationOptions(max_total_articles=10))

        assert 1 <= len(articles) <= 10
        sources = {a.source for a in articles}
        assert "Slow Feed" not in sources
        assert "Good Feed" in sources
        assert "Messy Feed" in sources
        assert agg.last_summary["by_source"]["Messy Feed"]["articles"] == 3
        scores = [a.relevance_score for a in articles]
        assert scores == sorted(scores, reverse=True)
        assert http.count(slow.url) == settings.fetch_attempts
        assert agg.state is AggregationState.DONE
        assert agg.last_summary["by_source"]["Slow Feed"]["failure"] == "timeout"
        assert agg.tracker.get_record("Slow Feed").consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_total_cap(self, settings):
        feeds = [make_source(f"Feed {i}") for i in range(3)]
        http = FakeHttp({f.url: [rss_bytes(_items(f.name, 5))] for f in feeds})
        agg = _aggregator(settings, feeds, http)
        articles = await agg.aggregate(AggregationOptions(max_total_articles=4))
        assert len(articles) == 4

    @pytest.mark.asyncio
    async def test_age_filter_applied(self, settings):
        src = make_source("Aging")
        items = [
            {
                "title": "Forty seven hours old",
                "link": "https://example.com/47",
                "description": "Markets were steady on the day.",
                "published": NOW - timedelta(hours=47),
            },
            {
                "title": "Forty nine hours old",
                "link": "https://example.com/49",
                "description": "Markets were steady on the day.",
                "published": NOW - timedelta(hours=49),
            },
        ]
        agg = _aggregator(settings, [src], FakeHttp({src.url: [rss_bytes(items)]}))
        articles = await agg.aggregate(AggregationOptions(max_age_hours=48))
        assert [a.title for a in articles] == ["Forty seven hours old"]

    @pytest.mark.asyncio
    async def test_duplicates_collapsed_across_feeds(self, settings):
        a = make_source("Feed A", credibility=0.9)
        b = make_source("Feed B", credibility=0.1)
        same = _items("Shared", 1)
        http = FakeHttp({a.url: [rss_bytes(same)], b.url: [rss_bytes(same)]})
        agg = _aggregator(settings, [a, b], http)

        articles = await agg.aggregate()
        assert len(articles) == 1
        assert articles[0].source == "Feed A"

        no_dedupe = await agg.aggregate(AggregationOptions(enable_deduplication=False))
        assert len(no_dedupe) == 2

    @pytest.mark.asyncio
    async def test_all_feeds_failing_raises(self, settings):
        a = make_source("Gone A")
        b = make_source("Gone B")
        http = FakeHttp(
            {a.url: [FeedHTTPError(404, a.url)], b.url: [FeedHTTPError(500, b.url)]}
        )
        agg = _aggregator(settings, [a, b], http)

        with pytest.raises(AggregationError) as exc_info:
            await agg.aggregate()

        assert exc_info.value.failures == {"Gone A": "http_404", "Gone B": "http_500"}
        assert agg.state is AggregationState.IDLE

    @pytest.mark.asyncio
    async def test_everything_too_old_raises(self, settings):
        src = make_source("Stale")
        http = FakeHttp({src.url: [rss_bytes(_items("Stale", 2, age_hours=100))]})
        agg = _aggregator(settings, [src], http)

        with pytest.raises(AggregationError) as exc_info:
            await agg.aggregate()

        assert exc_info.value.failures == {"Stale": "too_old"}
        assert agg.state is AggregationState.IDLE
        assert agg.last_summary["collected"] == 2
        assert agg.last_summary["after_age_filter"] == 0

    @pytest.mark.asyncio
    async def test_bad_item_is_skipped_siblings_survive(self, settings, monkeypatch):
        import finfeed.aggregator as aggregator_mod

        real_enrich = aggregator_mod.enrich_article

        def flaky_enrich(article, source, now=None):
            if "story 1:" in article.title:
                raise ValueError("broken item")
            return real_enrich(article, source, now=now)

        monkeypatch.setattr(aggregator_mod, "enrich_article", flaky_enrich)
        src = make_source("Wobbly")
        http = FakeHttp({src.url: [rss_bytes(_items("Wobbly", 5))]})
        agg = _aggregator(settings, [src], http)

        articles = await agg.aggregate()

        titles = [a.title for a in articles]
        assert len(titles) == 4
        assert not any("story 1:" in t for t in titles)
        assert agg.last_summary["by_source"]["Wobbly"] == {"articles": 4, "failure": None}

    @pytest.mark.asyncio
    async def test_open_breaker_skips_feed_on_next_run(self, settings):
        bad = make_source("Bad")
        good = make_source("Good")
        http = FakeHttp(
            {bad.url: [FeedHTTPError(404, bad.url)], good.url: [rss_bytes(_items("G", 2))]}
        )
        agg = _aggregator(settings, [bad, good], http, FailureTracker(threshold=1))

        await agg.aggregate()
        assert http.count(bad.url) == 1
        await agg.aggregate()
        assert http.count(bad.url) == 1
        assert http.count(good.url) == 2
        assert "Bad" not in agg.last_summary["by_source"]

    @pytest.mark.asyncio
    async def test_category_selects_feeds(self, settings):
        markets = make_source("M", category="Markets")
        crypto = make_source("C", category="Cryptocurrency")
        http = FakeHttp(
            {
                markets.url: [rss_bytes(_items("M", 2))],
                crypto.url: [rss_bytes(_items("C", 2))],
            }
        )
        agg = _aggregator(settings, [markets, crypto], http)
        articles = await agg.aggregate(category="cryptocurrency")
        assert {a.source for a in articles} == {"C"}
        assert http.count(markets.url) == 0

    @pytest.mark.asyncio
    async def test_batches_sleep_between(self, settings):
        feeds = [make_source(f"F{i}") for i in range(4)]
        http = FakeHttp({f.url: [rss_bytes(_items(f.name, 1))] for f in feeds})
        delays = []

        async def record_sleep(secs):
            delays.append(secs)

        fetcher = FeedFetcher(FailureTracker(), settings=settings, http_get=http, sleep=no_sleep)
        agg = NewsAggregator(
            FeedRegistry(feeds),
            fetcher,
            settings=settings,
            batch_size=2,
            batch_delay=0.5,
            sleep=record_sleep,
            clock=lambda: NOW,
        )
        await agg.aggregate()
        assert delays == [0.5]
