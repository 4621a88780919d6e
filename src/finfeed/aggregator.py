"""One aggregation run: fetch every feed, enrich, filter, dedupe and rank.

A run walks ``idle -> fetching -> filtering -> deduplicating -> ranking ->
done``.  Feeds are fetched in small concurrent batches; every feed in a
batch is settled independently so one slow or broken upstream never
aborts the others.  The only state that outlives a run is the
:class:`~finfeed.failure_tracker.FailureTracker` owned by the fetcher.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import aiohttp

from .config import AggregationOptions, Settings, get_settings
from .dedupe import deduplicate_articles
from .enrichment import enrich_article
from .errors import AggregationError
from .feed_registry import FeedRegistry
from .feeds import FeedFetcher
from .logging_utils import get_logger
from .models import Article, FeedSource
from .normalizer import normalize_item

log = get_logger(__name__)

WATCHLIST_BOOST = 0.2


class AggregationState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    FILTERING = "filtering"
    DEDUPLICATING = "deduplicating"
    RANKING = "ranking"
    DONE = "done"


def filter_by_age(
    articles: Iterable[Article], max_age_hours: float, now: Optional[datetime] = None
) -> List[Article]:
    """Drop articles published ``max_age_hours`` or more before ``now``."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=max_age_hours)
    return [a for a in articles if a.published_at > cutoff]


def adjusted_relevance(article: Article, watchlist: Sequence[str]) -> float:
    boost = WATCHLIST_BOOST if any(t in watchlist for t in article.tickers) else 0.0
    return article.relevance_score + boost


def sort_by_relevance(
    articles: Iterable[Article], watchlist: Sequence[str] = ()
) -> List[Article]:
    """Stable sort by relevance, boosting articles that mention a watched ticker."""
    watch = {w.upper() for w in watchlist}
    return sorted(articles, key=lambda a: adjusted_relevance(a, watch), reverse=True)


class NewsAggregator:
    """Coordinates fetcher, normalizer and analyzers for one run at a time."""

    def __init__(
        self,
        registry: Optional[FeedRegistry] = None,
        fetcher: Optional[FeedFetcher] = None,
        *,
        settings: Optional[Settings] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        s = settings or get_settings()
        self.settings = s
        self.registry = registry or FeedRegistry.from_settings(s)
        self.fetcher = fetcher or FeedFetcher(settings=s)
        self.batch_size = max(1, batch_size or s.batch_size)
        self.batch_delay = s.batch_delay_secs if batch_delay is None else batch_delay
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = AggregationState.IDLE
        self.last_summary: Dict[str, Any] = {}

    @property
    def tracker(self):
        return self.fetcher.tracker

    def _runnable_feeds(self, category: Optional[str]) -> List[FeedSource]:
        if category:
            feeds = self.registry.get_feeds_by_category(category)
        else:
            feeds = self.registry.get_enabled_feeds()
        runnable = []
        for feed in feeds:
            if self.tracker.should_skip(feed.name):
                log.info("feed_skipped_circuit_open source=%s", feed.name)
                continue
            runnable.append(feed)
        return runnable

    async def _process_feed(
        self,
        source: FeedSource,
        session: aiohttp.ClientSession,
        options: AggregationOptions,
        now: datetime,
    ) -> Tuple[List[Article], Optional[str]]:
        result = await self.fetcher.fetch_result(
            source, session, options.max_articles_per_feed
        )
        articles: List[Article] = []
        for raw in result.entries:
            try:
                article = normalize_item(raw, source, now=lambda: now)
                if article is None:
                    continue
                articles.append(enrich_article(article, source, now=now))
            except Exception as e:
                log.warning(
                    "item_parse_failed source=%s err=%s",
                    source.name,
                    e.__class__.__name__,
                )
        failure = result.failure
        if result.skipped:
            failure = "circuit_open"
        return articles, failure

    async def _fetch_all(
        self, feeds: List[FeedSource], options: AggregationOptions, now: datetime
    ) -> Tuple[List[Article], Dict[str, Any]]:
        collected: List[Article] = []
        by_source: Dict[str, Any] = {}
        async with self.fetcher.open_session() as session:
            for start in range(0, len(feeds), self.batch_size):
                batch = feeds[start : start + self.batch_size]
                results = await asyncio.gather(
                    *(self._process_feed(f, session, options, now) for f in batch),
                    return_exceptions=True,
                )
                for feed, res in zip(batch, results):
                    if isinstance(res, BaseException):
                        log.warning(
                            "feed_process_error source=%s err=%s",
                            feed.name,
                            res.__class__.__name__,
                        )
                        by_source[feed.name] = {"articles": 0, "failure": "error"}
                        continue
                    articles, failure = res
                    collected.extend(articles)
                    by_source[feed.name] = {"articles": len(articles), "failure": failure}
                    if articles:
                        log.info(
                            "feed_ok source=%s articles=%d", feed.name, len(articles)
                        )
                    else:
                        log.warning(
                            "feed_empty source=%s failure=%s",
                            feed.name,
                            failure or "no_articles",
                        )
                if start + self.batch_size < len(feeds) and self.batch_delay > 0:
                    await self._sleep(self.batch_delay)
        return collected, by_source

    async def aggregate(
        self,
        options: Optional[AggregationOptions] = None,
        category: Optional[str] = None,
    ) -> List[Article]:
        """Run the pipeline and return ranked articles.

        Raises :class:`AggregationError` when the run produces no article:
        every feed failed, or everything collected is older than
        ``max_age_hours``.  Partial failures are logged and absorbed.
        """
        options = options or AggregationOptions.from_settings(self.settings)
        now = self._clock()
        t0 = time.time()

        self.state = AggregationState.FETCHING
        feeds = self._runnable_feeds(category)
        log.info("aggregate_start feeds=%d batch_size=%d", len(feeds), self.batch_size)
        try:
            collected, by_source = await self._fetch_all(feeds, options, now)
        except Exception:
            self.state = AggregationState.IDLE
            raise

        if not collected:
            self.state = AggregationState.IDLE
            failures = {
                name: (info.get("failure") or "no_articles")
                for name, info in by_source.items()
            }
            self.last_summary = {"feeds": len(feeds), "collected": 0, "by_source": by_source}
            log.error("aggregate_failed feeds=%d failures=%s", len(feeds), failures)
            raise AggregationError(
                "no articles collected from %d feeds" % len(feeds), failures
            )

        self.state = AggregationState.FILTERING
        articles = filter_by_age(collected, options.max_age_hours, now)
        after_age = len(articles)
        if not articles:
            self.state = AggregationState.IDLE
            failures = {
                name: "too_old" if info.get("articles") else (info.get("failure") or "no_articles")
                for name, info in by_source.items()
            }
            self.last_summary = {
                "feeds": len(feeds),
                "collected": len(collected),
                "after_age_filter": 0,
                "by_source": by_source,
            }
            log.error(
                "aggregate_failed reason=all_too_old collected=%d max_age_hours=%s",
                len(collected),
                options.max_age_hours,
            )
            raise AggregationError(
                "all %d collected articles are older than %sh"
                % (len(collected), options.max_age_hours),
                failures,
            )

        self.state = AggregationState.DEDUPLICATING
        if options.enable_deduplication:
            articles = deduplicate_articles(articles)
        after_dedupe = len(articles)

        self.state = AggregationState.RANKING
        articles = sort_by_relevance(articles, options.user_watchlist)
        articles = articles[: max(0, options.max_total_articles)]

        self.state = AggregationState.DONE
        self.last_summary = {
            "feeds": len(feeds),
            "collected": len(collected),
            "after_age_filter": after_age,
            "after_dedupe": after_dedupe,
            "returned": len(articles),
            "t_ms": round((time.time() - t0) * 1000.0, 1),
            "by_source": by_source,
        }
        log.info(
            "aggregate_done collected=%d after_age=%d after_dedupe=%d returned=%d t_ms=%s",
            len(collected),
            after_age,
            after_dedupe,
            len(articles),
            self.last_summary["t_ms"],
        )
        return articles
