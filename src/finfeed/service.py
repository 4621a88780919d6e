"""Caller-facing facade over the aggregator.

``NewsService`` adds what a public endpoint needs on top of a raw
aggregation run: per-client rate limiting, the fresh/stale result cache,
the relevance floor, category and limit filtering, and translation of
failures into HTTP-style status codes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from .aggregator import NewsAggregator
from .config import AggregationOptions, Settings, get_settings
from .errors import AggregationError
from .logging_utils import get_logger
from .models import Article
from .rate_limit import RateLimiter
from .result_cache import ResultCache

log = get_logger(__name__)

MIN_HEALTHY_FEEDS = 3


def classify_error(exc: BaseException) -> Tuple[int, str]:
    """Map an aggregation failure to ``(http_status, message)``."""
    if isinstance(exc, asyncio.TimeoutError):
        return 503, "News feeds timed out. Please try again shortly."
    if isinstance(exc, (AggregationError, aiohttp.ClientError, OSError)):
        return 503, "News feeds are temporarily unavailable."
    return 500, "An internal error occurred while fetching news."


@dataclass
class NewsResponse:
    status: int
    articles: List[Article] = field(default_factory=list)
    stale: bool = False
    error: Optional[str] = None
    retry_after: Optional[int] = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.status == 200

    @property
    def total(self) -> int:
        return len(self.articles)

    def headers(self, cache_secs: int = 300) -> Dict[str, str]:
        out: Dict[str, str] = {}
        if self.retry_after is not None:
            out["Retry-After"] = str(self.retry_after)
        if self.ok and not self.stale:
            out["Cache-Control"] = f"public, max-age={cache_secs}, stale-while-revalidate=60"
        else:
            out["Cache-Control"] = "no-cache"
        return out

    def to_dict(self, detailed: bool = False) -> Dict[str, Any]:
        if not self.ok:
            body: Dict[str, Any] = {"error": self.error}
            if self.retry_after is not None:
                body["retryAfter"] = self.retry_after
            return body
        body = {
            "articles": [a.to_dict(detailed=detailed) for a in self.articles],
            "total": self.total,
            "lastUpdated": self.last_updated.isoformat(),
        }
        if self.stale:
            body["stale"] = True
        return body


class NewsService:
    def __init__(
        self,
        aggregator: Optional[NewsAggregator] = None,
        cache: Optional[ResultCache] = None,
        limiter: Optional[RateLimiter] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.aggregator = aggregator or NewsAggregator(settings=self.settings)
        self.cache = cache or ResultCache.from_settings(self.settings)
        self.limiter = limiter or RateLimiter.from_settings(self.settings)

    async def get_news(
        self,
        options: Optional[AggregationOptions] = None,
        client_id: str = "anonymous",
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> NewsResponse:
        allowed, retry = self.limiter.check(client_id)
        if not allowed:
            return NewsResponse(
                status=429,
                error="Too many requests. Please slow down.",
                retry_after=retry,
            )

        options = options or AggregationOptions.from_settings(self.settings)
        try:
            cached = await self.cache.get_or_refresh(
                options.cache_key(), lambda: self.aggregator.aggregate(options)
            )
        except Exception as e:
            status, message = classify_error(e)
            log.error(
                "news_request_failed status=%d err=%s msg=%s",
                status,
                e.__class__.__name__,
                str(e)[:200],
            )
            return NewsResponse(
                status=status,
                error=message,
                retry_after=self.settings.retry_after_secs,
            )

        articles = [a for a in cached.articles if a.relevance_score >= options.min_confidence]
        if category and category.lower() != "all":
            wanted = category.lower()
            articles = [a for a in articles if a.category.lower() == wanted]
        if limit is not None:
            articles = articles[: max(0, int(limit))]
        return NewsResponse(status=200, articles=articles, stale=cached.stale)

    def status(self) -> Dict[str, Any]:
        registry = self.aggregator.registry
        tracker = self.aggregator.tracker
        feed_status = registry.get_feed_status()
        healthy = [
            f for f in registry.get_enabled_feeds() if not tracker.should_skip(f.name)
        ]
        summary = {
            k: v for k, v in self.aggregator.last_summary.items() if k != "by_source"
        }
        return {
            "status": "ok" if len(healthy) >= MIN_HEALTHY_FEEDS else "degraded",
            "feeds": {
                "total": feed_status["total"],
                "enabled": feed_status["enabled"],
                "healthy": len(healthy),
                "disabled": feed_status["disabled"],
                "categories": feed_status["categories"],
                "avg_credibility": feed_status["avg_credibility"],
            },
            "failures": tracker.get_stats(),
            "aggregator_state": self.aggregator.state.value,
            "last_run": summary,
        }
