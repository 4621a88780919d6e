"""Staleness-aware cache in front of the aggregator.

Entries younger than ``fresh_secs`` are served as-is.  Older entries are
refreshed; if the refresh fails and the entry is still younger than
``stale_secs`` it is served flagged as stale.  Past ``stale_secs`` an entry
is never served.

Refreshes are serialised with an :class:`asyncio.Lock`, so concurrent
callers that miss at the same time trigger a single aggregation run.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Tuple

from .config import Settings, get_settings
from .logging_utils import get_logger
from .models import Article

log = get_logger(__name__)


class CacheStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


@dataclass
class CacheEntry:
    articles: List[Article]
    stored_at: float


@dataclass
class CachedResult:
    articles: List[Article]
    stale: bool
    age_secs: float
    refreshed: bool


class ResultCache:
    def __init__(
        self,
        fresh_secs: float = 300.0,
        stale_secs: float = 600.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.fresh_secs = float(fresh_secs)
        self.stale_secs = max(float(stale_secs), self.fresh_secs)
        self._clock = clock or time.monotonic
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ResultCache":
        s = settings or get_settings()
        return cls(s.cache_fresh_secs, s.cache_stale_secs)

    def lookup(self, key: Hashable) -> Tuple[CacheStatus, Optional[CacheEntry]]:
        entry = self._entries.get(key)
        if entry is None:
            return CacheStatus.MISS, None
        age = self._clock() - entry.stored_at
        if age < self.fresh_secs:
            return CacheStatus.FRESH, entry
        if age < self.stale_secs:
            return CacheStatus.STALE, entry
        return CacheStatus.MISS, None

    def store(self, key: Hashable, articles: List[Article]) -> CacheEntry:
        entry = CacheEntry(articles=list(articles), stored_at=self._clock())
        self._entries[key] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def _age(self, entry: CacheEntry) -> float:
        return max(0.0, self._clock() - entry.stored_at)

    async def get_or_refresh(
        self,
        key: Hashable,
        refresh: Callable[[], Awaitable[List[Article]]],
    ) -> CachedResult:
        """Serve ``key`` from cache or run ``refresh``.

        Exceptions from ``refresh`` propagate only when no stale entry is
        available.
        """
        status, entry = self.lookup(key)
        if status is CacheStatus.FRESH and entry is not None:
            return CachedResult(entry.articles, False, self._age(entry), False)

        async with self._lock:
            # another caller may have refreshed while we waited
            status, entry = self.lookup(key)
            if status is CacheStatus.FRESH and entry is not None:
                return CachedResult(entry.articles, False, self._age(entry), False)
            try:
                articles = await refresh()
            except Exception as e:
                if status is CacheStatus.STALE and entry is not None:
                    log.warning(
                        "cache_serving_stale age_secs=%.0f err=%s",
                        self._age(entry),
                        e.__class__.__name__,
                    )
                    return CachedResult(entry.articles, True, self._age(entry), False)
                raise
            fresh = self.store(key, articles)
            log.debug("cache_refreshed key=%s articles=%d", key, len(articles))
            return CachedResult(fresh.articles, False, 0.0, True)
