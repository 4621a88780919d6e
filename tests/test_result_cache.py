"""Tests for the fresh/stale result cache."""

import asyncio

import pytest

from finfeed.errors import AggregationError
from finfeed.result_cache import CacheStatus, ResultCache

from .helpers import make_article


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


class Refresher:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


ARTS = [make_article("One"), make_article("Two")]


class TestLookup:
    def test_status_by_age(self):
        clock = FakeClock()
        cache = ResultCache(fresh_secs=300, stale_secs=600, clock=clock)
        assert cache.lookup("k")[0] is CacheStatus.MISS
        cache.store("k", ARTS)
        clock.t = 299
        assert cache.lookup("k")[0] is CacheStatus.FRESH
        clock.t = 599
        assert cache.lookup("k")[0] is CacheStatus.STALE
        clock.t = 600
        assert cache.lookup("k")[0] is CacheStatus.MISS


class TestGetOrRefresh:
    @pytest.mark.asyncio
    async def test_fresh_hit_skips_refresh(self):
        clock = FakeClock()
        cache = ResultCache(clock=clock)
        refresh = Refresher(ARTS)
        first = await cache.get_or_refresh("k", refresh)
        clock.t = 10
        second = await cache.get_or_refresh("k", refresh)
        assert first.refreshed is True
        assert second.refreshed is False
        assert second.articles == ARTS
        assert second.age_secs == 10
        assert refresh.calls == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_serves_stale(self):
        clock = FakeClock()
        cache = ResultCache(fresh_secs=300, stale_secs=600, clock=clock)
        refresh = Refresher(ARTS, AggregationError("down"))
        await cache.get_or_refresh("k", refresh)
        clock.t = 400
        result = await cache.get_or_refresh("k", refresh)
        assert result.stale is True
        assert result.articles == ARTS
        assert refresh.calls == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_without_entry_raises(self):
        cache = ResultCache(clock=FakeClock())
        with pytest.raises(AggregationError):
            await cache.get_or_refresh("k", Refresher(AggregationError("down")))

    @pytest.mark.asyncio
    async def test_expired_entry_not_served(self):
        clock = FakeClock()
        cache = ResultCache(fresh_secs=300, stale_secs=600, clock=clock)
        refresh = Refresher(ARTS, AggregationError("down"))
        await cache.get_or_refresh("k", refresh)
        clock.t = 700
        with pytest.raises(AggregationError):
            await cache.get_or_refresh("k", refresh)

    @pytest.mark.asyncio
    async def test_concurrent_misses_refresh_once(self):
        cache = ResultCache(clock=FakeClock())
        calls = 0

        async def slow_refresh():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return ARTS

        results = await asyncio.gather(
            *(cache.get_or_refresh("k", slow_refresh) for _ in range(5))
        )
        assert calls == 1
        assert all(r.articles == ARTS for r in results)

    @pytest.mark.asyncio
    async def test_keys_are_separate(self):
        cache = ResultCache(clock=FakeClock())
        await cache.get_or_refresh("a", Refresher(ARTS[:1]))
        result = await cache.get_or_refresh("b", Refresher(ARTS))
        assert len(result.articles) == 2
