"""Result cache freshness tests."""

from __future__ import annotations

import asyncio

from app.models import ContentItem, ContentPage
from app.services.cache import ResultCache


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _page(*ids: int) -> ContentPage:
    return ContentPage(
        items=[ContentItem(id=content_id, title=f"Title {content_id}") for content_id in ids],
        total_pages=4,
        total_count=len(ids),
    )


def test_entry_is_fresh_until_ttl_elapses() -> None:
    clock = FakeClock()
    cache = ResultCache(1_800, clock=clock)
    cache.put("movie-all-all-all-all-popularity.desc-1", _page(1, 2))

    clock.now += 1_800 - 0.001
    entry = cache.get("movie-all-all-all-all-popularity.desc-1")
    assert entry is not None
    assert [item.id for item in entry.items] == [1, 2]
    assert entry.total_pages == 4

    clock.now += 0.002
    assert cache.get("movie-all-all-all-all-popularity.desc-1") is None


def test_get_or_fetch_only_calls_producer_on_miss() -> None:
    async def runner() -> None:
        clock = FakeClock()
        cache = ResultCache(60, clock=clock)
        calls = 0

        async def producer() -> ContentPage:
            nonlocal calls
            calls += 1
            return _page(calls)

        first = await cache.get_or_fetch("key", producer)
        second = await cache.get_or_fetch("key", producer)
        assert calls == 1
        assert first is second

        clock.now += 61
        third = await cache.get_or_fetch("key", producer)
        assert calls == 2
        assert third.items[0].id == 2
        assert len(cache) == 1

    asyncio.run(runner())


def test_distinct_fingerprints_do_not_collide() -> None:
    cache = ResultCache(60, clock=FakeClock())
    cache.put("movie-action-all-all-all-popularity.desc-1", _page(1))
    cache.put("series-action-all-all-all-popularity.desc-1", _page(2))

    assert cache.get("movie-action-all-all-all-popularity.desc-1").items[0].id == 1
    assert cache.get("series-action-all-all-all-popularity.desc-1").items[0].id == 2
    assert cache.get("movie-drama-all-all-all-popularity.desc-1") is None
