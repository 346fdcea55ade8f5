"""Tests for detail enrichment, preloading and the detail cache."""

from __future__ import annotations

from typing import cast

import pytest

from app.models import CastMember, ContentItem
from app.services.catalog import CatalogQueryService
from app.services.details import DetailCache, DetailPreloader, Enrichment
from app.services.errors import CatalogQueryError


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class FakeClock:
    def __init__(self, now: float = 500.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubCatalog:
    """Returns canned detail records and counts lookups."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[int, str]] = []

    async def get_details(self, content_id: int, kind: str) -> ContentItem:
        self.calls.append((content_id, kind))
        if self.fail:
            raise CatalogQueryError("detail lookup", "HTTP 500: Internal Server Error")
        return ContentItem(
            id=content_id,
            media_kind=kind,
            title="Detailed",
            trailer="yt-key",
            duration="2h 28min",
            cast=[CastMember(id=1, name="Lead")],
        )


def _list_item(content_id: int = 7, kind: str = "movie") -> ContentItem:
    return ContentItem(
        id=content_id,
        media_kind=kind,
        title="List title",
        duration="1h 55min",
        cast=[],
    )


def _preloader(catalog: StubCatalog, clock: FakeClock | None = None) -> DetailPreloader:
    return DetailPreloader(
        cast(CatalogQueryService, catalog),
        DetailCache(1_800, clock=clock or FakeClock()),
    )


def test_merge_keeps_existing_fields_when_enrichment_is_empty() -> None:
    item = _list_item().model_copy(
        update={"trailer": "old", "cast": [CastMember(id=3, name="Kept")]}
    )

    merged = Enrichment(duration=None, seasons=None).merge_into(item)

    assert merged.trailer is None
    assert [member.id for member in merged.cast] == [3]
    assert merged.duration == "1h 55min"
    assert merged.title == "List title"


@pytest.mark.anyio("asyncio")
async def test_load_details_merges_and_caches() -> None:
    catalog = StubCatalog()
    preloader = _preloader(catalog)

    first = await preloader.load_details(_list_item())
    second = await preloader.load_details(_list_item())

    assert first.trailer == "yt-key"
    assert first.duration == "2h 28min"
    assert first.title == "List title"
    assert [member.name for member in first.cast] == ["Lead"]
    assert second == first
    assert catalog.calls == [(7, "movie")]


@pytest.mark.anyio("asyncio")
async def test_load_details_failure_returns_item_unchanged() -> None:
    catalog = StubCatalog(fail=True)
    preloader = _preloader(catalog)
    item = _list_item()

    result = await preloader.load_details(item)

    assert result == item
    assert len(preloader.cache) == 0


@pytest.mark.anyio("asyncio")
async def test_detail_cache_entries_expire() -> None:
    clock = FakeClock()
    catalog = StubCatalog()
    preloader = _preloader(catalog, clock)

    await preloader.load_details(_list_item())
    clock.now += 1_800 - 0.001
    assert preloader.cache.get(_list_item()) is not None
    clock.now += 0.002
    assert preloader.cache.get(_list_item()) is None


@pytest.mark.anyio("asyncio")
async def test_preload_feeds_later_selection() -> None:
    catalog = StubCatalog()
    preloader = _preloader(catalog)
    item = _list_item(9)

    task = preloader.preload(item)
    assert task is not None
    await preloader.wait_idle()

    assert preloader.preloaded(item) is not None
    detailed = await preloader.load_details(item)

    assert detailed.trailer == "yt-key"
    assert catalog.calls == [(9, "movie")]


@pytest.mark.anyio("asyncio")
async def test_preload_skips_items_with_trailer_and_swallows_failures() -> None:
    catalog = StubCatalog(fail=True)
    preloader = _preloader(catalog)

    assert preloader.preload(_list_item().model_copy(update={"trailer": "x"})) is None

    preloader.preload(_list_item(11))
    await preloader.wait_idle()

    assert preloader.preloaded(_list_item(11)) is None
    assert catalog.calls == [(11, "movie")]


def test_movie_and_series_with_same_id_do_not_collide() -> None:
    cache = DetailCache(60, clock=FakeClock())
    cache.put(_list_item(5, "movie"), details_loaded=True)

    assert cache.get(_list_item(5, "series")) is None
    assert cache.get(_list_item(5, "movie")) is not None


def test_blob_round_trip_preserves_flags() -> None:
    clock = FakeClock()
    cache = DetailCache(60, clock=clock)
    cache.put(_list_item(5, "series"), details_loaded=True)

    blob = cache.to_blob()
    restored = DetailCache(60, clock=clock)
    restored.load_blob({**blob, "movie:broken": {"data": {"id": "x"}}, "junk": 3})

    assert list(blob) == ["series:5"]
    assert len(restored) == 1
    entry = restored.get(_list_item(5, "series"))
    assert entry is not None and entry.details_loaded is True


@pytest.mark.anyio("asyncio")
async def test_remembered_list_items_still_load_details() -> None:
    catalog = StubCatalog()
    preloader = _preloader(catalog)
    loaded = await preloader.load_details(_list_item(3))

    preloader.remember([_list_item(3), _list_item(4)])

    assert preloader.cache.get(_list_item(3)).item == loaded
    assert preloader.cache.get(_list_item(3)).details_loaded is True
    assert preloader.cache.get(_list_item(4)).details_loaded is False
    detailed = await preloader.load_details(_list_item(4))
    assert detailed.trailer == "yt-key"
    assert preloader.cache.get(_list_item(4)).details_loaded is True
    assert catalog.calls == [(3, "movie"), (4, "movie")]
