"""Lazy per-item enrichment (trailer, cast, runtime) with its own TTL cache."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError

from ..models import CastMember, ContentItem, MediaKind
from .cache import DEFAULT_TTL_SECONDS
from .catalog import CatalogQueryService
from .errors import CatalogQueryError
from .state import UserState

logger = logging.getLogger(__name__)

DetailKey = tuple[MediaKind, int]


def detail_key(item: ContentItem) -> DetailKey:
    return (item.media_kind, item.id)


@dataclass(slots=True)
class DetailCacheEntry:
    """A cached item; ``details_loaded`` marks merged enrichment."""

    item: ContentItem
    fetched_at: float
    details_loaded: bool = False


@dataclass(slots=True)
class Enrichment:
    """Secondary fields fetched separately from list-level data."""

    trailer: str | None = None
    cast: list[CastMember] = field(default_factory=list)
    duration: str | None = None
    seasons: str | None = None

    @classmethod
    def from_item(cls, item: ContentItem) -> "Enrichment":
        return cls(
            trailer=item.trailer,
            cast=list(item.cast),
            duration=item.duration,
            seasons=item.seasons,
        )

    def merge_into(self, item: ContentItem) -> ContentItem:
        """Overlay enrichment without discarding fields already present."""

        return item.model_copy(
            update={
                "trailer": self.trailer or None,
                "cast": self.cast or item.cast,
                "duration": self.duration or item.duration,
                "seasons": self.seasons or item.seasons,
            }
        )


class DetailCache:
    """Item-id keyed cache whose entries expire after the list TTL."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[DetailKey, DetailCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, item: ContentItem) -> DetailCacheEntry | None:
        entry = self._entries.get(detail_key(item))
        if entry is None or self._clock() - entry.fetched_at >= self._ttl:
            return None
        return entry

    def put(self, item: ContentItem, *, details_loaded: bool = False) -> DetailCacheEntry:
        entry = DetailCacheEntry(
            item=item, fetched_at=self._clock(), details_loaded=details_loaded
        )
        self._entries[detail_key(item)] = entry
        return entry

    def to_blob(self) -> dict[str, Any]:
        """Serialise entries for the persisted ``cache`` state key."""

        return {
            f"{kind}:{content_id}": {
                "data": entry.item.to_payload(),
                "timestamp": entry.fetched_at,
                "detailsLoaded": entry.details_loaded,
            }
            for (kind, content_id), entry in self._entries.items()
        }

    def load_blob(self, blob: dict[str, Any]) -> None:
        for key, raw in blob.items():
            if not isinstance(raw, dict):
                continue
            try:
                item = ContentItem.model_validate(raw.get("data") or {})
                fetched_at = float(raw.get("timestamp") or 0)
            except (ValidationError, TypeError, ValueError):
                logger.warning("Dropping unreadable detail cache entry %s", key)
                continue
            self._entries[detail_key(item)] = DetailCacheEntry(
                item=item,
                fetched_at=fetched_at,
                details_loaded=bool(raw.get("detailsLoaded")),
            )


class DetailPreloader:
    """Fetches enrichment ahead of presentation and on demand."""

    def __init__(
        self,
        catalog: CatalogQueryService,
        cache: DetailCache,
        *,
        state: UserState | None = None,
    ):
        self._catalog = catalog
        self._cache = cache
        self._state = state
        self._preloaded: dict[DetailKey, Enrichment] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def cache(self) -> DetailCache:
        return self._cache

    def preloaded(self, item: ContentItem) -> Enrichment | None:
        return self._preloaded.get(detail_key(item))

    def remember(self, items: list[ContentItem]) -> None:
        """Cache list-level items without overwriting loaded enrichment."""

        for item in items:
            entry = self._cache.get(item)
            if entry is None or not entry.details_loaded:
                self._cache.put(item, details_loaded=False)

    def preload(self, item: ContentItem) -> asyncio.Task[None] | None:
        """Schedule a background enrichment fetch; never blocks the caller."""

        if item.trailer or detail_key(item) in self._preloaded:
            return None
        entry = self._cache.get(item)
        if entry is not None and entry.details_loaded:
            return None
        task = asyncio.create_task(self._preload(item))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _preload(self, item: ContentItem) -> None:
        try:
            detailed = await self._catalog.get_details(item.id, item.media_kind)
        except CatalogQueryError as exc:
            logger.warning("Preloading details for %s failed: %s", item.id, exc)
            return
        self._preloaded[detail_key(item)] = Enrichment.from_item(detailed)

    async def load_details(self, item: ContentItem) -> ContentItem:
        """Return ``item`` merged with its enrichment, degrading to ``item``."""

        entry = self._cache.get(item)
        if entry is not None and entry.details_loaded:
            return entry.item

        enrichment = self._preloaded.get(detail_key(item))
        if enrichment is None:
            try:
                detailed = await self._catalog.get_details(item.id, item.media_kind)
            except CatalogQueryError as exc:
                logger.warning("Loading details for %s failed: %s", item.id, exc)
                return item
            enrichment = Enrichment.from_item(detailed)

        merged = enrichment.merge_into(item)
        self._cache.put(merged, details_loaded=True)
        if self._state is not None:
            await self._state.save_detail_cache(self._cache.to_blob())
        return merged

    async def wait_idle(self) -> None:
        """Wait for every scheduled preload to settle."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with suppress(asyncio.CancelledError):
                await task
