"""No-repeat random draws backed by per-filter pools of unseen content."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal

from ..models import ContentFilters, ContentItem, MediaKind
from .catalog import CatalogQueryService
from .details import DetailPreloader
from .errors import NotFoundError
from .state import UserState

logger = logging.getLogger(__name__)

DrawStatus = Literal["selected", "ignored", "unavailable", "not_found", "exhausted"]
SleepFunc = Callable[[float], Awaitable[None]]


class DrawThrottle:
    """Admits at most one draw per ``min_interval`` seconds."""

    def __init__(self, min_interval: float = 0.5):
        self._min_interval = min_interval
        self._last: float | None = None

    def try_acquire(self, now: float) -> bool:
        if self._last is not None and now - self._last < self._min_interval:
            return False
        self._last = now
        return True


@dataclass(frozen=True, slots=True)
class PoolKey:
    """Identity of one pool: the filter combination plus its generation."""

    media_kind: MediaKind
    genre: str | None
    year: int | None
    min_rating: int | None
    actor: str | None
    generation: int = 0

    @classmethod
    def build(
        cls, kind: MediaKind, filters: ContentFilters, generation: int
    ) -> "PoolKey":
        return cls(
            media_kind=kind,
            genre=filters.genre,
            year=filters.year,
            min_rating=filters.min_rating,
            actor=filters.actor,
            generation=generation,
        )

    @property
    def signature(self) -> tuple[object, ...]:
        return (self.media_kind, self.genre, self.year, self.min_rating, self.actor)

    def filters(self) -> ContentFilters:
        return ContentFilters(
            genre=self.genre,
            year=self.year,
            min_rating=self.min_rating,
            actor=self.actor,
        )

    def label(self) -> str:
        return "-".join(
            str(part if part is not None else "all")
            for part in (*self.signature, self.generation)
        )

    def accepts(self, item: ContentItem) -> bool:
        """Local filtering for actor pools, whose upstream query ignores filters."""

        if self.genre and self.genre.lower() not in item.categories:
            return False
        if self.year is not None and item.year != self.year:
            return False
        if self.min_rating is not None and item.rating < self.min_rating:
            return False
        return True


@dataclass(slots=True)
class DrawOutcome:
    status: DrawStatus
    item: ContentItem | None = None
    message: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "success": self.status == "selected",
            "status": self.status,
        }
        if self.item is not None:
            payload["result"] = self.item.to_payload()
        if self.message:
            payload["error"] = self.message
        return payload


@dataclass(slots=True)
class RefillResult:
    items: list[ContentItem] = field(default_factory=list)
    fetched: int = 0
    failed: int = 0
    not_found: NotFoundError | None = None


class PoolManager:
    """Owns the pools and is the only writer of the seen-set.

    Pools lazily shrink as their items are seen. A pool whose unseen
    remainder falls to ``low_water`` is topped up on the next draw, and an
    empty remainder moves the manager to a new pool generation.
    """

    def __init__(
        self,
        catalog: CatalogQueryService,
        state: UserState,
        preloader: DetailPreloader,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
        throttle: DrawThrottle | None = None,
        page_count: int = 5,
        max_page: int = 100,
        stagger: float = 0.2,
        low_water: int = 5,
        regeneration_attempts: int = 5,
        preload_count: int = 3,
    ):
        self._catalog = catalog
        self._state = state
        self._preloader = preloader
        self._rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep
        self._throttle = throttle or DrawThrottle()
        self._page_count = page_count
        self._max_page = max_page
        self._stagger = stagger
        self._low_water = low_water
        self._regeneration_attempts = regeneration_attempts
        self._preload_count = preload_count
        self._pools: dict[PoolKey, list[ContentItem]] = {}
        self._page_limits: dict[tuple[object, ...], int] = {}
        self._generation = 0
        self._epoch = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pools(self) -> dict[PoolKey, list[ContentItem]]:
        return dict(self._pools)

    def _is_fresh(self, item: ContentItem, excluded: set[int]) -> bool:
        return not self._state.has_seen(item.id) and item.id not in excluded

    def _is_drawable(self, item: ContentItem, excluded: set[int]) -> bool:
        return self._is_fresh(item, excluded) and not self._state.is_recent(item.id)

    async def draw(
        self, kind: MediaKind, filters: ContentFilters | None = None
    ) -> DrawOutcome:
        """Pick one never-seen item for the filter combination."""

        filters = filters or ContentFilters()
        if not self._throttle.try_acquire(self._clock()):
            return DrawOutcome("ignored")

        excluded = self._state.excluded_ids()
        key = PoolKey.build(kind, filters, self._generation)
        pool = self._pools.get(key)
        if pool is None:
            refill = await self._refill(key)
            failure = self._failed_fill(refill)
            if failure is not None:
                return failure
            pool = refill.items
        else:
            unseen = [item for item in pool if self._is_fresh(item, excluded)]
            self._pools[key] = unseen
            if 0 < len(unseen) <= self._low_water:
                pool = (await self._refill(key, carry=unseen)).items
            else:
                pool = unseen

        choices = [item for item in pool if self._is_drawable(item, excluded)]
        if choices:
            return DrawOutcome("selected", item=await self._select(self._rng.choice(choices)))

        await self._state.clear_recent()
        for attempt in range(self._regeneration_attempts):
            self._generation += 1
            key = PoolKey.build(kind, filters, self._generation)
            refill = await self._refill(key)
            failure = self._failed_fill(refill)
            if failure is not None:
                return failure
            fresh = [item for item in refill.items if self._is_fresh(item, excluded)]
            if fresh:
                logger.info(
                    "Pool regenerated after %s attempt(s) as %s", attempt + 1, key.label()
                )
                return DrawOutcome("selected", item=await self._select(self._rng.choice(fresh)))

        logger.info("No unseen content left for %s", key.label())
        return DrawOutcome(
            "exhausted",
            message="No new content available; reset your history to start over",
        )

    @staticmethod
    def _failed_fill(refill: RefillResult) -> DrawOutcome | None:
        """Terminal outcome for a fill that returned nothing, if any.

        Only a fill that produced items which were all filtered out warrants
        another generation; an empty answer or an unknown actor does not.
        """

        if refill.not_found is not None:
            return DrawOutcome("not_found", message=str(refill.not_found))
        if refill.fetched == 0:
            return DrawOutcome("unavailable", message="No content available")
        return None

    async def reset(self) -> None:
        """Clear the seen-set and recently-used ring."""

        await self._state.reset_seen()
        self._epoch += 1

    async def _select(self, item: ContentItem) -> ContentItem:
        detailed = await self._preloader.load_details(item)
        await self._state.mark_seen(item.id)
        return detailed

    def _page_limit(self, key: PoolKey) -> int:
        return self._page_limits.get(key.signature, self._max_page)

    def _note_total_pages(self, key: PoolKey, total_pages: int) -> None:
        if total_pages > 0:
            self._page_limits[key.signature] = max(1, min(self._max_page, total_pages))

    async def _fetch_page(self, key: PoolKey, page: int, delay: float) -> list[ContentItem]:
        if delay > 0:
            await self._sleep(delay)
        if key.actor:
            results = await self._catalog.search_by_actor(key.actor, key.media_kind, page=page)
            self._note_total_pages(key, results.total_pages)
            return [item for item in results.items if key.accepts(item)]
        entry = await self._catalog.discover(key.media_kind, key.filters(), page=page)
        self._note_total_pages(key, entry.total_pages)
        return list(entry.items)

    async def _refill(
        self, key: PoolKey, *, carry: list[ContentItem] | None = None
    ) -> RefillResult:
        """Fetch random pages concurrently and store the unseen, shuffled union."""

        epoch = self._epoch
        limit = self._page_limit(key)
        pages = [self._rng.randint(1, limit) for _ in range(self._page_count)]
        results = await asyncio.gather(
            *(
                self._fetch_page(key, page, index * self._stagger)
                for index, page in enumerate(pages)
            ),
            return_exceptions=True,
        )

        merged: dict[int, ContentItem] = {}
        fetched = 0
        failed = 0
        not_found: NotFoundError | None = None
        for page, result in zip(pages, results):
            if isinstance(result, NotFoundError):
                not_found = result
                continue
            if isinstance(result, BaseException):
                failed += 1
                logger.warning("Pool page %s for %s failed: %s", page, key.label(), result)
                continue
            fetched += len(result)
            for item in result:
                merged.setdefault(item.id, item)
        for item in carry or []:
            merged.setdefault(item.id, item)

        excluded = self._state.excluded_ids()
        fresh = [item for item in merged.values() if self._is_fresh(item, excluded)]
        self._rng.shuffle(fresh)

        if epoch != self._epoch or key.generation < self._generation:
            logger.debug("Discarding stale refill for %s", key.label())
            return RefillResult(fetched=fetched, failed=failed, not_found=not_found)

        self._pools[key] = fresh
        self._preloader.remember(fresh)
        logger.info(
            "Pool %s filled with %s unseen item(s), %s failed page(s)",
            key.label(),
            len(fresh),
            failed,
        )
        for item in fresh[: self._preload_count]:
            self._preloader.preload(item)
        return RefillResult(
            items=fresh, fetched=fetched, failed=failed, not_found=not_found
        )
