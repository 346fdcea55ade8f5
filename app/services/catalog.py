"""Catalog queries built from normalized filters, fronted by the result cache."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from ..genres import genre_id_for
from ..models import ContentFilters, ContentItem, ContentPage, MediaKind
from ..utils import add_months, month_window, shift_years
from .cache import CacheEntry, ResultCache
from .errors import CatalogQueryError, FetchError, NotFoundError
from .tmdb import TMDBClient
from .transform import transform_details, transform_result

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SORT = "popularity.desc"
DEFAULT_TOTAL_PAGES = 500
SEARCH_LIMIT = 20
ACTOR_RESULT_LIMIT = 20
NEW_RELEASES_LIMIT = 15
COMING_SOON_LIMIT = 20
LEAVING_SOON_LIMIT = 15
DATE_RANGE_LIMIT = 20


@dataclass(slots=True)
class ActorResults:
    """Titles featuring the best matching performer for a name search."""

    items: list[ContentItem]
    actor_id: int
    actor_name: str
    total_pages: int = 0


def release_date_field(kind: MediaKind) -> str:
    return "primary_release_date" if kind == "movie" else "first_air_date"


class CatalogQueryService:
    """Translate filters into TMDB queries and transform the results."""

    def __init__(
        self,
        tmdb: TMDBClient,
        cache: ResultCache,
        *,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._tmdb = tmdb
        self._cache = cache
        self._rng = rng or random.Random()
        self._today = today

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @staticmethod
    def fingerprint(
        kind: MediaKind, filters: ContentFilters, page: int, sort_by: str
    ) -> str:
        """Deterministic cache key covering every discovery dimension."""

        return "-".join(
            str(part)
            for part in (
                kind,
                filters.genre or "all",
                filters.year or "all",
                filters.min_rating if filters.min_rating is not None else "all",
                filters.actor or "all",
                sort_by,
                page,
            )
        )

    async def _guard(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except NotFoundError:
            raise
        except (FetchError, httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Error during %s: %s", operation, exc)
            raise CatalogQueryError(operation, exc) from exc

    def _transform_page(
        self, payload: dict[str, Any], kind: MediaKind, limit: int | None = None
    ) -> ContentPage:
        raw_results = payload.get("results") or []
        if limit is not None:
            raw_results = raw_results[:limit]
        items = [
            transform_result(raw, kind, self._rng)
            for raw in raw_results
            if isinstance(raw, dict) and raw.get("id") is not None
        ]
        return ContentPage(
            items=items,
            total_pages=int(payload.get("total_pages") or DEFAULT_TOTAL_PAGES),
            total_count=int(payload.get("total_results") or 0),
        )

    def discovery_params(
        self, kind: MediaKind, filters: ContentFilters, page: int, sort_by: str
    ) -> dict[str, Any]:
        """Build the TMDB discover parameters for a filter combination."""

        params: dict[str, Any] = {"sort_by": sort_by, "page": page}
        genre_id = genre_id_for(filters.genre)
        if genre_id is not None:
            params["with_genres"] = genre_id
        if filters.year is not None:
            year_key = "primary_release_year" if kind == "movie" else "first_air_date_year"
            params[year_key] = filters.year
        if filters.min_rating is not None:
            params["vote_average.gte"] = filters.min_rating
            params["vote_count.gte"] = 50
        else:
            params["vote_count.gte"] = 50
            params["vote_average.gte"] = 1
        return params

    async def discover(
        self,
        kind: MediaKind,
        filters: ContentFilters | None = None,
        page: int = 1,
        sort_by: str = DEFAULT_SORT,
    ) -> CacheEntry:
        """Return a cached or fresh discovery page."""

        filters = filters or ContentFilters()
        key = self.fingerprint(kind, filters, page, sort_by)

        async def produce() -> ContentPage:
            payload = await self._tmdb.discover(
                kind, self.discovery_params(kind, filters, page, sort_by)
            )
            return self._transform_page(payload, kind)

        return await self._guard(
            "content discovery", lambda: self._cache.get_or_fetch(key, produce)
        )

    async def search_by_title(self, query: str, kind: MediaKind) -> list[ContentItem]:
        async def run() -> list[ContentItem]:
            payload = await self._tmdb.search(kind, query)
            return self._transform_page(payload, kind, SEARCH_LIMIT).items

        return await self._guard("title search", run)

    async def search_by_actor(
        self, name: str, kind: MediaKind, page: int = 1
    ) -> ActorResults:
        """Resolve the top matching performer and list their titles.

        Raises :class:`NotFoundError` when the person search is empty.
        """

        async def run() -> ActorResults:
            people = await self._tmdb.search_person(name)
            candidates = [
                person
                for person in people.get("results") or []
                if isinstance(person, dict) and person.get("id") is not None
            ]
            if not candidates:
                raise NotFoundError("actor not found")
            actor = candidates[0]
            payload = await self._tmdb.discover(
                kind,
                {
                    "with_cast": actor["id"],
                    "sort_by": DEFAULT_SORT,
                    "page": page,
                    "vote_count.gte": 20,
                },
            )
            page_result = self._transform_page(payload, kind, ACTOR_RESULT_LIMIT)
            return ActorResults(
                items=page_result.items,
                actor_id=int(actor["id"]),
                actor_name=str(actor.get("name") or name),
                total_pages=page_result.total_pages,
            )

        return await self._guard("actor search", run)

    async def get_details(self, content_id: int, kind: MediaKind) -> ContentItem:
        async def run() -> ContentItem:
            payload = await self._tmdb.details(kind, content_id)
            return transform_details(payload, kind, self._rng)

        return await self._guard("detail lookup", run)

    async def _windowed(
        self,
        operation: str,
        kind: MediaKind,
        *,
        start: date,
        end: date,
        end_operator: str,
        sort_by: str,
        min_votes: int,
        limit: int,
        extra: dict[str, Any] | None = None,
    ) -> CacheEntry:
        field = release_date_field(kind)
        params: dict[str, Any] = {
            "sort_by": sort_by,
            f"{field}.gte": start.isoformat(),
            f"{field}.{end_operator}": end.isoformat(),
            "vote_count.gte": min_votes,
        }
        if extra:
            params.update(extra)
        key = f"{operation.replace(' ', '-')}-{kind}-{start}-{end}-{sort_by}"

        async def produce() -> ContentPage:
            payload = await self._tmdb.discover(kind, params)
            return self._transform_page(payload, kind, limit)

        return await self._guard(operation, lambda: self._cache.get_or_fetch(key, produce))

    async def new_releases(
        self, kind: MediaKind, year: int | None = None, month: int | None = None
    ) -> CacheEntry:
        """Titles released during a calendar month (current month by default)."""

        today = self._today()
        start, end = month_window(year or today.year, month or today.month)
        return await self._windowed(
            "new releases",
            kind,
            start=start,
            end=end,
            end_operator="lt",
            sort_by="release_date.desc",
            min_votes=20,
            limit=NEW_RELEASES_LIMIT,
        )

    async def coming_soon(self, kind: MediaKind) -> CacheEntry:
        today = self._today()
        return await self._windowed(
            "coming soon",
            kind,
            start=today,
            end=add_months(today, 3),
            end_operator="lte",
            sort_by="primary_release_date.asc",
            min_votes=10,
            limit=COMING_SOON_LIMIT,
            extra={"with_release_type": "3|2"},
        )

    async def leaving_soon(self, kind: MediaKind) -> CacheEntry:
        today = self._today()
        return await self._windowed(
            "leaving soon",
            kind,
            start=shift_years(today, -2),
            end=shift_years(today, -1),
            end_operator="lte",
            sort_by=DEFAULT_SORT,
            min_votes=20,
            limit=LEAVING_SOON_LIMIT,
        )

    async def by_date_range(self, kind: MediaKind, start: date, end: date) -> CacheEntry:
        return await self._windowed(
            "date range",
            kind,
            start=start,
            end=end,
            end_operator="lte",
            sort_by="release_date.desc",
            min_votes=10,
            limit=DATE_RANGE_LIMIT,
        )
