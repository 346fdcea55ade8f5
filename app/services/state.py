"""Persisted per-user state stored as independent key/value blobs."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Iterable

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import StateEntry
from ..models import ContentItem

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Small JSON key/value store backed by the ``state_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load_all(self) -> dict[str, Any]:
        async with self._session_factory() as session:
            result = await session.execute(select(StateEntry))
            return {entry.key: entry.value for entry in result.scalars()}

    async def set(self, key: str, value: Any) -> None:
        async with self._session_factory() as session:
            entry = await session.get(StateEntry, key)
            if entry is None:
                session.add(StateEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()


class UserState:
    """Typed accessors for each persisted concern of the single user session.

    Every concern owns one key; mutations rewrite only that key.
    """

    FAVORITES_KEY = "favorites"
    RATINGS_KEY = "ratings"
    HISTORY_KEY = "history"
    MUTED_KEY = "muted"
    DETAIL_CACHE_KEY = "cache"
    SEEN_KEY = "seen"
    WATCHED_KEY = "watched"
    RECENT_KEY = "recent"

    def __init__(
        self,
        store: KeyValueStore,
        *,
        history_limit: int = 50,
        recent_limit: int = 100,
    ):
        self._store = store
        self._history_limit = history_limit
        self._favorites: list[ContentItem] = []
        self._watched: list[ContentItem] = []
        self._history: list[ContentItem] = []
        self._ratings: dict[int, int] = {}
        self._muted = False
        self._seen: set[int] = set()
        self._recent: deque[int] = deque(maxlen=recent_limit)
        self._detail_cache: dict[str, Any] = {}

    async def load(self) -> None:
        """Load every concern once; unreadable blobs fall back to defaults."""

        raw = await self._store.load_all()
        self._favorites = self._load_items(raw, self.FAVORITES_KEY)
        self._watched = self._load_items(raw, self.WATCHED_KEY)
        self._history = self._load_items(raw, self.HISTORY_KEY)[: self._history_limit]
        self._ratings = self._load_ratings(raw.get(self.RATINGS_KEY))
        self._muted = bool(raw.get(self.MUTED_KEY, False))
        self._seen = set(self._load_ids(raw.get(self.SEEN_KEY)))
        self._recent.clear()
        self._recent.extend(self._load_ids(raw.get(self.RECENT_KEY)))
        cache_blob = raw.get(self.DETAIL_CACHE_KEY)
        self._detail_cache = cache_blob if isinstance(cache_blob, dict) else {}
        logger.info(
            "Loaded user state: %s seen, %s favorites, %s watched",
            len(self._seen),
            len(self._favorites),
            len(self._watched),
        )

    @staticmethod
    def _load_items(raw: dict[str, Any], key: str) -> list[ContentItem]:
        values = raw.get(key)
        if not isinstance(values, list):
            return []
        items: list[ContentItem] = []
        for value in values:
            try:
                items.append(ContentItem.model_validate(value))
            except ValidationError:
                logger.warning("Skipping unreadable %s entry", key)
        return items

    @staticmethod
    def _load_ids(values: object) -> list[int]:
        if not isinstance(values, list):
            return []
        ids: list[int] = []
        for value in values:
            try:
                ids.append(int(value))
            except (TypeError, ValueError):
                continue
        return ids

    @staticmethod
    def _load_ratings(values: object) -> dict[int, int]:
        if not isinstance(values, dict):
            return {}
        ratings: dict[int, int] = {}
        for key, value in values.items():
            try:
                ratings[int(key)] = int(value)
            except (TypeError, ValueError):
                continue
        return ratings

    @staticmethod
    def _dump_items(items: Iterable[ContentItem]) -> list[dict[str, object]]:
        return [item.to_payload() for item in items]

    @property
    def favorites(self) -> list[ContentItem]:
        return list(self._favorites)

    @property
    def watched(self) -> list[ContentItem]:
        return list(self._watched)

    @property
    def history(self) -> list[ContentItem]:
        return list(self._history)

    @property
    def ratings(self) -> dict[int, int]:
        return dict(self._ratings)

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def seen_ids(self) -> frozenset[int]:
        return frozenset(self._seen)

    @property
    def recent_ids(self) -> list[int]:
        return list(self._recent)

    @property
    def detail_cache(self) -> dict[str, Any]:
        return dict(self._detail_cache)

    def has_seen(self, content_id: int) -> bool:
        return content_id in self._seen

    def is_recent(self, content_id: int) -> bool:
        return content_id in self._recent

    def excluded_ids(self) -> set[int]:
        """Ids removed from every pool besides the seen-set."""

        return {item.id for item in self._watched} | {item.id for item in self._history}

    async def toggle_favorite(self, item: ContentItem) -> bool:
        """Add or remove a favorite; returns whether it is now a favorite."""

        remaining = [fav for fav in self._favorites if fav.id != item.id]
        added = len(remaining) == len(self._favorites)
        self._favorites = remaining + [item] if added else remaining
        await self._store.set(self.FAVORITES_KEY, self._dump_items(self._favorites))
        return added

    async def toggle_watched(self, item: ContentItem) -> bool:
        remaining = [entry for entry in self._watched if entry.id != item.id]
        added = len(remaining) == len(self._watched)
        self._watched = remaining + [item] if added else remaining
        await self._store.set(self.WATCHED_KEY, self._dump_items(self._watched))
        return added

    async def record_open(self, item: ContentItem) -> None:
        """Move ``item`` to the front of the bounded watch-open history."""

        remaining = [entry for entry in self._history if entry.id != item.id]
        self._history = [item, *remaining][: self._history_limit]
        await self._store.set(self.HISTORY_KEY, self._dump_items(self._history))

    async def set_rating(self, content_id: int, rating: int) -> None:
        self._ratings[content_id] = rating
        await self._store.set(
            self.RATINGS_KEY, {str(key): value for key, value in self._ratings.items()}
        )

    async def set_muted(self, muted: bool) -> None:
        self._muted = muted
        await self._store.set(self.MUTED_KEY, muted)

    async def mark_seen(self, content_id: int) -> None:
        """Record a presented item in the seen-set and the recently-used ring."""

        self._seen.add(content_id)
        self._recent.appendleft(content_id)
        await self._store.set(self.SEEN_KEY, sorted(self._seen))
        await self._store.set(self.RECENT_KEY, list(self._recent))

    async def clear_recent(self) -> None:
        self._recent.clear()
        await self._store.set(self.RECENT_KEY, [])

    async def reset_seen(self) -> None:
        """Forget every seen id; favorites, history and caches are kept."""

        self._seen.clear()
        self._recent.clear()
        await self._store.set(self.SEEN_KEY, [])
        await self._store.set(self.RECENT_KEY, [])

    async def save_detail_cache(self, blob: dict[str, Any]) -> None:
        self._detail_cache = dict(blob)
        await self._store.set(self.DETAIL_CACHE_KEY, self._detail_cache)
