"""Time-bounded result cache keyed by query fingerprints."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..models import ContentPage

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

DEFAULT_TTL_SECONDS = 30 * 60


@dataclass(slots=True)
class CacheEntry:
    """A transformed result page and the moment it was fetched."""

    page: ContentPage
    fetched_at: float

    @property
    def items(self):
        return self.page.items

    @property
    def total_pages(self) -> int:
        return self.page.total_pages

    @property
    def total_count(self) -> int:
        return self.page.total_count


class ResultCache:
    """Maps fingerprints to result pages until their TTL elapses.

    Entries are never evicted; stale ones are simply ignored and overwritten
    by the next fetch for the same fingerprint.
    """

    def __init__(
        self, ttl_seconds: float = DEFAULT_TTL_SECONDS, *, clock: Clock = time.time
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, fingerprint: str) -> CacheEntry | None:
        """Return the entry for ``fingerprint`` when it is still fresh."""

        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at < self._ttl:
            return entry
        return None

    def put(self, fingerprint: str, page: ContentPage) -> CacheEntry:
        entry = CacheEntry(page=page, fetched_at=self._clock())
        self._entries[fingerprint] = entry
        return entry

    async def get_or_fetch(
        self, fingerprint: str, producer: Callable[[], Awaitable[ContentPage]]
    ) -> CacheEntry:
        """Serve a fresh entry or invoke ``producer`` and store its result."""

        entry = self.get(fingerprint)
        if entry is not None:
            logger.debug("Result cache hit for %s", fingerprint)
            return entry
        page = await producer()
        return self.put(fingerprint, page)
