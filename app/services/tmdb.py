"""Endpoint helpers for The Movie Database (TMDB) v3 API."""

from __future__ import annotations

from typing import Any, Mapping

from ..config import Settings
from ..models import MediaKind, tmdb_media_path
from .fetcher import RetryFetcher


class TMDBClient:
    """Issues raw TMDB requests through the retry fetcher.

    Every discovery request carries the configured streaming provider and
    region so that results stay restricted to titles available there.
    """

    def __init__(self, settings: Settings, fetcher: RetryFetcher):
        self._settings = settings
        self._fetcher = fetcher

    def _base_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"language": self._settings.tmdb_language}
        if self._settings.tmdb_api_key:
            params["api_key"] = self._settings.tmdb_api_key
        return params

    def availability_params(self) -> dict[str, Any]:
        return {
            "with_watch_providers": self._settings.watch_provider,
            "watch_region": self._settings.watch_region,
        }

    async def _get_json(
        self, path: str, params: Mapping[str, Any]
    ) -> dict[str, Any]:
        merged = {**self._base_params(), **params}
        response = await self._fetcher.fetch(path, params=merged)
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected payload from {path}")
        return payload

    async def discover(
        self, kind: MediaKind, params: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Run a discovery query restricted to the target provider."""

        query = {"include_adult": "false", **params, **self.availability_params()}
        return await self._get_json(f"/discover/{tmdb_media_path(kind)}", query)

    async def search(self, kind: MediaKind, query: str) -> dict[str, Any]:
        return await self._get_json(
            f"/search/{tmdb_media_path(kind)}",
            {"query": query, "include_adult": "false"},
        )

    async def search_person(self, name: str) -> dict[str, Any]:
        return await self._get_json("/search/person", {"query": name})

    async def details(self, kind: MediaKind, content_id: int) -> dict[str, Any]:
        """Fetch a single title with credits and videos expanded."""

        return await self._get_json(
            f"/{tmdb_media_path(kind)}/{content_id}",
            {"append_to_response": "credits,videos"},
        )
