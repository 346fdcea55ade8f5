"""Pydantic models describing catalog content."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MediaKind = Literal["movie", "series"]

UNKNOWN_YEAR = "unknown"
PLACEHOLDER_IMAGE = "/abstract-movie-poster.png"
DEFAULT_DESCRIPTION = "Description unavailable"
MAX_CAST_MEMBERS = 5

_LEADING_INT = re.compile(r"\s*[+-]?\d+")

_MEDIA_KIND_ALIASES: dict[str, MediaKind] = {
    "movie": "movie",
    "movies": "movie",
    "film": "movie",
    "tv": "series",
    "series": "series",
    "show": "series",
}


def parse_media_kind(value: str | None) -> MediaKind:
    """Normalise the public ``type`` parameter into a media kind."""

    if value is None or not value.strip():
        return "movie"
    kind = _MEDIA_KIND_ALIASES.get(value.strip().lower())
    if kind is None:
        raise ValueError(f"Unsupported content type: {value}")
    return kind


def tmdb_media_path(kind: MediaKind) -> str:
    """Return the TMDB path segment for a media kind."""

    return "movie" if kind == "movie" else "tv"


class CastMember(BaseModel):
    """A credited performer attached to a content item."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    character: str | None = None
    profile_path: str | None = Field(default=None, alias="profilePath")


class ContentItem(BaseModel):
    """Canonical movie or series record shown to the user."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    media_kind: MediaKind = Field(default="movie", alias="mediaKind")
    title: str
    description: str = DEFAULT_DESCRIPTION
    image: str = PLACEHOLDER_IMAGE
    backdrop: str | None = None
    categories: list[str] = Field(default_factory=list)
    year: int | Literal["unknown"] = UNKNOWN_YEAR
    rating: float = Field(default=0.0, ge=0, le=10)
    duration: str | None = None
    seasons: str | None = None
    trailer: str | None = None
    cast: list[CastMember] = Field(default_factory=list)
    external_watch_url: str = Field(default="", alias="externalWatchUrl")
    release_date: str | None = Field(default=None, alias="releaseDate")

    @field_validator("cast")
    @classmethod
    def _limit_cast(cls, value: list[CastMember]) -> list[CastMember]:
        return value[:MAX_CAST_MEMBERS]

    def to_payload(self) -> dict[str, object]:
        """Return the JSON shape exposed to the presentation layer."""

        return self.model_dump(mode="json", by_alias=True)


class ContentPage(BaseModel):
    """One transformed page of catalog results."""

    items: list[ContentItem] = Field(default_factory=list)
    total_pages: int = 0
    total_count: int = 0


class ContentFilters(BaseModel):
    """Normalized filter dimensions shared by discovery and pools."""

    genre: str | None = None
    year: int | None = None
    min_rating: int | None = Field(default=None, ge=0, le=10)
    actor: str | None = None

    @field_validator("genre", "actor", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or stripped.lower() == "all":
                return None
            return stripped
        return value

    @field_validator("year", "min_rating", mode="before")
    @classmethod
    def _parse_optional_int(cls, value: object) -> object:
        if value is None or value == "" or value == "all":
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        # Leading integer wins, so "7.5" reads as 7.
        match = _LEADING_INT.match(str(value))
        if match is None:
            raise ValueError("Value must be an integer")
        return int(match.group(0))
