"""Transform raw TMDB records into :class:`ContentItem` objects."""

from __future__ import annotations

import random
from typing import Any
from urllib.parse import quote

from ..genres import DEFAULT_DURATION_MINUTES, GENRE_DURATIONS, map_genre_codes
from ..models import (
    DEFAULT_DESCRIPTION,
    MAX_CAST_MEMBERS,
    PLACEHOLDER_IMAGE,
    UNKNOWN_YEAR,
    CastMember,
    ContentItem,
    MediaKind,
)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/w1280"
PROFILE_BASE_URL = "https://image.tmdb.org/t/p/w185"
WATCH_SEARCH_URL = "https://www.netflix.com/search?q="
# Unreserved characters kept literal in the deep-link query.
_URI_SAFE = "-_.!~*'()"

SERIES_MARKER = "Series"
TRAILER_SITE = "YouTube"
TRAILER_TYPES = ("Trailer", "Teaser")

MIN_ESTIMATED_MINUTES = 80
DURATION_JITTER_MINUTES = 15


def format_runtime(minutes: int) -> str:
    """Render a runtime as ``"1h 55min"`` or ``"45min"``."""

    hours, remainder = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remainder}min"
    return f"{remainder}min"


def estimate_movie_minutes(
    genre_ids: list[int], year: int | str, rng: random.Random
) -> int:
    """Estimate a runtime from genre baselines, decade and bounded jitter."""

    baseline = DEFAULT_DURATION_MINUTES
    if genre_ids:
        durations = [
            GENRE_DURATIONS.get(code, DEFAULT_DURATION_MINUTES) for code in genre_ids
        ]
        # round half up
        baseline = int(sum(durations) / len(durations) + 0.5)

    if isinstance(year, int):
        if year >= 2010:
            baseline += 10
        if year >= 2020:
            baseline += 5

    jitter = rng.randint(-DURATION_JITTER_MINUTES, DURATION_JITTER_MINUTES)
    return max(MIN_ESTIMATED_MINUTES, baseline + jitter)


def estimate_movie_duration(
    genre_ids: list[int], year: int | str, rng: random.Random
) -> str:
    return format_runtime(estimate_movie_minutes(genre_ids, year, rng))


def extract_year(raw: dict[str, Any]) -> int | str:
    """Return the release year from whichever date field is present."""

    date_value = raw.get("release_date") or raw.get("first_air_date")
    if not isinstance(date_value, str) or len(date_value) < 4:
        return UNKNOWN_YEAR
    try:
        return int(date_value[:4])
    except ValueError:
        return UNKNOWN_YEAR


def build_image_url(path: object, base_url: str) -> str | None:
    if not isinstance(path, str) or not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url}{path}"


def build_watch_url(title: str) -> str:
    return WATCH_SEARCH_URL + quote(title, safe=_URI_SAFE)


def format_seasons(count: object) -> str:
    if isinstance(count, int) and count > 0:
        return f"{count} season{'s' if count > 1 else ''}"
    return SERIES_MARKER


def _genre_codes(raw: dict[str, Any]) -> list[int]:
    codes = raw.get("genre_ids")
    if codes is None and isinstance(raw.get("genres"), list):
        codes = [genre.get("id") for genre in raw["genres"] if isinstance(genre, dict)]
    cleaned: list[int] = []
    for code in codes or []:
        try:
            cleaned.append(int(code))
        except (TypeError, ValueError):
            continue
    return cleaned


def _rating(raw: dict[str, Any]) -> float:
    try:
        value = float(raw.get("vote_average") or 0)
    except (TypeError, ValueError):
        return 0.0
    return round(min(max(value, 0.0), 10.0), 1)


def transform_result(
    raw: dict[str, Any], kind: MediaKind, rng: random.Random
) -> ContentItem:
    """Build a list-level item from a discovery or search record."""

    title = raw.get("title") or raw.get("name") or "Untitled"
    year = extract_year(raw)
    codes = _genre_codes(raw)

    duration: str | None = None
    seasons: str | None = None
    if kind == "movie":
        duration = estimate_movie_duration(codes, year, rng)
    else:
        seasons = SERIES_MARKER

    return ContentItem(
        id=int(raw["id"]),
        media_kind=kind,
        title=title,
        description=raw.get("overview") or DEFAULT_DESCRIPTION,
        image=build_image_url(raw.get("poster_path"), POSTER_BASE_URL)
        or PLACEHOLDER_IMAGE,
        backdrop=build_image_url(raw.get("backdrop_path"), BACKDROP_BASE_URL),
        categories=map_genre_codes(codes),
        year=year,
        rating=_rating(raw),
        duration=duration,
        seasons=seasons,
        external_watch_url=build_watch_url(title),
        release_date=raw.get("release_date") or raw.get("first_air_date") or None,
    )


def transform_details(
    raw: dict[str, Any], kind: MediaKind, rng: random.Random
) -> ContentItem:
    """Build a fully enriched item from a detail record with credits and videos."""

    item = transform_result(raw, kind, rng)

    update: dict[str, Any] = {
        "cast": _extract_cast(raw),
        "trailer": _extract_trailer(raw),
    }
    if kind == "movie":
        runtime = raw.get("runtime")
        if isinstance(runtime, int) and runtime > 0:
            update["duration"] = format_runtime(runtime)
    else:
        update["seasons"] = format_seasons(raw.get("number_of_seasons"))
    return item.model_copy(update=update)


def _extract_cast(raw: dict[str, Any]) -> list[CastMember]:
    credits = raw.get("credits") or {}
    members: list[CastMember] = []
    for actor in (credits.get("cast") or [])[:MAX_CAST_MEMBERS]:
        if not isinstance(actor, dict) or actor.get("id") is None:
            continue
        members.append(
            CastMember(
                id=int(actor["id"]),
                name=actor.get("name") or "",
                character=actor.get("character"),
                profile_path=build_image_url(actor.get("profile_path"), PROFILE_BASE_URL),
            )
        )
    return members


def _extract_trailer(raw: dict[str, Any]) -> str | None:
    videos = (raw.get("videos") or {}).get("results") or []
    for video in videos:
        if not isinstance(video, dict):
            continue
        if video.get("type") in TRAILER_TYPES and video.get("site") == TRAILER_SITE:
            return video.get("key")
    return None
