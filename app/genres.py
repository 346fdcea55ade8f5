"""Fixed genre tables shared by query building and transforms."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GenreDefinition:
    """Maps a TMDB numeric genre code onto a normalized tag."""

    tmdb_id: int
    slug: str
    average_minutes: int | None = None


GENRES: tuple[GenreDefinition, ...] = (
    GenreDefinition(28, "action", 115),
    GenreDefinition(12, "adventure", 125),
    GenreDefinition(16, "animation", 95),
    GenreDefinition(35, "comedy", 105),
    GenreDefinition(80, "crime", 110),
    GenreDefinition(99, "documentary", 95),
    GenreDefinition(18, "drama", 120),
    GenreDefinition(10751, "family", 110),
    GenreDefinition(14, "fantasy", 120),
    GenreDefinition(36, "history", 110),
    GenreDefinition(27, "horror", 95),
    GenreDefinition(10402, "music", 105),
    GenreDefinition(9648, "mystery", 110),
    GenreDefinition(10749, "romance", 110),
    GenreDefinition(878, "scifi", 115),
    GenreDefinition(10770, "tv"),
    GenreDefinition(53, "thriller", 105),
    GenreDefinition(10752, "war", 130),
    GenreDefinition(37, "western"),
)

GENRE_MAPPING: dict[int, str] = {genre.tmdb_id: genre.slug for genre in GENRES}
GENRE_DURATIONS: dict[int, int] = {
    genre.tmdb_id: genre.average_minutes
    for genre in GENRES
    if genre.average_minutes is not None
}
DEFAULT_DURATION_MINUTES = 110


def genre_id_for(slug: str | None) -> int | None:
    """Return the TMDB code for a normalized genre tag, if known."""

    if not slug:
        return None
    needle = slug.strip().lower()
    for genre in GENRES:
        if genre.slug == needle:
            return genre.tmdb_id
    return None


def map_genre_codes(codes: object) -> list[str]:
    """Translate TMDB genre codes to tags, dropping unknown codes."""

    if not isinstance(codes, (list, tuple)):
        return []
    tags: list[str] = []
    for code in codes:
        try:
            tag = GENRE_MAPPING.get(int(code))
        except (TypeError, ValueError):
            continue
        if tag and tag not in tags:
            tags.append(tag)
    return tags
