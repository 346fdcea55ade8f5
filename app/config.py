"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Reel Roulette", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="fr-FR", alias="TMDB_LANGUAGE")
    watch_provider: int = Field(default=8, alias="WATCH_PROVIDER", ge=1)
    watch_region: str = Field(default="FR", alias="WATCH_REGION")

    response_cache_seconds: int = Field(
        default=1_800, alias="CACHE_TTL", ge=1
    )
    fetch_retries: int = Field(default=3, alias="FETCH_RETRIES", ge=1, le=10)
    fetch_retry_delay_ms: int = Field(
        default=2_000, alias="FETCH_RETRY_DELAY_MS", ge=0
    )

    pool_page_count: int = Field(default=5, alias="POOL_PAGE_COUNT", ge=1, le=20)
    pool_max_page: int = Field(default=100, alias="POOL_MAX_PAGE", ge=1, le=500)
    pool_stagger_ms: int = Field(default=200, alias="POOL_STAGGER_MS", ge=0)
    pool_low_water: int = Field(default=5, alias="POOL_LOW_WATER", ge=0)
    pool_regeneration_attempts: int = Field(
        default=5, alias="POOL_REGENERATION_ATTEMPTS", ge=1, le=50
    )
    pool_preload_count: int = Field(default=3, alias="POOL_PRELOAD_COUNT", ge=0)
    recent_ring_size: int = Field(default=100, alias="RECENT_RING_SIZE", ge=1)
    history_limit: int = Field(default=50, alias="HISTORY_LIMIT", ge=1)
    draw_interval_ms: int = Field(default=500, alias="DRAW_INTERVAL_MS", ge=0)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./roulette.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank_key(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("watch_region")
    @classmethod
    def _normalise_region(cls, value: str) -> str:
        """Region codes are two-letter upper case identifiers."""

        cleaned = value.strip().upper()
        if len(cleaned) != 2 or not cleaned.isalpha():
            raise ValueError("WATCH_REGION must be a two-letter country code")
        return cleaned

    @property
    def cache_ttl_seconds(self) -> float:
        return float(self.response_cache_seconds)

    @property
    def retry_base_delay(self) -> float:
        """Base retry delay expressed in seconds."""

        return self.fetch_retry_delay_ms / 1000

    @property
    def draw_interval_seconds(self) -> float:
        return self.draw_interval_ms / 1000

    @property
    def pool_stagger_seconds(self) -> float:
        return self.pool_stagger_ms / 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
