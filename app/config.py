"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SERIES_GROUP_IDS: tuple[str, ...] = ("series",)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Vitrine", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    catalog_base_url: HttpUrl = Field(
        default="http://localhost:8080", alias="CATALOG_BASE_URL"
    )
    index_path: str = Field(default="/index.json", alias="INDEX_PATH")
    playlist_base_path: str = Field(default="/playlist", alias="PLAYLIST_BASE_PATH")
    series_group_ids: tuple[str, ...] = Field(
        default=DEFAULT_SERIES_GROUP_IDS, alias="SERIES_GROUP_IDS"
    )

    preview_item_limit: int = Field(
        default=50_000, alias="PREVIEW_ITEM_LIMIT", ge=1, le=1_000_000
    )
    ingest_batch_size: int = Field(
        default=500, alias="INGEST_BATCH_SIZE", ge=1, le=50_000
    )

    store_retry_attempts: int = Field(
        default=3, alias="STORE_RETRY_ATTEMPTS", ge=0, le=10
    )
    store_retry_delay_seconds: float = Field(
        default=1.0, alias="STORE_RETRY_DELAY", ge=0
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./vitrine.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("series_group_ids", mode="before")
    @classmethod
    def _parse_series_group_ids(cls, value: object) -> tuple[str, ...]:
        """Normalise the group identifiers whose partitions hold episodes."""

        if value is None:
            return DEFAULT_SERIES_GROUP_IDS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("SERIES_GROUP_IDS must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            if entry and entry not in cleaned:
                cleaned.append(entry)
        if not cleaned:
            return DEFAULT_SERIES_GROUP_IDS
        return tuple(cleaned)

    @field_validator("index_path", "playlist_base_path")
    @classmethod
    def _ensure_leading_slash(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("/"):
            value = f"/{value}"
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
