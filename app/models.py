"""Pydantic models describing catalog records, series and the partition index."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from .utils import build_record_id, slugify

DEFAULT_TITLE = "Sem título"
DEFAULT_CATEGORY = "Sem Categoria"


class ContentKind(str, Enum):
    """Classification assigned to a record when it is parsed."""

    MOVIE = "movie"
    SERIES = "series"


class CatalogRecord(BaseModel):
    """A single playable entry taken from a playlist."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    title: str = DEFAULT_TITLE
    image: str | None = None
    category: str = DEFAULT_CATEGORY
    url: str
    kind: ContentKind = Field(
        default=ContentKind.MOVIE,
        validation_alias=AliasChoices("kind", "source"),
        serialization_alias="source",
    )

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value: object) -> str:
        text = str(value).strip() if value is not None else ""
        return text or DEFAULT_TITLE

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: object) -> str:
        text = str(value).strip() if value is not None else ""
        return text or DEFAULT_CATEGORY

    @field_validator("image", mode="before")
    @classmethod
    def _blank_image(cls, value: object) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("url", mode="before")
    @classmethod
    def _require_url(cls, value: object) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("A catalog record requires a playable URL")
        return text

    @model_validator(mode="after")
    def _derive_id(self) -> "CatalogRecord":
        """Identity is always recomputed from the title and URL."""

        self.id = build_record_id(self.title, self.url)
        return self

    @property
    def is_series(self) -> bool:
        return self.kind is ContentKind.SERIES

    def to_document(self) -> dict[str, object]:
        """Return the JSON shape used by persisted documents."""

        return self.model_dump(mode="json", by_alias=True)


class EpisodeRecord(CatalogRecord):
    """A catalog record recognised as one episode of a series."""

    kind: ContentKind = Field(
        default=ContentKind.SERIES,
        validation_alias=AliasChoices("kind", "source"),
        serialization_alias="source",
    )
    series_name: str = Field(
        validation_alias=AliasChoices("series_name", "seriesName"),
        serialization_alias="seriesName",
    )
    normalized_series_name: str = Field(
        validation_alias=AliasChoices("normalized_series_name", "normalizedName"),
        serialization_alias="normalizedName",
    )
    season: int = Field(default=1, ge=1)
    episode: int = Field(ge=1)
    episode_title: str | None = Field(
        default=None,
        validation_alias=AliasChoices("episode_title", "episodeTitle"),
        serialization_alias="episodeTitle",
    )

    @property
    def original_title(self) -> str:
        return self.title

    def sort_key(self) -> tuple[int, int]:
        return (self.season, self.episode)


class SeriesEnrichment(BaseModel):
    """Optional artwork and synopsis attached to a series by an external lookup."""

    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("tmdb_id", "tmdbId"),
        serialization_alias="tmdbId",
    )
    poster: str | None = None
    backdrop: str | None = None
    overview: str | None = None
    first_air_date: str | None = Field(
        default=None,
        validation_alias=AliasChoices("first_air_date", "firstAirDate"),
        serialization_alias="firstAirDate",
    )
    rating: float | None = None


class SeriesGroup(BaseModel):
    """Episodes sharing one normalized series name, ordered by season and episode."""

    model_config = ConfigDict(populate_by_name=True)

    series_name: str = Field(serialization_alias="seriesName")
    normalized_series_name: str = Field(serialization_alias="normalizedName")
    episodes: list[EpisodeRecord] = Field(default_factory=list)
    enrichment: SeriesEnrichment | None = None

    @computed_field(alias="totalSeasons")  # type: ignore[prop-decorator]
    @property
    def total_seasons(self) -> int:
        return len({episode.season for episode in self.episodes})

    @computed_field(alias="totalEpisodes")  # type: ignore[prop-decorator]
    @property
    def total_episodes(self) -> int:
        return len(self.episodes)

    @property
    def slug(self) -> str:
        return slugify(self.normalized_series_name)

    def seasons(self) -> dict[int, list[EpisodeRecord]]:
        """Return the episodes bucketed per season in ascending order."""

        buckets: dict[int, list[EpisodeRecord]] = {}
        for episode in self.episodes:
            buckets.setdefault(episode.season, []).append(episode)
        return {season: buckets[season] for season in sorted(buckets)}


class CatalogPartition(BaseModel):
    """One file-sized chunk of a catalog group."""

    model_config = ConfigDict(populate_by_name=True)

    file: str = Field(
        validation_alias=AliasChoices("file", "arquivo"),
        serialization_alias="arquivo",
        min_length=1,
    )
    offset: int = Field(default=0, ge=0)
    count: int = Field(default=0, ge=0)


class CatalogGroup(BaseModel):
    """A named collection of partitions, concatenated in listed order."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    title: str = Field(
        default="",
        validation_alias=AliasChoices("title", "titulo"),
        serialization_alias="titulo",
    )
    partitions: list[CatalogPartition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("partitions", "partes"),
        serialization_alias="partes",
    )


class CatalogIndex(BaseModel):
    """Top-level manifest describing every group and its partitions."""

    model_config = ConfigDict(populate_by_name=True)

    version: int
    last_update: str | None = Field(
        default=None,
        validation_alias=AliasChoices("last_update", "lastUpdate"),
        serialization_alias="lastUpdate",
    )
    groups: list[CatalogGroup] = Field(
        default_factory=list,
        validation_alias=AliasChoices("groups", "grupos"),
        serialization_alias="grupos",
    )

    def find_group(self, group_id: str) -> CatalogGroup | None:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def group_ids(self) -> list[str]:
        return [group.id for group in self.groups]


class ContentMetadata(BaseModel):
    """Summary counts for the published catalog."""

    model_config = ConfigDict(populate_by_name=True)

    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("last_updated", "lastUpdated"),
        serialization_alias="lastUpdated",
    )
    total_movies: int = Field(
        default=0,
        validation_alias=AliasChoices("total_movies", "totalMovies"),
        serialization_alias="totalMovies",
    )
    total_series: int = Field(
        default=0,
        validation_alias=AliasChoices("total_series", "totalSeries"),
        serialization_alias="totalSeries",
    )
    total_episodes: int = Field(
        default=0,
        validation_alias=AliasChoices("total_episodes", "totalEpisodes"),
        serialization_alias="totalEpisodes",
    )


class SyncStatus(BaseModel):
    """Outcome of the most recent save of the published set."""

    model_config = ConfigDict(populate_by_name=True)

    last_sync: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("last_sync", "lastSync"),
        serialization_alias="lastSync",
    )
    item_count: int = Field(
        default=0,
        validation_alias=AliasChoices("item_count", "itemCount"),
        serialization_alias="itemCount",
    )
    sync_version: int = Field(
        default=0,
        validation_alias=AliasChoices("sync_version", "syncVersion"),
        serialization_alias="syncVersion",
    )
    status: Literal["synced", "pending", "error"] = "synced"
