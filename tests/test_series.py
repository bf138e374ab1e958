"""Tests for episode title parsing and series aggregation."""

from __future__ import annotations

import pytest

from app.models import CatalogRecord, ContentKind, SeriesEnrichment
from app.playlist import classify_title
from app.series import (
    PLACEHOLDER_SERIES_KEY,
    PLACEHOLDER_SERIES_NAME,
    EpisodeMarker,
    attach_enrichment,
    group_episodes,
    normalize_series_name,
    parse_episode_title,
    to_episode,
)


def _series_record(title: str, url: str | None = None) -> CatalogRecord:
    return CatalogRecord(
        title=title,
        url=url or f"http://cdn/{title.replace(' ', '-')}.mp4",
        category="Séries",
        kind=ContentKind.SERIES,
    )


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Breaking Bad S01E02", EpisodeMarker("Breaking Bad", 1, 2)),
        ("breaking bad s1e2", EpisodeMarker("breaking bad", 1, 2)),
        ("Lost s1.e4", EpisodeMarker("Lost", 1, 4)),
        ("Lost S02 E10 - The Hunting Party", EpisodeMarker("Lost", 2, 10, "The Hunting Party")),
        ("Dark 2x05 - Lost and Found", EpisodeMarker("Dark", 2, 5, "Lost and Found")),
        (
            "La Casa de Papel - Temporada 3 Episódio 5",
            EpisodeMarker("La Casa de Papel", 3, 5),
        ),
        ("The Crown Season 4 Episode 2", EpisodeMarker("The Crown", 4, 2)),
        ("Friends Season 2", EpisodeMarker("Friends", 2, 1)),
        ("Chaves Temporada 1", EpisodeMarker("Chaves", 1, 1)),
        ("The Office Ep 7", EpisodeMarker("The Office", 1, 7)),
        ("Naruto Episódio 120", EpisodeMarker("Naruto", 1, 120)),
        ("Show S00E00", EpisodeMarker("Show", 1, 1)),
        ("S01E03", EpisodeMarker("", 1, 3)),
    ],
)
def test_parse_episode_title(title: str, expected: EpisodeMarker) -> None:
    assert parse_episode_title(title) == expected


@pytest.mark.parametrize("title", ["Matrix", "", "1917", "Blade Runner 2049"])
def test_parse_episode_title_without_marker(title: str) -> None:
    assert parse_episode_title(title) is None


@pytest.mark.parametrize(
    "title",
    [
        "Dark S01E02",
        "Dark S1E123",
        "The Office 3x12",
        "Lost Season 2",
        "Lost season2",
        "La Casa de Papel Temporada 3",
        "Elite - Temporada 1 Episódio 4",
    ],
)
def test_titles_classified_as_series_yield_a_marker(title: str) -> None:
    assert classify_title(title) is ContentKind.SERIES
    assert parse_episode_title(title) is not None


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Breaking Bad", "breaking bad"),
        ("  BREAKING   bad!", "breaking bad"),
        ("Breaking_Bad", "breaking bad"),
        ("Grey's Anatomy", "grey s anatomy"),
        ("", PLACEHOLDER_SERIES_KEY),
        (" - ", PLACEHOLDER_SERIES_KEY),
    ],
)
def test_normalize_series_name(name: str, expected: str) -> None:
    assert normalize_series_name(name) == expected


def test_single_episode_forms_a_series_group() -> None:
    groups = group_episodes([_series_record("Breaking Bad S01E02")])

    assert len(groups) == 1
    group = groups[0]
    assert group.normalized_series_name == "breaking bad"
    assert group.series_name == "Breaking Bad"
    assert group.total_episodes == 1
    assert group.total_seasons == 1
    (episode,) = group.episodes
    assert (episode.season, episode.episode) == (1, 2)
    assert episode.original_title == "Breaking Bad S01E02"


def test_group_orders_episodes_and_series() -> None:
    records = [
        _series_record("Dark S02E01"),
        _series_record("breaking bad S01E03"),
        _series_record("Dark S01E02"),
        _series_record("Breaking Bad S01E01"),
        _series_record("Dark 1x01"),
    ]

    groups = group_episodes(records)

    assert [group.normalized_series_name for group in groups] == ["breaking bad", "dark"]
    breaking_bad, dark = groups
    assert breaking_bad.series_name == "breaking bad"
    assert [(ep.season, ep.episode) for ep in breaking_bad.episodes] == [(1, 1), (1, 3)]
    assert [(ep.season, ep.episode) for ep in dark.episodes] == [(1, 1), (1, 2), (2, 1)]
    assert list(dark.seasons()) == [1, 2]
    assert dark.total_seasons == 2


def test_duplicate_episodes_keep_input_order() -> None:
    first = _series_record("Dark S01E01", "http://cdn/dark-a.mp4")
    second = _series_record("Dark S01E01 ", "http://cdn/dark-b.mp4")

    (group,) = group_episodes([first, second])

    assert [episode.url for episode in group.episodes] == [
        "http://cdn/dark-a.mp4",
        "http://cdn/dark-b.mp4",
    ]


def test_records_without_marker_are_left_out() -> None:
    groups = group_episodes(
        [_series_record("Random Show"), _series_record("Dark S01E01")]
    )

    assert [group.normalized_series_name for group in groups] == ["dark"]


def test_empty_series_name_uses_placeholder() -> None:
    episode = to_episode(_series_record("S01E03"))

    assert episode is not None
    assert episode.series_name == PLACEHOLDER_SERIES_NAME
    assert episode.normalized_series_name == PLACEHOLDER_SERIES_KEY
    assert episode.kind is ContentKind.SERIES
    assert episode.id == "S01E03::" + episode.url


def test_series_group_serialises_with_camel_case_counts() -> None:
    (group,) = group_episodes([_series_record("Breaking Bad S01E02")])

    payload = group.model_dump(mode="json", by_alias=True)

    assert payload["seriesName"] == "Breaking Bad"
    assert payload["normalizedName"] == "breaking bad"
    assert payload["totalSeasons"] == 1
    assert payload["totalEpisodes"] == 1
    assert group.slug == "breaking-bad"


def test_attach_enrichment_by_normalized_name() -> None:
    groups = group_episodes(
        [_series_record("Dark S01E01"), _series_record("Lost S01E01")]
    )
    enrichment = {"dark": SeriesEnrichment(tmdb_id=70523, overview="Time travel")}

    enriched = attach_enrichment(groups, enrichment)

    assert enriched[0].enrichment == enrichment["dark"]
    assert enriched[1].enrichment is None
    assert groups[0].enrichment is None
