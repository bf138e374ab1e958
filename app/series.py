"""Grouping of episode records into series.

Episode titles in the wild are inconsistent (``Show S01E02``, ``Show 1x02``,
``Show - Temporada 2 Episódio 5``, ``Show Ep 7``). :func:`parse_episode_title`
is the single place that interprets them; everything else works on the
resulting :class:`EpisodeRecord` fields.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from .models import CatalogRecord, EpisodeRecord, SeriesEnrichment, SeriesGroup
from .utils import collapse_whitespace, normalize_key

logger = logging.getLogger(__name__)

PLACEHOLDER_SERIES_NAME = "Sem nome"
PLACEHOLDER_SERIES_KEY = normalize_key(PLACEHOLDER_SERIES_NAME)

_SEPARATORS = " \t-–—|:._,"

# Tried in order; the first pattern that matches decides season and episode.
_SEASON_EPISODE_RE = re.compile(
    r"\bS(?P<season>\d{1,2})\s*[._-]?\s*E(?P<episode>\d{1,3})(?!\d)", re.IGNORECASE
)
_CROSS_RE = re.compile(r"(?<!\w)(?P<season>\d{1,2})x(?P<episode>\d{1,3})(?!\d)", re.IGNORECASE)
_SEASON_WORD_EPISODE_WORD_RE = re.compile(
    r"\b(?:temporada|season)\s*(?P<season>\d{1,2})(?!\d)[\s._:|,-]*"
    r"(?:epis[oó]dio|episode|cap[ií]tulo|ep\.?|e)\s*(?P<episode>\d{1,3})(?!\d)",
    re.IGNORECASE,
)
_SEASON_WORD_RE = re.compile(r"\b(?:temporada|season)\s*(?P<season>\d{1,2})(?!\d)", re.IGNORECASE)
_EPISODE_WORD_RE = re.compile(
    r"\b(?:epis[oó]dio|episode|cap[ií]tulo|ep\.?|e)\s*(?P<episode>\d{1,3})(?!\d)",
    re.IGNORECASE,
)

_MARKER_PATTERNS: tuple[re.Pattern[str], ...] = (
    _SEASON_EPISODE_RE,
    _CROSS_RE,
    _SEASON_WORD_EPISODE_WORD_RE,
    _SEASON_WORD_RE,
    _EPISODE_WORD_RE,
)


@dataclass(frozen=True, slots=True)
class EpisodeMarker:
    """Season/episode information recovered from a title."""

    series_name: str
    season: int
    episode: int
    episode_title: str | None = None


def _clean_fragment(value: str) -> str:
    return collapse_whitespace(value.strip(_SEPARATORS))


def parse_episode_title(title: str) -> EpisodeMarker | None:
    """Extract series name, season and episode from a raw title.

    Returns ``None`` when no marker is present. A missing season defaults to
    1 and a season without an episode number is read as its first episode.
    Season and episode ``0`` are raised to 1.
    """

    if not title:
        return None
    for pattern in _MARKER_PATTERNS:
        match = pattern.search(title)
        if match is None:
            continue
        groups = match.groupdict()
        season = int(groups.get("season") or 1)
        episode = int(groups.get("episode") or 1)
        remainder = _clean_fragment(title[match.end() :])
        return EpisodeMarker(
            series_name=_clean_fragment(title[: match.start()]),
            season=max(season, 1),
            episode=max(episode, 1),
            episode_title=remainder or None,
        )
    return None


def normalize_series_name(name: str) -> str:
    """Return the grouping key for a series label."""

    return normalize_key(name) or PLACEHOLDER_SERIES_KEY


def to_episode(record: CatalogRecord) -> EpisodeRecord | None:
    """Refine a series record into an :class:`EpisodeRecord`."""

    if isinstance(record, EpisodeRecord):
        return record
    marker = parse_episode_title(record.title)
    if marker is None:
        return None
    series_name = marker.series_name or PLACEHOLDER_SERIES_NAME
    return EpisodeRecord(
        title=record.title,
        image=record.image,
        category=record.category,
        url=record.url,
        series_name=series_name,
        normalized_series_name=normalize_series_name(marker.series_name),
        season=marker.season,
        episode=marker.episode,
        episode_title=marker.episode_title,
    )


def group_episodes(records: Iterable[CatalogRecord]) -> list[SeriesGroup]:
    """Bucket episode records by normalized series name.

    Episodes inside a group are sorted by ``(season, episode)``; the sort is
    stable so duplicates of the same episode keep their input order. Groups
    come back ordered by display name.
    """

    buckets: dict[str, list[EpisodeRecord]] = {}
    display_names: dict[str, str] = {}
    skipped = 0
    for record in records:
        episode = to_episode(record)
        if episode is None:
            skipped += 1
            continue
        key = episode.normalized_series_name
        display_names.setdefault(key, episode.series_name)
        buckets.setdefault(key, []).append(episode)

    if skipped:
        logger.debug("Skipped %d series records without an episode marker", skipped)

    groups = [
        SeriesGroup(
            series_name=display_names[key],
            normalized_series_name=key,
            episodes=sorted(episodes, key=EpisodeRecord.sort_key),
        )
        for key, episodes in buckets.items()
    ]
    groups.sort(key=lambda group: (group.series_name.casefold(), group.normalized_series_name))
    return groups


def attach_enrichment(
    groups: Iterable[SeriesGroup], enrichment: Mapping[str, SeriesEnrichment]
) -> list[SeriesGroup]:
    """Return the groups with any known enrichment attached."""

    enriched: list[SeriesGroup] = []
    for group in groups:
        data = enrichment.get(group.normalized_series_name)
        if data is None:
            enriched.append(group)
        else:
            enriched.append(group.model_copy(update={"enrichment": data}))
    return enriched
