"""Extended-playlist (M3U) parsing into typed catalog records."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from pydantic import ValidationError

from .exceptions import NoPlaylistInArchive
from .models import CatalogRecord, ContentKind

logger = logging.getLogger(__name__)

LINE_SPLIT_RE = re.compile(r"\r?\n")
ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9_-]+)="([^"]*)"')
PLAYLIST_MEMBER_RE = re.compile(r"\.m3u8?$", re.IGNORECASE)

# Every title these match must also yield an episode marker in series.py.
SERIES_TITLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\sS\d{1,2}E\d{1,3}(?!\d)", re.IGNORECASE),
    re.compile(r"\s\d{1,2}x\d{1,3}(?!\d)", re.IGNORECASE),
    re.compile(r"\btemporada\s*\d{1,2}(?!\d)", re.IGNORECASE),
    re.compile(r"\bseason\s*\d{1,2}(?!\d)", re.IGNORECASE),
)
BLOCKED_CONTENT_RE = re.compile(r"(adult|porno|xxx|sex|18\+)", re.IGNORECASE)


def classify_title(title: str) -> ContentKind:
    """Return ``series`` when the title carries a season/episode marker."""

    if any(pattern.search(title) for pattern in SERIES_TITLE_PATTERNS):
        return ContentKind.SERIES
    return ContentKind.MOVIE


def is_blocked_content(title: str, category: str) -> bool:
    return bool(BLOCKED_CONTENT_RE.search(title) or BLOCKED_CONTENT_RE.search(category))


def _split_extinf(line: str) -> tuple[str, str]:
    """Split a metadata line into its attribute section and its title.

    The title starts after the first comma that is not inside a quoted
    attribute value, so commas in ``group-title`` or in the title survive.
    """

    in_quotes = False
    for position, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            return line[:position], line[position + 1 :].strip()
    return line, ""


@dataclass(slots=True)
class _PendingEntry:
    title: str
    image: str | None
    category: str | None


@dataclass(slots=True)
class PlaylistBatch:
    """A run of parsed records and how many metadata lines were read so far."""

    records: list[CatalogRecord]
    entries_read: int


@dataclass
class PlaylistReader:
    """Line-oriented reader pairing each ``#EXTINF`` line with its URL.

    ``kind`` forces the classification of every record, which is how a
    partition belonging to a series group is tagged regardless of titles.
    """

    kind: ContentKind | None = None
    entries_read: int = field(default=0, init=False)
    records_read: int = field(default=0, init=False)

    def read(self, text: str) -> Iterator[CatalogRecord]:
        pending: _PendingEntry | None = None
        for raw_line in LINE_SPLIT_RE.split(text):
            line = raw_line.strip()
            if not line or line.upper().startswith("#EXTM3U"):
                continue
            if line.upper().startswith("#EXTINF"):
                self.entries_read += 1
                pending = self._parse_metadata(line)
                continue
            if line.startswith("#"):
                continue
            if pending is None:
                continue
            record = self._build_record(pending, line)
            pending = None
            if record is not None:
                self.records_read += 1
                yield record

    @staticmethod
    def _parse_metadata(line: str) -> _PendingEntry:
        attributes_section, title = _split_extinf(line)
        attributes = {
            key.lower(): value for key, value in ATTRIBUTE_RE.findall(attributes_section)
        }
        return _PendingEntry(
            title=title,
            image=attributes.get("tvg-logo"),
            category=attributes.get("group-title"),
        )

    def _build_record(self, entry: _PendingEntry, url: str) -> CatalogRecord | None:
        if is_blocked_content(entry.title, entry.category or ""):
            return None
        try:
            record = CatalogRecord(
                title=entry.title,
                image=entry.image,
                category=entry.category,
                url=url,
                kind=self.kind or classify_title(entry.title),
            )
        except ValidationError:
            logger.debug("Skipping playlist entry without a usable URL: %r", url)
            return None
        return record


def parse_playlist(text: str, *, kind: ContentKind | None = None) -> list[CatalogRecord]:
    """Parse playlist text into records, in input order."""

    return list(PlaylistReader(kind=kind).read(text))


def iter_playlist_batches(
    text: str, batch_size: int, *, kind: ContentKind | None = None
) -> Iterator[PlaylistBatch]:
    """Yield parsed records in batches of at most ``batch_size``."""

    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    reader = PlaylistReader(kind=kind)
    batch: list[CatalogRecord] = []
    for record in reader.read(text):
        batch.append(record)
        if len(batch) >= batch_size:
            yield PlaylistBatch(records=batch, entries_read=reader.entries_read)
            batch = []
    if batch:
        yield PlaylistBatch(records=batch, entries_read=reader.entries_read)


def count_entries(text: str) -> int:
    """Return the number of metadata lines, used as the progress total."""

    return sum(
        1
        for line in LINE_SPLIT_RE.split(text)
        if line.strip().upper().startswith("#EXTINF")
    )


def _quote_attribute(value: str) -> str:
    return value.replace('"', "'")


def serialize_playlist(records: Iterable[CatalogRecord]) -> str:
    """Render records back into extended-playlist text."""

    lines = ["#EXTM3U"]
    for record in records:
        attributes: list[str] = []
        if record.image:
            attributes.append(f'tvg-logo="{_quote_attribute(record.image)}"')
        attributes.append(f'group-title="{_quote_attribute(record.category)}"')
        lines.append(f"#EXTINF:-1 {' '.join(attributes)},{record.title}")
        lines.append(record.url)
    return "\n".join(lines) + "\n"


def decode_playlist(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def extract_playlist_from_archive(data: bytes) -> str:
    """Return the text of the playlist file stored inside a zip archive."""

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                if PLAYLIST_MEMBER_RE.search(info.filename):
                    logger.info("Extracting %s from archive", info.filename)
                    return decode_playlist(archive.read(info))
    except zipfile.BadZipFile as exc:
        raise NoPlaylistInArchive("Archive could not be opened") from exc
    raise NoPlaylistInArchive("Archive does not contain an M3U playlist")
