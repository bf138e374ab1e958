"""Merging of the draft (preview) record set into the published set."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from ..models import CatalogRecord, ContentKind

logger = logging.getLogger(__name__)


def publish(
    preview: Iterable[CatalogRecord], published: Sequence[CatalogRecord]
) -> list[CatalogRecord]:
    """Return ``published`` followed by the preview records it lacks.

    Existing published records keep their order and are never removed;
    new records follow preview order and a record repeated in the preview is
    appended once. Publishing the same preview twice changes nothing.
    """

    return merge_new(published, preview)


def has_unpublished(
    preview: Iterable[CatalogRecord], published: Iterable[CatalogRecord]
) -> bool:
    published_ids = {record.id for record in published}
    return any(record.id not in published_ids for record in preview)


def merge_new(
    current: Sequence[CatalogRecord],
    incoming: Iterable[CatalogRecord],
    *,
    limit: int | None = None,
) -> list[CatalogRecord]:
    """Append records from ``incoming`` whose id is not already present.

    With ``limit`` set, the oldest records are dropped once the merged list
    grows past it.
    """

    known_ids = {record.id for record in current}
    merged = list(current)
    for record in incoming:
        if record.id in known_ids:
            continue
        known_ids.add(record.id)
        merged.append(record)
    if limit is not None and len(merged) > limit:
        dropped = len(merged) - limit
        logger.info("Preview over %d records, dropping the %d oldest", limit, dropped)
        merged = merged[dropped:]
    return merged


class Reconciler:
    """Holds the preview and published sets for one catalog."""

    def __init__(
        self,
        published: Iterable[CatalogRecord] = (),
        *,
        preview_limit: int | None = None,
    ) -> None:
        self._preview: list[CatalogRecord] = []
        self._published: list[CatalogRecord] = merge_new([], published)
        self._preview_limit = preview_limit

    @property
    def preview(self) -> list[CatalogRecord]:
        return list(self._preview)

    @property
    def published(self) -> list[CatalogRecord]:
        return list(self._published)

    @property
    def has_unpublished(self) -> bool:
        return has_unpublished(self._preview, self._published)

    def unpublished(self) -> list[CatalogRecord]:
        """Return preview records not yet present in the published set."""

        published_ids = {record.id for record in self._published}
        return [record for record in self._preview if record.id not in published_ids]

    def add_preview(self, records: Iterable[CatalogRecord]) -> int:
        """Merge a batch into the preview; returns how many records were new."""

        before = {record.id for record in self._preview}
        self._preview = merge_new(self._preview, records, limit=self._preview_limit)
        return sum(1 for record in self._preview if record.id not in before)

    def replace_published(self, records: Iterable[CatalogRecord]) -> None:
        self._published = merge_new([], records)

    def publish(self) -> list[CatalogRecord]:
        """Fold the preview into the published set and return the new set."""

        before = len(self._published)
        self._published = publish(self._preview, self._published)
        logger.info(
            "Published %d new records (%d total)",
            len(self._published) - before,
            len(self._published),
        )
        return self.published

    def clear_preview(self) -> None:
        self._preview = []

    def clear_all(self) -> None:
        self._preview = []
        self._published = []

    def preview_of_kind(self, kind: ContentKind) -> list[CatalogRecord]:
        return [record for record in self._preview if record.kind is kind]

    def published_of_kind(self, kind: ContentKind) -> list[CatalogRecord]:
        return [record for record in self._published if record.kind is kind]
