"""In-memory cache of fetched catalog partitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from ..models import CatalogIndex, CatalogRecord

logger = logging.getLogger(__name__)

ESTIMATED_BYTES_PER_RECORD = 500


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS: Final = _Miss()
"""Sentinel returned by :meth:`PartitionCache.get` for absent keys."""


@dataclass(slots=True)
class CacheStats:
    """Snapshot of what the cache currently holds."""

    index_version: int | None
    index_loaded: bool
    cached_partitions: int
    cached_records: int

    @property
    def estimated_megabytes(self) -> float:
        return round(
            self.cached_records * ESTIMATED_BYTES_PER_RECORD / (1024 * 1024), 2
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "indexVersion": self.index_version,
            "indexLoaded": self.index_loaded,
            "cachedPartitions": self.cached_partitions,
            "cachedRecords": self.cached_records,
            "estimatedMemoryMb": self.estimated_megabytes,
        }


class PartitionCache:
    """Key-value store of parsed partitions keyed by ``(group_id, index)``.

    Entries never expire on their own; they leave through :meth:`evict`,
    :meth:`evict_group` or :meth:`evict_all`. The cache also holds the index
    the entries were fetched under, so a full eviction forgets it too.
    Every full eviction also bumps :attr:`generation` so fetches started
    before it can be told apart from fetches started after.
    """

    def __init__(self) -> None:
        self._partitions: dict[tuple[str, int], list[CatalogRecord]] = {}
        self._index: CatalogIndex | None = None
        self._generation = 0

    @property
    def index(self) -> CatalogIndex | None:
        return self._index

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def index_version(self) -> int | None:
        return self._index.version if self._index is not None else None

    def hold_index(self, index: CatalogIndex) -> None:
        self._index = index

    def get(self, group_id: str, index: int) -> list[CatalogRecord] | _Miss:
        records = self._partitions.get((group_id, index))
        if records is None:
            return MISS
        logger.debug("Cache hit: %s/%s", group_id, index)
        return records

    def contains(self, group_id: str, index: int) -> bool:
        return (group_id, index) in self._partitions

    def put(self, group_id: str, index: int, records: list[CatalogRecord]) -> None:
        self._partitions[(group_id, index)] = records

    def evict(self, group_id: str, index: int) -> bool:
        removed = self._partitions.pop((group_id, index), None) is not None
        if removed:
            logger.info("Evicted cached partition %s/%s", group_id, index)
        return removed

    def evict_group(self, group_id: str) -> int:
        keys = [key for key in self._partitions if key[0] == group_id]
        for key in keys:
            del self._partitions[key]
        logger.info("Evicted %d cached partitions of %s", len(keys), group_id)
        return len(keys)

    def evict_all(self) -> None:
        """Drop every partition along with the held index and version."""

        self._partitions.clear()
        self._index = None
        self._generation += 1
        logger.info("Partition cache cleared")

    def __len__(self) -> int:
        return len(self._partitions)

    def stats(self) -> CacheStats:
        return CacheStats(
            index_version=self.index_version,
            index_loaded=self._index is not None,
            cached_partitions=len(self._partitions),
            cached_records=sum(len(records) for records in self._partitions.values()),
        )
