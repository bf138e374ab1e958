"""On-demand delivery of catalog partitions backed by the partition cache."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable

import httpx

from ..exceptions import FetchFailure, PartitionOutOfRange, UnknownGroup
from ..models import CatalogGroup, CatalogIndex, CatalogRecord, ContentKind
from ..playlist import decode_playlist, extract_playlist_from_archive, parse_playlist
from .cache import MISS, PartitionCache
from .index import IndexManager

logger = logging.getLogger(__name__)


class ProgressiveLoader:
    """Fetches, parses and caches partitions one at a time.

    Concurrent requests for the same partition share a single fetch, as long
    as the cache was not cleared in between; a request made after a clear
    never joins a fetch started before it. A fetch that completes after the
    cache was cleared or the index version moved on is returned to its
    callers but not cached.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        index_manager: IndexManager,
        cache: PartitionCache,
        *,
        series_group_ids: Iterable[str] = ("series",),
    ) -> None:
        self._client = http_client
        self._index_manager = index_manager
        self._cache = cache
        self._series_group_ids = frozenset(series_group_ids)
        # Each in-flight fetch is tagged with the cache generation it started in.
        self._pending: dict[
            tuple[str, int], tuple[int, asyncio.Task[list[CatalogRecord]]]
        ] = {}

    @property
    def cache(self) -> PartitionCache:
        return self._cache

    @property
    def index_manager(self) -> IndexManager:
        return self._index_manager

    def kind_for_group(self, group_id: str) -> ContentKind:
        if group_id in self._series_group_ids:
            return ContentKind.SERIES
        return ContentKind.MOVIE

    async def load_partition(self, group_id: str, index: int) -> list[CatalogRecord]:
        """Return the records of one partition, fetching it on a cache miss."""

        cached = self._cache.get(group_id, index)
        if cached is not MISS:
            return cached  # type: ignore[return-value]

        key = (group_id, index)
        generation = self._cache.generation
        pending = self._pending.get(key)
        if pending is not None and pending[0] == generation:
            task = pending[1]
        else:
            task = asyncio.create_task(
                self._fetch_partition(group_id, index, generation)
            )
            self._pending[key] = (generation, task)
            task.add_done_callback(lambda finished: self._forget(key, finished))
        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, int], task: asyncio.Task[list[CatalogRecord]]) -> None:
        pending = self._pending.get(key)
        if pending is not None and pending[1] is task:
            del self._pending[key]
        if not task.cancelled():
            # Mark the outcome as retrieved; waiters re-raise it themselves.
            task.exception()

    async def stream_group(self, group_id: str) -> AsyncIterator[list[CatalogRecord]]:
        """Yield each partition of a group in order, fetching lazily.

        Every call starts from the first partition; cached partitions are
        reused.
        """

        group = self._resolve_group(await self._index_manager.ensure_index(), group_id)
        logger.info("Streaming %s (%d partitions)", group_id, len(group.partitions))
        for position in range(len(group.partitions)):
            yield await self.load_partition(group_id, position)

    async def load_group(self, group_id: str) -> list[CatalogRecord]:
        """Return every record of a group, concatenated in partition order."""

        seen: set[str] = set()
        records: list[CatalogRecord] = []
        async for partition in self.stream_group(group_id):
            for record in partition:
                if record.id in seen:
                    continue
                seen.add(record.id)
                records.append(record)
        return records

    def replace_partition(self, group_id: str, index: int) -> bool:
        """Forget one partition after its file was replaced upstream.

        Other partitions stay cached; the next index version bump clears the
        rest.
        """

        return self._cache.evict(group_id, index)

    def clear_cache(self) -> None:
        self._cache.evict_all()

    @staticmethod
    def _resolve_group(index: CatalogIndex, group_id: str) -> CatalogGroup:
        group = index.find_group(group_id)
        if group is None:
            raise UnknownGroup(group_id)
        return group

    async def _fetch_partition(
        self, group_id: str, index: int, generation: int
    ) -> list[CatalogRecord]:
        catalog_index = await self._index_manager.ensure_index()
        group = self._resolve_group(catalog_index, group_id)
        if not 0 <= index < len(group.partitions):
            raise PartitionOutOfRange(group_id, index, len(group.partitions))
        partition = group.partitions[index]

        logger.info("Loading %s", partition.file)
        text = await self._fetch_text(partition.file)
        records = await asyncio.to_thread(
            parse_playlist, text, kind=self.kind_for_group(group_id)
        )
        logger.info("Loaded %s: %d records", partition.file, len(records))

        if (
            self._cache.generation == generation
            and self._cache.index_version == catalog_index.version
        ):
            self._cache.put(group_id, index, records)
        else:
            logger.info(
                "Catalog index changed while loading %s, not caching it", partition.file
            )
        return records

    async def _fetch_text(self, file_name: str) -> str:
        path = f"/{file_name.lstrip('/')}"
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchFailure(path, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchFailure(path, str(exc) or type(exc).__name__) from exc

        if path.lower().endswith(".zip"):
            return extract_playlist_from_archive(response.content)
        return decode_playlist(response.content)
