"""Retrieval of the catalog index (groups and their ordered partitions)."""

from __future__ import annotations

import asyncio
import logging

import httpx

from ..exceptions import FetchFailure
from ..models import CatalogIndex
from .cache import PartitionCache

logger = logging.getLogger(__name__)


class IndexManager:
    """Loads the catalog index and invalidates cached partitions on version changes.

    The index is only refreshed when a caller asks for it; there is no
    background polling.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: PartitionCache,
        *,
        index_path: str = "/index.json",
    ) -> None:
        self._client = http_client
        self._cache = cache
        self._index_path = index_path
        self._lock = asyncio.Lock()

    @property
    def current(self) -> CatalogIndex | None:
        return self._cache.index

    @property
    def version(self) -> int | None:
        return self._cache.index_version

    async def load_index(self) -> CatalogIndex:
        """Fetch the index and adopt it, clearing the cache if its version moved."""

        try:
            response = await self._client.get(
                self._index_path, headers={"Cache-Control": "no-cache"}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchFailure(
                self._index_path, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchFailure(self._index_path, str(exc) or type(exc).__name__) from exc

        try:
            index = CatalogIndex.model_validate(response.json())
        except ValueError as exc:
            raise FetchFailure(self._index_path, "invalid index document") from exc

        previous_version = self._cache.index_version
        if previous_version is not None and previous_version != index.version:
            logger.info(
                "Catalog index version changed from %s to %s, clearing partition cache",
                previous_version,
                index.version,
            )
            self._cache.evict_all()
        self._cache.hold_index(index)

        logger.info(
            "Loaded catalog index v%s with groups %s", index.version, index.group_ids()
        )
        return index

    async def ensure_index(self) -> CatalogIndex:
        """Return the held index, fetching it first when none is held."""

        current = self._cache.index
        if current is not None:
            return current
        async with self._lock:
            current = self._cache.index
            if current is not None:
                return current
            return await self.load_index()
