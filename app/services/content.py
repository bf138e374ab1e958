"""Session state for the catalog: preview, published set, enrichment and summary."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..config import Settings
from ..exceptions import StoreSaveError
from ..models import (
    CatalogRecord,
    ContentKind,
    ContentMetadata,
    SeriesEnrichment,
    SeriesGroup,
    SyncStatus,
)
from ..playlist import serialize_playlist
from ..series import attach_enrichment, group_episodes, normalize_series_name
from .ingest import IngestJob, IngestResult, apply_ingest
from .loader import ProgressiveLoader
from .reconciler import Reconciler
from .source import PlaylistPayload, PlaylistSource
from .store import DocumentStore
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class ContentService:
    """Coordinates uploads, publishing and persistence of the catalog."""

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        loader: ProgressiveLoader,
        source: PlaylistSource,
        tmdb_client: TMDBClient | None = None,
    ):
        self._settings = settings
        self._store = store
        self._loader = loader
        self._source = source
        self._tmdb = tmdb_client
        self._reconciler = Reconciler(preview_limit=settings.preview_item_limit)
        self._enrichment: dict[str, SeriesEnrichment] = {}
        self._metadata = ContentMetadata()
        self._publish_lock = asyncio.Lock()
        self._current_job: IngestJob | None = None
        self.last_saved: datetime | None = None

    async def start(self) -> None:
        """Load the persisted published set, enrichment map and summary."""

        published, enrichment, metadata = await asyncio.gather(
            self._store.load_published(),
            self._store.load_enrichment(),
            self._store.load_metadata(),
        )
        self._reconciler.replace_published(published)
        self._enrichment = enrichment
        self._metadata = metadata
        logger.info(
            "Content loaded: %d published records, %d enriched series",
            len(published),
            len(enrichment),
        )

    @property
    def reconciler(self) -> Reconciler:
        return self._reconciler

    @property
    def loader(self) -> ProgressiveLoader:
        return self._loader

    @property
    def metadata(self) -> ContentMetadata:
        return self._metadata

    @property
    def has_unpublished(self) -> bool:
        return self._reconciler.has_unpublished

    @property
    def ingest_running(self) -> bool:
        return self._current_job is not None and self._current_job.running

    def preview_movies(self) -> list[CatalogRecord]:
        return self._reconciler.preview_of_kind(ContentKind.MOVIE)

    def published_movies(self) -> list[CatalogRecord]:
        return self._reconciler.published_of_kind(ContentKind.MOVIE)

    def preview_series(self) -> list[SeriesGroup]:
        return self._grouped(self._reconciler.preview_of_kind(ContentKind.SERIES))

    def published_series(self) -> list[SeriesGroup]:
        return self._grouped(self._reconciler.published_of_kind(ContentKind.SERIES))

    def find_series(self, name: str) -> SeriesGroup | None:
        """Find a published series by normalized name or slug."""

        key = normalize_series_name(name)
        for group in self.published_series():
            if group.normalized_series_name == key or group.slug == name.lower():
                return group
        return None

    def _grouped(self, records: list[CatalogRecord]) -> list[SeriesGroup]:
        return attach_enrichment(group_episodes(records), self._enrichment)

    async def ingest(
        self,
        payload: str | bytes,
        *,
        label: str = "upload",
        archive: bool = False,
        kind: ContentKind | None = None,
    ) -> IngestResult:
        """Parse a playlist in the background and merge it into the preview."""

        job = IngestJob(
            payload,
            batch_size=self._settings.ingest_batch_size,
            kind=kind,
            archive=archive,
            label=label,
        )
        self._current_job = job
        try:
            result = await apply_ingest(job, self._reconciler)
        finally:
            self._current_job = None
        logger.info(
            "Ingest of %s finished: %d received, %d new, error=%s",
            label,
            result.items_received,
            result.items_added,
            result.error,
        )
        return result

    def cancel_ingest(self) -> bool:
        job = self._current_job
        if job is None or not job.running:
            return False
        job.cancel()
        return True

    async def ingest_payload(
        self, payload: PlaylistPayload, *, kind: ContentKind | None = None
    ) -> IngestResult:
        return await self.ingest(
            payload.data, label=payload.source, archive=payload.archive, kind=kind
        )

    async def load_auto_playlist(self) -> IngestResult | None:
        payload = await self._source.fetch_auto()
        if payload is None:
            return None
        return await self.ingest_payload(payload)

    async def load_from_url(
        self, url: str, *, kind: ContentKind | None = None
    ) -> IngestResult:
        payload = await self._source.fetch_url(url)
        return await self.ingest_payload(payload, kind=kind)

    async def playlist_changed(self, last_modified: str | None = None) -> bool:
        """Return whether the fixed playlist file changed since ``last_modified``."""

        return await self._source.check_for_updates(last_modified)

    async def sync_status(self) -> SyncStatus | None:
        return await self._store.load_sync_status()

    def export_preview(self) -> str:
        return serialize_playlist(self._reconciler.preview)

    async def load_group_into_preview(self, group_id: str) -> int:
        """Stream every partition of a group into the preview, in order."""

        added = 0
        async for partition in self._loader.stream_group(group_id):
            added += self._reconciler.add_preview(partition)
        return added

    async def publish(self) -> list[CatalogRecord]:
        """Publish the preview and persist the result.

        Raises :class:`StoreSaveError` when the published set could not be
        saved; the merged set stays in memory either way.
        """

        async with self._publish_lock:
            published = self._reconciler.publish()
            self._refresh_metadata()
            saved = await self._store.save_published(published)
            await self._store.save_metadata(self._metadata)
            if not saved:
                raise StoreSaveError("Published content could not be saved")
            self.last_saved = datetime.now(timezone.utc)
            return published

    def clear_preview(self) -> None:
        self._reconciler.clear_preview()

    async def clear_all(self) -> bool:
        """Forget every preview and published record, locally and in the store."""

        self.cancel_ingest()
        self._reconciler.clear_all()
        self._enrichment = {}
        self._metadata = ContentMetadata()
        return await self._store.clear_all()

    async def set_enrichment(
        self, normalized_name: str, enrichment: SeriesEnrichment
    ) -> bool:
        key = normalize_series_name(normalized_name)
        self._enrichment[key] = enrichment
        saved = await self._store.save_enrichment(self._enrichment)
        if saved:
            self.last_saved = datetime.now(timezone.utc)
        return saved

    async def lookup_enrichment(self, name: str) -> SeriesEnrichment | None:
        """Look a published series up on TMDB and remember the match."""

        if self._tmdb is None:
            return None
        group = self.find_series(name)
        if group is None:
            return None
        enrichment = await self._tmdb.lookup_series(group.series_name)
        if enrichment is None:
            return None
        await self.set_enrichment(group.normalized_series_name, enrichment)
        return enrichment

    def _refresh_metadata(self) -> None:
        series = self.published_series()
        self._metadata = ContentMetadata(
            total_movies=len(self.published_movies()),
            total_series=len(series),
            total_episodes=sum(group.total_episodes for group in series),
        )
