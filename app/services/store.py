"""Persistence of the published catalog and its companion documents."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable, Mapping

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import StoredDocument
from ..models import (
    CatalogRecord,
    ContentKind,
    ContentMetadata,
    SeriesEnrichment,
    SyncStatus,
)

logger = logging.getLogger(__name__)

PUBLISHED_CONTENT = "published_content"
ENRICHED_SERIES = "enriched_series_data"
METADATA = "app_metadata"
SYNC_STATUS = "sync_status"


def _now_version() -> int:
    return int(time.time() * 1000)


class DocumentStore:
    """Saves and loads whole JSON documents keyed by collection name.

    Saves are retried with a growing delay; once retries are exhausted the
    save reports ``False`` and callers keep their in-memory state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._session_factory = session_factory
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._save_lock = asyncio.Lock()

    async def save_published(self, records: Iterable[CatalogRecord]) -> bool:
        content = [record.to_document() for record in records]
        movies = sum(1 for entry in content if entry.get("source") == ContentKind.MOVIE.value)
        payload = {
            "content": content,
            "itemCount": len(content),
            "dataStructure": {
                "movies": movies,
                "series": len(content) - movies,
                "total": len(content),
            },
        }
        async with self._save_lock:
            saved = await self._save_with_retry(
                PUBLISHED_CONTENT, payload, item_count=len(content)
            )
            status = SyncStatus(
                item_count=len(content),
                sync_version=_now_version(),
                status="synced" if saved else "error",
            )
            await self._save_with_retry(
                SYNC_STATUS, status.model_dump(mode="json", by_alias=True), retry=False
            )
        if saved:
            logger.info("Saved %d published records", len(content))
        return saved

    async def load_published(self) -> list[CatalogRecord]:
        payload = await self._load_or_default(PUBLISHED_CONTENT)
        if not payload:
            logger.info("No published content stored yet")
            return []
        content = payload.get("content")
        if not isinstance(content, list):
            logger.error("Stored published content is not a list")
            return []

        records: list[CatalogRecord] = []
        for entry in content:
            try:
                records.append(CatalogRecord.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping invalid stored record: %s", exc)
        logger.info("Loaded %d published records", len(records))
        return records

    async def save_enrichment(self, enrichment: Mapping[str, SeriesEnrichment]) -> bool:
        payload = {
            "data": {
                key: value.model_dump(mode="json", by_alias=True)
                for key, value in enrichment.items()
            }
        }
        return await self._save_with_retry(
            ENRICHED_SERIES, payload, item_count=len(enrichment)
        )

    async def load_enrichment(self) -> dict[str, SeriesEnrichment]:
        payload = await self._load_or_default(ENRICHED_SERIES)
        data = payload.get("data") if payload else None
        if not isinstance(data, dict):
            return {}
        enrichment: dict[str, SeriesEnrichment] = {}
        for key, value in data.items():
            try:
                enrichment[str(key)] = SeriesEnrichment.model_validate(value)
            except ValidationError as exc:
                logger.warning("Skipping invalid enrichment for %s: %s", key, exc)
        return enrichment

    async def save_metadata(self, metadata: ContentMetadata) -> bool:
        return await self._save_with_retry(
            METADATA, metadata.model_dump(mode="json", by_alias=True)
        )

    async def load_metadata(self) -> ContentMetadata:
        payload = await self._load_or_default(METADATA)
        if not payload:
            return ContentMetadata()
        try:
            return ContentMetadata.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Stored metadata is invalid: %s", exc)
            return ContentMetadata()

    async def load_sync_status(self) -> SyncStatus | None:
        payload = await self._load_or_default(SYNC_STATUS)
        if not payload:
            return None
        try:
            return SyncStatus.model_validate(payload)
        except ValidationError:
            return None

    async def clear_all(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(StoredDocument))
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to clear stored documents")
            return False
        logger.info("Cleared all stored documents")
        return True

    async def save_document(
        self, collection: str, payload: dict[str, Any], *, item_count: int = 0
    ) -> None:
        """Replace the document stored under ``collection``."""

        async with self._session_factory() as session:
            document = await session.get(StoredDocument, collection)
            if document is None:
                document = StoredDocument(collection=collection)
                session.add(document)
            document.payload = payload
            document.item_count = item_count
            document.version = _now_version()
            await session.commit()

    async def load_document(self, collection: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            document = await session.get(StoredDocument, collection)
            if document is None:
                return None
            return dict(document.payload or {})

    async def _load_or_default(self, collection: str) -> dict[str, Any] | None:
        try:
            return await self.load_document(collection)
        except SQLAlchemyError:
            logger.exception("Failed to load %s", collection)
            return None

    async def _save_with_retry(
        self,
        collection: str,
        payload: dict[str, Any],
        *,
        item_count: int = 0,
        retry: bool = True,
    ) -> bool:
        attempts = self._retry_attempts if retry else 0
        for attempt in range(attempts + 1):
            try:
                await self.save_document(collection, payload, item_count=item_count)
                return True
            except SQLAlchemyError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Saving %s failed after %d attempts: %s",
                        collection,
                        attempt + 1,
                        exc,
                    )
                    return False
                delay = self._retry_delay * (attempt + 1)
                logger.warning(
                    "Saving %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    collection,
                    attempt + 1,
                    attempts + 1,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
        return False
