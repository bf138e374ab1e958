"""Tests for the SQLite-backed document store."""

from __future__ import annotations

import asyncio

from sqlalchemy.exc import OperationalError

from app.database import Database
from app.models import CatalogRecord, ContentKind, ContentMetadata, SeriesEnrichment
from app.services.store import PUBLISHED_CONTENT, DocumentStore


def _records() -> list[CatalogRecord]:
    return [
        CatalogRecord(title="Matrix", category="Ação", url="http://a/matrix.mp4"),
        CatalogRecord(
            title="Dark S01E01",
            category="Séries",
            url="http://a/dark.mp4",
            kind=ContentKind.SERIES,
        ),
    ]


def test_published_content_round_trip(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    async def runner() -> None:
        await database.create_all()
        store = DocumentStore(database.session_factory, retry_delay=0)
        try:
            assert await store.load_published() == []
            assert await store.save_published(_records()) is True

            loaded = await store.load_published()
            document = await store.load_document(PUBLISHED_CONTENT)
            status = await store.load_sync_status()
        finally:
            await database.dispose()

        assert loaded == _records()
        assert document is not None
        assert document["itemCount"] == 2
        assert document["dataStructure"] == {"movies": 1, "series": 1, "total": 2}
        assert document["content"][1]["source"] == "series"
        assert status is not None
        assert status.status == "synced"
        assert status.item_count == 2

    asyncio.run(runner())


def test_saving_again_replaces_the_document(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    async def runner() -> None:
        await database.create_all()
        store = DocumentStore(database.session_factory, retry_delay=0)
        try:
            await store.save_published(_records())
            await store.save_published(_records()[:1])
            loaded = await store.load_published()
        finally:
            await database.dispose()

        assert [record.title for record in loaded] == ["Matrix"]

    asyncio.run(runner())


def test_invalid_stored_records_are_skipped(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    async def runner() -> None:
        await database.create_all()
        store = DocumentStore(database.session_factory, retry_delay=0)
        try:
            await store.save_document(
                PUBLISHED_CONTENT,
                {
                    "content": [
                        {"title": "No URL"},
                        {"title": "Heat", "url": "http://a/heat.mp4", "source": "movie"},
                    ]
                },
            )
            loaded = await store.load_published()
        finally:
            await database.dispose()

        assert [record.title for record in loaded] == ["Heat"]
        assert loaded[0].id == "Heat::http://a/heat.mp4"

    asyncio.run(runner())


def test_enrichment_and_metadata_round_trip(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    async def runner() -> None:
        await database.create_all()
        store = DocumentStore(database.session_factory, retry_delay=0)
        try:
            assert await store.load_enrichment() == {}
            assert (await store.load_metadata()).total_movies == 0

            enrichment = {"dark": SeriesEnrichment(tmdb_id=70523, rating=8.4)}
            metadata = ContentMetadata(total_movies=3, total_series=1, total_episodes=9)
            assert await store.save_enrichment(enrichment) is True
            assert await store.save_metadata(metadata) is True

            loaded_enrichment = await store.load_enrichment()
            loaded_metadata = await store.load_metadata()
        finally:
            await database.dispose()

        assert loaded_enrichment == enrichment
        assert loaded_metadata.total_movies == 3
        assert loaded_metadata.total_episodes == 9

    asyncio.run(runner())


def test_clear_all_removes_every_document(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    async def runner() -> None:
        await database.create_all()
        store = DocumentStore(database.session_factory, retry_delay=0)
        try:
            await store.save_published(_records())
            await store.save_metadata(ContentMetadata(total_movies=1))

            assert await store.clear_all() is True
            published = await store.load_published()
            status = await store.load_sync_status()
        finally:
            await database.dispose()

        assert published == []
        assert status is None

    asyncio.run(runner())


class _FailingSession:
    def __init__(self, calls: list[int]) -> None:
        self._calls = calls

    async def __aenter__(self) -> "_FailingSession":
        self._calls.append(1)
        raise OperationalError("INSERT INTO documents", {}, Exception("database is locked"))

    async def __aexit__(self, *exc_info: object) -> None:
        return None


def test_save_gives_up_after_retries() -> None:
    calls: list[int] = []
    store = DocumentStore(
        lambda: _FailingSession(calls),  # type: ignore[arg-type]
        retry_attempts=2,
        retry_delay=0,
    )

    saved = asyncio.run(store.save_published(_records()))

    assert saved is False
    # Three attempts for the content plus one for the sync status.
    assert len(calls) == 4


def test_failed_loads_fall_back_to_defaults() -> None:
    calls: list[int] = []
    store = DocumentStore(lambda: _FailingSession(calls))  # type: ignore[arg-type]

    async def runner() -> None:
        assert await store.load_published() == []
        assert await store.load_enrichment() == {}
        assert (await store.load_metadata()).total_series == 0

    asyncio.run(runner())
