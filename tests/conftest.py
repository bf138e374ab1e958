"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from typing import Any, Callable  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402

from app.config import Settings  # noqa: E402
from app.services.cache import PartitionCache  # noqa: E402
from app.services.content import ContentService  # noqa: E402
from app.services.index import IndexManager  # noqa: E402
from app.services.loader import ProgressiveLoader  # noqa: E402
from app.services.source import PlaylistSource  # noqa: E402
from app.services.store import DocumentStore  # noqa: E402
from app.services.tmdb import TMDBClient  # noqa: E402


def build_playlist(*titles: str) -> str:
    """Return playlist text with one entry per title."""

    lines = ["#EXTM3U"]
    for title in titles:
        lines.append(f'#EXTINF:-1 group-title="Test",{title}')
        lines.append(f"http://cdn/{title.replace(' ', '_')}.mp4")
    return "\n".join(lines) + "\n"


class MemoryStore(DocumentStore):
    """Document store keeping documents in a dict instead of a database."""

    def __init__(self, *, fail_saves: bool = False) -> None:
        super().__init__(None, retry_attempts=0, retry_delay=0)  # type: ignore[arg-type]
        self.documents: dict[str, dict[str, Any]] = {}
        self.fail_saves = fail_saves

    async def save_document(
        self, collection: str, payload: dict[str, Any], *, item_count: int = 0
    ) -> None:
        if self.fail_saves:
            raise OperationalError("INSERT", {}, Exception("read-only"))
        self.documents[collection] = payload

    async def load_document(self, collection: str) -> dict[str, Any] | None:
        return self.documents.get(collection)

    async def clear_all(self) -> bool:
        self.documents.clear()
        return True


class CatalogHost:
    """Stand-in for the static host serving the index, partitions and playlists."""

    def __init__(self) -> None:
        self.version = 1
        self.files: dict[str, bytes] = {
            "/movies_0.m3u": build_playlist("Matrix", "Heat").encode(),
            "/series_0.m3u": build_playlist(
                "Dark S01E02", "Dark S01E01", "Breaking Bad S01E01"
            ).encode(),
            "/playlist.m3u8": build_playlist("Alien", "Lost S01E01").encode(),
        }
        self.requests: list[tuple[str, str]] = []
        # Paths that answer HEAD but fail on GET.
        self.failing_gets: set[str] = set()

    def index(self) -> dict[str, object]:
        return {
            "version": self.version,
            "grupos": [
                {"id": "movies", "titulo": "Filmes", "partes": [{"arquivo": "movies_0.m3u"}]},
                {"id": "series", "titulo": "Séries", "partes": [{"arquivo": "series_0.m3u"}]},
            ],
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if path == "/index.json":
            return httpx.Response(200, json=self.index())
        if path in self.files:
            headers = {"last-modified": "Wed, 01 May 2024 10:00:00 GMT"}
            if request.method == "HEAD":
                return httpx.Response(200, headers=headers)
            if path in self.failing_gets:
                return httpx.Response(500)
            return httpx.Response(200, content=self.files[path], headers=headers)
        return httpx.Response(404)


def tmdb_handler(request: httpx.Request) -> httpx.Response:
    """Fake TMDB search endpoint answering for ``Dark`` only."""

    if request.url.path.endswith("/search/tv") and request.url.params.get("query") == "Dark":
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": 1, "name": "Darkness", "poster_path": "/other.jpg"},
                    {
                        "id": 70523,
                        "name": "Dark",
                        "poster_path": "/dark.jpg",
                        "backdrop_path": "/dark-bg.jpg",
                        "overview": "Time travel",
                        "first_air_date": "2017-12-01",
                        "vote_average": 8.4,
                    },
                ]
            },
        )
    return httpx.Response(200, json={"results": []})


@pytest.fixture
def catalog_host() -> CatalogHost:
    return CatalogHost()


@pytest.fixture
def service_factory(
    catalog_host: CatalogHost,
) -> Callable[..., ContentService]:
    """Build content services wired to the fake catalog host."""

    def factory(
        store: DocumentStore | None = None, *, with_tmdb: bool = False, **overrides: Any
    ) -> ContentService:
        options: dict[str, Any] = {
            "CATALOG_BASE_URL": "http://catalog",
            "INGEST_BATCH_SIZE": 2,
            "STORE_RETRY_DELAY": 0,
            "TMDB_API_KEY": "tmdb-key" if with_tmdb else None,
        }
        options.update(overrides)
        settings = Settings(_env_file=None, **options)  # type: ignore[arg-type]
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(catalog_host.handler), base_url="http://catalog"
        )
        cache = PartitionCache()
        manager = IndexManager(client, cache, index_path=settings.index_path)
        loader = ProgressiveLoader(
            client, manager, cache, series_group_ids=settings.series_group_ids
        )
        source = PlaylistSource(client, base_path=settings.playlist_base_path)
        tmdb_client = None
        if with_tmdb:
            tmdb_client = TMDBClient(
                settings,
                httpx.AsyncClient(
                    transport=httpx.MockTransport(tmdb_handler),
                    base_url="https://api.themoviedb.org/3",
                ),
            )
        return ContentService(
            settings, store if store is not None else MemoryStore(), loader, source, tmdb_client
        )

    return factory
