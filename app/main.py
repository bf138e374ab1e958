"""Entry point for the FastAPI-powered catalog service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, HttpUrl

from .config import settings
from .database import Database
from .exceptions import (
    CatalogError,
    FetchFailure,
    NoPlaylistInArchive,
    PartitionOutOfRange,
    StoreSaveError,
    UnknownGroup,
)
from .models import CatalogRecord, ContentKind, SeriesEnrichment, SeriesGroup
from .services.cache import PartitionCache
from .services.content import ContentService
from .services.index import IndexManager
from .services.ingest import IngestResult
from .services.loader import ProgressiveLoader
from .services.source import PlaylistSource
from .services.store import DocumentStore
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    catalog_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.catalog_base_url),
            timeout=httpx.Timeout(60.0, connect=10.0),
        )
    )
    tmdb_client: TMDBClient | None = None
    if settings.tmdb_api_key:
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.tmdb_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        tmdb_client = TMDBClient(settings, tmdb_http_client)
    else:
        logger.info("TMDB_API_KEY not set; series lookups are disabled")
    database = Database(settings.database_url)
    await database.create_all()

    cache = PartitionCache()
    index_manager = IndexManager(catalog_client, cache, index_path=settings.index_path)
    loader = ProgressiveLoader(
        catalog_client,
        index_manager,
        cache,
        series_group_ids=settings.series_group_ids,
    )
    store = DocumentStore(
        database.session_factory,
        retry_attempts=settings.store_retry_attempts,
        retry_delay=settings.store_retry_delay_seconds,
    )
    source = PlaylistSource(catalog_client, base_path=settings.playlist_base_path)
    content_service = ContentService(settings, store, loader, source, tmdb_client)

    app.state.content_service = content_service
    app.state.database = database
    await content_service.start()
    logger.info("Serving catalog from %s", settings.catalog_base_url)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        content_service.cancel_ingest()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Progressive playlist catalog with preview/publish workflow",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_content_service(app: FastAPI) -> ContentService:
    service = getattr(app.state, "content_service", None)
    if not isinstance(service, ContentService):
        raise RuntimeError("Content service not initialised")
    return service


class UrlImportRequest(BaseModel):
    url: HttpUrl
    kind: ContentKind | None = None


def _records_payload(records: list[CatalogRecord]) -> list[dict[str, object]]:
    return [record.to_document() for record in records]


def _series_summary(group: SeriesGroup) -> dict[str, Any]:
    payload = group.model_dump(mode="json", by_alias=True, exclude={"episodes"})
    payload["slug"] = group.slug
    return payload


def _series_detail(group: SeriesGroup) -> dict[str, Any]:
    payload = _series_summary(group)
    payload["seasons"] = {
        str(season): [episode.model_dump(mode="json", by_alias=True) for episode in episodes]
        for season, episodes in group.seasons().items()
    }
    return payload


def _ingest_payload(result: IngestResult) -> dict[str, Any]:
    if result.exception is not None:
        raise _http_error(result.exception) from result.exception
    return {
        "source": result.label,
        "status": "done" if result.ok else "error",
        "itemsReceived": result.items_received,
        "itemsAdded": result.items_added,
        "totalItems": result.total_items,
        "cancelled": result.cancelled,
        "message": result.error,
    }


def _http_error(exc: CatalogError) -> HTTPException:
    if isinstance(exc, (UnknownGroup, PartitionOutOfRange)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, NoPlaylistInArchive):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StoreSaveError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/catalog/index")
    async def catalog_index(refresh: bool = False) -> dict[str, Any]:
        manager = get_content_service(fastapi_app).loader.index_manager
        try:
            index = await (manager.load_index() if refresh else manager.ensure_index())
        except FetchFailure as exc:
            raise _http_error(exc) from exc
        return index.model_dump(mode="json", by_alias=True)

    @fastapi_app.get("/catalog/stats")
    async def catalog_stats() -> dict[str, object]:
        return get_content_service(fastapi_app).loader.cache.stats().as_dict()

    @fastapi_app.get("/catalog/{group_id}/{index}")
    async def catalog_partition(group_id: str, index: int) -> dict[str, Any]:
        loader = get_content_service(fastapi_app).loader
        try:
            records = await loader.load_partition(group_id, index)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return {"group": group_id, "index": index, "items": _records_payload(records)}

    @fastapi_app.get("/movies")
    async def movies() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        return {"items": _records_payload(service.published_movies())}

    @fastapi_app.get("/series")
    async def series() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        return {"items": [_series_summary(group) for group in service.published_series()]}

    @fastapi_app.get("/series/{name}")
    async def series_detail(name: str) -> dict[str, Any]:
        group = get_content_service(fastapi_app).find_series(name)
        if group is None:
            raise HTTPException(status_code=404, detail=f"Series {name} not found")
        return _series_detail(group)

    @fastapi_app.get("/metadata")
    async def metadata() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        return service.metadata.model_dump(mode="json", by_alias=True)

    @fastapi_app.get("/admin/preview")
    async def preview_status() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        reconciler = service.reconciler
        return {
            "items": len(reconciler.preview),
            "movies": len(service.preview_movies()),
            "series": len(service.preview_series()),
            "unpublished": len(reconciler.unpublished()),
            "hasUnpublished": service.has_unpublished,
            "ingestRunning": service.ingest_running,
        }

    @fastapi_app.post("/admin/preview")
    async def upload_preview(
        request: Request,
        kind: ContentKind | None = None,
        filename: str = "upload",
    ) -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        body = await request.body()
        if not body:
            raise HTTPException(status_code=400, detail="Empty playlist upload")
        content_type = request.headers.get("content-type", "")
        archive = filename.lower().endswith(".zip") or "zip" in content_type.lower()
        result = await service.ingest(body, label=filename, archive=archive, kind=kind)
        return _ingest_payload(result)

    @fastapi_app.post("/admin/preview/url")
    async def import_from_url(payload: UrlImportRequest) -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        try:
            result = await service.load_from_url(str(payload.url), kind=payload.kind)
        except FetchFailure as exc:
            raise _http_error(exc) from exc
        return _ingest_payload(result)

    @fastapi_app.post("/admin/preview/auto")
    async def import_auto() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        try:
            result = await service.load_auto_playlist()
        except FetchFailure as exc:
            raise _http_error(exc) from exc
        if result is None:
            raise HTTPException(status_code=404, detail="No fixed playlist file found")
        return _ingest_payload(result)

    @fastapi_app.get("/admin/preview/auto/updates")
    async def playlist_updates(since: str | None = None) -> dict[str, bool]:
        service = get_content_service(fastapi_app)
        return {"updated": await service.playlist_changed(since)}

    @fastapi_app.get("/admin/preview/export")
    async def export_preview() -> Response:
        playlist = get_content_service(fastapi_app).export_preview()
        return Response(content=playlist, media_type="audio/x-mpegurl")

    @fastapi_app.post("/admin/preview/group/{group_id}")
    async def import_group(group_id: str) -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        try:
            added = await service.load_group_into_preview(group_id)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return {"group": group_id, "itemsAdded": added}

    @fastapi_app.post("/admin/preview/cancel")
    async def cancel_ingest() -> dict[str, bool]:
        return {"cancelled": get_content_service(fastapi_app).cancel_ingest()}

    @fastapi_app.delete("/admin/preview")
    async def clear_preview() -> dict[str, str]:
        get_content_service(fastapi_app).clear_preview()
        return {"status": "cleared"}

    @fastapi_app.post("/admin/publish")
    async def publish() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        try:
            published = await service.publish()
        except StoreSaveError as exc:
            raise _http_error(exc) from exc
        return {
            "published": len(published),
            "hasUnpublished": service.has_unpublished,
            "metadata": service.metadata.model_dump(mode="json", by_alias=True),
        }

    @fastapi_app.get("/admin/sync-status")
    async def sync_status() -> dict[str, Any]:
        status = await get_content_service(fastapi_app).sync_status()
        if status is None:
            raise HTTPException(status_code=404, detail="Nothing has been published yet")
        return status.model_dump(mode="json", by_alias=True)

    @fastapi_app.delete("/admin/data")
    async def clear_all() -> dict[str, Any]:
        stored = await get_content_service(fastapi_app).clear_all()
        return {"status": "cleared", "storeCleared": stored}

    @fastapi_app.post("/admin/partitions/{group_id}/{index}/replace")
    async def replace_partition(group_id: str, index: int) -> dict[str, Any]:
        loader = get_content_service(fastapi_app).loader
        return {
            "group": group_id,
            "index": index,
            "evicted": loader.replace_partition(group_id, index),
        }

    @fastapi_app.put("/admin/series/{name}/enrichment")
    async def put_enrichment(name: str, enrichment: SeriesEnrichment) -> dict[str, Any]:
        saved = await get_content_service(fastapi_app).set_enrichment(name, enrichment)
        return {"saved": saved}

    @fastapi_app.post("/admin/series/{name}/lookup")
    async def lookup_enrichment(name: str) -> dict[str, Any]:
        enrichment = await get_content_service(fastapi_app).lookup_enrichment(name)
        if enrichment is None:
            raise HTTPException(status_code=404, detail=f"No metadata found for {name}")
        return enrichment.model_dump(mode="json", by_alias=True)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
