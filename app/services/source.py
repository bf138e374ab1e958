"""Retrieval of whole playlists from a fixed path or an arbitrary URL."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from email.utils import parsedate_to_datetime

import httpx

from ..exceptions import FetchFailure

logger = logging.getLogger(__name__)

# Probed in this order; the first candidate that answers wins.
PLAYLIST_SUFFIXES: tuple[str, ...] = (".m3u", ".m3u8", ".txt", ".zip")


@dataclass(slots=True)
class PlaylistPayload:
    """Raw playlist bytes and where they came from."""

    source: str
    data: bytes
    archive: bool
    last_modified: str | None = None


def _is_archive(url: str, content_type: str | None) -> bool:
    path = httpx.URL(url).path.lower()
    return path.endswith(".zip") or "zip" in (content_type or "").lower()


class PlaylistSource:
    """Locates and downloads complete playlist files."""

    def __init__(self, http_client: httpx.AsyncClient, *, base_path: str = "/playlist"):
        self._client = http_client
        self._base_path = base_path

    async def detect(self) -> str | None:
        """Return the first available playlist candidate under the base path."""

        for suffix in PLAYLIST_SUFFIXES:
            candidate = f"{self._base_path}{suffix}"
            try:
                response = await self._client.head(candidate)
            except httpx.HTTPError as exc:
                logger.debug("Probe of %s failed: %s", candidate, exc)
                continue
            if response.is_success:
                logger.info("Found playlist file %s", candidate)
                return candidate
        return None

    async def fetch_auto(self) -> PlaylistPayload | None:
        """Download the fixed playlist file, or ``None`` when none is published."""

        candidate = await self.detect()
        if candidate is None:
            logger.info("No fixed playlist file found under %s", self._base_path)
            return None
        return await self.fetch_url(candidate)

    async def fetch_url(self, url: str) -> PlaylistPayload:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchFailure(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchFailure(url, str(exc) or type(exc).__name__) from exc

        return PlaylistPayload(
            source=url,
            data=response.content,
            archive=_is_archive(url, response.headers.get("content-type")),
            last_modified=response.headers.get("last-modified"),
        )

    async def check_for_updates(self, last_modified: str | None = None) -> bool:
        """Return whether the fixed playlist changed since ``last_modified``.

        Without a known timestamp on either side the answer is ``True``.
        """

        candidate = await self.detect()
        if candidate is None:
            return False
        try:
            response = await self._client.head(candidate)
        except httpx.HTTPError as exc:
            logger.warning("Update check for %s failed: %s", candidate, exc)
            return False
        current = response.headers.get("last-modified")
        if not last_modified or not current:
            return True
        try:
            return parsedate_to_datetime(current) > parsedate_to_datetime(last_modified)
        except (TypeError, ValueError):
            return True
