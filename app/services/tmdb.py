"""Series artwork and synopsis lookups against The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import SeriesEnrichment
from ..series import normalize_series_name

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/w780"


class TMDBClient:
    """Client searching TMDB for series metadata keyed by series name."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def lookup_series(
        self, series_name: str, *, language: str = "pt-BR"
    ) -> SeriesEnrichment | None:
        """Return enrichment for the best TMDB match, or ``None``."""

        query = (series_name or "").strip()
        if not query:
            return None

        params = {
            "query": query,
            "include_adult": "false",
            "language": language,
            "page": 1,
            "api_key": self._settings.tmdb_api_key,
        }
        try:
            response = await self._client.get("/search/tv", params=params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB search for %s failed: %s", query, exc)
            return None
        if response.status_code >= 400:
            logger.warning("TMDB search for %s failed: %s", query, response.text)
            return None

        results = response.json().get("results", [])
        best_match = self._select_best_match(query, results)
        if best_match is None:
            return None

        rating = best_match.get("vote_average")
        return SeriesEnrichment(
            tmdb_id=int(best_match["id"]),
            poster=self._build_image_url(best_match.get("poster_path"), POSTER_BASE_URL),
            backdrop=self._build_image_url(
                best_match.get("backdrop_path"), BACKDROP_BASE_URL
            ),
            overview=best_match.get("overview") or None,
            first_air_date=best_match.get("first_air_date") or None,
            rating=float(rating) if isinstance(rating, (int, float)) else None,
        )

    @staticmethod
    def _select_best_match(
        query: str, results: list[Any]
    ) -> dict[str, Any] | None:
        candidates = [
            result for result in results if isinstance(result, dict) and result.get("id")
        ]
        if not candidates:
            return None
        target = normalize_series_name(query)
        for candidate in candidates:
            names = (candidate.get("name"), candidate.get("original_name"))
            if any(name and normalize_series_name(name) == target for name in names):
                return candidate
        return candidates[0]

    @staticmethod
    def _build_image_url(path: str | None, base_url: str) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{base_url}{path}"
