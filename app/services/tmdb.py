"""Catalog listings and trailers from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import CatalogItem, ContentKind, Trailer

logger = logging.getLogger(__name__)

IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

MOVIE_CATEGORIES: dict[str, str] = {
    "trending": "/trending/movie/week",
    "popular": "/movie/popular",
    "top_rated": "/movie/top_rated",
    "upcoming": "/movie/upcoming",
    "now_playing": "/movie/now_playing",
}
SERIES_CATEGORIES: dict[str, str] = {
    "trending": "/trending/tv/week",
    "popular": "/tv/popular",
    "top_rated": "/tv/top_rated",
    "on_the_air": "/tv/on_the_air",
    "airing_today": "/tv/airing_today",
}
REGIONAL_CATEGORIES = frozenset({"popular", "top_rated"})


def _path_segment(kind: ContentKind) -> str:
    return "movie" if kind == "movie" else "tv"


def image_url(path: str | None, size: str = "w500") -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{IMAGE_BASE_URL}/{size}{path}"


class TMDBClient:
    """Read-only catalog source; failures degrade to empty results."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    @staticmethod
    def categories(kind: ContentKind) -> tuple[str, ...]:
        source = MOVIE_CATEGORIES if kind == "movie" else SERIES_CATEGORIES
        return tuple(source)

    async def list_category(
        self, kind: ContentKind, category: str, *, page: int = 1
    ) -> list[CatalogItem]:
        """Return one page of a named listing such as ``popular``."""

        endpoints = MOVIE_CATEGORIES if kind == "movie" else SERIES_CATEGORIES
        endpoint = endpoints.get(category)
        if endpoint is None:
            raise KeyError(f"Unknown {kind} category: {category}")

        params: dict[str, Any] = {"page": page}
        if kind == "movie" and category in REGIONAL_CATEGORIES and self._settings.tmdb_region:
            params["region"] = self._settings.tmdb_region
        payload = await self._get(endpoint, params)
        return self._parse_results(payload, kind)

    async def search(
        self, kind: ContentKind, query: str, *, page: int = 1
    ) -> list[CatalogItem]:
        query = query.strip()
        if not query:
            return []
        payload = await self._get(
            f"/search/{_path_segment(kind)}", {"query": query, "page": page}
        )
        return self._parse_results(payload, kind)

    async def get_details(self, kind: ContentKind, item_id: int) -> CatalogItem | None:
        payload = await self._get(f"/{_path_segment(kind)}/{item_id}", {})
        if not payload:
            return None
        if "genre_ids" not in payload and isinstance(payload.get("genres"), list):
            payload["genre_ids"] = [
                genre["id"] for genre in payload["genres"] if isinstance(genre, dict) and "id" in genre
            ]
        try:
            return CatalogItem.from_tmdb(payload, kind=kind)
        except ValidationError as exc:
            logger.warning("TMDB details for %s %s are invalid: %s", kind, item_id, exc)
            return None

    async def get_item_trailers(self, item_id: int, kind: ContentKind) -> list[Trailer]:
        """Return the videos TMDB lists for an item."""

        payload = await self._get(f"/{_path_segment(kind)}/{item_id}/videos", {})
        if not payload:
            return []
        trailers: list[Trailer] = []
        for entry in payload.get("results", []):
            if not isinstance(entry, dict):
                continue
            try:
                trailers.append(Trailer.model_validate(entry))
            except ValidationError:
                logger.debug("Skipping malformed video for %s %s", kind, item_id)
        return trailers

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any] | None:
        request_params = {
            **params,
            "api_key": self._settings.tmdb_api_key,
            "language": "en-US",
        }
        try:
            response = await self._client.get(endpoint, params=request_params)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            return None
        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s failed (%s): %s",
                endpoint,
                response.status_code,
                response.text,
            )
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("TMDB returned invalid JSON for %s", endpoint)
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _parse_results(
        payload: dict[str, Any] | None, kind: ContentKind
    ) -> list[CatalogItem]:
        if not payload:
            return []
        items: list[CatalogItem] = []
        for entry in payload.get("results", []):
            if not isinstance(entry, dict):
                continue
            try:
                items.append(CatalogItem.from_tmdb(entry, kind=kind))
            except ValidationError:
                logger.debug("Skipping malformed %s result %s", kind, entry.get("id"))
        return items
