"""Typed client for the catalog proxy routes (``/api/movies``).

This is what the import pipeline talks to. It never retries; every
non-success response or transport failure is raised as
:class:`CatalogLookupError` and the caller decides what that means.
"""

import logging

import httpx

from .models import CatalogCandidate, MovieDetail, WatchProviders, parse_candidates

logger = logging.getLogger(__name__)


class CatalogLookupError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CatalogClient:
    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            resp = await self._http.get(path, params=params)
        except httpx.HTTPError as exc:
            raise CatalogLookupError(f"Catalog request to {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise CatalogLookupError(
                f"Catalog request to {path} failed with {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise CatalogLookupError(f"Catalog response from {path} is not JSON") from exc
        if not isinstance(data, dict):
            raise CatalogLookupError(f"Catalog response from {path} has unexpected shape")
        return data

    async def search_by_title(self, title: str, year: str | int | None = None) -> list[CatalogCandidate]:
        data = await self._get_json("/search", {"q": title, "year": year})
        return parse_candidates(data.get("results"))

    async def get_release_dates_by_territory(self, movie_id: int) -> dict[str, list[str]]:
        data = await self._get_json(f"/{movie_id}/release-dates")
        territories: dict[str, list[str]] = {}
        for index, entry in enumerate(data.get("results") or []):
            if not isinstance(entry, dict):
                continue
            territory = str(entry.get("iso_3166_1") or f"#{index}")
            dates = territories.setdefault(territory, [])
            for release in entry.get("release_dates") or []:
                if isinstance(release, dict) and release.get("release_date"):
                    dates.append(str(release["release_date"]))
        return territories

    async def get_details(self, movie_id: int) -> MovieDetail:
        data = await self._get_json(f"/{movie_id}")
        try:
            return MovieDetail.model_validate(data)
        except ValueError as exc:
            raise CatalogLookupError(f"Catalog entry {movie_id} could not be parsed") from exc

    async def get_watch_providers(self, movie_id: int, region: str) -> WatchProviders | None:
        data = await self._get_json(f"/{movie_id}/watch-providers", {"watch_region": region})
        regional = (data.get("results") or {}).get(region)
        if not isinstance(regional, dict):
            return None
        try:
            return WatchProviders.model_validate(regional)
        except ValueError:
            logger.warning("Ignoring malformed watch providers for movie %s in %s", movie_id, region)
            return None
