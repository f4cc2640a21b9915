"""Client for the external catalog / request service (Jellyseerr-style API).

Search results report how far along each title is towards the library, and
``submit_request`` asks the service to acquire a title.  The nomination
guard only depends on the ``RequestSubmitter`` protocol so tests can hand it
a fake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from movienight.config import settings
from movienight.exceptions import ExternalServiceError, ServiceNotConfiguredError
from movienight.models.movie import MovieStatus

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"

# mediaInfo.status values reported by the request service
MEDIA_AVAILABLE = 5
MEDIA_PENDING = (2, 3, 4)


class RequestSubmitter(Protocol):
    async def submit_request(self, external_id: str) -> str | None: ...


@dataclass
class CatalogItem:
    external_id: str
    title: str
    year: int | None = None
    synopsis: str | None = None
    poster_ref: str | None = None
    availability_status: MovieStatus = MovieStatus.nominated_only


def availability_from_media_status(media_status: int | None) -> MovieStatus:
    if media_status == MEDIA_AVAILABLE:
        return MovieStatus.in_library
    if media_status in MEDIA_PENDING:
        return MovieStatus.requested
    return MovieStatus.nominated_only


class RequestCatalogClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url if base_url is not None else settings.catalog_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.catalog_api_key
        self._timeout = timeout if timeout is not None else settings.external_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    def _client(self) -> httpx.AsyncClient:
        if not self.configured:
            raise ServiceNotConfiguredError("The request service is not configured.")
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"X-Api-Key": self._api_key},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def search(self, query: str) -> list[CatalogItem]:
        try:
            async with self._client() as client:
                response = await client.get(
                    "/api/v1/search", params={"query": query, "page": "1", "language": "en"}
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning("Catalog search failed: %s", e)
            raise ExternalServiceError("Failed to reach the request service.") from e

        return [
            self._to_item(raw) for raw in data.get("results") or [] if raw.get("mediaType") == "movie"
        ]

    async def submit_request(self, external_id: str) -> str | None:
        """Ask the service to acquire a movie.  Returns its request id, if it gave one."""
        try:
            media_id = int(external_id)
        except ValueError as e:
            raise ExternalServiceError(f"Invalid catalog id: {external_id!r}") from e

        try:
            async with self._client() as client:
                response = await client.post(
                    "/api/v1/request", json={"mediaType": "movie", "mediaId": media_id}
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise ExternalServiceError("Failed to submit the request.") from e

        request_id = data.get("id")
        return str(request_id) if request_id is not None else None

    def _to_item(self, raw: dict[str, Any]) -> CatalogItem:
        release_date = raw.get("releaseDate") or ""
        poster_path = raw.get("posterPath")
        media_info = raw.get("mediaInfo") or {}
        return CatalogItem(
            external_id=str(raw["id"]),
            title=raw.get("title") or raw.get("originalTitle") or "",
            year=int(release_date[:4]) if release_date[:4].isdigit() else None,
            synopsis=raw.get("overview"),
            poster_ref=f"{POSTER_BASE_URL}{poster_path}" if poster_path else None,
            availability_status=availability_from_media_status(media_info.get("status")),
        )
