"""Client for the media library (Jellyfin-style ``/Items`` API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from movienight.config import settings
from movienight.exceptions import ExternalServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)

ITEM_FIELDS = "Overview,RunTimeTicks,ProductionYear,PrimaryImageAspectRatio,ProviderIds"
RESULT_LIMIT = 20
TICKS_PER_MINUTE = 600_000_000


@dataclass
class LibraryItem:
    external_id: str
    title: str
    year: int | None = None
    runtime_minutes: int | None = None
    synopsis: str | None = None
    poster_ref: str | None = None
    catalog_id: str | None = None


class MediaLibraryClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url if base_url is not None else settings.media_library_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.media_library_api_key
        self._timeout = timeout if timeout is not None else settings.external_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    async def search(self, query: str) -> list[LibraryItem]:
        return await self._items({"searchTerm": query})

    async def recent(self) -> list[LibraryItem]:
        return await self._items({"SortBy": "DateCreated", "SortOrder": "Descending"})

    async def _items(self, params: dict[str, str]) -> list[LibraryItem]:
        if not self.configured:
            raise ServiceNotConfiguredError("The media library is not configured.")

        query = {
            "IncludeItemTypes": "Movie",
            "Recursive": "true",
            "Fields": ITEM_FIELDS,
            "Limit": str(RESULT_LIMIT),
            "api_key": self._api_key,
            **params,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(f"{self._base_url}/Items", params=query)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning("Media library request failed: %s", e)
            raise ExternalServiceError("Failed to reach the media library.") from e

        return [self._to_item(raw) for raw in data.get("Items") or []]

    def _to_item(self, raw: dict[str, Any]) -> LibraryItem:
        ticks = raw.get("RunTimeTicks")
        provider_ids = raw.get("ProviderIds") or {}
        return LibraryItem(
            external_id=str(raw["Id"]),
            title=raw.get("Name") or "",
            year=raw.get("ProductionYear"),
            runtime_minutes=round(ticks / TICKS_PER_MINUTE) if ticks else None,
            synopsis=raw.get("Overview"),
            poster_ref=f"{self._base_url}/Items/{raw['Id']}/Images/Primary",
            catalog_id=str(provider_ids["Tmdb"]) if provider_ids.get("Tmdb") else None,
        )
