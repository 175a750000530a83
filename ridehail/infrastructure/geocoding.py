"""
Nominatim-compatible geocoding proxy.

* ``search(text)``        -> up to five ``GeocodeResult`` (location + address)
* ``reverse(lat, lng)``   -> a short formatted address

Results are opaque to the ride core.  Failures degrade quietly: search
returns an empty list, reverse returns the coordinates as text.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3


class GeocodeResult(BaseModel):
    latitude: float
    longitude: float
    address: str


def format_address(data: dict) -> str:
    address = data.get("address") or {}
    parts = [
        address.get("road"),
        address.get("house_number"),
        address.get("city") or address.get("town") or address.get("village"),
    ]
    formatted = ", ".join(p for p in parts if p)
    return formatted or data.get("display_name") or ""


class GeocodingClient:
    def __init__(self, base_url: str, language: str = "de", timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.language = language
        self.timeout = timeout

    async def _get(self, path: str, params: dict) -> object:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Accept-Language": self.language},
        ) as client:
            response = await client.get(path, params={"format": "json", **params})
            response.raise_for_status()
            return response.json()

    async def search(self, query: str, limit: int = 5) -> list[GeocodeResult]:
        if not query or len(query.strip()) < MIN_QUERY_LENGTH:
            return []
        try:
            data = await self._get("/search", {"q": query.strip(), "limit": limit})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geocoding search failed: %s", e)
            return []
        if not isinstance(data, list):
            return []
        results = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                latitude, longitude = float(item["lat"]), float(item["lon"])
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed geocoding result: %r", item)
                continue
            results.append(
                GeocodeResult(
                    latitude=latitude,
                    longitude=longitude,
                    address=str(item.get("display_name") or ""),
                )
            )
        return results

    async def reverse(self, latitude: float, longitude: float) -> str:
        fallback = f"{latitude:.5f}, {longitude:.5f}"
        try:
            data = await self._get(
                "/reverse",
                {"lat": latitude, "lon": longitude, "zoom": 18, "addressdetails": 1},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Reverse geocoding failed: %s", e)
            return fallback
        if not isinstance(data, dict):
            return fallback
        return format_address(data) or fallback
