# mlsbridge/adapters/clients/geocoding.py
from __future__ import annotations

from typing import Protocol

import httpx

from ...domain.parsing import to_float
from ...domain.types import Coordinates


class GeocodingError(LookupError):
    pass


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Coordinates: ...


class FixedGeocoder:
    """Resolves every address to one configured point (dev / sandbox)."""

    def __init__(self, latitude: float, longitude: float) -> None:
        self.coordinates = Coordinates(latitude=latitude, longitude=longitude)

    async def geocode(self, address: str) -> Coordinates:
        if not address.strip():
            raise GeocodingError("empty address")
        return self.coordinates


class HttpGeocoder:
    """Nominatim-style search endpoint: GET ?q=...&format=json -> [{lat, lon}, ...]"""

    def __init__(
        self,
        base_url: str,
        *,
        user_agent: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.user_agent = user_agent
        self._timeout = httpx.Timeout(timeout_s)
        self._transport = transport

    async def geocode(self, address: str) -> Coordinates:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.get(
                self.base_url,
                params={"q": address, "format": "json", "limit": 1},
                headers={"accept": "application/json", "user-agent": self.user_agent},
            )
        resp.raise_for_status()
        rows = resp.json()
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise GeocodingError(f"no geocoding match for {address!r}")
        lat, lon = to_float(rows[0].get("lat")), to_float(rows[0].get("lon"))
        if lat is None or lon is None:
            raise GeocodingError(f"geocoder returned no coordinates for {address!r}")
        return Coordinates(latitude=lat, longitude=lon)
