"""OpenStreetMap Nominatim geocoder (``httpx``)."""

from __future__ import annotations

import logging

import httpx

from disaster_relay.core.models import Coordinates

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """Forward geocoding through a Nominatim ``/search`` endpoint.

    Nominatim's usage policy requires an identifying User-Agent.
    """

    def __init__(
        self,
        url: str = "https://nominatim.openstreetmap.org/search",
        *,
        user_agent: str = "disaster-relay/0.1",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = {"User-Agent": user_agent}
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def geocode(self, location: str) -> Coordinates | None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
            self._owns_client = True
        resp = await self._client.get(
            self._url,
            params={"q": location, "format": "json", "limit": 1},
            headers=self._headers,
        )
        resp.raise_for_status()
        rows = resp.json()
        if not rows:
            logger.info("Nominatim found nothing for %r", location)
            return None
        return Coordinates(lat=float(rows[0]["lat"]), lng=float(rows[0]["lon"]))
