from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from common.config import get_settings
from common.geo import Coordinate

from .contracts import (
    DirectionsProvider,
    GeocodeProvider,
    MessagingIntegration,
)

logger = logging.getLogger(__name__)

MAPBOX_API_BASE = "https://api.mapbox.com"


def _mapbox_token(access_token: Optional[str]) -> str:
    return access_token if access_token is not None else get_settings().mapbox_access_token


class MapboxGeocodeProvider(GeocodeProvider):
    def __init__(self, access_token: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = _mapbox_token(access_token)
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=10.0, transport=self.transport)

    async def geocode(self, address: str) -> Optional[Coordinate]:
        try:
            async with self._client() as client:
                url = f"{MAPBOX_API_BASE}/geocoding/v5/mapbox.places/{quote(address, safe='')}.json"
                params = {"access_token": self.access_token, "limit": 1}
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
                if data.get("features"):
                    lon, lat = data["features"][0]["center"]
                    return Coordinate(latitude=lat, longitude=lon)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Mapbox geocode failed: {e}")
            return None
        return None

    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[str]:
        try:
            async with self._client() as client:
                url = (
                    f"{MAPBOX_API_BASE}/geocoding/v5/mapbox.places/"
                    f"{coordinate.longitude},{coordinate.latitude}.json"
                )
                params = {"access_token": self.access_token, "types": "address", "limit": 1}
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
                if data.get("features"):
                    feature = data["features"][0]
                    street = feature.get("text", "")
                    if feature.get("address"):
                        street = f"{feature['address']} {street}"
                    place = ""
                    region = ""
                    for ctx in feature.get("context", []):
                        ctx_id = ctx.get("id", "")
                        if ctx_id.startswith("place") and not place:
                            place = ctx.get("text", "")
                        elif ctx_id.startswith("region") and not region:
                            region = ctx.get("short_code", "").split("-")[-1].upper() or ctx.get("text", "")
                    parts = [p for p in (street, place, region) if p]
                    return ", ".join(parts) or None
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Mapbox reverse geocode failed: {e}")
            return None
        return None


class MapboxDirectionsProvider(DirectionsProvider):
    def __init__(self, access_token: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = _mapbox_token(access_token)
        self.transport = transport

    async def travel_time(
        self,
        origin: Coordinate,
        destination: Coordinate,
        profile: str = "driving",
    ) -> Optional[float]:
        try:
            coords_str = (
                f"{origin.longitude},{origin.latitude};"
                f"{destination.longitude},{destination.latitude}"
            )
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                url = f"{MAPBOX_API_BASE}/directions/v5/mapbox/{profile}/{coords_str}"
                params = {"access_token": self.access_token, "overview": "false"}
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
                if data.get("code") == "NoRoute":
                    return None
                if data.get("routes"):
                    duration = data["routes"][0].get("duration")
                    return float(duration) if duration is not None else None
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Mapbox directions failed: {e}")
            return None
        return None


class WebhookMessagingIntegration(MessagingIntegration):
    """Posts the message and location to a configured webhook."""

    def __init__(self, webhook_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhook_url = webhook_url
        self.transport = transport

    async def send_message(self, message: str, location: Coordinate) -> bool:
        payload = {
            "message": message,
            "location": location.to_dict(),
        }
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                if response.status_code >= 400:
                    logger.error(
                        f"Messaging webhook error: {response.status_code} {response.text}"
                    )
                    return False
                logger.info("Messaging webhook accepted delay message")
                return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to post delay message: {e}")
            return False


class LoggingMessagingIntegration(MessagingIntegration):
    """Used when no messaging service is connected: logs the hand-off only."""

    async def send_message(self, message: str, location: Coordinate) -> bool:
        logger.info(
            f"Messaging integration: would send {message!r} "
            f"from {location.latitude:.5f},{location.longitude:.5f}"
        )
        return True
