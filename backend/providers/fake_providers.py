from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from common.geo import Coordinate

from .contracts import (
    DirectionsProvider,
    GeocodeProvider,
    MessagingIntegration,
)

FIXTURES_ROOT = Path(__file__).parent.parent / "fixtures" / "demo"

logger = logging.getLogger(__name__)


def _coord_key(coordinate: Coordinate) -> str:
    return f"{round(coordinate.latitude, 4)},{round(coordinate.longitude, 4)}"


class _FixtureLoader:
    def __init__(self, fixture_name: str):
        self.path = FIXTURES_ROOT / fixture_name / "data.json"
        with self.path.open("r", encoding="utf-8") as f:
            self.data = json.load(f)


class FakeGeocodeProvider(GeocodeProvider, _FixtureLoader):
    def __init__(self) -> None:
        _FixtureLoader.__init__(self, "geocode")

    async def geocode(self, address: str) -> Optional[Coordinate]:
        key = address.strip().lower()
        entry = self.data.get("locations", {}).get(key)
        if entry:
            return Coordinate(latitude=entry["lat"], longitude=entry["lon"])
        return None

    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[str]:
        mapping = self.data.get("reverse", {})
        return mapping.get(_coord_key(coordinate))


class FakeDirectionsProvider(DirectionsProvider, _FixtureLoader):
    """Fixture routes; unknown origin/destination pairs have no route."""

    def __init__(self) -> None:
        _FixtureLoader.__init__(self, "directions")

    async def travel_time(
        self,
        origin: Coordinate,
        destination: Coordinate,
        profile: str = "driving",
    ) -> Optional[float]:
        origin_key = _coord_key(origin)
        dest_key = _coord_key(destination)
        for route in self.data.get("routes", []):
            if (
                route.get("profile", "driving") == profile
                and route["origin"] == origin_key
                and route["destination"] == dest_key
            ):
                return float(route["duration_seconds"])
        return None


class FakeMessagingIntegration(MessagingIntegration):
    """Records messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, Coordinate]] = []

    async def send_message(self, message: str, location: Coordinate) -> bool:
        self.sent.append((message, location))
        logger.info(
            f"Messaging (fake): {message} @ {location.latitude:.5f},{location.longitude:.5f}"
        )
        return True
