from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from common.geo import Coordinate

from .contracts import LocationProvider

logger = logging.getLogger(__name__)


class LocationManager(LocationProvider):
    """Holds the most recent location fix reported by the device."""

    def __init__(self, initial: Optional[Coordinate] = None) -> None:
        self._location: Optional[Coordinate] = initial
        self._updated_at: Optional[datetime] = datetime.now(timezone.utc) if initial else None

    def update(self, coordinate: Coordinate) -> None:
        if not (-90.0 <= coordinate.latitude <= 90.0):
            raise ValueError("latitude must be between -90 and 90")
        if not (-180.0 <= coordinate.longitude <= 180.0):
            raise ValueError("longitude must be between -180 and 180")
        self._location = coordinate
        self._updated_at = datetime.now(timezone.utc)
        logger.debug(f"Location updated to {coordinate.latitude:.5f},{coordinate.longitude:.5f}")

    def clear(self) -> None:
        self._location = None
        self._updated_at = None

    def current_location(self) -> Optional[Coordinate]:
        return self._location

    @property
    def updated_at(self) -> Optional[datetime]:
        return self._updated_at
