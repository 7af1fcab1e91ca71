"""
Geographic helpers shared by providers and the deadline monitor.
"""

import math
from dataclasses import dataclass

# Mean Earth radius (IUGG) in meters
EARTH_RADIUS_M = 6371008.8


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 latitude/longitude pair."""
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"lat": self.latitude, "lon": self.longitude}


def haversine_meters(origin: Coordinate, destination: Coordinate) -> float:
    """
    Great-circle distance between two coordinates using the Haversine formula.

    Args:
        origin: Start coordinate
        destination: End coordinate

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(origin.latitude)
    lat2_rad = math.radians(destination.latitude)
    delta_lat = math.radians(destination.latitude - origin.latitude)
    delta_lon = math.radians(destination.longitude - origin.longitude)

    a = math.sin(delta_lat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    # Clamp for float drift near antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c
