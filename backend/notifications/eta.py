"""
Travel-time helpers - Pure domain logic

Fallback ETA when routing is unavailable, duration formatting, the lateness
test, and rendering of the suggested "stuck in traffic" message.
"""

import math
import re
from datetime import datetime, timedelta
from typing import Optional

from common.config import DEFAULT_MESSAGE_TEMPLATE
from common.geo import Coordinate, haversine_meters

# Assumed average driving speed when no route is available (~30 mph)
FALLBACK_SPEED_MPS = 13.4

UNKNOWN_DURATION = "Unknown"
UNKNOWN_LOCATION = "current location"
# Geocoder answered but had no address for the location
UNKNOWN_ADDRESS = "Unknown location"

LOCATION_PLACEHOLDER = "[LOCATION]"
TIME_PLACEHOLDER = "[TIME]"
_PLACEHOLDER_RE = re.compile(r"\[(?:LOCATION|TIME)\]")

# Routing answers beyond this are treated as bogus (30 days)
MAX_ROUTE_SECONDS = 30 * 24 * 3600


def fallback_travel_time(
    origin: Coordinate,
    destination: Coordinate,
    speed_mps: float = FALLBACK_SPEED_MPS,
) -> float:
    """
    Estimate travel time from straight-line distance and an average speed.

    Args:
        origin: Current location
        destination: Commitment destination
        speed_mps: Assumed average speed in meters/second

    Returns:
        Duration in seconds (finite, >= 0)

    Raises:
        ValueError: If speed_mps is not positive
    """
    if not speed_mps or speed_mps <= 0 or not math.isfinite(speed_mps):
        raise ValueError("speed_mps must be > 0")

    return haversine_meters(origin, destination) / speed_mps


def is_usable_duration(seconds: Optional[float], max_seconds: Optional[float] = None) -> bool:
    """Check a value is a real, non-negative duration (optionally capped)."""
    if seconds is None or isinstance(seconds, bool):
        return False
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        return False
    if not math.isfinite(value) or value < 0:
        return False
    return max_seconds is None or value <= max_seconds


def format_duration(seconds: Optional[float]) -> str:
    """
    Format a duration in hours and minutes, abbreviated ("1h 20m").

    Rounds to the nearest minute. Anything that can't be rendered
    (None, NaN, infinite, negative) becomes "Unknown".
    """
    if not is_usable_duration(seconds):
        return UNKNOWN_DURATION

    total_minutes = int(round(float(seconds) / 60.0))
    hours, minutes = divmod(total_minutes, 60)

    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def is_late(now: datetime, eta_seconds: float, deadline: datetime) -> bool:
    """True when arriving after now + eta_seconds misses the deadline."""
    try:
        projected_arrival = now + timedelta(seconds=eta_seconds)
    except OverflowError:
        # Past the last representable datetime
        return True
    return projected_arrival > deadline


def render_delay_message(
    location_text: Optional[str],
    eta_text: str,
    template: str = DEFAULT_MESSAGE_TEMPLATE,
) -> str:
    """
    Fill the [LOCATION] and [TIME] placeholders of a message template.

    Args:
        location_text: Human-readable current address (None/empty uses a placeholder)
        eta_text: Formatted ETA, e.g. "1h 20m"
        template: Message template

    Returns:
        The suggested message
    """
    location = location_text.strip() if location_text and location_text.strip() else UNKNOWN_LOCATION
    values = {LOCATION_PLACEHOLDER: location, TIME_PLACEHOLDER: eta_text}
    # Values are inserted verbatim, never re-scanned for placeholders
    return _PLACEHOLDER_RE.sub(lambda match: values[match.group(0)], template)
