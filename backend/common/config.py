"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from .geo import Coordinate

DEFAULT_MESSAGE_TEMPLATE = "I'm stuck in traffic at [LOCATION]. My new ETA is [TIME]."


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    """Monitor, notification and provider configuration."""

    poll_interval_seconds: float = 60.0
    # ~30 mph, used when routing is unavailable
    fallback_speed_mps: float = 13.4
    default_destination: Coordinate = field(
        default_factory=lambda: Coordinate(latitude=37.7749, longitude=-122.4194)
    )
    notifications_enabled: bool = True
    auto_message_enabled: bool = False
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    mapbox_access_token: str = ""
    expo_push_token: Optional[str] = None
    expo_access_token: Optional[str] = None
    messaging_webhook_url: Optional[str] = None

    def __post_init__(self) -> None:
        self.poll_interval_seconds = _env_float("POLL_INTERVAL_SECONDS", self.poll_interval_seconds)
        self.fallback_speed_mps = _env_float("FALLBACK_SPEED_MPS", self.fallback_speed_mps)
        self.default_destination = Coordinate(
            latitude=_env_float("DEFAULT_DESTINATION_LAT", self.default_destination.latitude),
            longitude=_env_float("DEFAULT_DESTINATION_LON", self.default_destination.longitude),
        )
        self.notifications_enabled = _env_bool("NOTIFICATIONS_ENABLED", self.notifications_enabled)
        self.auto_message_enabled = _env_bool("AUTO_MESSAGE_ENABLED", self.auto_message_enabled)

        env_template = os.getenv("DELAY_MESSAGE_TEMPLATE")
        if env_template:
            self.message_template = env_template
        self.mapbox_access_token = os.getenv("MAPBOX_ACCESS_TOKEN", self.mapbox_access_token)
        self.expo_push_token = os.getenv("EXPO_PUSH_TOKEN") or self.expo_push_token
        self.expo_access_token = os.getenv("EXPO_ACCESS_TOKEN") or self.expo_access_token
        self.messaging_webhook_url = os.getenv("MESSAGING_WEBHOOK_URL") or self.messaging_webhook_url

        if self.poll_interval_seconds <= 0:
            raise ValueError("POLL_INTERVAL_SECONDS must be > 0")
        if self.fallback_speed_mps <= 0:
            raise ValueError("FALLBACK_SPEED_MPS must be > 0")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
