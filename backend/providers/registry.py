from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from common.config import get_settings

from .contracts import (
    DirectionsProvider,
    GeocodeProvider,
    MessagingIntegration,
    NotificationSink,
)
from .fake_providers import (
    FakeDirectionsProvider,
    FakeGeocodeProvider,
    FakeMessagingIntegration,
)
from .location import LocationManager
from .real_providers import (
    LoggingMessagingIntegration,
    MapboxDirectionsProvider,
    MapboxGeocodeProvider,
    WebhookMessagingIntegration,
)
from notifications.expo_push import ExpoNotificationSink, InMemoryNotificationSink


@dataclass
class ProviderSet:
    location: LocationManager
    geocode: GeocodeProvider
    directions: DirectionsProvider
    notifications: NotificationSink
    messaging: MessagingIntegration


def _build_prod() -> ProviderSet:
    settings = get_settings()
    if settings.messaging_webhook_url:
        messaging: MessagingIntegration = WebhookMessagingIntegration(settings.messaging_webhook_url)
    else:
        messaging = LoggingMessagingIntegration()
    return ProviderSet(
        location=LocationManager(),
        geocode=MapboxGeocodeProvider(),
        directions=MapboxDirectionsProvider(),
        notifications=ExpoNotificationSink(
            push_token=settings.expo_push_token,
            access_token=settings.expo_access_token,
        ),
        messaging=messaging,
    )


def _build_fake() -> ProviderSet:
    return ProviderSet(
        location=LocationManager(),
        geocode=FakeGeocodeProvider(),
        directions=FakeDirectionsProvider(),
        notifications=InMemoryNotificationSink(),
        messaging=FakeMessagingIntegration(),
    )


_provider_cache: Optional[ProviderSet] = None


def load_providers(mode: Optional[str] = None) -> ProviderSet:
    global _provider_cache
    active_mode = (mode or os.environ.get("TRAFFIC_DELAY_MODE", "prod")).lower()
    if _provider_cache and mode is None:
        return _provider_cache
    if active_mode in {"demo", "test"}:
        _provider_cache = _build_fake()
    else:
        _provider_cache = _build_prod()
    return _provider_cache


def get_providers() -> ProviderSet:
    return load_providers()


def reload_providers(mode: Optional[str] = None) -> ProviderSet:
    global _provider_cache
    _provider_cache = None
    return load_providers(mode)
