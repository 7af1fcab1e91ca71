from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

from common.geo import Coordinate

if TYPE_CHECKING:
    from notifications.models import DelayNotification


class LocationProvider(Protocol):
    def current_location(self) -> Optional[Coordinate]:
        ...


class GeocodeProvider(Protocol):
    async def geocode(self, address: str) -> Optional[Coordinate]:
        ...

    async def reverse_geocode(self, coordinate: Coordinate) -> Optional[str]:
        ...


class DirectionsProvider(Protocol):
    async def travel_time(
        self,
        origin: Coordinate,
        destination: Coordinate,
        profile: str = "driving",
    ) -> Optional[float]:
        ...


class NotificationSink(Protocol):
    async def deliver(self, notification: DelayNotification) -> bool:
        ...


class MessagingIntegration(Protocol):
    async def send_message(self, message: str, location: Coordinate) -> bool:
        ...
