"""
Deadline Monitor

Periodic job that:
1. Gets the current location
2. Asks the directions provider for a driving ETA to each commitment
3. Compares now + ETA against the commitment deadline
4. Raises a one-time delay notification the first time a commitment will be missed

Runs every POLL_INTERVAL_SECONDS (60 by default) on the asyncio event loop.
All state lives on the loop thread; no locks are needed as long as the
check-and-latch step never awaits in between.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from common.config import Settings, get_settings
from common.geo import Coordinate
from providers.contracts import (
    DirectionsProvider,
    GeocodeProvider,
    LocationProvider,
    MessagingIntegration,
    NotificationSink,
)

from .eta import (
    MAX_ROUTE_SECONDS,
    UNKNOWN_ADDRESS,
    fallback_travel_time,
    format_duration,
    is_late,
    is_usable_duration,
    render_delay_message,
)
from .models import Commitment, DelayNotification

logger = logging.getLogger(__name__)


class MonitorClosedError(RuntimeError):
    """Raised when a closed monitor is asked to take new work."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeadlineMonitor:
    """Watches commitments and alerts once when a deadline will be missed."""

    def __init__(
        self,
        location_provider: LocationProvider,
        directions: DirectionsProvider,
        geocoder: GeocodeProvider,
        notification_sink: NotificationSink,
        messaging: MessagingIntegration,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize monitor.

        Args:
            location_provider: Source of the device's latest location
            directions: Routing service used for driving ETAs
            geocoder: Address lookup and reverse geocoding
            notification_sink: Delivers delay notifications
            messaging: Third-party messaging hand-off
            settings: Runtime settings (default: get_settings())
            clock: Returns the current timezone-aware time (default: UTC now)
        """
        self.location_provider = location_provider
        self.directions = directions
        self.geocoder = geocoder
        self.notification_sink = notification_sink
        self.messaging = messaging
        self.settings = settings or get_settings()
        self._clock = clock or _utcnow

        # Insertion ordered, keyed by commitment_id
        self._commitments: Dict[str, Commitment] = {}
        self._etas: Dict[str, float] = {}
        self._in_flight: Set[str] = set()

        self._poll_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._closed = False

    # Lifecycle

    def start_monitoring(self) -> None:
        """
        (Re)start the recurring poll. Must be called from a running event loop.

        Any previous schedule is cancelled first, so repeated calls never stack.
        """
        if self._closed:
            raise MonitorClosedError("Cannot start a closed monitor")

        self.stop_monitoring()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.info(
            f"[DELAY] Monitoring started (every {self.settings.poll_interval_seconds:g}s)"
        )

    def stop_monitoring(self) -> None:
        """Cancel the recurring poll. Checks already dispatched keep running."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
            logger.info("[DELAY] Monitoring stopped")

    def close(self) -> None:
        """Tear down: stop polling and ignore results of in-flight checks."""
        self.stop_monitoring()
        self._closed = True

    @property
    def is_monitoring(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    async def _poll_loop(self) -> None:
        interval = self.settings.poll_interval_seconds
        while True:
            await asyncio.sleep(interval)
            # Dispatch the tick as its own task so cancelling the poll never
            # cancels checks that are already waiting on a provider.
            task = asyncio.get_running_loop().create_task(self.check_all_commitments())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    # Commands

    async def add_commitment(
        self,
        destination_name: str,
        destination_address: str,
        deadline: datetime,
    ) -> Commitment:
        """
        Register a commitment and check it right away.

        Args:
            destination_name: Display name of the destination
            destination_address: Free-text address, resolved via the geocoder
            deadline: Timezone-aware time the user must arrive by

        Returns:
            The created Commitment

        Raises:
            ValueError: If deadline is naive
            MonitorClosedError: If the monitor was closed
        """
        if deadline.tzinfo is None:
            raise ValueError("deadline must include timezone info")
        if self._closed:
            raise MonitorClosedError("Cannot add commitments to a closed monitor")

        destination = await self.resolve_destination(destination_address)
        if self._closed:
            raise MonitorClosedError("Monitor closed while resolving destination")

        commitment = Commitment(
            destination=destination,
            destination_name=destination_name,
            destination_address=destination_address,
            deadline=deadline,
        )
        self._commitments[commitment.commitment_id] = commitment
        logger.info(
            f"[DELAY] Added commitment {commitment.commitment_id} "
            f"({destination_name}, deadline {deadline.isoformat()})"
        )

        # Don't wait for the next tick to get a first ETA
        await self.check_commitment(commitment.commitment_id)
        return commitment

    async def check_all_commitments(self) -> None:
        """
        Check every commitment concurrently.

        Called on each poll tick. A failure in one check is logged and
        never blocks the others.
        """
        commitment_ids = list(self._commitments)
        if not commitment_ids:
            return

        results = await asyncio.gather(
            *(self.check_commitment(commitment_id) for commitment_id in commitment_ids),
            return_exceptions=True,
        )

        total_alerted = 0
        for commitment_id, result in zip(commitment_ids, results):
            if isinstance(result, Exception):
                logger.error(f"[DELAY] Check failed for commitment {commitment_id}: {result}")
            elif result:
                total_alerted += 1

        logger.info(
            f"[DELAY] Tick complete: {len(commitment_ids)} checked, {total_alerted} alerted"
        )

    async def check_commitment(self, commitment_id: str) -> bool:
        """
        Refresh the ETA for one commitment and alert if it will be missed.

        Args:
            commitment_id: ID of the commitment to check

        Returns:
            True if this call raised the delay alert
        """
        commitment = self._commitments.get(commitment_id)
        if commitment is None:
            logger.debug(f"[DELAY] Unknown commitment {commitment_id}")
            return False

        location = self.location_provider.current_location()
        if location is None:
            logger.debug(f"[DELAY] No location yet, skipping {commitment_id}")
            return False

        # One outstanding routing request per commitment; overlapping ticks skip
        if commitment_id in self._in_flight:
            logger.debug(f"[DELAY] Check already in flight for {commitment_id}, skipping")
            return False

        self._in_flight.add(commitment_id)
        try:
            eta_seconds = await self.estimate_travel_time(location, commitment.destination)
        finally:
            self._in_flight.discard(commitment_id)

        if self._closed:
            logger.debug(f"[DELAY] Monitor closed, dropping ETA for {commitment_id}")
            return False

        self._etas[commitment_id] = eta_seconds

        if not is_late(self._clock(), eta_seconds, commitment.deadline):
            return False

        # Latch before any await so a concurrent check can't alert twice
        if not commitment.mark_notified():
            return False

        logger.info(
            f"[DELAY] Commitment {commitment_id} will miss its deadline "
            f"(ETA {format_duration(eta_seconds)})"
        )
        await self.raise_delay_alert(commitment, location, format_duration(eta_seconds))
        return True

    async def raise_delay_alert(
        self,
        commitment: Commitment,
        location: Coordinate,
        formatted_eta: str,
    ) -> Optional[DelayNotification]:
        """
        Build the delay notification and hand it to the notification sink.

        Delivery is best-effort: failures are logged, never retried or raised.

        Returns:
            The notification, or None if the monitor closed before it was built
        """
        location_text = await self.describe_location(location)
        if self._closed:
            logger.debug(f"[DELAY] Monitor closed, dropping alert for {commitment.commitment_id}")
            return None

        message_text = render_delay_message(
            location_text, formatted_eta, self.settings.message_template
        )
        notification = DelayNotification.for_commitment(commitment, message_text)

        if self.settings.notifications_enabled:
            try:
                delivered = await self.notification_sink.deliver(notification)
                if not delivered:
                    logger.warning(
                        f"[DELAY] Notification for {commitment.commitment_id} was not delivered"
                    )
            except Exception as e:
                logger.error(f"[DELAY] Notification delivery failed: {e}")
        else:
            logger.info(f"[DELAY] Notifications disabled, not delivering alert for {commitment.commitment_id}")

        if self.settings.auto_message_enabled:
            await self._hand_off_message(message_text, location)

        return notification

    async def send_delay_message(self, commitment_id: str) -> Optional[str]:
        """
        Send the "stuck in traffic" message for a commitment (user action).

        No-op unless the commitment exists, a location is available and an
        ETA has been observed. Latches the commitment's notification flag.

        Returns:
            The message handed to the messaging integration, or None if skipped
        """
        commitment = self._commitments.get(commitment_id)
        location = self.location_provider.current_location()
        eta_seconds = self._etas.get(commitment_id)
        if commitment is None or location is None or eta_seconds is None:
            logger.debug(f"[DELAY] Cannot send delay message for {commitment_id}: missing data")
            return None

        location_text = await self.describe_location(location)
        if self._closed:
            return None

        message_text = render_delay_message(
            location_text, format_duration(eta_seconds), self.settings.message_template
        )
        await self._hand_off_message(message_text, location)
        if self._closed:
            logger.debug(f"[DELAY] Monitor closed, not latching {commitment_id}")
            return None
        commitment.mark_notified()
        return message_text

    # Collaborator wrappers

    async def estimate_travel_time(self, origin: Coordinate, destination: Coordinate) -> float:
        """
        Driving ETA in seconds. Never fails.

        Falls back to straight-line distance at the configured average speed
        when the directions provider errors or has no usable result.
        """
        try:
            seconds = await self.directions.travel_time(origin, destination, profile="driving")
        except Exception as e:
            logger.warning(f"[DELAY] Directions lookup failed, using fallback: {e}")
            seconds = None

        if is_usable_duration(seconds, MAX_ROUTE_SECONDS):
            return float(seconds)

        return fallback_travel_time(origin, destination, self.settings.fallback_speed_mps)

    async def resolve_destination(self, address: str) -> Coordinate:
        """Look up an address, falling back to the configured default destination."""
        try:
            coordinate = await self.geocoder.geocode(address)
        except Exception as e:
            logger.warning(f"Geocoding failed for {address!r}: {e}")
            coordinate = None

        if coordinate is None:
            logger.info(f"No coordinates for {address!r}, using default destination")
            return self.settings.default_destination
        return coordinate

    async def describe_location(self, location: Coordinate) -> Optional[str]:
        """
        Best-effort short address for a location.

        None when the geocoder fails, "Unknown location" when it has no address.
        """
        try:
            text = await self.geocoder.reverse_geocode(location)
        except Exception as e:
            logger.warning(f"Reverse geocoding failed: {e}")
            return None
        return text or UNKNOWN_ADDRESS

    async def _hand_off_message(self, message_text: str, location: Coordinate) -> bool:
        logger.info(f"[DELAY] Handing off message: {message_text}")
        try:
            return bool(await self.messaging.send_message(message_text, location))
        except Exception as e:
            logger.error(f"[DELAY] Messaging integration failed: {e}")
            return False

    # Queries

    @property
    def commitments(self) -> List[Commitment]:
        return list(self._commitments.values())

    def get_commitment(self, commitment_id: str) -> Optional[Commitment]:
        return self._commitments.get(commitment_id)

    def eta_for(self, commitment_id: str) -> Optional[float]:
        return self._etas.get(commitment_id)

    @property
    def current_etas(self) -> Dict[str, float]:
        return dict(self._etas)
