"""
Tests for notifications/monitor.py - Deadline Monitor

Covers:
- One-shot alert latch across repeated checks
- On-time / late transitions and the strict deadline comparison
- Routing fallback (failure, no result, unusable values)
- Missing location, geocoding failures, sink failures
- Explicit "send delay message" action
- Poll scheduling, per-commitment serialization and teardown
"""

import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from common.config import Settings
from common.geo import Coordinate
from notifications.monitor import DeadlineMonitor, MonitorClosedError

NOW = datetime(2026, 1, 20, 14, 0, tzinfo=timezone.utc)
ORIGIN = Coordinate(latitude=37.7749, longitude=-122.4194)
# 500 m due north of ORIGIN
DESTINATION_500M = Coordinate(
    latitude=37.7749 + math.degrees(500 / 6371008.8),
    longitude=-122.4194,
)


class StubLocation:
    def __init__(self, location=ORIGIN):
        self.location = location

    def current_location(self):
        return self.location


class StubDirections:
    def __init__(self, seconds=None, error=None):
        self.seconds = seconds
        self.error = error
        self.calls = []
        self.gate = None

    async def travel_time(self, origin, destination, profile="driving"):
        self.calls.append((origin, destination, profile))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.seconds


class StubGeocoder:
    def __init__(self, destination=DESTINATION_500M, address="Market St, San Francisco, CA"):
        self.destination = destination
        self.address = address
        self.fail_reverse = False

    async def geocode(self, address):
        return self.destination

    async def reverse_geocode(self, coordinate):
        if self.fail_reverse:
            raise RuntimeError("geocoder offline")
        return self.address


class RecordingSink:
    def __init__(self, error=None):
        self.delivered = []
        self.error = error

    async def deliver(self, notification):
        if self.error is not None:
            raise self.error
        self.delivered.append(notification)
        return True


class RecordingMessaging:
    def __init__(self):
        self.sent = []
        self.gate = None

    async def send_message(self, message, location):
        if self.gate is not None:
            await self.gate.wait()
        self.sent.append((message, location))
        return True


def make_monitor(
    directions=None,
    location=None,
    geocoder=None,
    sink=None,
    messaging=None,
    **settings_overrides,
):
    settings = Settings(**settings_overrides)
    return DeadlineMonitor(
        location_provider=location or StubLocation(),
        directions=directions or StubDirections(),
        geocoder=geocoder or StubGeocoder(),
        notification_sink=sink if sink is not None else RecordingSink(),
        messaging=messaging or RecordingMessaging(),
        settings=settings,
        clock=lambda: NOW,
    )


class TestFallbackScenario:
    """Routing unavailable, destination 500 m away (~37.3 s at 13.4 m/s)."""

    @pytest.mark.asyncio
    async def test_fallback_eta_and_alert_when_deadline_passed(self):
        sink = RecordingSink()
        monitor = make_monitor(sink=sink)

        commitment = await monitor.add_commitment(
            "Office", "1 Market St", NOW - timedelta(seconds=1)
        )

        eta = monitor.eta_for(commitment.commitment_id)
        assert eta == pytest.approx(500 / 13.4, rel=1e-6)
        assert eta == pytest.approx(37.3, abs=0.05)
        assert commitment.notification_sent is True
        assert len(sink.delivered) == 1

    @pytest.mark.asyncio
    async def test_no_alert_when_deadline_an_hour_away(self):
        sink = RecordingSink()
        monitor = make_monitor(sink=sink)

        commitment = await monitor.add_commitment(
            "Office", "1 Market St", NOW + timedelta(hours=1)
        )

        assert monitor.eta_for(commitment.commitment_id) == pytest.approx(37.31, abs=0.01)
        assert commitment.notification_sent is False
        assert sink.delivered == []


class TestOneShotLatch:
    """Notification flag flips false -> true at most once."""

    @pytest.mark.asyncio
    async def test_late_commitment_alerts_once(self):
        directions = StubDirections(seconds=3600)
        sink = RecordingSink()
        monitor = make_monitor(directions=directions, sink=sink)

        commitment = await monitor.add_commitment("Airport", "OAK", NOW + timedelta(minutes=10))
        assert commitment.notification_sent is True
        assert len(sink.delivered) == 1

        # Even later projection on the next ticks
        directions.seconds = 7200
        assert await monitor.check_commitment(commitment.commitment_id) is False
        await monitor.check_all_commitments()

        assert len(sink.delivered) == 1
        assert commitment.notification_sent is True
        assert monitor.eta_for(commitment.commitment_id) == 7200

    @pytest.mark.asyncio
    async def test_on_time_then_late_alerts_exactly_once(self):
        directions = StubDirections(seconds=300)
        sink = RecordingSink()
        monitor = make_monitor(directions=directions, sink=sink)

        commitment = await monitor.add_commitment("Dinner", "Ferry Building", NOW + timedelta(minutes=30))
        assert commitment.notification_sent is False

        directions.seconds = 3600
        assert await monitor.check_commitment(commitment.commitment_id) is True
        assert await monitor.check_commitment(commitment.commitment_id) is False
        assert len(sink.delivered) == 1

    @pytest.mark.asyncio
    async def test_arrival_exactly_at_deadline_is_not_late(self):
        directions = StubDirections(seconds=600)
        sink = RecordingSink()
        monitor = make_monitor(directions=directions, sink=sink)

        commitment = await monitor.add_commitment("Gym", "Somewhere", NOW + timedelta(seconds=600))

        assert commitment.notification_sent is False
        assert sink.delivered == []

    @pytest.mark.asyncio
    async def test_concurrent_late_checks_alert_once(self):
        directions = StubDirections(seconds=300)
        sink = RecordingSink()
        monitor = make_monitor(directions=directions, sink=sink)
        first = await monitor.add_commitment("A", "a", NOW + timedelta(minutes=10))
        second = await monitor.add_commitment("B", "b", NOW + timedelta(minutes=10))
        assert sink.delivered == []

        directions.seconds = 3600
        await asyncio.gather(
            monitor.check_all_commitments(),
            monitor.check_all_commitments(),
        )

        assert first.notification_sent and second.notification_sent
        assert sorted(n.commitment_id for n in sink.delivered) == sorted(
            [first.commitment_id, second.commitment_id]
        )


class TestRoutingFallback:
    """Routing failures never surface; the geodesic fallback is used."""

    CASES = [
        ("error", None, RuntimeError("routing down")),
        ("no_result", None, None),
        ("nan", float("nan"), None),
        ("negative", -5.0, None),
        ("infinite", float("inf"), None),
        ("beyond_any_calendar", 1e12, None),
        ("over_thirty_days", 31 * 24 * 3600.0, None),
    ]

    @pytest.mark.parametrize("name,seconds,error", CASES)
    @pytest.mark.asyncio
    async def test_fallback_used(self, name, seconds, error):
        monitor = make_monitor(directions=StubDirections(seconds=seconds, error=error))

        eta = await monitor.estimate_travel_time(ORIGIN, DESTINATION_500M)

        assert math.isfinite(eta), f"Failed on {name}"
        assert eta == pytest.approx(500 / 13.4, rel=1e-6), f"Failed on {name}"

    @pytest.mark.asyncio
    async def test_routing_result_used_when_available(self):
        directions = StubDirections(seconds=912.5)
        monitor = make_monitor(directions=directions)

        eta = await monitor.estimate_travel_time(ORIGIN, DESTINATION_500M)

        assert eta == 912.5
        assert directions.calls == [(ORIGIN, DESTINATION_500M, "driving")]

    @pytest.mark.asyncio
    async def test_oversized_route_on_add_falls_back(self):
        sink = RecordingSink()
        monitor = make_monitor(directions=StubDirections(seconds=1e12), sink=sink)

        commitment = await monitor.add_commitment("Office", "1 Market St", NOW + timedelta(hours=1))

        assert monitor.eta_for(commitment.commitment_id) == pytest.approx(500 / 13.4, rel=1e-6)
        assert commitment.notification_sent is False
        assert sink.delivered == []

    @pytest.mark.asyncio
    async def test_fallback_uses_configured_speed(self):
        monitor = make_monitor(fallback_speed_mps=5.0)

        eta = await monitor.estimate_travel_time(ORIGIN, DESTINATION_500M)

        assert eta == pytest.approx(100.0, rel=1e-6)


class TestMissingInputs:
    """Missing location or lookups degrade silently."""

    @pytest.mark.asyncio
    async def test_no_location_skips_check(self):
        directions = StubDirections(seconds=3600)
        sink = RecordingSink()
        monitor = make_monitor(directions=directions, location=StubLocation(None), sink=sink)

        commitment = await monitor.add_commitment("Office", "1 Market St", NOW - timedelta(hours=1))

        assert monitor.eta_for(commitment.commitment_id) is None
        assert commitment.notification_sent is False
        assert directions.calls == []
        assert sink.delivered == []

    @pytest.mark.asyncio
    async def test_location_appearing_later_is_picked_up(self):
        location = StubLocation(None)
        monitor = make_monitor(directions=StubDirections(seconds=120), location=location)
        commitment = await monitor.add_commitment("Office", "1 Market St", NOW + timedelta(hours=1))

        location.location = ORIGIN
        await monitor.check_all_commitments()

        assert monitor.eta_for(commitment.commitment_id) == 120

    @pytest.mark.asyncio
    async def test_unknown_address_uses_default_destination(self):
        monitor = make_monitor(geocoder=StubGeocoder(destination=None))

        commitment = await monitor.add_commitment("Somewhere", "nowhere at all", NOW + timedelta(hours=1))

        assert commitment.destination == Coordinate(latitude=37.7749, longitude=-122.4194)

    @pytest.mark.asyncio
    async def test_reverse_geocode_failure_uses_placeholder(self):
        geocoder = StubGeocoder()
        geocoder.fail_reverse = True
        sink = RecordingSink()
        monitor = make_monitor(directions=StubDirections(seconds=4800), geocoder=geocoder, sink=sink)

        await monitor.add_commitment("Airport", "OAK", NOW)

        assert sink.delivered[0].message_text == (
            "I'm stuck in traffic at current location. My new ETA is 1h 20m."
        )

    @pytest.mark.asyncio
    async def test_reverse_geocode_without_address(self):
        sink = RecordingSink()
        monitor = make_monitor(
            directions=StubDirections(seconds=4800), geocoder=StubGeocoder(address=None), sink=sink
        )

        await monitor.add_commitment("Airport", "OAK", NOW)

        assert sink.delivered[0].message_text == (
            "I'm stuck in traffic at Unknown location. My new ETA is 1h 20m."
        )

    @pytest.mark.asyncio
    async def test_naive_deadline_rejected(self):
        monitor = make_monitor()

        with pytest.raises(ValueError, match="timezone"):
            await monitor.add_commitment("Office", "1 Market St", datetime(2026, 1, 20, 15, 0))

        assert monitor.commitments == []


class TestDelayAlert:
    """Notification content and delivery."""

    @pytest.mark.asyncio
    async def test_notification_content(self):
        sink = RecordingSink()
        monitor = make_monitor(directions=StubDirections(seconds=4800), sink=sink)

        commitment = await monitor.add_commitment("Airport", "OAK", NOW + timedelta(minutes=5))

        notification = sink.delivered[0]
        assert notification.title == "You're going to be late!"
        assert "Airport" in notification.body
        assert notification.category_id == "DELAY_NOTIFICATION"
        assert notification.commitment_id == commitment.commitment_id
        assert notification.data["messageText"] == (
            "I'm stuck in traffic at Market St, San Francisco, CA. My new ETA is 1h 20m."
        )

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self):
        monitor = make_monitor(
            directions=StubDirections(seconds=3600),
            sink=RecordingSink(error=RuntimeError("push service down")),
        )

        commitment = await monitor.add_commitment("Airport", "OAK", NOW)

        assert commitment.notification_sent is True

    @pytest.mark.asyncio
    async def test_notifications_disabled_still_latches(self):
        sink = RecordingSink()
        monitor = make_monitor(
            directions=StubDirections(seconds=3600), sink=sink, notifications_enabled=False
        )

        commitment = await monitor.add_commitment("Airport", "OAK", NOW)

        assert sink.delivered == []
        assert commitment.notification_sent is True

    @pytest.mark.asyncio
    async def test_auto_message_hands_off(self):
        messaging = RecordingMessaging()
        monitor = make_monitor(
            directions=StubDirections(seconds=3600), messaging=messaging, auto_message_enabled=True
        )

        await monitor.add_commitment("Airport", "OAK", NOW)

        assert len(messaging.sent) == 1
        assert messaging.sent[0][1] == ORIGIN

    @pytest.mark.asyncio
    async def test_custom_template(self):
        sink = RecordingSink()
        monitor = make_monitor(
            directions=StubDirections(seconds=1500),
            sink=sink,
            message_template="Running late ([TIME]), now near [LOCATION]",
        )

        await monitor.add_commitment("Airport", "OAK", NOW)

        assert sink.delivered[0].message_text == "Running late (25m), now near Market St, San Francisco, CA"


class TestSendDelayMessage:
    """Explicit user action."""

    @pytest.mark.asyncio
    async def test_sends_and_latches(self):
        messaging = RecordingMessaging()
        monitor = make_monitor(directions=StubDirections(seconds=1500), messaging=messaging)
        commitment = await monitor.add_commitment("Dinner", "Ferry Building", NOW + timedelta(hours=1))
        assert commitment.notification_sent is False

        message = await monitor.send_delay_message(commitment.commitment_id)

        assert message == "I'm stuck in traffic at Market St, San Francisco, CA. My new ETA is 25m."
        assert messaging.sent == [(message, ORIGIN)]
        assert commitment.notification_sent is True

    @pytest.mark.asyncio
    async def test_no_location_is_noop(self):
        location = StubLocation()
        messaging = RecordingMessaging()
        monitor = make_monitor(
            directions=StubDirections(seconds=1500), location=location, messaging=messaging
        )
        commitment = await monitor.add_commitment("Dinner", "Ferry Building", NOW + timedelta(hours=1))

        location.location = None
        message = await monitor.send_delay_message(commitment.commitment_id)

        assert message is None
        assert messaging.sent == []
        assert commitment.notification_sent is False

    @pytest.mark.asyncio
    async def test_no_eta_is_noop(self):
        location = StubLocation(None)
        messaging = RecordingMessaging()
        monitor = make_monitor(location=location, messaging=messaging)
        commitment = await monitor.add_commitment("Dinner", "Ferry Building", NOW + timedelta(hours=1))

        location.location = ORIGIN
        assert await monitor.send_delay_message(commitment.commitment_id) is None
        assert messaging.sent == []

    @pytest.mark.asyncio
    async def test_unknown_commitment_is_noop(self):
        messaging = RecordingMessaging()
        monitor = make_monitor(messaging=messaging)

        assert await monitor.send_delay_message("missing") is None
        assert messaging.sent == []


class TestCheckAll:
    """Recurring tick behaviour."""

    @pytest.mark.asyncio
    async def test_failure_in_one_check_does_not_block_others(self):
        monitor = make_monitor(directions=StubDirections(seconds=60))
        first = await monitor.add_commitment("A", "a", NOW + timedelta(hours=1))
        second = await monitor.add_commitment("B", "b", NOW + timedelta(hours=1))

        original = monitor.check_commitment
        checked = []

        async def flaky_check(commitment_id):
            if commitment_id == first.commitment_id:
                raise RuntimeError("boom")
            checked.append(commitment_id)
            return await original(commitment_id)

        monitor.check_commitment = flaky_check
        await monitor.check_all_commitments()

        assert checked == [second.commitment_id]

    @pytest.mark.asyncio
    async def test_commitments_kept_in_insertion_order(self):
        monitor = make_monitor()
        names = ["first", "second", "third"]
        for name in names:
            await monitor.add_commitment(name, name, NOW + timedelta(hours=1))

        assert [c.destination_name for c in monitor.commitments] == names


class TestOverlappingChecks:
    """A commitment has at most one routing request in flight."""

    @pytest.mark.asyncio
    async def test_second_check_skipped_while_first_in_flight(self):
        directions = StubDirections(seconds=60)
        monitor = make_monitor(directions=directions)
        commitment = await monitor.add_commitment("A", "a", NOW + timedelta(hours=1))
        directions.calls.clear()

        directions.gate = asyncio.Event()
        first = asyncio.ensure_future(monitor.check_commitment(commitment.commitment_id))
        await asyncio.sleep(0)

        assert await monitor.check_commitment(commitment.commitment_id) is False
        assert len(directions.calls) == 1

        directions.gate.set()
        assert await first is False
        assert len(directions.calls) == 1


class TestLifecycle:
    """start/stop/close semantics."""

    @pytest.mark.asyncio
    async def test_poll_runs_checks(self):
        directions = StubDirections(seconds=60)
        location = StubLocation(None)
        monitor = make_monitor(directions=directions, location=location, poll_interval_seconds=0.01)
        commitment = await monitor.add_commitment("A", "a", NOW + timedelta(hours=1))
        assert monitor.eta_for(commitment.commitment_id) is None

        location.location = ORIGIN
        monitor.start_monitoring()
        try:
            for _ in range(100):
                if monitor.eta_for(commitment.commitment_id) is not None:
                    break
                await asyncio.sleep(0.01)
        finally:
            monitor.stop_monitoring()

        assert monitor.eta_for(commitment.commitment_id) == 60

    @pytest.mark.asyncio
    async def test_start_twice_replaces_schedule(self):
        monitor = make_monitor()
        monitor.start_monitoring()
        first_task = monitor._poll_task

        monitor.start_monitoring()

        with pytest.raises(asyncio.CancelledError):
            await first_task
        assert monitor.is_monitoring
        assert monitor._poll_task is not first_task
        monitor.stop_monitoring()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        monitor = make_monitor()
        monitor.start_monitoring()

        monitor.stop_monitoring()
        monitor.stop_monitoring()

        assert monitor.is_monitoring is False

    @pytest.mark.asyncio
    async def test_results_after_close_are_ignored(self):
        directions = StubDirections(seconds=3600)
        sink = RecordingSink()
        monitor = make_monitor(directions=directions, location=StubLocation(None), sink=sink)
        commitment = await monitor.add_commitment("A", "a", NOW)

        monitor.location_provider.location = ORIGIN
        directions.gate = asyncio.Event()
        pending = asyncio.ensure_future(monitor.check_commitment(commitment.commitment_id))
        await asyncio.sleep(0)

        monitor.close()
        directions.gate.set()

        assert await pending is False
        assert monitor.eta_for(commitment.commitment_id) is None
        assert commitment.notification_sent is False
        assert sink.delivered == []

    @pytest.mark.asyncio
    async def test_send_message_finishing_after_close_does_not_latch(self):
        messaging = RecordingMessaging()
        monitor = make_monitor(directions=StubDirections(seconds=60), messaging=messaging)
        commitment = await monitor.add_commitment("A", "a", NOW + timedelta(hours=1))

        messaging.gate = asyncio.Event()
        pending = asyncio.ensure_future(monitor.send_delay_message(commitment.commitment_id))
        for _ in range(10):
            await asyncio.sleep(0)

        monitor.close()
        messaging.gate.set()

        assert await pending is None
        assert len(messaging.sent) == 1
        assert commitment.notification_sent is False

    @pytest.mark.asyncio
    async def test_closed_monitor_rejects_new_work(self):
        monitor = make_monitor()
        monitor.close()

        with pytest.raises(MonitorClosedError):
            monitor.start_monitoring()
        with pytest.raises(MonitorClosedError):
            await monitor.add_commitment("A", "a", NOW)
