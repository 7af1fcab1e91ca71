"""
Notifications package - Traffic delay alerts

Submodules:
- eta: Pure domain logic for ETA fallback, formatting and messages
- models: Data models for commitments and delay notifications
- expo_push: Expo push notification sink
- monitor: Deadline monitor polling ETAs against deadlines
- actions: Handling of notification responses ("Send Message")
"""

from .models import Commitment, DelayNotification
from .eta import fallback_travel_time, format_duration, render_delay_message
from .expo_push import ExpoNotificationSink, InMemoryNotificationSink
from .monitor import DeadlineMonitor, MonitorClosedError
from .actions import handle_notification_response

__all__ = [
    "Commitment",
    "DelayNotification",
    "fallback_travel_time",
    "format_duration",
    "render_delay_message",
    "ExpoNotificationSink",
    "InMemoryNotificationSink",
    "DeadlineMonitor",
    "MonitorClosedError",
    "handle_notification_response",
]
