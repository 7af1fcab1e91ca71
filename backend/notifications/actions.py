"""
Notification response handling.

When the user taps "Send Message" on a delay notification, the suggested
message carried in the notification payload is handed to the messaging
integration together with the current location.
"""

import logging
from typing import Mapping, Optional

from providers.contracts import LocationProvider, MessagingIntegration

from .models import MESSAGE_TEXT_KEY, SEND_MESSAGE_ACTION

logger = logging.getLogger(__name__)


async def handle_notification_response(
    action_id: str,
    data: Optional[Mapping[str, str]],
    location_provider: LocationProvider,
    messaging: MessagingIntegration,
) -> bool:
    """
    Route a notification response to the messaging integration.

    Args:
        action_id: Action identifier reported by the device
        data: Notification payload
        location_provider: Source of the current location
        messaging: Messaging integration

    Returns:
        True if a message was handed off and accepted
    """
    if action_id != SEND_MESSAGE_ACTION:
        logger.debug(f"Ignoring notification action {action_id!r}")
        return False

    message_text = (data or {}).get(MESSAGE_TEXT_KEY)
    if not message_text:
        logger.warning("Send action received without a message payload")
        return False

    location = location_provider.current_location()
    if location is None:
        logger.info("Send action received but no location is available")
        return False

    try:
        return bool(await messaging.send_message(message_text, location))
    except Exception as e:
        logger.error(f"Messaging integration failed: {e}")
        return False
