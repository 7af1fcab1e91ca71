"""
Expo Push Notifications Sink

Delivers delay notifications via Expo Push API.
https://docs.expo.dev/push-notifications/overview/

The notification category lets the device show a "Send Message" action whose
response is routed back through notifications.actions.
"""

import httpx
import logging
from typing import List, Optional

from .models import DelayNotification

logger = logging.getLogger(__name__)

# Expo Push API endpoint
EXPO_PUSH_API_URL = "https://exp.host/--/api/v2/push/send"


class ExpoNotificationSink:
    """Notification sink that pushes to a device via Expo."""

    def __init__(
        self,
        push_token: Optional[str],
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Expo sink.

        Args:
            push_token: Expo push token of the device receiving alerts
            access_token: Optional Expo access token (may not be required for basic usage)
            client: Optional preconfigured HTTP client
        """
        self.push_token = push_token
        self.access_token = access_token
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def deliver(self, notification: DelayNotification) -> bool:
        """
        Send a delay notification via Expo.

        Returns:
            True if sent successfully, False otherwise
        """
        push_token = self.push_token
        if not push_token:
            logger.warning("Cannot send notification: empty push token")
            return False

        if not push_token.startswith("ExponentPushToken["):
            logger.warning(f"Invalid push token format: {push_token[:20]}...")
            return False

        payload = {
            "to": push_token,
            "title": notification.title,
            "body": notification.body,
            "sound": "default",
            "categoryId": notification.category_id,
            "data": dict(notification.data),
        }

        try:
            response = await self.client.post(
                EXPO_PUSH_API_URL,
                json=payload,
                headers=self._get_headers(),
            )

            if response.status_code == 200:
                result = response.json()

                if result.get("data", {}).get("status") == "error":
                    error = result.get("data", {}).get("message", "Unknown error")
                    logger.error(f"Expo push error: {error}")
                    return False

                logger.info(
                    f"[DELAY] Push sent to {push_token[:30]}... "
                    f"(commitment {notification.commitment_id})"
                )
                return True
            else:
                logger.error(
                    f"Expo push API error: {response.status_code} {response.text}"
                )
                return False

        except httpx.HTTPError as e:
            logger.error(f"Failed to send push notification: {e}")
            return False

    def _get_headers(self) -> dict:
        """Get HTTP headers for Expo API."""
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def aclose(self):
        """Close HTTP client."""
        await self.client.aclose()


class InMemoryNotificationSink:
    """Keeps delivered notifications in memory (demo and test mode)."""

    def __init__(self) -> None:
        self.delivered: List[DelayNotification] = []

    async def deliver(self, notification: DelayNotification) -> bool:
        self.delivered.append(notification)
        logger.info(f"[DELAY] Notification recorded: {notification.title} ({notification.commitment_id})")
        return True
