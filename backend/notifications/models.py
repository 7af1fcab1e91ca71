"""
Notification domain models.

Defines commitments being monitored and the delay notifications raised for them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import uuid4

from common.geo import Coordinate

DELAY_NOTIFICATION_TITLE = "You're going to be late!"
DELAY_NOTIFICATION_CATEGORY = "DELAY_NOTIFICATION"
SEND_MESSAGE_ACTION = "SEND_MESSAGE"
MESSAGE_TEXT_KEY = "messageText"


@dataclass
class Commitment:
    """A destination the user must reach by a deadline."""
    destination: Coordinate
    destination_name: str
    destination_address: str
    deadline: datetime  # Timezone-aware
    commitment_id: str = field(default_factory=lambda: str(uuid4()))
    notification_sent: bool = False
    created_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)

    def mark_notified(self) -> bool:
        """
        Latch the notification flag.

        Returns:
            True if this call flipped the flag, False if it was already set
        """
        if self.notification_sent:
            return False
        self.notification_sent = True
        return True

    def to_dict(self) -> dict:
        return {
            "commitment_id": self.commitment_id,
            "destination_name": self.destination_name,
            "destination_address": self.destination_address,
            "destination": self.destination.to_dict(),
            "deadline": self.deadline.isoformat(),
            "notification_sent": self.notification_sent,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DelayNotification:
    """A local notification telling the user they will miss a deadline."""
    commitment_id: str
    title: str
    body: str
    data: Dict[str, str]  # Carries the suggested message for the send action
    category_id: str = DELAY_NOTIFICATION_CATEGORY
    notification_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            object.__setattr__(self, 'created_at', datetime.now(timezone.utc))

    @property
    def message_text(self) -> Optional[str]:
        return self.data.get(MESSAGE_TEXT_KEY)

    @classmethod
    def for_commitment(cls, commitment: Commitment, message_text: str) -> "DelayNotification":
        return cls(
            commitment_id=commitment.commitment_id,
            title=DELAY_NOTIFICATION_TITLE,
            body=(
                f"Based on current traffic, you won't make it to "
                f"{commitment.destination_name} by your deadline."
            ),
            data={
                MESSAGE_TEXT_KEY: message_text,
                "commitmentId": commitment.commitment_id,
            },
        )
