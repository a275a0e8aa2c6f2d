"""
Enumerations shared by the persistence models, adapters and webhook layer.
"""

from enum import Enum


class Channel(str, Enum):
    """Delivery channel of a message or provider account."""

    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class Direction(str, Enum):
    """Direction of a message relative to the clinic."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class MessageKind(str, Enum):
    CONVERSATIONAL = "conversational"
    BULK = "bulk"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    TRASHED = "trashed"
    BLOCKED = "blocked"


class MessageStatus(str, Enum):
    """
    Lifecycle status of a message.

    Outgoing messages move forward through the ranks below; incoming messages
    are created as RECEIVED and stay there. Terminal failure states share the
    highest rank so a late "delivered" cannot overwrite a "failed".
    """

    SENDING = "sending"
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    RECEIVED = "received"
    FAILED = "failed"
    BOUNCED = "bounced"
    UNDELIVERED = "undelivered"

    @property
    def rank(self) -> int:
        return _STATUS_RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (
            MessageStatus.FAILED,
            MessageStatus.BOUNCED,
            MessageStatus.UNDELIVERED,
        )

    def can_transition_to(self, new_status: "MessageStatus") -> bool:
        """
        Check whether a webhook-driven update may move a message to new_status.

        Equal ranks are allowed so that the last processed event wins between
        statuses of the same weight.
        """
        if new_status is MessageStatus.RECEIVED or self is MessageStatus.RECEIVED:
            return False
        return new_status.rank >= self.rank


_STATUS_RANKS = {
    MessageStatus.SENDING: 0,
    MessageStatus.QUEUED: 1,
    MessageStatus.SENT: 2,
    MessageStatus.DELIVERED: 3,
    MessageStatus.READ: 4,
    MessageStatus.FAILED: 5,
    MessageStatus.BOUNCED: 5,
    MessageStatus.UNDELIVERED: 5,
    MessageStatus.RECEIVED: 0,
}
