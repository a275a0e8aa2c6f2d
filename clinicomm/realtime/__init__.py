from .hub import INCOMING_MESSAGE_EVENT, STATUS_UPDATE_EVENT, ConnectionHub
from .registry import (
    MemoryPresenceRegistry,
    PresenceKeyFactory,
    PresenceRegistry,
    RedisPresenceRegistry,
)

__all__ = [
    "INCOMING_MESSAGE_EVENT",
    "STATUS_UPDATE_EVENT",
    "ConnectionHub",
    "MemoryPresenceRegistry",
    "PresenceKeyFactory",
    "PresenceRegistry",
    "RedisPresenceRegistry",
]
