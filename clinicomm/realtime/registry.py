"""
Presence registry: which live connection currently represents a user.

One entry per user with a TTL. Redis shares presence across workers; the
memory registry serves single-process deployments and tests.
"""

from typing import Protocol

from pydantic import BaseModel, Field

from clinicomm.persistence.memory.memory_store import MemoryStore
from clinicomm.persistence.redis import ops as redis_ops


class PresenceKeyFactory(BaseModel):
    """Stateless presence key builder."""

    prefix: str = Field(default="clinicomm")
    presence_marker: str = Field(default="presence")

    def presence(self, user_id: str) -> str:
        return f"{self.prefix}:{self.presence_marker}:{user_id.replace(':', '_')}"


default_presence_keys = PresenceKeyFactory()


class PresenceRegistry(Protocol):
    async def register(self, user_id: str, connection_id: str, ttl: int) -> bool:
        """Map user_id to connection_id for ttl seconds, replacing any previous entry."""
        ...

    async def lookup(self, user_id: str) -> str | None:
        """Connection id registered for user_id, or None if absent or expired."""
        ...

    async def unregister(self, user_id: str, connection_id: str) -> bool:
        """Remove the entry only if it still points to connection_id."""
        ...


class RedisPresenceRegistry:
    """Presence stored as `{prefix}:presence:{user_id}` keys with SETEX."""

    def __init__(self, keys: PresenceKeyFactory | None = None):
        self.keys = keys or default_presence_keys

    async def register(self, user_id: str, connection_id: str, ttl: int) -> bool:
        return await redis_ops.setex(self.keys.presence(user_id), ttl, connection_id)

    async def lookup(self, user_id: str) -> str | None:
        return await redis_ops.get(self.keys.presence(user_id))

    async def unregister(self, user_id: str, connection_id: str) -> bool:
        return await redis_ops.delete_if_equals(
            self.keys.presence(user_id), connection_id
        )


class MemoryPresenceRegistry:
    """Process-local presence backed by a TTL MemoryStore."""

    def __init__(
        self, store: MemoryStore | None = None, keys: PresenceKeyFactory | None = None
    ):
        self.store = store or MemoryStore()
        self.keys = keys or default_presence_keys

    async def register(self, user_id: str, connection_id: str, ttl: int) -> bool:
        return await self.store.set(self.keys.presence(user_id), connection_id, ttl)

    async def lookup(self, user_id: str) -> str | None:
        return await self.store.get(self.keys.presence(user_id))

    async def unregister(self, user_id: str, connection_id: str) -> bool:
        return await self.store.delete_if_equals(
            self.keys.presence(user_id), connection_id
        )
