"""
In-memory key/value storage with TTL support.

Used for presence when Redis is not configured. The lock only guards dict
mutation and is never held across an await of other I/O.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

logger = logging.getLogger("MemoryStore")


class MemoryStore:
    """
    Per-process key/value store with expiry.

    Storage structure: {key: (value, expires_at)}
    """

    def __init__(self, cleanup_interval: int = 300):
        self._store: dict[str, tuple[Any, datetime | None]] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None
        self._cleanup_interval = cleanup_interval

    def start_cleanup_task(self):
        """Start background TTL cleanup task."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_entries())
            logger.info("Started memory store TTL cleanup task")

    def stop_cleanup_task(self):
        """Stop background TTL cleanup task."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            logger.info("Stopped memory store TTL cleanup task")

    def _expired(self, expires_at: datetime | None) -> bool:
        return expires_at is not None and datetime.now() > expires_at

    async def get(self, key: str) -> Any:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._store[key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        expires_at = datetime.now() + timedelta(seconds=ttl) if ttl else None
        async with self._lock:
            self._store[key] = (value, expires_at)
        return True

    async def delete_if_equals(self, key: str, expected: Any) -> bool:
        """Delete key only while it still holds expected."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None or entry[0] != expected or self._expired(entry[1]):
                return False
            del self._store[key]
            return True

    async def _cleanup_expired_entries(self):
        """Background task to clean up expired entries."""
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                async with self._lock:
                    expired_keys = [
                        key
                        for key, (_, expires_at) in self._store.items()
                        if self._expired(expires_at)
                    ]
                    for key in expired_keys:
                        del self._store[key]

                if expired_keys:
                    logger.debug(
                        f"Cleaned up {len(expired_keys)} expired entries from memory store"
                    )

            except asyncio.CancelledError:
                logger.info("Memory store cleanup task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in memory store cleanup task: {e}")
