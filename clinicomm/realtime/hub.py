"""
Connection hub for live client updates.

Maps users to their WebSocket through the presence registry and pushes
`{"event": ..., "data": ...}` frames. Delivery is best effort: a user who
is offline or whose socket lives on another worker simply misses the frame.
"""

import uuid
from typing import Any

from fastapi import WebSocket
from pydantic import BaseModel

from clinicomm.core.config.settings import settings
from clinicomm.core.logging.logger import get_logger

from .registry import PresenceRegistry

INCOMING_MESSAGE_EVENT = "incomingMessage"
STATUS_UPDATE_EVENT = "messageStatusUpdate"


class ConnectionHub:
    """
    Owns this process's live sockets and the presence registry.

    A user has at most one registered connection; connecting again replaces
    the previous registration.
    """

    def __init__(self, registry: PresenceRegistry, ttl: int | None = None):
        self.registry = registry
        self.ttl = ttl or settings.presence_ttl_seconds
        self._sockets: dict[str, WebSocket] = {}
        self.logger = get_logger(__name__)

    @property
    def active_connections(self) -> int:
        return len(self._sockets)

    async def connect(self, user_id: str, websocket: WebSocket) -> str:
        """Register an accepted socket for user_id and return its connection id."""
        connection_id = uuid.uuid4().hex
        self._sockets[connection_id] = websocket
        await self.registry.register(user_id, connection_id, self.ttl)
        self.logger.info(f"User {user_id} connected as {connection_id}")
        return connection_id

    async def refresh(self, user_id: str, connection_id: str) -> None:
        """Re-register on an explicit client `register` frame, renewing the TTL."""
        if connection_id in self._sockets:
            await self.registry.register(user_id, connection_id, self.ttl)

    async def disconnect(self, user_id: str, connection_id: str) -> None:
        self._sockets.pop(connection_id, None)
        await self.registry.unregister(user_id, connection_id)
        self.logger.info(f"User {user_id} disconnected ({connection_id})")

    async def emit_incoming_message_to_user(self, user_id: str | None, message: Any) -> bool:
        return await self._emit(user_id, INCOMING_MESSAGE_EVENT, message)

    async def emit_status_update_to_user(self, user_id: str | None, message: Any) -> bool:
        return await self._emit(user_id, STATUS_UPDATE_EVENT, message)

    async def _emit(self, user_id: str | None, event: str, payload: Any) -> bool:
        """
        Returns:
            True if the frame was written to a live socket
        """
        if not user_id:
            return False
        try:
            connection_id = await self.registry.lookup(user_id)
        except Exception as e:
            self.logger.error(f"Presence lookup failed for {user_id}: {e}")
            return False
        if not connection_id:
            self.logger.debug(f"User {user_id} offline, dropping {event}")
            return False

        websocket = self._sockets.get(connection_id)
        if websocket is None:
            # Registered on another worker or already gone
            return False

        data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
        try:
            await websocket.send_json({"event": event, "data": data})
        except Exception as e:
            self.logger.warning(f"Dropping socket {connection_id} of {user_id}: {e}")
            self._sockets.pop(connection_id, None)
            await self.registry.unregister(user_id, connection_id)
            return False

        self.logger.debug(f"Emitted {event} to {user_id}")
        return True
