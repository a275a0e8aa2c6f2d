"""Tests for presence registries and the live connection hub."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from clinicomm.persistence.memory.memory_store import MemoryStore
from clinicomm.persistence.redis.redis_client import RedisClient
from clinicomm.realtime.hub import (
    INCOMING_MESSAGE_EVENT,
    STATUS_UPDATE_EVENT,
    ConnectionHub,
)
from clinicomm.realtime.registry import (
    MemoryPresenceRegistry,
    PresenceKeyFactory,
    RedisPresenceRegistry,
)


def fake_socket():
    websocket = MagicMock()
    websocket.send_json = AsyncMock()
    return websocket


def test_presence_key_escapes_colons():
    keys = PresenceKeyFactory(prefix="test")
    assert keys.presence("user:1") == "test:presence:user_1"


@pytest.mark.asyncio
class TestMemoryPresenceRegistry:
    async def test_register_replaces_previous_connection(self):
        registry = MemoryPresenceRegistry(MemoryStore())

        await registry.register("user-1", "conn-a", 60)
        await registry.register("user-1", "conn-b", 60)

        assert await registry.lookup("user-1") == "conn-b"

    async def test_unregister_only_removes_matching_connection(self):
        registry = MemoryPresenceRegistry(MemoryStore())
        await registry.register("user-1", "conn-b", 60)

        assert await registry.unregister("user-1", "conn-a") is False
        assert await registry.lookup("user-1") == "conn-b"
        assert await registry.unregister("user-1", "conn-b") is True
        assert await registry.lookup("user-1") is None

    async def test_entries_expire(self):
        store = MemoryStore()
        registry = MemoryPresenceRegistry(store)
        await registry.register("user-1", "conn-a", 1)

        await asyncio.sleep(1.1)

        assert await registry.lookup("user-1") is None


@pytest.mark.asyncio
class TestRedisPresenceRegistry:
    async def test_register_uses_setex(self, mock_redis):
        with patch.object(RedisClient, "get", AsyncMock(return_value=mock_redis)):
            registry = RedisPresenceRegistry(PresenceKeyFactory(prefix="t"))
            assert await registry.register("user-1", "conn-a", 90) is True

        mock_redis.setex.assert_awaited_once_with("t:presence:user-1", 90, "conn-a")

    async def test_lookup_reads_key(self, mock_redis):
        mock_redis.get.return_value = "conn-a"
        with patch.object(RedisClient, "get", AsyncMock(return_value=mock_redis)):
            assert await RedisPresenceRegistry().lookup("user-1") == "conn-a"

        mock_redis.get.assert_awaited_once_with("clinicomm:presence:user-1")


@pytest.mark.asyncio
class TestConnectionHub:
    async def test_emit_to_connected_user(self):
        hub = ConnectionHub(MemoryPresenceRegistry(MemoryStore()), ttl=60)
        websocket = fake_socket()
        await hub.connect("user-1", websocket)

        delivered = await hub.emit_incoming_message_to_user("user-1", {"id": "m1"})

        assert delivered is True
        websocket.send_json.assert_awaited_once_with(
            {"event": INCOMING_MESSAGE_EVENT, "data": {"id": "m1"}}
        )

    async def test_offline_or_anonymous_user_is_dropped(self):
        hub = ConnectionHub(MemoryPresenceRegistry(MemoryStore()), ttl=60)

        assert await hub.emit_status_update_to_user("nobody", {"id": "m1"}) is False
        assert await hub.emit_status_update_to_user(None, {"id": "m1"}) is False

    async def test_reconnect_routes_to_newest_socket(self):
        hub = ConnectionHub(MemoryPresenceRegistry(MemoryStore()), ttl=60)
        old, new = fake_socket(), fake_socket()
        old_id = await hub.connect("user-1", old)
        await hub.connect("user-1", new)

        # The stale socket closing must not erase the newer registration
        await hub.disconnect("user-1", old_id)
        await hub.emit_status_update_to_user("user-1", {"id": "m1"})

        old.send_json.assert_not_awaited()
        new.send_json.assert_awaited_once_with(
            {"event": STATUS_UPDATE_EVENT, "data": {"id": "m1"}}
        )

    async def test_broken_socket_is_unregistered(self):
        hub = ConnectionHub(MemoryPresenceRegistry(MemoryStore()), ttl=60)
        websocket = fake_socket()
        websocket.send_json.side_effect = RuntimeError("closed")
        await hub.connect("user-1", websocket)

        assert await hub.emit_incoming_message_to_user("user-1", {"id": "m1"}) is False
        assert hub.active_connections == 0
        assert await hub.registry.lookup("user-1") is None

    async def test_registry_failure_is_not_raised(self):
        registry = MagicMock()
        registry.lookup = AsyncMock(side_effect=ConnectionError("redis down"))
        hub = ConnectionHub(registry, ttl=60)

        assert await hub.emit_incoming_message_to_user("user-1", {"id": "m1"}) is False
