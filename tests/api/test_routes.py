"""Tests for the HTTP and WebSocket routes with services placed on app.state."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient

from clinicomm.api.controllers.webhook_controller import WebhookController
from clinicomm.api.middleware import ErrorHandlerMiddleware, TenantContextMiddleware
from clinicomm.api.routes import api_routers, health, realtime, webhooks
from clinicomm.messaging.dispatcher import OutboundDispatcher
from clinicomm.messaging.reactions import ReactionService
from clinicomm.models.enums import Channel, ConversationStatus
from clinicomm.models.tables import Conversation, utc_now
from clinicomm.persistence.memory.memory_store import MemoryStore
from clinicomm.processors.normalizer import ProcessingReport
from clinicomm.realtime.hub import ConnectionHub
from clinicomm.realtime.registry import MemoryPresenceRegistry
from conftest import OTHER_TENANT_ID, TENANT_ID, USER_ID, add_rows

HEADERS = {"X-Tenant-ID": TENANT_ID, "X-User-ID": USER_ID}


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(TenantContextMiddleware)
    app.include_router(health.router)
    app.include_router(webhooks.router)
    for router in api_routers:
        app.include_router(router, prefix="/api")
    app.include_router(realtime.router)
    return app


@pytest.fixture
def normalizer():
    normalizer = MagicMock()
    normalizer.process = AsyncMock(return_value=ProcessingReport(processed=1))
    return normalizer


@pytest_asyncio.fixture
async def app(store, adapter_registry, mock_hub, normalizer):
    app = build_app()
    app.state.conversation_store = store
    app.state.adapter_registry = adapter_registry
    app.state.outbound_dispatcher = OutboundDispatcher(store, adapter_registry)
    app.state.reaction_service = ReactionService(store, adapter_registry, mock_hub)
    app.state.webhook_controller = WebhookController(normalizer, verify_token="test_verify_token")
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
class TestWebhookRoutes:
    async def test_verification_echoes_challenge(self, client):
        response = await client.get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "test_verify_token", "hub.challenge": "1158201444"},
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    async def test_verification_rejects_wrong_token(self, client):
        response = await client.get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    async def test_post_acknowledges_and_processes_in_background(self, client, app, normalizer):
        body = {"object": "whatsapp_business_account", "entry": []}

        response = await client.post("/webhook/whatsapp", json=body)
        await app.state.webhook_controller.drain()

        assert response.status_code == 200
        assert response.json() == {"success": True}
        normalizer.process.assert_awaited_once_with(body)

    async def test_post_rejects_invalid_json(self, client, normalizer):
        response = await client.post(
            "/webhook/whatsapp", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        normalizer.process.assert_not_awaited()

    async def test_background_crash_is_contained(self, client, app, normalizer):
        normalizer.process.side_effect = RuntimeError("boom")

        response = await client.post("/webhook/whatsapp", json={"entry": []})
        await app.state.webhook_controller.drain()

        assert response.status_code == 200


@pytest.mark.asyncio
class TestMessageRoutes:
    async def test_tenant_header_is_required(self, client):
        response = await client.post("/api/messages/send", json={"lead_id": "x", "content": "hi"})

        assert response.status_code == 401

    async def test_send_text_to_lead(self, client, lead, whatsapp_provider, fake_adapters):
        response = await client.post(
            "/api/messages/send",
            json={"lead_id": lead.id, "content": "Hola Ana"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "queued"
        assert data["provider_message_id"] == "wamid.OUT1"
        assert data["content"] == "Hola Ana"
        fake_adapters[Channel.WHATSAPP].send.assert_awaited_once()

    async def test_send_request_needs_body(self, client, lead):
        response = await client.post("/api/messages/send", json={"lead_id": lead.id}, headers=HEADERS)

        assert response.status_code == 422

    async def test_missing_provider_is_not_found(self, client, lead):
        response = await client.post(
            "/api/messages/send",
            json={"lead_id": lead.id, "content": "hi", "channel": "sms"},
            headers=HEADERS,
        )

        assert response.status_code == 404

    async def test_other_tenant_cannot_use_lead(self, client, lead, whatsapp_provider):
        response = await client.post(
            "/api/messages/send",
            json={"lead_id": lead.id, "content": "hi"},
            headers={"X-Tenant-ID": OTHER_TENANT_ID},
        )

        assert response.status_code == 404

    async def test_history_for_unknown_conversation(self, client):
        response = await client.get("/api/messages/nope", headers=HEADERS)

        assert response.status_code == 404

    async def test_history_after_send(self, client, lead, whatsapp_provider):
        sent = await client.post(
            "/api/messages/send", json={"lead_id": lead.id, "content": "Hola"}, headers=HEADERS
        )
        conversation_id = sent.json()["conversation_id"]

        response = await client.get(f"/api/messages/{conversation_id}", headers=HEADERS)

        assert response.status_code == 200
        page = response.json()
        assert page["pagination"]["total"] == 1
        assert page["groups"][0]["messages"][0]["id"] == sent.json()["id"]

    async def test_incomplete_reaction_is_bad_request(self, client):
        response = await client.post(
            "/api/messages/reaction", json={"message_id": "m1"}, headers=HEADERS
        )

        assert response.status_code == 400


@pytest.mark.asyncio
class TestConversationRoutes:
    async def test_whatsapp_window_uses_camel_case(self, client, store, lead, whatsapp_provider):
        conversation, _ = await store.get_or_create_conversation(TENANT_ID, lead.id)
        await store.create_incoming_message(
            conversation,
            channel=Channel.WHATSAPP,
            content="hola",
            provider_id=whatsapp_provider.id,
            provider_message_id="wamid.IN1",
            created_at=utc_now() - timedelta(hours=2),
        )

        response = await client.get(
            f"/api/conversations/{conversation.id}/whatsapp-window", headers=HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["canSendMessage"] is True
        assert body["remainingTime"] in ("21:59", "22:00")

    async def test_window_closed_without_incoming(self, client, store, lead):
        conversation, _ = await store.get_or_create_conversation(TENANT_ID, lead.id)

        response = await client.get(
            f"/api/conversations/{conversation.id}/whatsapp-window", headers=HEADERS
        )

        assert response.json() == {"canSendMessage": False, "remainingTime": "00:00"}

    async def test_mark_read_and_list(self, client, store, lead, whatsapp_provider):
        conversation, _ = await store.get_or_create_conversation(TENANT_ID, lead.id)
        await store.create_incoming_message(
            conversation,
            channel=Channel.WHATSAPP,
            content="hola",
            provider_id=whatsapp_provider.id,
            provider_message_id="wamid.IN1",
        )

        listed = await client.get("/api/conversations", params={"status": "unread"}, headers=HEADERS)
        assert [c["id"] for c in listed.json()["conversations"]] == [conversation.id]

        response = await client.post(f"/api/conversations/{conversation.id}/read", headers=HEADERS)
        assert response.json() == {"success": True, "cleared": 1}

        listed = await client.get("/api/conversations", params={"status": "unread"}, headers=HEADERS)
        assert listed.json()["conversations"] == []

    async def test_assign_and_unassign(self, client, store, lead):
        conversation, _ = await store.get_or_create_conversation(TENANT_ID, lead.id)
        url = f"/api/conversations/{conversation.id}/assign"

        response = await client.post(url, json={"owner_id": "agent-1"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["data"] == {
            "conversation_id": conversation.id,
            "owner_id": "agent-1",
            "previous_owner_id": None,
            "changed": True,
        }

        again = await client.post(url, json={"owner_id": "agent-1"}, headers=HEADERS)
        assert again.json()["data"]["changed"] is False
        assert again.json()["message"] == "Conversation already assigned to this owner"

        cleared = await client.post(url, json={"owner_id": None}, headers=HEADERS)
        assert cleared.json()["message"] == "Conversation unassigned successfully"
        assert cleared.json()["data"]["previous_owner_id"] == "agent-1"

        listed = await client.get("/api/conversations", params={"owner_id": "agent-1"}, headers=HEADERS)
        assert listed.json()["conversations"] == []

    async def test_assign_rejects_blocked_conversation(self, client, store, lead):
        conversation = await add_rows(
            store,
            Conversation(tenant_id=TENANT_ID, lead_id=lead.id, status=ConversationStatus.BLOCKED),
        )

        response = await client.post(
            f"/api/conversations/{conversation.id}/assign", json={"owner_id": "agent-1"}, headers=HEADERS
        )

        assert response.status_code == 400
        assert "blocked" in response.json()["detail"]

    async def test_assign_other_tenant_conversation_is_not_found(self, client, store, lead):
        conversation, _ = await store.get_or_create_conversation(TENANT_ID, lead.id)

        response = await client.post(
            f"/api/conversations/{conversation.id}/assign",
            json={"owner_id": "agent-1"},
            headers={"X-Tenant-ID": OTHER_TENANT_ID},
        )

        assert response.status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_websocket_registers_presence():
    app = build_app()
    registry = MemoryPresenceRegistry(MemoryStore())
    app.state.connection_hub = ConnectionHub(registry, ttl=60)

    with TestClient(app) as test_client:
        with test_client.websocket_connect(f"/ws/{USER_ID}") as websocket:
            connected = websocket.receive_json()
            assert connected["event"] == "connected"
            assert app.state.connection_hub.active_connections == 1

            websocket.send_json({"event": "register"})
            assert websocket.receive_json() == {"event": "registered", "data": {"userId": USER_ID}}

    # Portal shutdown waits for the socket handler to unregister
    assert app.state.connection_hub.active_connections == 0
