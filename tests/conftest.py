"""
Pytest configuration and common fixtures for clinicomm tests.

Provides a temporary aiosqlite database, a ConversationStore bound to it,
record factories and fake channel adapters.
"""

import os
import tempfile
from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from clinicomm.database.adapters.sqlite_adapter import SQLiteAdapter
from clinicomm.messaging.adapters.base import AdapterRegistry
from clinicomm.messaging.intents import IntentType, ProviderResponse
from clinicomm.models.enums import Channel
from clinicomm.models.tables import ALL_MODELS, Lead, Provider, Template
from clinicomm.store.conversation_store import ConversationStore

TENANT_ID = "clinic-1"
OTHER_TENANT_ID = "clinic-2"
USER_ID = "user-1"
PHONE_NUMBER_ID = "1234567890"


@pytest.fixture
def temp_db() -> Generator[str, None, None]:
    """Create a temporary SQLite database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    yield f"sqlite+aiosqlite:///{db_path}"

    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest_asyncio.fixture
async def store(temp_db: str) -> AsyncGenerator[ConversationStore, None]:
    """ConversationStore over a freshly created schema."""
    adapter = SQLiteAdapter()
    engine = await adapter.create_engine(temp_db)
    await adapter.initialize_schema(engine, ALL_MODELS)
    session_factory = await adapter.create_session_factory(engine)

    yield ConversationStore(session_factory)

    await engine.dispose()


async def add_rows(store: ConversationStore, *rows):
    """Insert rows in one transaction and return them."""
    async with store.db() as session:
        for row in rows:
            session.add(row)
    return rows[0] if len(rows) == 1 else rows


@pytest_asyncio.fixture
async def whatsapp_provider(store: ConversationStore) -> Provider:
    return await add_rows(
        store,
        Provider(
            tenant_id=TENANT_ID,
            channel=Channel.WHATSAPP,
            name="Clinic WhatsApp",
            phone="+15550001111",
            phone_number_id=PHONE_NUMBER_ID,
            owner_user_id=USER_ID,
            credentials={"access_token": "wa-token"},
        ),
    )


@pytest_asyncio.fixture
async def sms_provider(store: ConversationStore) -> Provider:
    return await add_rows(
        store,
        Provider(
            tenant_id=TENANT_ID,
            channel=Channel.SMS,
            phone="+15550002222",
            credentials={"account_sid": "AC123", "auth_token": "secret"},
        ),
    )


@pytest_asyncio.fixture
async def email_provider(store: ConversationStore) -> Provider:
    return await add_rows(
        store,
        Provider(
            tenant_id=TENANT_ID,
            channel=Channel.EMAIL,
            credentials={
                "api_key": "brevo-key",
                "sender_email": "front-desk@clinic.example",
                "sender_name": "Front Desk",
            },
        ),
    )


@pytest_asyncio.fixture
async def lead(store: ConversationStore) -> Lead:
    return await add_rows(
        store,
        Lead(
            tenant_id=TENANT_ID,
            name="Ana Lopez",
            phone="5215512345678",
            email="ana@example.com",
        ),
    )


@pytest_asyncio.fixture
async def template(store: ConversationStore, whatsapp_provider: Provider) -> Template:
    return await add_rows(
        store,
        Template(
            tenant_id=TENANT_ID,
            provider_id=whatsapp_provider.id,
            provider_template_id="tpl-987",
            unique_name="appointment_reminder",
            language="es_MX",
            category="UTILITY",
            body="Hola {{1}}, te esperamos mañana",
        ),
    )


class FakeAdapter:
    """Channel adapter double whose send() is an AsyncMock."""

    def __init__(self, channel: Channel, response: ProviderResponse | None = None):
        self.channel = channel
        self.capabilities = frozenset(IntentType)
        self.send = AsyncMock(return_value=response)


def provider_ok(channel: Channel, provider_message_id: str) -> ProviderResponse:
    return ProviderResponse(
        success=True, channel=channel, provider_message_id=provider_message_id
    )


@pytest.fixture
def fake_adapters() -> dict[Channel, FakeAdapter]:
    return {
        Channel.WHATSAPP: FakeAdapter(
            Channel.WHATSAPP, provider_ok(Channel.WHATSAPP, "wamid.OUT1")
        ),
        Channel.SMS: FakeAdapter(Channel.SMS, provider_ok(Channel.SMS, "SM123")),
        Channel.EMAIL: FakeAdapter(Channel.EMAIL, provider_ok(Channel.EMAIL, "<msg@brevo>")),
    }


@pytest.fixture
def adapter_registry(fake_adapters) -> AdapterRegistry:
    return AdapterRegistry(list(fake_adapters.values()))


@pytest.fixture
def mock_hub():
    """ConnectionHub double recording emitted events."""
    hub = MagicMock()
    hub.emit_incoming_message_to_user = AsyncMock(return_value=True)
    hub.emit_status_update_to_user = AsyncMock(return_value=True)
    return hub


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    mock = MagicMock()
    mock.ping = AsyncMock(return_value=True)
    mock.get = AsyncMock(return_value=None)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.close = AsyncMock()
    return mock


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch, tmp_path):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "DEV")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "test_verify_token")
    monkeypatch.setenv("MEDIA_DIR", str(tmp_path / "media"))
