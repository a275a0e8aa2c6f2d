"""
Messaging Plugin

Assembles the application services on top of the database, Redis and HTTP
session: conversation store, channel adapters, outbound dispatcher, reaction
service, realtime hub and the WhatsApp webhook pipeline.
"""

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

from clinicomm.api.controllers.webhook_controller import WebhookController
from clinicomm.messaging.adapters import (
    AdapterRegistry,
    BrevoEmailAdapter,
    TwilioSmsAdapter,
    WhatsAppAdapter,
)
from clinicomm.messaging.credentials import CredentialResolver
from clinicomm.messaging.dispatcher import OutboundDispatcher
from clinicomm.messaging.reactions import ReactionService
from clinicomm.persistence.memory.memory_store import MemoryStore
from clinicomm.processors.normalizer import WebhookNormalizer
from clinicomm.realtime.hub import ConnectionHub
from clinicomm.realtime.registry import MemoryPresenceRegistry, RedisPresenceRegistry
from clinicomm.store.conversation_store import ConversationStore
from clinicomm.webhooks.media import LocalMediaUploader, MediaRehoster, MediaUploader

from ..config.settings import settings
from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..factory.builder import ClinicommBuilder


class MessagingPlugin:
    """
    Application services published on app.state.

    Requires CorePlugin (http_session) and DatabasePlugin (db_session).
    Presence uses Redis when RedisPlugin has set it up, else process memory.
    """

    def __init__(
        self,
        media_uploader: MediaUploader | None = None,
        stale_sweep_interval: int | None = None,
    ):
        """
        Args:
            media_uploader: Storage for re-hosted WhatsApp media (local directory by default)
            stale_sweep_interval: Seconds between stale-sending sweeps, 0 disables
        """
        self.media_uploader = media_uploader
        self.stale_sweep_interval = (
            stale_sweep_interval
            if stale_sweep_interval is not None
            else settings.stale_sweep_interval_seconds
        )
        self._memory_store: MemoryStore | None = None
        self._sweep_task: asyncio.Task | None = None

    def configure(self, builder: "ClinicommBuilder") -> None:
        builder.add_startup_hook(self._messaging_startup, priority=30)
        builder.add_shutdown_hook(self._messaging_shutdown, priority=30)

    async def startup(self, app: "FastAPI") -> None:
        await self._messaging_startup(app)

    async def shutdown(self, app: "FastAPI") -> None:
        await self._messaging_shutdown(app)

    async def _messaging_startup(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        if not hasattr(app.state, "db_session"):
            raise RuntimeError("MessagingPlugin requires DatabasePlugin")
        if not hasattr(app.state, "http_session"):
            raise RuntimeError("MessagingPlugin requires CorePlugin")

        store = ConversationStore(app.state.db_session)
        session = app.state.http_session
        resolver = CredentialResolver()

        adapters = AdapterRegistry(
            [
                WhatsAppAdapter(
                    session,
                    api_version=settings.whatsapp_api_version,
                    base_url=settings.whatsapp_base_url,
                ),
                TwilioSmsAdapter(session, base_url=settings.sms_base_url),
                BrevoEmailAdapter(session, base_url=settings.email_base_url),
            ]
        )

        hub = ConnectionHub(self._presence_registry(app), ttl=settings.presence_ttl_seconds)

        rehoster = MediaRehoster(
            session,
            self.media_uploader or LocalMediaUploader(),
            api_version=settings.whatsapp_api_version,
            base_url=settings.whatsapp_base_url,
        )
        normalizer = WebhookNormalizer(store, hub, rehoster, resolver)

        app.state.conversation_store = store
        app.state.adapter_registry = adapters
        app.state.outbound_dispatcher = OutboundDispatcher(store, adapters, resolver)
        app.state.reaction_service = ReactionService(store, adapters, hub, resolver)
        app.state.connection_hub = hub
        app.state.webhook_normalizer = normalizer
        app.state.webhook_controller = WebhookController(normalizer)

        if self.stale_sweep_interval > 0:
            self._sweep_task = asyncio.create_task(self._sweep_stale_loop(store))

        logger.info(
            f"✅ Messaging services ready - channels: "
            f"{', '.join(c.value for c in adapters.channels)}, "
            f"presence: {app.state.presence_backend}, "
            f"stale sweep: {self.stale_sweep_interval or 'off'}"
        )

    def _presence_registry(self, app: "FastAPI"):
        if hasattr(app.state, "redis_client"):
            app.state.presence_backend = "redis"
            return RedisPresenceRegistry()

        self._memory_store = MemoryStore()
        self._memory_store.start_cleanup_task()
        app.state.presence_backend = "memory"
        return MemoryPresenceRegistry(self._memory_store)

    async def _sweep_stale_loop(self, store: ConversationStore) -> None:
        logger = get_app_logger()
        older_than = timedelta(seconds=settings.stale_sending_seconds)
        while True:
            await asyncio.sleep(self.stale_sweep_interval)
            try:
                await store.fail_stale_sending(older_than)
            except Exception as e:
                logger.error(f"Stale sending sweep failed: {e}", exc_info=True)

    async def _messaging_shutdown(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        try:
            if self._sweep_task and not self._sweep_task.done():
                self._sweep_task.cancel()
                try:
                    await self._sweep_task
                except asyncio.CancelledError:
                    pass
            self._sweep_task = None

            controller = getattr(app.state, "webhook_controller", None)
            if controller is not None:
                await controller.drain()

            if self._memory_store is not None:
                self._memory_store.stop_cleanup_task()
                self._memory_store = None

            for name in (
                "conversation_store",
                "adapter_registry",
                "outbound_dispatcher",
                "reaction_service",
                "connection_hub",
                "presence_backend",
                "webhook_normalizer",
                "webhook_controller",
            ):
                if hasattr(app.state, name):
                    delattr(app.state, name)

            logger.info("✅ Messaging services stopped")
        except Exception as e:
            logger.error(f"❌ Error during messaging shutdown: {e}", exc_info=True)
