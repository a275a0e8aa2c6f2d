"""
Core Plugin

Foundation of every clinicomm application: logging, the shared HTTP session,
the middleware stack and the HTTP/WebSocket routes.
"""

from typing import TYPE_CHECKING

import aiohttp
from fastapi import FastAPI

from clinicomm.api.middleware.error_handler import ErrorHandlerMiddleware
from clinicomm.api.middleware.request_logging import RequestLoggingMiddleware
from clinicomm.api.middleware.tenant import TenantContextMiddleware
from clinicomm.api.routes import api_routers
from clinicomm.api.routes.health import router as health_router
from clinicomm.api.routes.realtime import router as realtime_router
from clinicomm.api.routes.webhooks import router as webhook_router

from ..config.settings import settings
from ..logging.logger import get_app_logger, setup_app_logging

if TYPE_CHECKING:
    from ..factory.builder import ClinicommBuilder


class CorePlugin:
    """
    Core functionality as a plugin.

    - Application logging setup
    - Persistent aiohttp session shared by every channel adapter
    - Middleware stack (TenantContext, ErrorHandler, RequestLogging)
    - Routes: health, WhatsApp webhook, /api messages and conversations, /ws
    """

    def __init__(self, api_prefix: str = "/api"):
        self.api_prefix = api_prefix

    def configure(self, builder: "ClinicommBuilder") -> None:
        logger = get_app_logger()
        logger.debug("🏗️ Configuring CorePlugin...")

        builder.add_middleware(TenantContextMiddleware, priority=90)
        builder.add_middleware(ErrorHandlerMiddleware, priority=80)
        builder.add_middleware(RequestLoggingMiddleware, priority=70)

        builder.add_router(health_router)
        builder.add_router(webhook_router)
        for router in api_routers:
            builder.add_router(router, prefix=self.api_prefix)
        builder.add_router(realtime_router)

        builder.add_startup_hook(self._core_startup, priority=10)
        builder.add_shutdown_hook(self._core_shutdown, priority=10)

        logger.debug(
            f"✅ CorePlugin configured - middleware: 3, routes: {3 + len(api_routers)}, hooks: 2"
        )

    async def startup(self, app: FastAPI) -> None:
        await self._core_startup(app)

    async def shutdown(self, app: FastAPI) -> None:
        await self._core_shutdown(app)

    async def _core_startup(self, app: FastAPI) -> None:
        """
        Runs first (priority 10) so later hooks have logging and the HTTP session.
        """
        logger = None
        try:
            setup_app_logging()
            logger = get_app_logger()

            logger.info(f"🚀 Starting clinicomm v{settings.version}")
            logger.info(f"📊 Environment: {settings.environment}")
            logger.info(f"📝 Log level: {settings.log_level}")

            if settings.is_development:
                logger.info(f"🔧 Development mode - logs: {settings.log_dir}")

            logger.info("🌐 Creating persistent HTTP session...")
            connector = aiohttp.TCPConnector(
                limit=100,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            app.state.http_session = aiohttp.ClientSession(
                connector=connector, timeout=aiohttp.ClientTimeout(total=30)
            )
            logger.info("✅ Persistent HTTP session created - connections: 100, keepalive: 30s")

            base_url = (
                f"http://localhost:{settings.port}"
                if settings.is_development
                else "https://your-domain.com"
            )
            logger.info("=== AVAILABLE ENDPOINTS ===")
            logger.info(f"🏥 Health Check: {base_url}/health")
            logger.info(f"📨 Messages API: {base_url}{self.api_prefix}/messages/...")
            logger.info(f"📍 WhatsApp Webhook: {base_url}/webhook/whatsapp")
            logger.info(f"🔌 Realtime: {base_url.replace('http', 'ws', 1)}/ws/{{user_id}}")
            logger.info("============================")

        except Exception as e:
            if logger:
                logger.error(f"❌ Error during core startup: {e}", exc_info=True)
            else:
                print(f"💥 Critical error during logging setup: {e}")
            raise

    async def _core_shutdown(self, app: FastAPI) -> None:
        """Runs last (priority 10): closes the HTTP session."""
        logger = get_app_logger()
        logger.info("🛑 Starting core shutdown...")

        try:
            if hasattr(app.state, "http_session"):
                await app.state.http_session.close()
                del app.state.http_session
                logger.info("🌐 Persistent HTTP session closed cleanly")
            logger.info("✅ Core shutdown completed")
        except Exception as e:
            logger.error(f"❌ Error during core shutdown: {e}", exc_info=True)
