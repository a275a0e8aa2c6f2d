"""
Redis Plugin

Opens the fork-safe Redis pools used by the presence registry.
"""

from typing import TYPE_CHECKING

from clinicomm.persistence.redis.redis_client import RedisClient

from ..config.settings import settings
from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..factory.builder import ClinicommBuilder


class RedisPlugin:
    """
    Redis pools for presence tracking.

    Example:
        builder.add_plugin(RedisPlugin())  # uses settings.redis_url
        builder.add_plugin(RedisPlugin("redis://cache:6379", max_connections=100))
    """

    def __init__(self, redis_url: str | None = None, max_connections: int | None = None):
        self.redis_url = redis_url
        self.max_connections = max_connections

    def configure(self, builder: "ClinicommBuilder") -> None:
        # Priority 20: after core startup (10), before application services (30)
        builder.add_startup_hook(self._redis_startup, priority=20)
        builder.add_shutdown_hook(self._redis_shutdown, priority=20)

        logger = get_app_logger()
        logger.debug("🔧 RedisPlugin configured - registered startup/shutdown hooks")

    async def startup(self, app: "FastAPI") -> None:
        await self._redis_startup(app)

    async def shutdown(self, app: "FastAPI") -> None:
        await self._redis_shutdown(app)

    async def _redis_startup(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        redis_url = self.redis_url or settings.redis_url
        if not redis_url:
            raise RuntimeError("RedisPlugin requires REDIS_URL to be set")
        max_conn = self.max_connections or settings.redis_max_connections

        try:
            logger.info("=== REDIS INITIALIZATION ===")
            RedisClient.setup_single_url(redis_url, max_connections=max_conn)
            await RedisClient.get("presence")
            app.state.redis_client = RedisClient
            logger.info(f"✅ Redis ready (max_connections: {max_conn})")
        except Exception as e:
            logger.error(f"❌ Redis startup hook failed: {e}", exc_info=True)
            raise RuntimeError(f"RedisPlugin startup hook failed: {e}") from e

    async def _redis_shutdown(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        try:
            if RedisClient.is_configured():
                await RedisClient.close()
                logger.info("✅ Redis shutdown completed")
            if hasattr(app.state, "redis_client"):
                del app.state.redis_client
        except Exception as e:
            logger.error(f"❌ Error during Redis shutdown hook: {e}", exc_info=True)
