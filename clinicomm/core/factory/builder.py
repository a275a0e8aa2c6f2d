"""
ClinicommBuilder - plugin-based FastAPI application factory.
"""

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from .plugin import ClinicommPlugin


class ClinicommBuilder:
    """
    Fluent builder for the clinicomm FastAPI application.

    Plugins register middleware, routers and lifecycle hooks; build() wires
    them into one app with a single lifespan.

    Example:
        app = (ClinicommBuilder()
            .add_plugin(CorePlugin())
            .add_plugin(DatabasePlugin(settings.database_url, SQLiteAdapter(), ALL_MODELS))
            .add_plugin(MessagingPlugin())
            .configure(title="Clinic messaging")
            .build())
    """

    def __init__(self):
        self.plugins: list[ClinicommPlugin] = []
        self.middlewares: list[tuple[type, dict, int]] = []  # (class, kwargs, priority)
        self.routers: list[tuple[Any, dict]] = []  # (router, include_kwargs)
        self.startup_hooks: list[tuple[Callable, int]] = []  # (hook, priority)
        self.shutdown_hooks: list[tuple[Callable, int]] = []  # (hook, priority)
        self.config_overrides: dict[str, Any] = {}

    def add_plugin(self, plugin: "ClinicommPlugin") -> "ClinicommBuilder":
        self.plugins.append(plugin)
        return self

    def add_middleware(
        self, middleware_class: type, priority: int = 50, **kwargs: Any
    ) -> "ClinicommBuilder":
        """
        Add middleware with priority ordering.

        Lower numbers are outer middleware and see the request first.

        Args:
            middleware_class: Middleware class to add
            priority: Ordering key, default 50
            **kwargs: Middleware configuration parameters
        """
        self.middlewares.append((middleware_class, kwargs, priority))
        return self

    def add_router(self, router: Any, **kwargs: Any) -> "ClinicommBuilder":
        """
        Add a router; kwargs go to app.include_router().
        """
        self.routers.append((router, kwargs))
        return self

    def add_startup_hook(self, hook: Callable, priority: int = 50) -> "ClinicommBuilder":
        """
        Add a startup hook. Lower priority numbers run first.

        Priority Guidelines:
        - 10: Core system initialization (logging, HTTP session)
        - 20: Infrastructure (database, redis)
        - 30: Application services
        - 50: User hooks (default)
        """
        self.startup_hooks.append((hook, priority))
        return self

    def add_shutdown_hook(self, hook: Callable, priority: int = 50) -> "ClinicommBuilder":
        """
        Add a shutdown hook. Higher priority numbers run first.

        Priority Guidelines:
        - 50: User hooks (default)
        - 30: Application services
        - 20: Infrastructure cleanup (database, redis)
        - 10: Core system cleanup (HTTP session), runs last
        """
        self.shutdown_hooks.append((hook, priority))
        return self

    def configure(self, **overrides: Any) -> "ClinicommBuilder":
        """Override FastAPI constructor arguments."""
        self.config_overrides.update(overrides)
        return self

    def build(self) -> FastAPI:
        """
        Build the FastAPI application.

        1. Configure plugins (sync registration only)
        2. Create the app with the unified lifespan
        3. Add middleware in priority order
        4. Include routers

        Only the startup and shutdown hooks run asynchronously, inside the lifespan.
        """
        logger = get_app_logger()
        logger.debug(f"🏗️ Building FastAPI app with {len(self.plugins)} plugins")

        if self.plugins:
            for plugin in self.plugins:
                plugin.configure(self)

            logger.info(
                f"✅ Plugin configuration complete - registered {len(self.middlewares)} middlewares, "
                f"{len(self.routers)} routers, {len(self.startup_hooks)} startup hooks, "
                f"{len(self.shutdown_hooks)} shutdown hooks"
            )

        @asynccontextmanager
        async def unified_lifespan(app: FastAPI):
            try:
                logger.debug("🚀 Starting unified lifespan startup phase...")
                await self._execute_all_startup_hooks(app)
                logger.info("✅ All startup hooks completed successfully")
                yield
            except Exception as e:
                logger.error(f"❌ Error during startup phase: {e}", exc_info=True)
                raise
            finally:
                logger.debug("🛑 Starting unified lifespan shutdown phase...")
                await self._execute_all_shutdown_hooks(app)
                logger.info("✅ All shutdown hooks completed")

        default_config = {
            "title": "Clinicomm",
            "description": "Multi-channel messaging for clinics: SMS, WhatsApp and email",
            "version": "1.0.0",
            "lifespan": unified_lifespan,
        }
        default_config.update(self.config_overrides)

        app = FastAPI(**default_config)
        logger.debug(f"Created FastAPI app: {default_config['title']}")

        # Starlette wraps each added middleware around the previous ones
        sorted_middlewares = sorted(self.middlewares, key=lambda x: x[2], reverse=True)
        for middleware_class, kwargs, priority in sorted_middlewares:
            app.add_middleware(middleware_class, **kwargs)
            logger.debug(
                f"Added middleware {middleware_class.__name__} (priority: {priority})"
            )

        for router, kwargs in self.routers:
            app.include_router(router, **kwargs)
            logger.debug(f"Included router with config: {kwargs}")

        logger.info(
            f"🎉 ClinicommBuilder created FastAPI app: {len(self.plugins)} plugins, "
            f"{len(self.middlewares)} middlewares, {len(self.routers)} routers"
        )

        return app

    async def _execute_all_startup_hooks(self, app: FastAPI) -> None:
        """Run startup hooks in ascending priority, failing fast on the first error."""
        logger = get_app_logger()

        sorted_hooks = sorted(self.startup_hooks, key=lambda x: x[1])
        if not sorted_hooks:
            logger.debug("No startup hooks registered")
            return

        for hook, priority in sorted_hooks:
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"⚡ Executing startup hook: {hook_name} (priority: {priority})")
            try:
                await hook(app)
                logger.debug(f"✅ Startup hook {hook_name} completed")
            except Exception as e:
                logger.error(f"❌ Startup hook {hook_name} failed: {e}", exc_info=True)
                raise

    async def _execute_all_shutdown_hooks(self, app: FastAPI) -> None:
        """Run shutdown hooks in descending priority; a failing hook does not stop the rest."""
        logger = get_app_logger()

        sorted_hooks = sorted(self.shutdown_hooks, key=lambda x: x[1], reverse=True)
        if not sorted_hooks:
            logger.debug("No shutdown hooks registered")
            return

        for hook, priority in sorted_hooks:
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            try:
                logger.debug(f"🛑 Executing shutdown hook: {hook_name} (priority: {priority})")
                await hook(app)
                logger.debug(f"✅ Shutdown hook {hook_name} completed")
            except Exception as e:
                logger.error(f"❌ Error in shutdown hook {hook_name}: {e}", exc_info=True)
