"""
Database Plugin

Integrates SQLModel/SQLAlchemy async persistence through the adapter pattern
(SQLite via aiosqlite, PostgreSQL via asyncpg).
"""

from typing import TYPE_CHECKING, Any

from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from fastapi import FastAPI
    from sqlmodel import SQLModel

    from clinicomm.database.adapter import DatabaseAdapter

    from ..factory.builder import ClinicommBuilder


class DatabasePlugin:
    """
    Database connectivity, session management and schema initialization.

    Example:
        db_plugin = DatabasePlugin(
            "sqlite+aiosqlite:///./clinicomm.db",
            SQLiteAdapter(),
            models=ALL_MODELS,
        )

        # Usage in app
        async with app.state.db_session() as session:
            lead = await session.get(Lead, lead_id)
    """

    def __init__(
        self,
        connection_string: str,
        adapter: "DatabaseAdapter",
        models: list[type["SQLModel"]] | None = None,
        initialize_schema: bool = True,
        **adapter_kwargs: Any,
    ):
        """
        Args:
            connection_string: Database connection URL
            adapter: DatabaseAdapter implementation (SQLite, PostgreSQL)
            models: SQLModel classes to create tables for
            initialize_schema: Whether to create tables on startup
            **adapter_kwargs: Additional engine arguments
        """
        self.connection_string = connection_string
        self.adapter = adapter
        self.models = models or []
        self.initialize_schema = initialize_schema
        self.adapter_kwargs = adapter_kwargs

        self.engine = None
        self.session_factory = None

    def configure(self, builder: "ClinicommBuilder") -> None:
        # Priority 20: after core (logging), before the messaging services
        builder.add_startup_hook(self.startup, priority=20)
        builder.add_shutdown_hook(self.shutdown, priority=20)

    async def startup(self, app: "FastAPI") -> None:
        """
        Create the engine and session factory, check health and create tables.
        """
        logger = get_app_logger()

        try:
            logger.debug(
                f"Creating database engine with adapter: {self.adapter.__class__.__name__}"
            )
            self.engine = await self.adapter.create_engine(
                self.connection_string, **self.adapter_kwargs
            )
            self.session_factory = await self.adapter.create_session_factory(self.engine)

            is_healthy = await self.adapter.health_check(self.engine)
            if not is_healthy:
                raise RuntimeError("Database health check failed")

            if self.initialize_schema and self.models:
                logger.debug(f"Initializing schema for {len(self.models)} models...")
                await self.adapter.initialize_schema(self.engine, self.models)
                logger.info(
                    f"Database schema initialized for models: {[m.__name__ for m in self.models]}"
                )

            app.state.db_engine = self.engine
            app.state.db_session = self.session_factory
            app.state.db_adapter = self.adapter

            connection_info = await self.adapter.get_connection_info(self.engine)
            logger.info(
                f"Database plugin initialized - {self._mask_connection_string()} "
                f"(driver: {connection_info.get('driver')}, "
                f"version: {connection_info.get('version', 'unknown')})"
            )

        except Exception as e:
            logger.error(f"Failed to initialize database plugin: {e}", exc_info=True)
            raise RuntimeError(f"Database plugin startup failed: {e}") from e

    async def shutdown(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        try:
            if self.engine:
                logger.debug("Disposing database engine...")
                await self.engine.dispose()
                self.engine = None
                logger.info("Database engine disposed successfully")

            for name in ("db_engine", "db_session", "db_adapter"):
                if hasattr(app.state, name):
                    delattr(app.state, name)

        except Exception as e:
            logger.error(f"Error during database plugin shutdown: {e}", exc_info=True)

    def _mask_connection_string(self) -> str:
        """Connection string with the password replaced by ***."""
        if "://" not in self.connection_string:
            return self.connection_string

        scheme, rest = self.connection_string.split("://", 1)
        if "@" not in rest:
            return self.connection_string

        user_part, host_part = rest.split("@", 1)
        if ":" in user_part:
            user, _ = user_part.split(":", 1)
            user_part = f"{user}:***"

        return f"{scheme}://{user_part}@{host_part}"
