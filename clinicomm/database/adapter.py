"""
Database Adapter Protocol

Defines the interface for database adapters that work with SQLModel and
SQLAlchemy async engines, plus the transactional session factory shared by
every adapter.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlmodel import SQLModel

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class DatabaseAdapter(Protocol):
    """
    Database adapter interface for SQLModel/SQLAlchemy async connections.

    Implemented by the SQLite (aiosqlite) and PostgreSQL (asyncpg) adapters.
    """

    async def create_engine(
        self, connection_string: str, **kwargs: Any
    ) -> "AsyncEngine":
        """
        Create an async SQLAlchemy engine for the database.

        Raises:
            ValueError: If the connection string uses an unsupported scheme
            ConnectionError: If unable to create engine
        """
        ...

    async def create_session_factory(self, engine: "AsyncEngine") -> SessionFactory:
        """
        Create a session factory for the database engine.

        Example:
            session_factory = await adapter.create_session_factory(engine)
            async with session_factory() as session:
                session.add(message)
        """
        ...

    async def initialize_schema(
        self, engine: "AsyncEngine", models: list[type["SQLModel"]] | None = None
    ) -> None:
        """Create the tables of the given SQLModel classes (all tables if None)."""
        ...

    async def health_check(self, engine: "AsyncEngine") -> bool:
        """Return True if the database answers a trivial query."""
        ...

    async def get_connection_info(self, engine: "AsyncEngine") -> dict[str, Any]:
        """Return driver, database and version information for logging."""
        ...


def build_session_factory(engine: "AsyncEngine") -> SessionFactory:
    """
    Build the transactional session factory used by all adapters.

    Each session commits when the block exits normally and rolls back when it
    raises, so a store method is one unit of work.
    """
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    @asynccontextmanager
    async def session_factory():
        async with async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return session_factory


def tables_for(models: list[type["SQLModel"]] | None) -> list | None:
    """Translate SQLModel classes into the Table list create_all expects."""
    if not models:
        return None
    return [model.__table__ for model in models]
