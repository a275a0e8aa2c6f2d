"""
Database adapters for SQLModel/SQLAlchemy async connections.

Usage:
    from clinicomm.database import adapter_for_url

    adapter = adapter_for_url(settings.database_url)
    engine = await adapter.create_engine(settings.database_url)
"""

from .adapter import DatabaseAdapter, SessionFactory, build_session_factory
from .adapters.postgresql_adapter import PostgreSQLAdapter
from .adapters.sqlite_adapter import SQLiteAdapter


def adapter_for_url(connection_string: str) -> DatabaseAdapter:
    """Pick the adapter matching a connection URL scheme."""
    if connection_string.startswith("sqlite"):
        return SQLiteAdapter()
    if connection_string.startswith(("postgresql", "postgres")):
        return PostgreSQLAdapter()
    raise ValueError(f"Unsupported database URL: {connection_string.split('://')[0]}")


__all__ = [
    "DatabaseAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
    "SessionFactory",
    "adapter_for_url",
    "build_session_factory",
]
