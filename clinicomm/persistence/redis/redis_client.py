# clinicomm/persistence/redis/redis_client.py

"""
Redis helper that is **fork-safe** and asyncio-native for presence tracking.

Why so elaborate?
-----------------
• Uvicorn / Gunicorn workers often `fork()` after import time.
  Re-using a parent-process connection in the child silently breaks
  pub/sub and can leak file descriptors.

• Each worker therefore needs its *own* connection-pool.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import ClassVar, Literal, cast

from redis.asyncio import ConnectionPool, Redis

log = logging.getLogger("RedisClient")

PoolAlias = Literal["presence"]

POOL_DB_MAPPING = {
    "presence": 0,  # user_id -> live connection id
}


class RedisClient:
    """
    Fork-safe, asyncio-native Redis pool manager.

    Every worker process keeps its own pools to avoid post-fork descriptor reuse.
    """

    _pools: ClassVar[dict[PoolAlias, ConnectionPool]] = {}
    _clients: ClassVar[dict[PoolAlias, Redis]] = {}
    _pid: ClassVar[int | None] = None

    # ---------- life-cycle --------------------------------------------------

    @classmethod
    def setup_single_url(cls, base_url: str, *, max_connections: int = 64) -> None:
        """
        Set up every pool from a single base URL by appending database numbers.

        Example:
            RedisClient.setup_single_url("redis://localhost:6379")
            # presence: redis://localhost:6379/0
        """
        if base_url.rstrip("/").split("/")[-1].isdigit():
            log.warning(
                f"Base URL '{base_url}' appears to contain a database number. Using as-is for base."
            )
            base_url = "/".join(base_url.rstrip("/").split("/")[:-1])

        for alias, db_num in POOL_DB_MAPPING.items():
            url = f"{base_url.rstrip('/')}/{db_num}"
            cls._setup_pool(cast(PoolAlias, alias), url, max_connections)

    @classmethod
    def _setup_pool(cls, alias: PoolAlias, url: str, max_connections: int) -> None:
        pid = os.getpid()
        if cls._pid is None:
            cls._pid = pid
        elif cls._pid != pid:
            # process forked – discard inherited pools
            cls._pools.clear()
            cls._clients.clear()
            cls._pid = pid

        if alias in cls._pools:
            log.debug(f"Redis pool '{alias}' already exists in PID {pid}")
            return

        log.info(f"Initialising Redis pool '{alias}' in PID {pid}")
        pool = ConnectionPool.from_url(
            url,
            decode_responses=True,
            encoding="utf-8",
            max_connections=max_connections,
        )
        cls._pools[alias] = pool
        cls._clients[alias] = Redis(connection_pool=pool)

    @classmethod
    def is_configured(cls, alias: PoolAlias = "presence") -> bool:
        return alias in cls._clients and cls._pid == os.getpid()

    @classmethod
    async def close(cls, alias: PoolAlias | None = None) -> None:
        """Close one or all Redis pools for this process."""
        pid = os.getpid()
        if cls._pid != pid:
            log.debug("No Redis pool to close for PID %s", pid)
            return

        aliases = [alias] if alias else list(cls._pools.keys())
        for a in aliases:
            pool = cls._pools.pop(cast(PoolAlias, a), None)
            if pool:
                log.info("Closing Redis pool '%s' in PID %s", a, pid)
                await pool.disconnect()
                cls._clients.pop(cast(PoolAlias, a), None)
        if not cls._pools:
            cls._pid = None

    # ---------- access helpers ---------------------------------------------

    @classmethod
    async def get(cls, alias: PoolAlias = "presence") -> Redis:
        """Return the Redis client for the given alias."""
        client = cls._clients.get(alias)
        if client is None or cls._pid != os.getpid():
            log.error("RedisClient.get() called before setup() in this process.")
            raise RuntimeError(f"RedisClient must be set up for alias '{alias}' first.")
        try:
            await client.ping()
        except Exception as exc:
            log.error("Redis ping failed for '%s': %s", alias, exc, exc_info=True)
            raise
        return client

    @classmethod
    @asynccontextmanager
    async def connection(cls, alias: PoolAlias = "presence") -> AsyncIterator[Redis]:
        """
        Usage::

            async with RedisClient.connection("presence") as r:
                await r.setex("key", 60, "value")
        """
        client = await cls.get(alias)
        yield client
