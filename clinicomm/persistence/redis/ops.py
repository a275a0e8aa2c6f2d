# clinicomm/persistence/redis/ops.py

import logging

from redis.exceptions import WatchError

from .redis_client import PoolAlias, RedisClient

logger = logging.getLogger("RedisCoreMethods")


# =========================================================================
# SECTION: Basic Key-Value Operations
# =========================================================================
async def setex(
    key: str, seconds: int, value: str, *, alias: PoolAlias = "presence"
) -> bool:
    """
    Set key to hold string value and set key to timeout after given number of seconds.

    Returns:
        True if the operation was successful, False otherwise.
    """
    async with RedisClient.connection(alias=alias) as redis:
        try:
            return bool(await redis.setex(key, seconds, value))
        except Exception as e:
            logger.error(f"Redis SETEX error for key '{key}': {e}", exc_info=True)
            return False


async def get(key: str, *, alias: PoolAlias = "presence") -> str | None:
    """
    Retrieve the string value of a key.

    Returns:
        The string value if the key exists, otherwise None. Returns None on error.
    """
    async with RedisClient.connection(alias=alias) as redis:
        try:
            return await redis.get(key)
        except Exception as e:
            logger.error(f"Redis GET error for key '{key}': {e}", exc_info=True)
            return None


# =========================================================================
# SECTION: Atomic Combined Operations (Using Pipelines internally)
# =========================================================================
async def delete_if_equals(key: str, expected: str, *, alias: PoolAlias = "presence") -> bool:
    """
    Delete key only while it still holds expected (WATCH/MULTI).

    Returns:
        True if the key was deleted, False if it changed, was absent, or on error.
    """
    async with RedisClient.connection(alias=alias) as redis:
        try:
            async with redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != expected:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(key)
                results = await pipe.execute()
            return bool(results and results[0])
        except WatchError:
            logger.debug(f"Key '{key}' changed during conditional delete, keeping it")
            return False
        except Exception as e:
            logger.error(f"Redis conditional DELETE error for key '{key}': {e}", exc_info=True)
            return False
