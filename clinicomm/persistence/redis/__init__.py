from .redis_client import POOL_DB_MAPPING, PoolAlias, RedisClient

__all__ = ["POOL_DB_MAPPING", "PoolAlias", "RedisClient"]
