"""Redis storage layer for coordination and caching."""

from process_engine.storage.redis.cache import RedisCache
from process_engine.storage.redis.connection import close_redis, get_redis, get_redis_connection

__all__ = ["RedisCache", "get_redis", "get_redis_connection", "close_redis"]
