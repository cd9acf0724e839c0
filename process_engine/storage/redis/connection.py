"""
Redis client lifecycle.

Redis is optional for the engine: it backs the per-instance advance lock and
the instance status cache. The shared connection is created only when
``REDIS_ENABLED`` is set.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from process_engine.config import RedisSettings, get_settings

logger = logging.getLogger(__name__)


class RedisConnection:
    """Pooled Redis client built from ``RedisSettings``."""

    def __init__(self, settings: Optional[RedisSettings] = None):
        self.settings = settings or get_settings().redis
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    async def init(self) -> None:
        """Open the pool and fail fast if the server is unreachable."""
        self._pool = ConnectionPool(
            host=self.settings.host,
            port=self.settings.port,
            db=self.settings.db,
            password=self.settings.password,
            max_connections=self.settings.max_connections,
            socket_timeout=self.settings.socket_timeout,
            socket_connect_timeout=self.settings.socket_connect_timeout,
            decode_responses=True,
        )
        self._client = redis.Redis(connection_pool=self._pool)
        await self._client.ping()
        logger.info(f"Connected to Redis at {self.settings.host}:{self.settings.port}/{self.settings.db}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis not initialized. Call init() first.")
        return self._client

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
        return True


_connection: Optional[RedisConnection] = None


async def get_redis_connection(settings: Optional[RedisSettings] = None) -> RedisConnection:
    """Shared Redis connection for the process; created on first use."""
    global _connection

    if _connection is None:
        connection = RedisConnection(settings)
        await connection.init()
        _connection = connection

    return _connection


async def get_redis(settings: Optional[RedisSettings] = None) -> redis.Redis:
    connection = await get_redis_connection(settings)
    return connection.client


async def close_redis() -> None:
    global _connection

    if _connection is not None:
        await _connection.close()
        _connection = None
