"""
Redis cache layer for hot operational data.

Redis is used for coordination and caching only - PostgreSQL is the source
of truth.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID, uuid4

import redis.asyncio as redis

from process_engine.config import get_settings

logger = logging.getLogger(__name__)

# Delete the key only if it still holds our token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisCache:
    """
    Redis helpers for instance advancement.

    Provides a per-instance advance lock so that only one processor moves an
    instance at a time, and a short-lived cache of instance status read
    models.
    """

    # Key prefixes
    ADVANCE_LOCK_PREFIX = "pe:lock:instance:"
    INSTANCE_STATUS_PREFIX = "pe:status:"

    def __init__(self, client: redis.Redis):
        self.client = client
        self.settings = get_settings()

    # ==================== Advance Lock ====================

    async def acquire_instance_lock(
        self,
        instance_id: UUID,
        ttl_ms: Optional[int] = None,
    ) -> Optional[str]:
        """
        Try to take the advance lock for an instance.

        Returns:
            Lock token when acquired, None when another holder has it
        """
        key = f"{self.ADVANCE_LOCK_PREFIX}{instance_id}"
        token = uuid4().hex
        ttl_ms = ttl_ms or self.settings.redis.lock_ttl_ms

        acquired = await self.client.set(key, token, nx=True, px=ttl_ms)
        if not acquired:
            logger.debug(f"Advance lock for instance {instance_id} is held elsewhere")
            return None
        return token

    async def release_instance_lock(self, instance_id: UUID, token: str) -> bool:
        """Release the advance lock if we still hold it."""
        key = f"{self.ADVANCE_LOCK_PREFIX}{instance_id}"
        released = await self.client.eval(RELEASE_LOCK_SCRIPT, 1, key, token)
        if not released:
            logger.warning(f"Advance lock for instance {instance_id} expired before release")
        return bool(released)

    # ==================== Instance Status Cache ====================

    async def cache_instance_status(
        self,
        instance_id: UUID,
        data: dict[str, Any],
        ttl: Optional[int] = None,
    ) -> None:
        """Cache an instance status read model."""
        key = f"{self.INSTANCE_STATUS_PREFIX}{instance_id}"
        ttl = ttl or self.settings.redis.status_cache_ttl

        await self.client.setex(
            key,
            ttl,
            json.dumps(data, default=str),
        )

    async def get_instance_status(
        self,
        instance_id: UUID,
    ) -> Optional[dict[str, Any]]:
        """Get a cached instance status read model."""
        key = f"{self.INSTANCE_STATUS_PREFIX}{instance_id}"
        data = await self.client.get(key)

        if data:
            return json.loads(data)
        return None

    async def invalidate_instance_status(
        self,
        instance_id: UUID,
    ) -> None:
        """Drop the cached status after the instance changed."""
        key = f"{self.INSTANCE_STATUS_PREFIX}{instance_id}"
        await self.client.delete(key)
