"""
Engine wiring from settings.

Shared by the API lifespan and the queue worker process.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from process_engine.config import Settings, StorageBackend, get_settings
from process_engine.orchestrator.engine import ProcessEngine
from process_engine.storage.memory import InMemoryRepository
from process_engine.storage.postgres.database import Database, close_database, get_database
from process_engine.storage.postgres.repository import PostgresRepository
from process_engine.storage.redis.cache import RedisCache
from process_engine.storage.redis.connection import close_redis, get_redis, get_redis_connection
from process_engine.storage.repository import Repository
from process_engine.workers.service_tasks import ServiceTaskExecutor

logger = logging.getLogger(__name__)


@dataclass
class EngineResources:
    """The engine plus the connections it was built on."""

    engine: ProcessEngine
    database: Optional[Database] = None
    redis_enabled: bool = False

    async def health(self) -> dict[str, str]:
        """Health of each backing service."""
        services: dict[str, str] = {}

        if self.database is not None:
            try:
                await self.engine.repository.ping()
                services["postgres"] = "healthy"
            except (SQLAlchemyError, OSError) as e:
                logger.warning(f"PostgreSQL health check failed: {e}")
                services["postgres"] = "unhealthy"
        else:
            services["storage"] = "memory"

        if self.redis_enabled:
            connection = await get_redis_connection()
            services["redis"] = "healthy" if await connection.health_check() else "unhealthy"

        return services

    async def close(self) -> None:
        await self.engine.close()
        if self.database is not None:
            await close_database()
        if self.redis_enabled:
            await close_redis()


async def build_engine(settings: Optional[Settings] = None) -> EngineResources:
    """Open the configured storage, Redis and service task client, and wire an engine."""
    settings = settings or get_settings()

    database = None
    repository: Repository
    if settings.storage_backend == StorageBackend.POSTGRES:
        database = await get_database(settings.postgres)
        repository = PostgresRepository(database)
        logger.info("Database connection established")
    else:
        repository = InMemoryRepository()
        logger.warning("Using in-memory storage; state is lost on restart")

    cache = None
    if settings.redis.enabled:
        cache = RedisCache(await get_redis(settings.redis))
        logger.info("Redis connection established")

    service_executor = ServiceTaskExecutor() if settings.service_task.enabled else None

    engine = ProcessEngine(
        repository,
        cache=cache,
        service_executor=service_executor,
        settings=settings,
    )
    return EngineResources(engine=engine, database=database, redis_enabled=cache is not None)
