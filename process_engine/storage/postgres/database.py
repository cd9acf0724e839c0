"""
PostgreSQL engine and session lifecycle for the process engine.

One ``Database`` owns one pooled async engine. Repository calls each open
their own session, so a session is one unit of work.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from process_engine.config import PostgresSettings, get_settings

logger = logging.getLogger(__name__)


class Database:
    """Pooled async connection to the engine's PostgreSQL schema."""

    def __init__(self, settings: Optional[PostgresSettings] = None, url: Optional[str] = None):
        self.settings = settings or get_settings().postgres
        self.url = url or self.settings.url
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    async def init(self) -> None:
        """Create the engine and session factory. Connections open lazily."""
        if self._engine is not None:
            return

        self._engine = create_async_engine(
            self.url,
            pool_size=self.settings.pool_size,
            max_overflow=self.settings.max_overflow,
            pool_timeout=self.settings.pool_timeout,
            pool_pre_ping=True,
        )
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False, autoflush=False)
        logger.info(f"PostgreSQL engine created for {self.settings.host}:{self.settings.port}/{self.settings.database}")

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a session that commits on a clean exit and rolls back on error.

        Usage:
            async with database.session() as session:
                await session.execute(stmt)
        """
        if self._sessions is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        async with self.session() as session:
            await session.execute(text("SELECT 1"))
        return True


_database: Optional[Database] = None


async def get_database(settings: Optional[PostgresSettings] = None) -> Database:
    """Shared database for the process; created on first use."""
    global _database

    if _database is None:
        database = Database(settings)
        await database.init()
        _database = database

    return _database


async def close_database() -> None:
    global _database

    if _database is not None:
        await _database.close()
        _database = None
