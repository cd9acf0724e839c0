"""PostgreSQL storage layer."""

from process_engine.storage.postgres.database import Database, close_database, get_database
from process_engine.storage.postgres.models import Base
from process_engine.storage.postgres.repository import PostgresRepository

__all__ = [
    "Base",
    "PostgresRepository",
    "Database",
    "get_database",
    "close_database",
]
