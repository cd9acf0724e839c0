"""Configuration management."""

from process_engine.config.settings import (
    Environment,
    PostgresSettings,
    RedisSettings,
    Settings,
    StorageBackend,
    get_settings,
)

__all__ = [
    "Environment",
    "PostgresSettings",
    "RedisSettings",
    "Settings",
    "StorageBackend",
    "get_settings",
]
