"""
Environment-aware configuration settings for the process engine.

Supports dev, test, and prod environments with appropriate defaults.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""

    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class RedisSettings(BaseSettings):
    """Redis connection settings (advance locks and status cache)."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(default=True, description="Use Redis for instance locks and status cache")
    host: str = Field(default="localhost", description="Redis server hostname")
    port: int = Field(default=6379, description="Redis server port")
    db: int = Field(default=0, description="Redis database number")
    password: Optional[str] = Field(default=None, description="Redis password")
    max_connections: int = Field(default=50, description="Maximum connection pool size")
    socket_timeout: float = Field(default=5.0, description="Socket timeout")
    socket_connect_timeout: float = Field(default=5.0, description="Connection timeout")

    # Instance advance lock
    lock_ttl_ms: int = Field(
        default=30000,
        description="Per-instance advance lock TTL in ms (must exceed the slowest advance)"
    )
    status_cache_ttl: int = Field(default=300, description="Instance status cache TTL (seconds)")


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="PostgreSQL server hostname")
    port: int = Field(default=5432, description="PostgreSQL server port")
    database: str = Field(default="process_engine", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    password: str = Field(default="postgres", description="Database password")
    pool_size: int = Field(default=10, description="Connection pool size (prod: 10-20)")
    max_overflow: int = Field(default=20, description="Max overflow connections (prod: 20-30)")
    pool_timeout: float = Field(default=10.0, description="Pool timeout in seconds (fail fast)")

    @property
    def url(self) -> str:
        """Generate PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class QueueSettings(BaseSettings):
    """Execution queue settings."""

    model_config = SettingsConfigDict(env_prefix="QUEUE_")

    drain_limit: int = Field(default=10, ge=1, description="Max queue items processed per drain")
    poll_interval: float = Field(
        default=30.0,
        ge=0.1,
        description="Safety-net drain interval for the queue worker (seconds)"
    )
    drain_on_trigger: bool = Field(
        default=True,
        description="Drain synchronously after instance creation and task completion"
    )


class ServiceTaskSettings(BaseSettings):
    """Settings for SERVICE_TASK and AI_AGENT_TASK endpoint calls."""

    model_config = SettingsConfigDict(env_prefix="SERVICE_TASK_")

    enabled: bool = Field(default=True, description="Auto-execute service and agent tasks")
    base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for relative endpoint paths"
    )
    auth_token: Optional[str] = Field(
        default=None,
        description="Bearer token sent to relative (internal) endpoints"
    )
    default_timeout: float = Field(default=60.0, description="Default call timeout (seconds)")


class StorageBackend(str, Enum):
    """Where engine state is kept."""

    POSTGRES = "postgres"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Process Orchestration Engine")
    environment: Environment = Field(default=Environment.DEV)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    storage_backend: StorageBackend = Field(
        default=StorageBackend.POSTGRES,
        description="postgres for durable storage, memory for local runs without a database",
    )

    # Sub-settings
    redis: RedisSettings = Field(default_factory=RedisSettings)
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    service_task: ServiceTaskSettings = Field(default_factory=ServiceTaskSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str | Environment) -> Environment:
        """Validate and convert environment string to enum."""
        if isinstance(v, Environment):
            return v
        return Environment(v.lower())

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
