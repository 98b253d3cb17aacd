"""Configuration for database adapters.

Runtime configuration is a pydantic model discriminated on ``type``.
``DatabaseSettings`` reads the same values from ``DATABASE_*`` environment
variables (or a ``.env`` file) for applications that configure one
database through the environment.
"""

from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from databasekit.exceptions import ConfigurationError

DEFAULT_POOL_SIZE = 10
DEFAULT_CONNECT_TIMEOUT_MS = 5000


def normalize_postgres_url(url: str) -> str:
    """Rewrite ``postgres://`` / ``postgresql://`` URLs to the asyncpg driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


class PoolConfig(BaseModel):
    """Connection pool sizing and timeouts.

    Attributes:
        min: Connections kept open (document store only)
        max: Upper bound on pooled connections
        idle_timeout_ms: Document store: ``maxIdleTimeMS``, closes connections
            idle for this long. Relational store: ``pool_recycle``, which
            replaces a connection once it is this old, idle or not
        acquire_timeout_ms: Maximum wait for a free pooled connection
    """

    model_config = ConfigDict(populate_by_name=True)

    min: int = Field(default=0, ge=0)
    max: int = Field(default=DEFAULT_POOL_SIZE, ge=1)
    idle_timeout_ms: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("idle_timeout_ms", "idleTimeoutMs"),
    )
    acquire_timeout_ms: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("acquire_timeout_ms", "acquireTimeoutMs"),
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "PoolConfig":
        if self.min > self.max:
            raise ValueError("pool.min must not exceed pool.max")
        return self


class _BaseDatabaseConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    connection_string: str = Field(
        min_length=1,
        validation_alias=AliasChoices("connection_string", "connectionString"),
    )
    connect_timeout_ms: int = Field(
        default=DEFAULT_CONNECT_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("connect_timeout_ms", "connectTimeoutMs"),
    )
    pool: PoolConfig = Field(default_factory=PoolConfig)


class MongoDatabaseConfig(_BaseDatabaseConfig):
    """MongoDB connection settings.

    Attributes:
        database: Default database; falls back to the one named in the URI
    """

    type: Literal["mongo"] = "mongo"
    database: str | None = None


class PostgresDatabaseConfig(_BaseDatabaseConfig):
    """PostgreSQL connection settings."""

    type: Literal["postgres"] = "postgres"

    @field_validator("connection_string")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        return normalize_postgres_url(value)


DatabaseConfig = Annotated[
    MongoDatabaseConfig | PostgresDatabaseConfig,
    Field(discriminator="type"),
]

_config_adapter: TypeAdapter[Any] = TypeAdapter(DatabaseConfig)


def parse_database_config(data: Any) -> MongoDatabaseConfig | PostgresDatabaseConfig:
    """Validate a config mapping (or pass through a config model).

    Raises:
        ConfigurationError: If the type is unknown or a field is invalid
    """
    if isinstance(data, (MongoDatabaseConfig, PostgresDatabaseConfig)):
        return data
    try:
        return _config_adapter.validate_python(data)
    except PydanticValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ConfigurationError("Invalid database configuration", field="config", errors=errors) from e


class DatabaseSettings(BaseSettings):
    """Database settings read from the environment."""

    type: Literal["mongo", "postgres"] = "postgres"
    url: str = "postgresql+asyncpg://localhost:5432/databasekit"
    database: str | None = None

    # Pool
    pool_min: int = 0
    pool_max: int = DEFAULT_POOL_SIZE
    pool_idle_timeout_ms: int | None = None
    pool_acquire_timeout_ms: int | None = None
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DATABASE_", extra="ignore")

    def to_config(self) -> MongoDatabaseConfig | PostgresDatabaseConfig:
        data: dict[str, Any] = {
            "type": self.type,
            "connection_string": self.url,
            "connect_timeout_ms": self.connect_timeout_ms,
            "pool": {
                "min": self.pool_min,
                "max": self.pool_max,
                "idle_timeout_ms": self.pool_idle_timeout_ms,
                "acquire_timeout_ms": self.pool_acquire_timeout_ms,
            },
        }
        if self.type == "mongo":
            data["database"] = self.database
        return parse_database_config(data)


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached settings instance."""
    return DatabaseSettings()


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT_MS",
    "DEFAULT_POOL_SIZE",
    "DatabaseConfig",
    "DatabaseSettings",
    "MongoDatabaseConfig",
    "PoolConfig",
    "PostgresDatabaseConfig",
    "get_database_settings",
    "normalize_postgres_url",
    "parse_database_config",
]
