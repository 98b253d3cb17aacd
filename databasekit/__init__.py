"""Unified database access for MongoDB and PostgreSQL.

One repository contract (CRUD, pagination, bulk operations, soft delete,
lifecycle hooks) over two backends, with transactional execution that
retries transient failures.

Modules:
    - adapters: Connection lifecycle, repository factory and transactions
    - repositories: The shared repository contract and its two backends
    - filters: Abstract filter validation and native query translation
    - service: DatabaseService facade and DatabaseRegistry
    - errors: Database error to HTTP response mapping
    - config: Pydantic configuration models and environment settings
"""

from databasekit.adapters import (
    DatabaseAdapter,
    MongoAdapter,
    PostgresAdapter,
    TransactionContext,
)
from databasekit.config import (
    DatabaseSettings,
    MongoDatabaseConfig,
    PoolConfig,
    PostgresDatabaseConfig,
    parse_database_config,
)
from databasekit.contracts import (
    HealthCheckResult,
    MongoRepositoryOptions,
    PageOptions,
    PageResult,
    PostgresRepositoryOptions,
    RepositoryHooks,
    RetryStrategy,
    TransactionOptions,
)
from databasekit.exceptions import (
    ConfigurationError,
    ConnectionError,
    DuplicateEntityError,
    EntityNotFoundError,
    RepositoryError,
    TransactionError,
    ValidationError,
)
from databasekit.repositories import BaseRepository, MongoRepository, PostgresRepository
from databasekit.service import DatabaseRegistry, DatabaseService, create_adapter
from databasekit.shared.utils.logging import configure_logging

__version__ = "0.1.0"

__all__ = [
    "BaseRepository",
    "ConfigurationError",
    "ConnectionError",
    "DatabaseAdapter",
    "DatabaseRegistry",
    "DatabaseService",
    "DatabaseSettings",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "HealthCheckResult",
    "MongoAdapter",
    "MongoDatabaseConfig",
    "MongoRepository",
    "MongoRepositoryOptions",
    "PageOptions",
    "PageResult",
    "PoolConfig",
    "PostgresAdapter",
    "PostgresDatabaseConfig",
    "PostgresRepository",
    "PostgresRepositoryOptions",
    "RepositoryError",
    "RepositoryHooks",
    "RetryStrategy",
    "TransactionContext",
    "TransactionError",
    "TransactionOptions",
    "ValidationError",
    "configure_logging",
    "create_adapter",
    "parse_database_config",
]
