"""Database service facade and named-service registry.

Usage:
    async with DatabaseService({"type": "postgres", "connection_string": url}) as db:
        users = db.create_repository(PostgresRepositoryOptions(table="users"))
        await users.create({"name": "Ada"})
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from databasekit.adapters.base import DatabaseAdapter, TransactionContext
from databasekit.adapters.mongo import MongoAdapter
from databasekit.adapters.postgres import PostgresAdapter
from databasekit.config import MongoDatabaseConfig, PostgresDatabaseConfig, parse_database_config
from databasekit.contracts import HealthCheckResult, Repository, RepositoryOptions, TransactionOptions
from databasekit.exceptions import ConfigurationError
from databasekit.shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def create_adapter(
    config: MongoDatabaseConfig | PostgresDatabaseConfig | Mapping[str, Any],
    **factories: Any,
) -> DatabaseAdapter:
    """Build the adapter matching ``config.type``.

    Args:
        config: Config model or mapping
        **factories: Passed through to the adapter (``client_factory`` or
            ``engine_factory``)
    """
    config = parse_database_config(config)
    if isinstance(config, MongoDatabaseConfig):
        return MongoAdapter(config, **factories)
    return PostgresAdapter(config, **factories)


class DatabaseService:
    """Facade over one adapter; forwards the adapter contract."""

    def __init__(
        self,
        config: MongoDatabaseConfig | PostgresDatabaseConfig | Mapping[str, Any],
        adapter: DatabaseAdapter | None = None,
        **factories: Any,
    ) -> None:
        self.config = parse_database_config(config)
        self.adapter = adapter or create_adapter(self.config, **factories)

    @property
    def type(self) -> str:
        return self.config.type

    async def connect(self) -> None:
        await self.adapter.connect()

    async def disconnect(self) -> None:
        await self.adapter.disconnect()

    def is_connected(self) -> bool:
        return self.adapter.is_connected()

    def create_repository(self, options: RepositoryOptions) -> Repository:
        return self.adapter.create_repository(options)

    async def with_transaction(
        self,
        callback: Callable[[TransactionContext[Any]], Awaitable[T]],
        options: TransactionOptions | None = None,
    ) -> T:
        return await self.adapter.with_transaction(callback, options)

    async def health_check(self) -> HealthCheckResult:
        return await self.adapter.health_check()

    async def __aenter__(self) -> DatabaseService:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()


class DatabaseRegistry:
    """Named database services with explicit initialisation and teardown.

    Usage:
        registry = DatabaseRegistry()
        registry.register("primary", {"type": "postgres", "connection_string": url})
        registry.register("documents", {"type": "mongo", "connection_string": mongo_url})
        async with registry:
            repo = registry.get("documents").create_repository(options)
    """

    def __init__(self) -> None:
        self._services: dict[str, DatabaseService] = {}

    def register(
        self,
        name: str,
        service: DatabaseService | MongoDatabaseConfig | PostgresDatabaseConfig | Mapping[str, Any],
    ) -> DatabaseService:
        """Add a service under ``name``.

        Raises:
            ConfigurationError: If the name is already taken
        """
        if name in self._services:
            raise ConfigurationError(f"Database '{name}' is already registered", field="name")
        if not isinstance(service, DatabaseService):
            service = DatabaseService(service)
        self._services[name] = service
        return service

    def get(self, name: str) -> DatabaseService:
        try:
            return self._services[name]
        except KeyError:
            raise ConfigurationError(f"Database '{name}' is not registered", field="name") from None

    def names(self) -> list[str]:
        return list(self._services)

    async def init_all(self) -> None:
        """Connect every service; on failure, close the ones already opened."""
        opened: list[DatabaseService] = []
        for name, service in self._services.items():
            try:
                await service.connect()
            except Exception:
                logger.error("database_init_failed", name=name, type=service.type)
                for done in reversed(opened):
                    await done.disconnect()
                raise
            opened.append(service)
        logger.info("databases_initialized", names=self.names())

    async def close_all(self) -> None:
        """Disconnect every service, continuing past individual failures."""
        errors: list[Exception] = []
        for name, service in reversed(list(self._services.items())):
            try:
                await service.disconnect()
            except Exception as e:
                logger.error("database_close_failed", name=name, error_type=type(e).__name__)
                errors.append(e)
        if errors:
            raise errors[0]
        logger.info("databases_closed", names=self.names())

    async def health_check_all(self) -> dict[str, HealthCheckResult]:
        return {name: await service.health_check() for name, service in self._services.items()}

    async def __aenter__(self) -> DatabaseRegistry:
        await self.init_all()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close_all()


__all__ = [
    "DatabaseRegistry",
    "DatabaseService",
    "create_adapter",
]
