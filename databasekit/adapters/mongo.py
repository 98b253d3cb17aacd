"""MongoDB adapter on motor."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import ConfigurationError as PyMongoConfigurationError

from databasekit.adapters.base import DatabaseAdapter, RepositoryFactory, TransactionContext, TransactionCoordinator
from databasekit.config import MongoDatabaseConfig, parse_database_config
from databasekit.contracts import HealthCheckResult, MongoRepositoryOptions, RepositoryOptions, TransactionOptions
from databasekit.exceptions import ConfigurationError
from databasekit.repositories.mongo_repository import MongoRepository
from databasekit.resilience import is_transient_mongo_error
from databasekit.shared.utils.logging import get_logger, redact_url

logger = get_logger(__name__)

T = TypeVar("T")

ClientFactory = Callable[..., Any]


class MongoTransactionCoordinator(TransactionCoordinator[AsyncIOMotorClientSession]):
    """One client session per attempt; requires a replica set or mongos."""

    backend = "mongo"

    def __init__(
        self,
        client: Any,
        repository_factory: RepositoryFactory,
    ) -> None:
        super().__init__(repository_factory)
        self._client = client

    async def acquire(self) -> AsyncIOMotorClientSession:
        return await self._client.start_session()

    async def begin(self, handle: AsyncIOMotorClientSession, options: TransactionOptions) -> None:
        kwargs: dict[str, Any] = {}
        if options.timeout_ms is not None:
            kwargs["max_commit_time_ms"] = options.timeout_ms
        handle.start_transaction(**kwargs)

    async def commit(self, handle: AsyncIOMotorClientSession) -> None:
        await handle.commit_transaction()

    async def abort(self, handle: AsyncIOMotorClientSession) -> None:
        if handle.in_transaction:
            await handle.abort_transaction()

    async def release(self, handle: AsyncIOMotorClientSession) -> None:
        await handle.end_session()

    def is_transient_error(self, error: BaseException) -> bool:
        return is_transient_mongo_error(error)


class MongoAdapter(DatabaseAdapter):
    """Owns the motor client and hands out collection repositories.

    ``MongoRepositoryOptions.model`` may be a collection object or the name
    of a collection in the default database (``config.database``, or the
    database named in the connection string).
    """

    type = "mongo"

    def __init__(
        self,
        config: MongoDatabaseConfig | dict[str, Any],
        client_factory: ClientFactory = AsyncIOMotorClient,
    ) -> None:
        config = parse_database_config(config)
        if not isinstance(config, MongoDatabaseConfig):
            raise ConfigurationError("MongoDB adapter requires a mongo config", field="type")
        self.config = config
        self._client_factory = client_factory
        self._client: Any = None
        self._database: AsyncIOMotorDatabase | None = None
        self._lock = asyncio.Lock()

    @property
    def client(self) -> Any:
        self._require_connection()
        return self._client

    @property
    def database(self) -> AsyncIOMotorDatabase | None:
        self._require_connection()
        return self._database

    def _client_options(self) -> dict[str, Any]:
        pool = self.config.pool
        options: dict[str, Any] = {
            "maxPoolSize": pool.max,
            "minPoolSize": pool.min,
            "serverSelectionTimeoutMS": self.config.connect_timeout_ms,
            "connectTimeoutMS": self.config.connect_timeout_ms,
        }
        if pool.idle_timeout_ms is not None:
            options["maxIdleTimeMS"] = pool.idle_timeout_ms
        if pool.acquire_timeout_ms is not None:
            options["waitQueueTimeoutMS"] = pool.acquire_timeout_ms
        return options

    async def connect(self) -> None:
        async with self._lock:
            if self._client is not None:
                return
            url = self.config.connection_string
            client = self._client_factory(url, **self._client_options())
            try:
                await client.admin.command("ping")
            except Exception as e:
                logger.error("mongo_connection_failed", url=redact_url(url), error_type=type(e).__name__)
                client.close()
                raise
            try:
                database = client.get_default_database(self.config.database)
            except PyMongoConfigurationError:
                # no database in the URI or config: repositories must pass collections
                database = None
            self._client = client
            self._database = database
            logger.info(
                "mongo_connected",
                url=redact_url(url),
                database=database.name if database is not None else None,
                max_pool_size=self.config.pool.max,
            )

    async def disconnect(self) -> None:
        async with self._lock:
            if self._client is None:
                return
            client, self._client, self._database = self._client, None, None
            client.close()
            logger.info("mongo_disconnected")

    def is_connected(self) -> bool:
        return self._client is not None

    def _resolve_collection(self, options: RepositoryOptions) -> Any:
        if not isinstance(options, MongoRepositoryOptions):
            raise ConfigurationError("MongoDB adapter requires MongoRepositoryOptions", field="options")
        if options.model is None:
            raise ConfigurationError("Repository option 'model' is required", field="model")
        if not isinstance(options.model, str):
            return options.model
        if self._database is None:
            raise ConfigurationError(
                f"Cannot resolve collection '{options.model}' without a default database",
                field="model",
            )
        return self._database[options.model]

    def _build_repository(
        self,
        options: RepositoryOptions,
        session: Any = None,
        ensure_active: Callable[[], None] | None = None,
    ) -> MongoRepository:
        self._require_connection()
        return MongoRepository(
            options,
            self._resolve_collection(options),
            session=session,
            ensure_connected=self._require_connection,
            ensure_active=ensure_active,
        )

    def create_repository(self, options: RepositoryOptions) -> MongoRepository:
        return self._build_repository(options)

    async def with_transaction(
        self,
        callback: Callable[[TransactionContext[AsyncIOMotorClientSession]], Awaitable[T]],
        options: TransactionOptions | None = None,
    ) -> T:
        """Run ``callback`` in a multi-document transaction."""
        self._require_connection()
        coordinator = MongoTransactionCoordinator(self._client, self._build_repository)
        return await coordinator.run(callback, options)

    async def health_check(self) -> HealthCheckResult:
        started = time.perf_counter()
        if self._client is None:
            return HealthCheckResult(
                healthy=False,
                response_time_ms=0.0,
                type=self.type,
                details={"error": "not connected"},
            )
        try:
            await self._client.admin.command("ping")
        except Exception as e:
            logger.warning("mongo_health_check_failed", error_type=type(e).__name__)
            return HealthCheckResult(
                healthy=False,
                response_time_ms=(time.perf_counter() - started) * 1000,
                type=self.type,
                details={"error": type(e).__name__},
            )
        return HealthCheckResult(
            healthy=True,
            response_time_ms=(time.perf_counter() - started) * 1000,
            type=self.type,
            details={"database": self._database.name if self._database is not None else None},
        )


__all__ = [
    "MongoAdapter",
    "MongoTransactionCoordinator",
]
