"""PostgreSQL adapter on SQLAlchemy's async engine (asyncpg driver)."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from databasekit.adapters.base import DatabaseAdapter, TransactionContext, TransactionCoordinator
from databasekit.config import PostgresDatabaseConfig, parse_database_config
from databasekit.contracts import HealthCheckResult, PostgresRepositoryOptions, RepositoryOptions, TransactionOptions
from databasekit.exceptions import ConfigurationError, ValidationError
from databasekit.filters.base import parse_filter, validate_fields
from databasekit.repositories.postgres_repository import PostgresRepository
from databasekit.resilience import is_transient_postgres_error
from databasekit.shared.utils.logging import get_logger, redact_url

logger = get_logger(__name__)

T = TypeVar("T")

ISOLATION_LEVELS = frozenset(
    {"READ UNCOMMITTED", "READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}
)

EngineFactory = Callable[..., AsyncEngine]


def _check_repository_options(options: RepositoryOptions) -> PostgresRepositoryOptions:
    if not isinstance(options, PostgresRepositoryOptions):
        raise ConfigurationError(
            "PostgreSQL adapter requires PostgresRepositoryOptions",
            field="options",
        )
    if not options.table:
        raise ConfigurationError("Repository option 'table' is required", field="table")
    if not options.primary_key:
        raise ConfigurationError("Repository option 'primary_key' is required", field="primary_key")
    # default filter columns are trusted at query time, so check them here
    scoped = {c.field for c in parse_filter(options.default_filter)}
    if options.soft_delete:
        scoped.add(options.soft_delete_field)
    validate_fields(scoped, options.columns, "default_filter")
    return options


class PostgresTransactionCoordinator(TransactionCoordinator[AsyncSession]):
    """One ``AsyncSession`` per attempt."""

    backend = "postgres"

    def __init__(self, sessionmaker: Callable[[], AsyncSession]) -> None:
        super().__init__(
            lambda options, session, ensure_active: PostgresRepository(
                _check_repository_options(options),
                session=session,
                ensure_active=ensure_active,
            )
        )
        self._sessionmaker = sessionmaker

    def validate_options(self, options: TransactionOptions) -> None:
        level = options.isolation_level
        if level is not None and level.upper() not in ISOLATION_LEVELS:
            raise ValidationError(
                f"Unsupported isolation level '{level}'",
                field="isolation_level",
                errors=[f"allowed: {', '.join(sorted(ISOLATION_LEVELS))}"],
            )

    async def acquire(self) -> AsyncSession:
        return self._sessionmaker()

    async def begin(self, handle: AsyncSession, options: TransactionOptions) -> None:
        if options.isolation_level:
            # the first connection checkout starts the transaction
            await handle.connection(
                execution_options={"isolation_level": options.isolation_level.upper()}
            )
        else:
            await handle.begin()

    async def commit(self, handle: AsyncSession) -> None:
        await handle.commit()

    async def abort(self, handle: AsyncSession) -> None:
        await handle.rollback()

    async def release(self, handle: AsyncSession) -> None:
        await handle.close()

    def is_transient_error(self, error: BaseException) -> bool:
        return is_transient_postgres_error(error)


class PostgresAdapter(DatabaseAdapter):
    """Owns the async engine and hands out table repositories.

    Usage:
        adapter = PostgresAdapter({"type": "postgres", "connection_string": url})
        await adapter.connect()
        users = adapter.create_repository(PostgresRepositoryOptions(table="users"))
    """

    type = "postgres"

    def __init__(
        self,
        config: PostgresDatabaseConfig | dict[str, Any],
        engine_factory: EngineFactory = create_async_engine,
    ) -> None:
        config = parse_database_config(config)
        if not isinstance(config, PostgresDatabaseConfig):
            raise ConfigurationError("PostgreSQL adapter requires a postgres config", field="type")
        self.config = config
        self._engine_factory = engine_factory
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._lock = asyncio.Lock()

    @property
    def engine(self) -> AsyncEngine:
        self._require_connection()
        return self._engine

    def _engine_options(self) -> dict[str, Any]:
        pool = self.config.pool
        options: dict[str, Any] = {
            "pool_size": pool.max,
            "max_overflow": 0,
            "pool_pre_ping": True,
        }
        if pool.acquire_timeout_ms is not None:
            options["pool_timeout"] = pool.acquire_timeout_ms / 1000
        if pool.idle_timeout_ms is not None:
            # the pool has no idle eviction; recycle by connection age instead
            options["pool_recycle"] = pool.idle_timeout_ms / 1000
        if make_url(self.config.connection_string).get_backend_name() == "postgresql":
            options["connect_args"] = {"timeout": self.config.connect_timeout_ms / 1000}
        return options

    async def connect(self) -> None:
        async with self._lock:
            if self._engine is not None:
                return
            url = self.config.connection_string
            engine = self._engine_factory(url, **self._engine_options())
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except Exception as e:
                logger.error(
                    "postgres_connection_failed",
                    url=redact_url(url),
                    error_type=type(e).__name__,
                )
                await engine.dispose()
                raise
            self._engine = engine
            self._sessionmaker = async_sessionmaker(
                bind=engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
            logger.info("postgres_connected", url=redact_url(url), pool_size=self.config.pool.max)

    async def disconnect(self) -> None:
        async with self._lock:
            if self._engine is None:
                return
            engine, self._engine, self._sessionmaker = self._engine, None, None
            await engine.dispose()
            logger.info("postgres_disconnected")

    def is_connected(self) -> bool:
        return self._engine is not None

    def _new_session(self) -> AsyncSession:
        self._require_connection()
        return self._sessionmaker()

    def create_repository(self, options: RepositoryOptions) -> PostgresRepository:
        self._require_connection()
        return PostgresRepository(_check_repository_options(options), session_factory=self._new_session)

    async def with_transaction(
        self,
        callback: Callable[[TransactionContext[AsyncSession]], Awaitable[T]],
        options: TransactionOptions | None = None,
    ) -> T:
        """Run ``callback`` in one transaction, rolled back on any failure."""
        self._require_connection()
        coordinator = PostgresTransactionCoordinator(self._new_session)
        return await coordinator.run(callback, options)

    async def health_check(self) -> HealthCheckResult:
        started = time.perf_counter()
        if self._engine is None:
            return HealthCheckResult(
                healthy=False,
                response_time_ms=0.0,
                type=self.type,
                details={"error": "not connected"},
            )
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("postgres_health_check_failed", error_type=type(e).__name__)
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
            details={"pool": self._engine.pool.status()},
        )


__all__ = [
    "ISOLATION_LEVELS",
    "PostgresAdapter",
    "PostgresTransactionCoordinator",
]
