"""Tests for DatabaseService and DatabaseRegistry."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import text

from databasekit.adapters.base import DatabaseAdapter
from databasekit.adapters.mongo import MongoAdapter
from databasekit.adapters.postgres import PostgresAdapter
from databasekit.contracts import HealthCheckResult, PostgresRepositoryOptions
from databasekit.exceptions import ConfigurationError
from databasekit.service import DatabaseRegistry, DatabaseService, create_adapter

from tests.conftest import USERS_DDL, sqlite_engine_factory

PG_CONFIG = {"type": "postgres", "connection_string": "postgresql://localhost:5432/app"}
MONGO_CONFIG = {"type": "mongo", "connection_string": "mongodb://localhost:27017/app"}


def mock_adapter(**overrides) -> MagicMock:
    adapter = MagicMock(spec=DatabaseAdapter)
    adapter.connect = AsyncMock()
    adapter.disconnect = AsyncMock()
    adapter.health_check = AsyncMock(return_value=HealthCheckResult(healthy=True, response_time_ms=1, type="postgres"))
    adapter.with_transaction = AsyncMock(return_value="result")
    for name, value in overrides.items():
        setattr(adapter, name, value)
    return adapter


class TestCreateAdapter:
    def test_postgres_config_builds_postgres_adapter(self):
        adapter = create_adapter(PG_CONFIG)

        assert isinstance(adapter, PostgresAdapter)
        assert adapter.config.connection_string == "postgresql+asyncpg://localhost:5432/app"

    def test_mongo_config_builds_mongo_adapter(self):
        assert isinstance(create_adapter(MONGO_CONFIG), MongoAdapter)

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ConfigurationError):
            create_adapter({"type": "oracle", "connection_string": "oracle://x"})


class TestDatabaseService:
    """Tests for the adapter facade."""

    @pytest.mark.asyncio
    async def test_forwards_to_adapter(self):
        adapter = mock_adapter()
        service = DatabaseService(PG_CONFIG, adapter=adapter)
        options = PostgresRepositoryOptions(table="users")
        callback = AsyncMock()

        await service.connect()
        service.create_repository(options)
        result = await service.with_transaction(callback)
        await service.disconnect()

        assert service.type == "postgres"
        adapter.connect.assert_awaited_once()
        adapter.create_repository.assert_called_once_with(options)
        adapter.with_transaction.assert_awaited_once_with(callback, None)
        adapter.disconnect.assert_awaited_once()
        assert result == "result"

    @pytest.mark.asyncio
    async def test_end_to_end_on_sqlite(self, sqlite_url, user_options):
        config = {"type": "postgres", "connection_string": sqlite_url}
        async with DatabaseService(config, engine_factory=sqlite_engine_factory) as db:
            async with db.adapter.engine.begin() as conn:
                await conn.execute(text(USERS_DDL))
            users = db.create_repository(user_options)
            await users.create({"name": "Ada", "email": "ada@example.com"})

            assert await users.count() == 1
            assert (await db.health_check()).healthy is True

        assert not db.is_connected()


class TestDatabaseRegistry:
    """Tests for named services."""

    def test_duplicate_names_are_rejected(self):
        registry = DatabaseRegistry()
        registry.register("primary", DatabaseService(PG_CONFIG, adapter=mock_adapter()))

        with pytest.raises(ConfigurationError):
            registry.register("primary", PG_CONFIG)

    def test_unknown_name_is_rejected(self):
        with pytest.raises(ConfigurationError):
            DatabaseRegistry().get("missing")

    def test_register_accepts_config_mappings(self):
        registry = DatabaseRegistry()

        service = registry.register("documents", MONGO_CONFIG)

        assert registry.get("documents") is service
        assert service.type == "mongo"
        assert registry.names() == ["documents"]

    @pytest.mark.asyncio
    async def test_init_failure_closes_opened_services(self):
        first = mock_adapter()
        second = mock_adapter(connect=AsyncMock(side_effect=OSError("refused")))
        third = mock_adapter()
        registry = DatabaseRegistry()
        registry.register("a", DatabaseService(PG_CONFIG, adapter=first))
        registry.register("b", DatabaseService(PG_CONFIG, adapter=second))
        registry.register("c", DatabaseService(PG_CONFIG, adapter=third))

        with pytest.raises(OSError):
            await registry.init_all()

        first.disconnect.assert_awaited_once()
        second.disconnect.assert_not_awaited()
        third.connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_continues_past_failures(self):
        order = []
        failing = mock_adapter(disconnect=AsyncMock(side_effect=RuntimeError("close failed")))
        healthy = mock_adapter(disconnect=AsyncMock(side_effect=lambda: order.append("a")))
        registry = DatabaseRegistry()
        registry.register("a", DatabaseService(PG_CONFIG, adapter=healthy))
        registry.register("b", DatabaseService(PG_CONFIG, adapter=failing))

        with pytest.raises(RuntimeError, match="close failed"):
            await registry.close_all()

        failing.disconnect.assert_awaited_once()
        assert order == ["a"]

    @pytest.mark.asyncio
    async def test_context_manager_and_health(self):
        adapters = {"a": mock_adapter(), "b": mock_adapter()}
        registry = DatabaseRegistry()
        for name, adapter in adapters.items():
            registry.register(name, DatabaseService(PG_CONFIG, adapter=adapter))

        async with registry:
            health = await registry.health_check_all()

        assert set(health) == {"a", "b"}
        assert all(result.healthy for result in health.values())
        assert all(a.connect.await_count == 1 and a.disconnect.await_count == 1 for a in adapters.values())
