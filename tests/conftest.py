"""Global pytest fixtures for the database kit.

This module provides shared fixtures for testing including:
- A connected PostgresAdapter running on a temporary sqlite+aiosqlite file
- Document collections backed by mongomock behind an async facade
- Mock driver sessions for transaction lifecycle tests
"""

import sqlite3
from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import mongomock
import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from databasekit.adapters.postgres import PostgresAdapter
from databasekit.contracts import MongoRepositoryOptions, PostgresRepositoryOptions
from databasekit.repositories.mongo_repository import MongoRepository

# sqlite has no native timestamp type; store ISO strings like the driver would
sqlite3.register_adapter(datetime, lambda value: value.isoformat())


USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    email TEXT UNIQUE,
    age INTEGER,
    status TEXT,
    tenant TEXT,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT
)
"""

USER_COLUMNS = [
    "id",
    "name",
    "email",
    "age",
    "status",
    "tenant",
    "created_at",
    "updated_at",
    "deleted_at",
]


# ===========================================
# RELATIONAL FIXTURES
# ===========================================


def sqlite_engine_factory(url: str, **_pool_options: Any):
    """aiosqlite file databases use NullPool, which takes no sizing options."""
    return create_async_engine(url)


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'databasekit.db'}"


@pytest_asyncio.fixture
async def pg_adapter(sqlite_url: str) -> AsyncGenerator[PostgresAdapter, None]:
    """Connected adapter with an empty ``users`` table."""
    adapter = PostgresAdapter(
        {"type": "postgres", "connection_string": sqlite_url},
        engine_factory=sqlite_engine_factory,
    )
    await adapter.connect()
    async with adapter.engine.begin() as conn:
        await conn.execute(text(USERS_DDL))
    yield adapter
    await adapter.disconnect()


@pytest.fixture
def user_options() -> PostgresRepositoryOptions:
    return PostgresRepositoryOptions(table="users", columns=list(USER_COLUMNS))


# ===========================================
# DOCUMENT FIXTURES
# ===========================================


class AsyncCursor:
    """Awaitable wrapper over a mongomock cursor (``to_list`` like motor)."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    def sort(self, *args: Any, **kwargs: Any) -> "AsyncCursor":
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def skip(self, count: int) -> "AsyncCursor":
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count: int) -> "AsyncCursor":
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        docs = list(self._cursor)
        return docs if length is None else docs[:length]


class AsyncCollection:
    """Exposes the motor collection methods the repository uses over mongomock.

    ``session`` keyword arguments are accepted and dropped; tests that need
    session behaviour assert on the calls instead.
    """

    def __init__(self, collection: mongomock.Collection) -> None:
        self.sync = collection
        self.name = collection.name
        self.session_calls: list[Any] = []

    def _pop_session(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        if "session" in kwargs:
            self.session_calls.append(kwargs.pop("session"))
        return kwargs

    async def insert_one(self, document: dict[str, Any], **kwargs: Any) -> Any:
        return self.sync.insert_one(document, **self._pop_session(kwargs))

    async def insert_many(self, documents: list[dict[str, Any]], **kwargs: Any) -> Any:
        return self.sync.insert_many(documents, **self._pop_session(kwargs))

    def find(self, filter: Any = None, projection: Any = None, **kwargs: Any) -> AsyncCursor:
        return AsyncCursor(self.sync.find(filter, projection, **self._pop_session(kwargs)))

    async def find_one(self, filter: Any = None, projection: Any = None, **kwargs: Any) -> Any:
        return self.sync.find_one(filter, projection, **self._pop_session(kwargs))

    async def count_documents(self, filter: Any, **kwargs: Any) -> int:
        return self.sync.count_documents(filter, **self._pop_session(kwargs))

    async def distinct(self, key: str, filter: Any = None, **kwargs: Any) -> list[Any]:
        return self.sync.distinct(key, filter, **self._pop_session(kwargs))

    async def find_one_and_update(self, filter: Any, update: Any, **kwargs: Any) -> Any:
        return self.sync.find_one_and_update(filter, update, **self._pop_session(kwargs))

    async def update_many(self, filter: Any, update: Any, **kwargs: Any) -> Any:
        return self.sync.update_many(filter, update, **self._pop_session(kwargs))

    async def delete_one(self, filter: Any, **kwargs: Any) -> Any:
        return self.sync.delete_one(filter, **self._pop_session(kwargs))

    async def delete_many(self, filter: Any, **kwargs: Any) -> Any:
        return self.sync.delete_many(filter, **self._pop_session(kwargs))


class AsyncDatabase:
    def __init__(self, database: mongomock.Database) -> None:
        self.sync = database
        self.name = database.name

    def __getitem__(self, name: str) -> AsyncCollection:
        return AsyncCollection(self.sync[name])


@pytest.fixture
def mongo_database() -> AsyncDatabase:
    return AsyncDatabase(mongomock.MongoClient()["databasekit_test"])


@pytest.fixture
def users_collection(mongo_database: AsyncDatabase) -> AsyncCollection:
    return mongo_database["users"]


@pytest.fixture
def make_mongo_repository(users_collection: AsyncCollection):
    """Factory building a MongoRepository over the ``users`` collection."""

    def factory(**options: Any) -> MongoRepository:
        return MongoRepository(MongoRepositoryOptions(model="users", **options), users_collection)

    return factory


@pytest.fixture
def mock_mongo_client(mongo_database: AsyncDatabase) -> MagicMock:
    """Motor-like client whose ping succeeds and whose sessions are mocks."""
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.get_default_database = MagicMock(return_value=mongo_database)
    client.close = MagicMock()

    def new_session() -> MagicMock:
        session = MagicMock()
        session.in_transaction = False

        def start_transaction(**kwargs: Any) -> None:
            session.in_transaction = True

        async def finish() -> None:
            session.in_transaction = False

        session.start_transaction = MagicMock(side_effect=start_transaction)
        session.commit_transaction = AsyncMock(side_effect=finish)
        session.abort_transaction = AsyncMock(side_effect=finish)
        session.end_session = AsyncMock()
        return session

    client.start_session = AsyncMock(side_effect=new_session)
    return client


@pytest.fixture
def mongo_client_factory(mock_mongo_client: MagicMock) -> MagicMock:
    return MagicMock(return_value=mock_mongo_client)
