"""Relational repository backed by SQLAlchemy Core.

Statements are built against a lightweight ``table()`` clause for the
configured table name, so no ORM model or reflected metadata is needed.
Every caller-supplied column passes the whitelist check before any
statement is compiled.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from sqlalchemy import Select, and_, column, delete, func, insert, literal_column, select, table, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import TableClause

from databasekit.contracts import Entity, PostgresRepositoryOptions
from databasekit.exceptions import ConfigurationError
from databasekit.filters.base import validate_fields
from databasekit.filters.sql import translate_sql_filter, translate_sql_sort
from databasekit.repositories.base import BaseRepository

T = TypeVar("T")

SessionFactory = Callable[[], AsyncSession]


class PostgresRepository(BaseRepository[PostgresRepositoryOptions]):
    """Repository over one relational table.

    Bound either to a session factory (each call runs in its own short
    transaction) or to a single ``AsyncSession`` owned by an enclosing
    ``with_transaction`` call.
    A bound repository calls ``ensure_active`` before each statement.
    """

    def __init__(
        self,
        options: PostgresRepositoryOptions,
        session_factory: SessionFactory | None = None,
        session: AsyncSession | None = None,
        ensure_active: Callable[[], None] | None = None,
    ) -> None:
        if (session_factory is None) == (session is None):
            raise ConfigurationError(
                "Provide exactly one of session_factory or session",
                field="session",
            )
        super().__init__(options)
        self._session_factory = session_factory
        self._session = session
        self._ensure_active = ensure_active

    @property
    def supports_concurrent_reads(self) -> bool:
        # one AsyncSession cannot run two statements at once
        return self._session is None

    @property
    def primary_key(self) -> str:
        return self.options.primary_key

    @property
    def entity_name(self) -> str:
        return self.options.table

    def _id_filter(self, entity_id: Any) -> dict[str, Any]:
        return {self.primary_key: entity_id}

    def _entity_id(self, entity: Entity) -> Any:
        return entity[self.primary_key]

    def _validate_fields(self, fields: Iterable[str], usage: str) -> None:
        validate_fields(fields, self.options.columns, usage)

    # ===========================================
    # STATEMENT HELPERS
    # ===========================================

    def _table(self, *names: str) -> TableClause:
        columns = [column(name) for name in dict.fromkeys(names)]
        return table(self.options.table, *columns, schema=self.options.schema)

    def _where(self, filter: dict[str, Any]) -> list[Any]:
        # caller parts were validated already; default filter keys are trusted
        return translate_sql_filter(filter)

    def _select(self, filter: dict[str, Any], fields: list[str] | None = None) -> Select[Any]:
        targets = [column(name) for name in fields] if fields else [literal_column("*")]
        query = select(*targets).select_from(self._table())
        clauses = self._where(filter)
        if clauses:
            query = query.where(and_(*clauses))
        return query

    async def _run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        if self._session is not None:
            if self._ensure_active is not None:
                self._ensure_active()
            return await work(self._session)
        async with self._session_factory() as session, session.begin():
            return await work(session)

    # ===========================================
    # PRIMITIVES
    # ===========================================

    async def _insert(self, data: Entity) -> Entity:
        stmt = insert(self._table(*data)).values(data).returning(literal_column("*"))

        async def work(session: AsyncSession) -> Entity:
            result = await session.execute(stmt)
            return dict(result.mappings().one())

        return await self._run(work)

    async def _insert_many(self, items: list[Entity]) -> list[Entity]:
        statements = [
            insert(self._table(*item)).values(item).returning(literal_column("*"))
            for item in items
        ]

        async def work(session: AsyncSession) -> list[Entity]:
            created = []
            for stmt in statements:
                result = await session.execute(stmt)
                created.append(dict(result.mappings().one()))
            return created

        return await self._run(work)

    async def _find(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        offset: int | None = None,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> list[Entity]:
        query = self._select(filter, fields)
        if sort:
            query = query.order_by(*translate_sql_sort(sort))
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        async def work(session: AsyncSession) -> list[Entity]:
            result = await session.execute(query)
            return [dict(row) for row in result.mappings().all()]

        return await self._run(work)

    async def _count(self, filter: dict[str, Any]) -> int:
        query = select(func.count()).select_from(self._table())
        clauses = self._where(filter)
        if clauses:
            query = query.where(and_(*clauses))

        async def work(session: AsyncSession) -> int:
            result = await session.execute(query)
            return result.scalar() or 0

        return await self._run(work)

    async def _exists(self, filter: dict[str, Any]) -> bool:
        query = self._select(filter, [self.primary_key]).limit(1)

        async def work(session: AsyncSession) -> bool:
            result = await session.execute(query)
            return result.first() is not None

        return await self._run(work)

    async def _distinct(self, field: str, filter: dict[str, Any]) -> list[Any]:
        query = self._select(filter, [field]).distinct()

        async def work(session: AsyncSession) -> list[Any]:
            result = await session.execute(query)
            return list(result.scalars().all())

        return await self._run(work)

    def _update_stmt(self, filter: dict[str, Any], values: Entity) -> Any:
        stmt = update(self._table(*values)).values(values)
        clauses = self._where(filter)
        if clauses:
            stmt = stmt.where(and_(*clauses))
        return stmt

    async def _update_one(self, filter: dict[str, Any], values: Entity) -> Entity | None:
        stmt = self._update_stmt(filter, values).returning(literal_column("*"))

        async def work(session: AsyncSession) -> Entity | None:
            result = await session.execute(stmt)
            row = result.mappings().first()
            return dict(row) if row is not None else None

        return await self._run(work)

    async def _update(self, filter: dict[str, Any], values: Entity) -> int:
        stmt = self._update_stmt(filter, values)

        async def work(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return result.rowcount

        return await self._run(work)

    def _delete_stmt(self, filter: dict[str, Any]) -> Any:
        stmt = delete(self._table())
        clauses = self._where(filter)
        if clauses:
            stmt = stmt.where(and_(*clauses))
        return stmt

    async def _delete_one(self, filter: dict[str, Any]) -> bool:
        return await self._delete(filter) > 0

    async def _delete(self, filter: dict[str, Any]) -> int:
        stmt = self._delete_stmt(filter)

        async def work(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return result.rowcount

        return await self._run(work)


__all__ = [
    "PostgresRepository",
]
