"""Base repository abstract class.

Implements the unified repository contract once: lifecycle hooks,
timestamps, soft delete, default-filter scoping and pagination. Backends
only provide the native primitives (``_insert``, ``_find``, ``_count``, …)
that receive already merged and validated abstract filters.
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from databasekit.contracts import Entity, EntityOptions, PageOptions, PageResult, SortSpec
from databasekit.exceptions import EntityNotFoundError, ValidationError
from databasekit.filters.base import literal_entries, merge_filters, parse_filter
from databasekit.pagination import calculate_pages, normalize_pagination, parse_sort
from databasekit.shared.utils.datetime_utils import utcnow
from databasekit.shared.utils.logging import get_logger

logger = get_logger(__name__)

O = TypeVar("O", bound=EntityOptions)


async def _gather_reads(*reads: Awaitable[Any]) -> list[Any]:
    """Run reads concurrently; if one fails, cancel and drain the others."""
    tasks = [asyncio.ensure_future(read) for read in reads]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class BaseRepository(ABC, Generic[O]):
    """Abstract base repository providing the shared CRUD contract.

    Repositories are lightweight: they hold their options and a binding to
    either the adapter's ambient connection or one transaction, nothing else.

    Type Parameters:
        O: The backend-specific options variant
    """

    def __init__(self, options: O) -> None:
        self.options = options

    # ===========================================
    # BACKEND PRIMITIVES
    # ===========================================

    @property
    def entity_name(self) -> str:
        """Table or collection name used in error messages."""
        return type(self).__name__

    @property
    @abstractmethod
    def supports_concurrent_reads(self) -> bool:
        """Whether two reads may be in flight at once on this binding."""

    @abstractmethod
    def _id_filter(self, entity_id: Any) -> dict[str, Any]:
        """Equality filter selecting one entity by identifier."""

    @abstractmethod
    def _entity_id(self, entity: Entity) -> Any:
        """Identifier of a persisted entity."""

    def _validate_fields(self, fields: Iterable[str], usage: str) -> None:
        """Hook for backends that restrict which fields callers may use."""

    @abstractmethod
    async def _insert(self, data: Entity) -> Entity: ...

    @abstractmethod
    async def _insert_many(self, items: list[Entity]) -> list[Entity]: ...

    @abstractmethod
    async def _find(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        offset: int | None = None,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> list[Entity]: ...

    @abstractmethod
    async def _count(self, filter: dict[str, Any]) -> int: ...

    @abstractmethod
    async def _exists(self, filter: dict[str, Any]) -> bool: ...

    @abstractmethod
    async def _distinct(self, field: str, filter: dict[str, Any]) -> list[Any]: ...

    @abstractmethod
    async def _update_one(self, filter: dict[str, Any], values: Entity) -> Entity | None:
        """Update the single entity matched by an id-scoped filter."""

    @abstractmethod
    async def _update(self, filter: dict[str, Any], values: Entity) -> int: ...

    @abstractmethod
    async def _delete_one(self, filter: dict[str, Any]) -> bool: ...

    @abstractmethod
    async def _delete(self, filter: dict[str, Any]) -> int: ...

    # ===========================================
    # FILTER SCOPING
    # ===========================================

    def _base_filter(self, include_deleted: bool = False) -> dict[str, Any]:
        base = dict(self.options.default_filter)
        if self.options.soft_delete and not include_deleted:
            base.setdefault(self.options.soft_delete_field, {"isNull": True})
        return base

    def _check_filter(self, filter: Mapping[str, Any] | None) -> dict[str, Any]:
        """Validate a caller filter (operators and whitelist) before use."""
        conditions = parse_filter(filter)
        self._validate_fields({c.field for c in conditions}, "filter")
        return dict(filter or {})

    def _scope(self, filter: Mapping[str, Any] | None, include_deleted: bool = False) -> dict[str, Any]:
        return merge_filters(
            self._base_filter(include_deleted),
            filter,
            allow_override=self.options.allow_default_filter_override,
        )

    def _scoped(self, filter: Mapping[str, Any] | None) -> dict[str, Any]:
        return self._scope(self._check_filter(filter))

    def _parse_sort(self, sort: SortSpec | None) -> list[tuple[str, int]]:
        pairs = parse_sort(sort)
        self._validate_fields([name for name, _ in pairs], "sort")
        return pairs

    def _check_payload(self, data: Mapping[str, Any]) -> Entity:
        if not isinstance(data, Mapping):
            raise ValidationError("Payload must be a mapping", field="data")
        payload = dict(data)
        self._validate_fields(payload.keys(), "payload")
        return payload

    def _require_soft_delete(self) -> None:
        if not self.options.soft_delete:
            raise ValidationError(
                "Soft delete is not enabled for this repository",
                field="soft_delete",
            )

    # ===========================================
    # HOOKS & TIMESTAMPS
    # ===========================================

    async def _run_hook(self, name: str, *args: Any) -> Any:
        hooks = self.options.hooks
        hook = getattr(hooks, name, None) if hooks is not None else None
        if hook is None:
            return None
        result = hook(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _stamp_created(self, data: Entity) -> Entity:
        if self.options.timestamps:
            now = utcnow()
            data.setdefault(self.options.created_at_field, now)
            data.setdefault(self.options.updated_at_field, now)
        return data

    def _stamp_updated(self, data: Entity) -> Entity:
        if self.options.timestamps:
            data[self.options.updated_at_field] = utcnow()
        return data

    # ===========================================
    # CRUD
    # ===========================================

    async def create(self, data: Mapping[str, Any]) -> Entity:
        """Create an entity and return it with its generated identifier."""
        payload = self._check_payload(data)
        replaced = await self._run_hook("before_create", payload)
        if replaced is not None:
            payload = self._check_payload(replaced)
        entity = await self._insert(self._stamp_created(payload))
        await self._run_hook("after_create", entity)
        return entity

    async def find_by_id(self, entity_id: Any) -> Entity | None:
        """Get an entity by identifier, or ``None``."""
        found = await self._find(self._scope(self._id_filter(entity_id)), limit=1)
        return found[0] if found else None

    async def get_by_id(self, entity_id: Any) -> Entity:
        """Like ``find_by_id`` but a miss raises ``EntityNotFoundError``."""
        entity = await self.find_by_id(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, entity_id)
        return entity

    async def find_one(self, filter: Mapping[str, Any] | None = None) -> Entity | None:
        """First entity matching ``filter``, or ``None``."""
        found = await self._find(self._scoped(filter), limit=1)
        return found[0] if found else None

    async def find_all(
        self,
        filter: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
    ) -> list[Entity]:
        """All entities matching ``filter`` (unordered unless sorted)."""
        scoped = self._scoped(filter)
        return await self._find(scoped, sort=self._parse_sort(sort) or None)

    async def find_page(self, options: PageOptions | None = None, **kwargs: Any) -> PageResult[Entity]:
        """Fetch one page of entities together with the total count.

        Args:
            options: Page request; keyword arguments (``filter``, ``page``,
                ``limit``, ``sort``) may be used instead

        Returns:
            PageResult with ``pages = ceil(total / limit)``
        """
        options = options or PageOptions(**kwargs)
        page, limit, offset = normalize_pagination(options.page, options.limit)
        scoped = self._scoped(options.filter)
        sort = self._parse_sort(options.sort) or None

        if self.supports_concurrent_reads:
            total, data = await _gather_reads(
                self._count(scoped),
                self._find(scoped, sort=sort, offset=offset, limit=limit),
            )
        else:
            total = await self._count(scoped)
            data = await self._find(scoped, sort=sort, offset=offset, limit=limit)

        return PageResult(
            data=data,
            page=page,
            limit=limit,
            total=total,
            pages=calculate_pages(total, limit),
        )

    async def update_by_id(self, entity_id: Any, update: Mapping[str, Any]) -> Entity | None:
        """Update an entity; ``None`` if no live entity has that id."""
        payload = self._check_payload(update)
        replaced = await self._run_hook("before_update", entity_id, payload)
        if replaced is not None:
            payload = self._check_payload(replaced)
        scoped = self._scope(self._id_filter(entity_id))
        payload = self._stamp_updated(payload)
        if payload:
            entity = await self._update_one(scoped, payload)
        else:
            found = await self._find(scoped, limit=1)
            entity = found[0] if found else None
        await self._run_hook("after_update", entity)
        return entity

    async def delete_by_id(self, entity_id: Any) -> bool:
        """Delete an entity (or mark it deleted when soft delete is on).

        Returns:
            True if a live entity was deleted, False otherwise
        """
        await self._run_hook("before_delete", entity_id)
        scoped = self._scope(self._id_filter(entity_id))
        if self.options.soft_delete:
            success = await self._mark_deleted(scoped)
        else:
            success = await self._delete_one(scoped)
        await self._run_hook("after_delete", success)
        return success

    async def count(self, filter: Mapping[str, Any] | None = None) -> int:
        return await self._count(self._scoped(filter))

    async def exists(self, filter: Mapping[str, Any] | None = None) -> bool:
        """Whether any entity matches, using a limit-1 query."""
        return await self._exists(self._scoped(filter))

    # ===========================================
    # BULK OPERATIONS
    # ===========================================

    async def insert_many(self, items: Iterable[Mapping[str, Any]]) -> list[Entity]:
        """Insert several entities; timestamps apply, per-entity hooks do not."""
        payloads = [self._stamp_created(self._check_payload(item)) for item in items]
        if not payloads:
            return []
        return await self._insert_many(payloads)

    async def update_many(self, filter: Mapping[str, Any] | None, update: Mapping[str, Any]) -> int:
        """Update every matching entity and return the affected count."""
        scoped = self._scoped(filter)
        payload = self._check_payload(update)
        if not payload:
            return 0
        return await self._update(scoped, self._stamp_updated(payload))

    async def delete_many(self, filter: Mapping[str, Any] | None = None) -> int:
        """Delete (or soft delete) every matching entity; returns the count."""
        scoped = self._scoped(filter)
        if self.options.soft_delete:
            return await self._update(scoped, self._deletion_marker())
        return await self._delete(scoped)

    async def upsert(self, filter: Mapping[str, Any], data: Mapping[str, Any]) -> Entity:
        """Update the entity matching ``filter`` or create one.

        The created entity combines the filter's equality entries with
        ``data``. Atomicity against concurrent upserts needs a transaction
        or a unique index on the filter fields.
        """
        existing = await self.find_one(filter)
        if existing is not None:
            updated = await self.update_by_id(self._entity_id(existing), data)
            if updated is not None:
                return updated
            logger.warning("upsert_target_vanished", entity_id=str(self._entity_id(existing)))
        return await self.create({**literal_entries(filter), **dict(data)})

    async def distinct(self, field: str, filter: Mapping[str, Any] | None = None) -> list[Any]:
        """Unique values of ``field`` among matching entities."""
        self._validate_fields([field], "distinct")
        return await self._distinct(field, self._scoped(filter))

    async def select(
        self,
        filter: Mapping[str, Any] | None,
        fields: Iterable[str],
    ) -> list[Entity]:
        """Matching entities projected to ``fields``."""
        fields = list(fields)
        if not fields:
            raise ValidationError("At least one field must be selected", field="fields")
        self._validate_fields(fields, "select")
        return await self._find(self._scoped(filter), fields=fields)

    # ===========================================
    # SOFT DELETE
    # ===========================================

    def _deletion_marker(self) -> Entity:
        return self._stamp_updated({self.options.soft_delete_field: utcnow()})

    async def _mark_deleted(self, scoped: dict[str, Any]) -> bool:
        return await self._update_one(scoped, self._deletion_marker()) is not None

    def _deleted_scope(self, filter: Mapping[str, Any] | None) -> dict[str, Any]:
        scoped = self._scope(filter, include_deleted=True)
        scoped[self.options.soft_delete_field] = {"isNotNull": True}
        return scoped

    async def soft_delete(self, entity_id: Any) -> bool:
        """Mark one live entity deleted without running delete hooks."""
        self._require_soft_delete()
        return await self._mark_deleted(self._scope(self._id_filter(entity_id)))

    async def soft_delete_many(self, filter: Mapping[str, Any] | None = None) -> int:
        self._require_soft_delete()
        return await self._update(self._scoped(filter), self._deletion_marker())

    async def restore(self, entity_id: Any) -> Entity | None:
        """Clear the deletion mark of one entity; ``None`` if not deleted."""
        self._require_soft_delete()
        values = self._stamp_updated({self.options.soft_delete_field: None})
        return await self._update_one(self._deleted_scope(self._id_filter(entity_id)), values)

    async def restore_many(self, filter: Mapping[str, Any] | None = None) -> int:
        self._require_soft_delete()
        values = self._stamp_updated({self.options.soft_delete_field: None})
        return await self._update(self._deleted_scope(self._check_filter(filter)), values)

    async def find_with_deleted(
        self,
        filter: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
    ) -> list[Entity]:
        """Matching entities ignoring the default filter entirely."""
        self._require_soft_delete()
        checked = self._check_filter(filter)
        return await self._find(checked, sort=self._parse_sort(sort) or None)


__all__ = [
    "BaseRepository",
]
