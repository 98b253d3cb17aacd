"""Typed structures exchanged between callers, adapters and repositories.

Repository options are tagged variants: ``MongoRepositoryOptions`` and
``PostgresRepositoryOptions`` share the entity behaviour settings and add
their backend-specific location fields. Adapters dispatch on the variant
type, never on the shape of a plain dict.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from databasekit.pagination import DEFAULT_PAGE, DEFAULT_PAGE_SIZE

T = TypeVar("T")

Entity = dict[str, Any]
Filter = dict[str, Any]
SortSpec = str | dict[str, Any]

# ===========================================
# LIFECYCLE HOOKS
# ===========================================


# Hooks may return a value or an awaitable resolving to one
HookResult = Any


@dataclass
class RepositoryHooks:
    """Named extension points invoked around single-entity operations.

    Order per operation is fixed: ``before_*`` → backend call → ``after_*``.
    ``before_create`` and ``before_update`` may return a replacement payload
    (``None`` keeps the original). ``after_*`` return values are ignored.
    Hooks may be plain functions or coroutines; an exception raised by a
    hook aborts the operation and propagates to the caller.

    Attributes:
        before_create: ``(data) -> data | None``
        after_create: ``(entity) -> None``
        before_update: ``(entity_id, update) -> update | None``
        after_update: ``(entity | None) -> None``
        before_delete: ``(entity_id) -> None``
        after_delete: ``(success) -> None``
    """

    before_create: Callable[[Entity], HookResult] | None = None
    after_create: Callable[[Entity], HookResult] | None = None
    before_update: Callable[[Any, Entity], HookResult] | None = None
    after_update: Callable[[Entity | None], HookResult] | None = None
    before_delete: Callable[[Any], HookResult] | None = None
    after_delete: Callable[[bool], HookResult] | None = None


# ===========================================
# REPOSITORY OPTIONS
# ===========================================


@dataclass(kw_only=True)
class EntityOptions:
    """Entity behaviour shared by both backends.

    Attributes:
        default_filter: Filter merged into every read and scoped write
        allow_default_filter_override: Let caller filter keys replace
            default filter keys of the same name (off: default wins)
        timestamps: Maintain creation/update timestamp fields
        created_at_field: Creation timestamp field name
        updated_at_field: Update timestamp field name
        soft_delete: Mark records deleted instead of removing them
        soft_delete_field: Field holding the deletion time
        hooks: Lifecycle hooks
    """

    backend: ClassVar[str] = ""

    default_filter: Filter = field(default_factory=dict)
    allow_default_filter_override: bool = False
    timestamps: bool = False
    created_at_field: str = "created_at"
    updated_at_field: str = "updated_at"
    soft_delete: bool = False
    soft_delete_field: str = "deleted_at"
    hooks: RepositoryHooks | None = None


@dataclass(kw_only=True)
class MongoRepositoryOptions(EntityOptions):
    """Options for a document-store repository.

    Attributes:
        model: A motor collection, or the name of a collection in the
            adapter's default database
    """

    backend: ClassVar[str] = "mongo"

    model: Any = None


@dataclass(kw_only=True)
class PostgresRepositoryOptions(EntityOptions):
    """Options for a relational repository.

    Attributes:
        table: Table name
        schema: Optional schema the table lives in
        primary_key: Primary key column
        columns: Whitelist of columns callers may filter, sort, select or
            write; empty means unrestricted
    """

    backend: ClassVar[str] = "postgres"

    table: str = ""
    schema: str | None = None
    primary_key: str = "id"
    columns: list[str] = field(default_factory=list)


RepositoryOptions = MongoRepositoryOptions | PostgresRepositoryOptions


# ===========================================
# PAGINATION
# ===========================================


@dataclass
class PageOptions:
    """Paginated query request (page is 1-indexed)."""

    filter: Filter | None = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_PAGE_SIZE
    sort: SortSpec | None = None


@dataclass
class PageResult(Generic[T]):
    """One page of results plus totals."""

    data: list[T]
    page: int
    limit: int
    total: int
    pages: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
        }


# ===========================================
# HEALTH & TRANSACTIONS
# ===========================================


@dataclass
class HealthCheckResult:
    """Outcome of an adapter health check."""

    healthy: bool
    response_time_ms: float
    type: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "responseTimeMs": self.response_time_ms,
            "type": self.type,
            "details": self.details,
        }


class RetryStrategy(str, Enum):
    """Delay progression between transaction attempts."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass
class TransactionOptions:
    """Options for ``with_transaction``.

    Attributes:
        max_retries: Extra attempts allowed after a transient failure
        retry_delay_ms: Delay before each retry (base delay when exponential)
        retry_strategy: ``fixed`` or ``exponential``
        max_retry_delay_ms: Ceiling for exponential delays
        isolation_level: Relational isolation level, e.g. ``SERIALIZABLE``
        timeout_ms: Document-store maximum commit time
    """

    max_retries: int = 0
    retry_delay_ms: float = 100
    retry_strategy: RetryStrategy = RetryStrategy.FIXED
    max_retry_delay_ms: float = 10_000
    isolation_level: str | None = None
    timeout_ms: int | None = None


# ===========================================
# REPOSITORY CONTRACT
# ===========================================


@runtime_checkable
class Repository(Protocol):
    """Operations every backend repository provides.

    ``create_repository`` on adapters, services and transaction contexts
    returns an object satisfying this protocol.
    """

    @property
    def supports_concurrent_reads(self) -> bool: ...

    async def create(self, data: Mapping[str, Any]) -> Entity: ...

    async def find_by_id(self, entity_id: Any) -> Entity | None: ...

    async def get_by_id(self, entity_id: Any) -> Entity: ...

    async def find_one(self, filter: Mapping[str, Any] | None = None) -> Entity | None: ...

    async def find_all(
        self, filter: Mapping[str, Any] | None = None, sort: SortSpec | None = None
    ) -> list[Entity]: ...

    async def find_page(self, options: PageOptions | None = None, **kwargs: Any) -> PageResult[Entity]: ...

    async def update_by_id(self, entity_id: Any, update: Mapping[str, Any]) -> Entity | None: ...

    async def delete_by_id(self, entity_id: Any) -> bool: ...

    async def count(self, filter: Mapping[str, Any] | None = None) -> int: ...

    async def exists(self, filter: Mapping[str, Any] | None = None) -> bool: ...

    async def insert_many(self, items: Iterable[Mapping[str, Any]]) -> list[Entity]: ...

    async def update_many(self, filter: Mapping[str, Any] | None, update: Mapping[str, Any]) -> int: ...

    async def delete_many(self, filter: Mapping[str, Any] | None = None) -> int: ...

    async def upsert(self, filter: Mapping[str, Any], data: Mapping[str, Any]) -> Entity: ...

    async def distinct(self, field: str, filter: Mapping[str, Any] | None = None) -> list[Any]: ...

    async def select(self, filter: Mapping[str, Any] | None, fields: Iterable[str]) -> list[Entity]: ...

    async def soft_delete(self, entity_id: Any) -> bool: ...

    async def soft_delete_many(self, filter: Mapping[str, Any] | None = None) -> int: ...

    async def restore(self, entity_id: Any) -> Entity | None: ...

    async def restore_many(self, filter: Mapping[str, Any] | None = None) -> int: ...

    async def find_with_deleted(
        self, filter: Mapping[str, Any] | None = None, sort: SortSpec | None = None
    ) -> list[Entity]: ...


__all__ = [
    "Entity",
    "EntityOptions",
    "Filter",
    "HealthCheckResult",
    "MongoRepositoryOptions",
    "PageOptions",
    "PageResult",
    "PostgresRepositoryOptions",
    "Repository",
    "RepositoryHooks",
    "RepositoryOptions",
    "RetryStrategy",
    "SortSpec",
    "TransactionOptions",
]
