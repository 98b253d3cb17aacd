"""Database kit exceptions.

Provides a typed exception hierarchy for repository and adapter operations.
Errors raised by the underlying drivers (motor/pymongo, SQLAlchemy/asyncpg)
are never wrapped by repositories; they propagate unchanged so callers keep
the driver's ``code``/``sqlstate`` fields.
"""

from typing import Any


class RepositoryError(Exception):
    """Base exception for all database kit errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class EntityNotFoundError(RepositoryError):
    """A required entity is missing.

    Plain reads return ``None``/``False`` on a miss; ``get_by_id`` raises
    this instead for callers that treat a miss as an error.
    """

    def __init__(self, entity: str, entity_id: Any = None, filter: dict[str, Any] | None = None) -> None:
        details: dict[str, Any] = {"entity": entity}
        if entity_id is not None:
            details["id"] = str(entity_id)
            message = f"No {entity} entity with id '{entity_id}'"
        else:
            message = f"No matching {entity} entity"
        if filter:
            details["filter"] = filter
        super().__init__(message, details)
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEntityError(RepositoryError):
    """A write would violate a uniqueness rule the application enforces.

    Unique-index violations reported by the drivers are not converted into
    this error; ``map_database_error`` handles them directly.
    """

    def __init__(self, entity: str, fields: dict[str, Any], constraint: str | None = None) -> None:
        shown = ", ".join(f"{name}={value!r}" for name, value in fields.items())
        details: dict[str, Any] = {"entity": entity, "fields": dict(fields)}
        if constraint:
            details["constraint"] = constraint
        super().__init__(f"{entity} with {shown} already exists", details)
        self.entity = entity
        self.fields = dict(fields)
        self.constraint = constraint


class ValidationError(RepositoryError):
    """Raised for disallowed columns, unknown operators or malformed options.

    Always raised before anything is sent to the backend and never retried.
    """

    name = "ValidationError"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors

        super().__init__(message, details)
        self.field = field
        self.errors = errors or []


class ConfigurationError(ValidationError):
    """Raised when adapter or repository options are invalid."""

    name = "ConfigurationError"


class TransactionError(RepositoryError):
    """A transaction context was used outside its callback."""

    def __init__(self, message: str, state: str | None = None) -> None:
        super().__init__(message, {"state": state} if state else None)
        self.state = state


class ConnectionError(RepositoryError):
    """Raised when the adapter is not connected or cannot connect."""

    name = "ConnectionError"

    def __init__(self, message: str, backend: str | None = None, url: str | None = None) -> None:
        details: dict[str, Any] = {}
        if backend:
            details["backend"] = backend
        if url:
            details["url"] = url

        super().__init__(message, details)
        self.backend = backend


__all__ = [
    "ConfigurationError",
    "ConnectionError",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "RepositoryError",
    "TransactionError",
    "ValidationError",
]
