"""Translate abstract filters into SQLAlchemy Core expressions."""

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from sqlalchemy import ColumnElement, UnaryExpression, column
from sqlalchemy.sql.elements import ColumnClause

from databasekit.filters.base import Condition, parse_filter, validate_fields

_BUILDERS: dict[str, Callable[[ColumnClause[Any], Any], ColumnElement[bool]]] = {
    "eq": lambda col, value: col == value,
    "ne": lambda col, value: col != value,
    "gt": lambda col, value: col > value,
    "gte": lambda col, value: col >= value,
    "lt": lambda col, value: col < value,
    "lte": lambda col, value: col <= value,
    "in": lambda col, value: col.in_(value),
    "nin": lambda col, value: col.not_in(value),
    "like": lambda col, value: col.ilike(value),
    # operand is ignored for the null checks
    "isNull": lambda col, _: col.is_(None),
    "isNotNull": lambda col, _: col.is_not(None),
}


def build_clause(condition: Condition) -> ColumnElement[bool]:
    """SQL predicate for a single normalized condition."""
    return _BUILDERS[condition.operator](column(condition.field), condition.value)


def translate_sql_filter(
    filter: Mapping[str, Any] | None,
    columns: Iterable[str] | None = None,
) -> list[ColumnElement[bool]]:
    """Build WHERE clauses from an abstract filter.

    Args:
        filter: Abstract filter
        columns: Optional whitelist every referenced field must belong to

    Returns:
        Predicates to be combined with AND

    Raises:
        ValidationError: On unknown operators or non-whitelisted columns
    """
    conditions = parse_filter(filter)
    validate_fields((c.field for c in conditions), columns, "filter")
    return [build_clause(c) for c in conditions]


def translate_sql_sort(pairs: Iterable[tuple[str, int]]) -> list[UnaryExpression[Any]]:
    """ORDER BY expressions for ``(field, direction)`` pairs."""
    return [column(name).desc() if direction < 0 else column(name).asc() for name, direction in pairs]


__all__ = [
    "build_clause",
    "translate_sql_filter",
    "translate_sql_sort",
]
