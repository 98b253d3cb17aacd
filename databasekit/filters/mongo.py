"""Translate abstract filters into MongoDB query documents."""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from databasekit.filters.base import parse_filter
from databasekit.pagination import ASCENDING, DESCENDING

_COMPARISONS = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def like_to_regex(pattern: str) -> str:
    """Convert a SQL LIKE pattern (``%``, ``_``) into an anchored regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "^" + "".join(parts) + "$"


def translate_mongo_filter(filter: Mapping[str, Any] | None) -> dict[str, Any]:
    """Build a MongoDB query document from an abstract filter.

    Literals become equality matches. Operator sets map onto the native
    operators; ``like`` becomes a case-insensitive regex, ``isNull`` matches
    null or missing fields and ``isNotNull`` the opposite.

    Raises:
        ValidationError: If the filter uses an unknown operator
    """
    query: dict[str, Any] = {}
    for condition in parse_filter(filter):
        if condition.literal:
            query[condition.field] = condition.value
            continue

        clause = query.setdefault(condition.field, {})
        if condition.operator == "like":
            clause["$regex"] = like_to_regex(condition.value)
            clause["$options"] = "i"
        elif condition.operator == "isNull":
            clause["$eq"] = None
        elif condition.operator == "isNotNull":
            clause["$ne"] = None
        else:
            clause[_COMPARISONS[condition.operator]] = condition.value
    return query


def translate_mongo_sort(pairs: Iterable[tuple[str, int]]) -> list[tuple[str, int]]:
    """Sort pairs in the form accepted by ``Cursor.sort``."""
    return [(name, DESCENDING if direction < 0 else ASCENDING) for name, direction in pairs]


def translate_mongo_projection(fields: Iterable[str] | None) -> dict[str, int] | None:
    """Inclusion projection for the requested fields (``None`` = all)."""
    if not fields:
        return None
    return {name: 1 for name in fields}


__all__ = [
    "like_to_regex",
    "translate_mongo_filter",
    "translate_mongo_projection",
    "translate_mongo_sort",
]
