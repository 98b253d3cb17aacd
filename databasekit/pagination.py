"""Pagination and sort helpers shared by both repository backends."""

import math
from collections.abc import Mapping
from typing import Any

from databasekit.exceptions import ValidationError

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
# Hard ceiling on page size to keep a single request bounded
MAX_PAGE_SIZE = 100

ASCENDING = 1
DESCENDING = -1

_DIRECTIONS: dict[Any, int] = {
    1: ASCENDING,
    -1: DESCENDING,
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
}


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def normalize_pagination(
    page: Any = None,
    limit: Any = None,
    max_limit: int = MAX_PAGE_SIZE,
) -> tuple[int, int, int]:
    """Normalize page/limit request values.

    Missing, non-numeric or non-positive values fall back to the defaults
    (page 1, limit 10); the limit is capped at ``max_limit``.

    Returns:
        ``(page, limit, offset)`` where ``offset = (page - 1) * limit``
    """
    page = _positive_int(page, DEFAULT_PAGE)
    limit = min(_positive_int(limit, DEFAULT_PAGE_SIZE), max_limit)
    return page, limit, (page - 1) * limit


def calculate_pages(total: int, limit: int) -> int:
    """Number of pages needed for ``total`` items at ``limit`` per page."""
    if limit <= 0:
        return 0
    return math.ceil(total / limit)


def parse_sort(sort: str | Mapping[str, Any] | None) -> list[tuple[str, int]]:
    """Parse a sort specification into ``(field, direction)`` pairs.

    Accepts ``"name"``, ``"-created_at"``, ``"name,-age"`` (comma or space
    separated) or a mapping of field to ``1``/``-1``/``"asc"``/``"desc"``.

    Raises:
        ValidationError: If a direction is not recognised
    """
    if not sort:
        return []

    if isinstance(sort, str):
        pairs: list[tuple[str, int]] = []
        for token in sort.replace(",", " ").split():
            if token.startswith("-"):
                pairs.append((token[1:], DESCENDING))
            else:
                pairs.append((token.lstrip("+"), ASCENDING))
        return [(name, direction) for name, direction in pairs if name]

    if not isinstance(sort, Mapping):
        raise ValidationError("Sort must be a string or a mapping", field="sort")

    pairs = []
    for name, raw in sort.items():
        key = raw.lower() if isinstance(raw, str) else raw
        if isinstance(key, bool) or not isinstance(key, (int, str)) or key not in _DIRECTIONS:
            raise ValidationError(
                f"Invalid sort direction {raw!r} for '{name}'",
                field="sort",
            )
        pairs.append((name, _DIRECTIONS[key]))
    return pairs


__all__ = [
    "ASCENDING",
    "DEFAULT_PAGE",
    "DEFAULT_PAGE_SIZE",
    "DESCENDING",
    "MAX_PAGE_SIZE",
    "calculate_pages",
    "normalize_pagination",
    "parse_sort",
]
