"""Abstract filter vocabulary shared by the backend translators.

A filter maps a field name to either a literal (equality) or an operator
set such as ``{"gte": 18, "lt": 65}``. The operator vocabulary is closed:
anything outside it is rejected before a native query is built.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from databasekit.exceptions import ValidationError

OPERATORS = frozenset(
    {"eq", "ne", "gt", "gte", "lt", "lte", "in", "nin", "like", "isNull", "isNotNull"}
)

# Mongo spellings accepted for the operators both engines understand
OPERATOR_ALIASES = {
    "$eq": "eq",
    "$ne": "ne",
    "$gt": "gt",
    "$gte": "gte",
    "$lt": "lt",
    "$lte": "lte",
    "$in": "in",
    "$nin": "nin",
}

SET_OPERATORS = frozenset({"in", "nin"})
NULL_OPERATORS = frozenset({"isNull", "isNotNull"})


@dataclass(frozen=True)
class Condition:
    """One normalized predicate: ``field <operator> value``."""

    field: str
    operator: str
    value: Any = None
    literal: bool = False


def is_operator_set(value: Any) -> bool:
    """Whether a filter value is an operator set rather than a literal."""
    return isinstance(value, Mapping)


def _check_field_name(field: Any) -> str:
    if not isinstance(field, str) or not field:
        raise ValidationError("Filter field names must be non-empty strings", field=str(field))
    if field.startswith("$"):
        raise ValidationError(f"Unsupported top-level filter key '{field}'", field=field)
    return field


def _normalize_operator(field: str, key: Any) -> str:
    operator = OPERATOR_ALIASES.get(key, key)
    if operator not in OPERATORS:
        raise ValidationError(
            f"Unknown filter operator '{key}' for field '{field}'",
            field=field,
            errors=[f"allowed operators: {', '.join(sorted(OPERATORS))}"],
        )
    return operator


def _check_operand(field: str, operator: str, operand: Any) -> Any:
    if operator in SET_OPERATORS:
        if isinstance(operand, (str, bytes, Mapping)) or not isinstance(operand, Iterable):
            raise ValidationError(
                f"Operator '{operator}' on '{field}' expects a list of values",
                field=field,
            )
        return list(operand)
    if operator in NULL_OPERATORS:
        return None
    if isinstance(operand, Mapping):
        raise ValidationError(
            f"Operator '{operator}' on '{field}' does not accept a nested mapping",
            field=field,
        )
    if operator == "like" and not isinstance(operand, str):
        raise ValidationError(f"Operator 'like' on '{field}' expects a string", field=field)
    return operand


def parse_filter(filter: Mapping[str, Any] | None) -> list[Condition]:
    """Validate a filter and flatten it into conditions.

    Raises:
        ValidationError: On unknown operators, empty operator sets or
            malformed operands
    """
    if not filter:
        return []
    if not isinstance(filter, Mapping):
        raise ValidationError("Filter must be a mapping", field="filter")

    conditions: list[Condition] = []
    for field, value in filter.items():
        field = _check_field_name(field)
        if not is_operator_set(value):
            conditions.append(Condition(field, "eq", value, literal=True))
            continue
        if not value:
            raise ValidationError(f"Empty operator set for field '{field}'", field=field)
        for key, operand in value.items():
            operator = _normalize_operator(field, key)
            conditions.append(Condition(field, operator, _check_operand(field, operator, operand)))
    return conditions


def normalize_filter(filter: Mapping[str, Any] | None) -> dict[str, Any]:
    """Validated copy of a filter with operator aliases spelled canonically."""
    normalized: dict[str, Any] = {}
    for condition in parse_filter(filter):
        if condition.literal:
            normalized[condition.field] = condition.value
        else:
            normalized.setdefault(condition.field, {})[condition.operator] = condition.value
    return normalized


def merge_filters(
    default: Mapping[str, Any] | None,
    caller: Mapping[str, Any] | None,
    allow_override: bool = False,
) -> dict[str, Any]:
    """Combine a repository's default filter with a caller filter.

    The default filter is a guard: on a key conflict its entry wins unless
    the repository was configured with ``allow_override=True``, in which
    case the caller's entry replaces it.
    """
    default = dict(default or {})
    caller = dict(caller or {})
    if allow_override:
        return {**default, **caller}
    return {**caller, **default}


def literal_entries(filter: Mapping[str, Any] | None) -> dict[str, Any]:
    """Equality entries of a filter, i.e. the parts usable as field values."""
    return {k: v for k, v in (filter or {}).items() if not is_operator_set(v)}


def validate_fields(
    fields: Iterable[str],
    allowed: Iterable[str] | None,
    usage: str,
) -> None:
    """Enforce a column whitelist.

    An empty or missing whitelist means every column is allowed.

    Raises:
        ValidationError: If any field is outside the whitelist
    """
    allowed_set = set(allowed or ())
    if not allowed_set:
        return
    rejected = [f for f in fields if f not in allowed_set]
    if rejected:
        raise ValidationError(
            f"Column '{rejected[0]}' is not allowed in {usage}",
            field=rejected[0],
            errors=[f"disallowed {usage} column: {name}" for name in rejected],
        )


__all__ = [
    "Condition",
    "NULL_OPERATORS",
    "OPERATORS",
    "OPERATOR_ALIASES",
    "SET_OPERATORS",
    "is_operator_set",
    "literal_entries",
    "merge_filters",
    "normalize_filter",
    "parse_filter",
    "validate_fields",
]
