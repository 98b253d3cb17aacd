"""Filter translation for the document and relational backends."""

from databasekit.filters.base import (
    OPERATORS,
    Condition,
    is_operator_set,
    literal_entries,
    merge_filters,
    normalize_filter,
    parse_filter,
    validate_fields,
)
from databasekit.filters.mongo import (
    like_to_regex,
    translate_mongo_filter,
    translate_mongo_projection,
    translate_mongo_sort,
)
from databasekit.filters.sql import build_clause, translate_sql_filter, translate_sql_sort

__all__ = [
    "OPERATORS",
    "Condition",
    "build_clause",
    "is_operator_set",
    "like_to_regex",
    "literal_entries",
    "merge_filters",
    "normalize_filter",
    "parse_filter",
    "translate_mongo_filter",
    "translate_mongo_projection",
    "translate_mongo_sort",
    "translate_sql_filter",
    "translate_sql_sort",
    "validate_fields",
]
