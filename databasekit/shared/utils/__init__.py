"""Utility modules."""

from databasekit.shared.utils.datetime_utils import isoformat_utc, utcnow
from databasekit.shared.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "isoformat_utc",
    "utcnow",
]
