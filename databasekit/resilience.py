"""Retry policy and transient-error classification.

Transaction coordinators retry a whole begin → callback → commit cycle only
when the backend reports a failure that is safe to repeat (write conflicts,
serialization failures, dropped connections). Validation and constraint
errors are never retried.
"""

from __future__ import annotations

import asyncio
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from pymongo.errors import PyMongoError
from sqlalchemy.exc import DBAPIError

from databasekit.contracts import RetryStrategy, TransactionOptions
from databasekit.exceptions import ValidationError
from databasekit.shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})
# connection_exception class
CONNECTION_SQLSTATE_CLASS = "08"

_SQLSTATE_PATTERN = re.compile(r"^[0-9A-Z]{5}$")

MONGO_TRANSIENT_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")
MONGO_WRITE_CONFLICT = 112


def describe_error(error: BaseException) -> str:
    """Describe an error without leaking SQL, URLs or document contents."""
    error_type = type(error).__name__

    safe_messages = {
        "OperationalError": "Database operational error",
        "IntegrityError": "Data integrity constraint violation",
        "ProgrammingError": "Query execution error",
        "DBAPIError": "Database driver error",
        "OperationFailure": "Database operation failed",
        "WriteConflict": "Write conflict",
        "AutoReconnect": "Database connection lost",
        "ServerSelectionTimeoutError": "No database server available",
        "TimeoutError": "Operation timed out",
    }

    message = safe_messages.get(error_type, f"Error of type {error_type}")
    code = extract_sqlstate(error)
    if code:
        message = f"{message} (sqlstate {code})"
    return message


def extract_sqlstate(error: BaseException) -> str | None:
    """Find the five-character SQLSTATE carried by a driver error.

    Looks at the error itself, SQLAlchemy's wrapped ``orig`` and the
    exception cause, checking the attribute names used by asyncpg,
    psycopg and psycopg2.
    """
    seen: set[int] = set()
    candidates: list[Any] = [error]
    while candidates:
        current = candidates.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        for attr in ("sqlstate", "pgcode", "code"):
            value = getattr(current, attr, None)
            if isinstance(value, str) and _SQLSTATE_PATTERN.match(value):
                return value
        candidates.extend([getattr(current, "orig", None), getattr(current, "__cause__", None)])
    return None


def is_transient_postgres_error(error: BaseException) -> bool:
    """Whether a relational error is safe to retry."""
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    sqlstate = extract_sqlstate(error)
    if sqlstate is None:
        return False
    return sqlstate in RETRYABLE_SQLSTATES or sqlstate.startswith(CONNECTION_SQLSTATE_CLASS)


def is_transient_mongo_error(error: BaseException) -> bool:
    """Whether a document-store error is safe to retry."""
    if not isinstance(error, PyMongoError):
        return False
    if any(error.has_error_label(label) for label in MONGO_TRANSIENT_LABELS):
        return True
    return getattr(error, "code", None) == MONGO_WRITE_CONFLICT


@dataclass
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = +1)
        delay_ms: Constant delay, or base delay for exponential backoff
        strategy: ``fixed`` keeps the delay constant; ``exponential`` doubles it
        max_delay_ms: Ceiling applied to exponential delays
        exponential_base: Growth factor for exponential backoff
        jitter: Randomize each delay between 50% and 150%
    """

    max_retries: int = 0
    delay_ms: float = 100
    strategy: RetryStrategy = RetryStrategy.FIXED
    max_delay_ms: float = 10_000
    exponential_base: float = 2.0
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValidationError("max_retries must be non-negative", field="max_retries")
        if self.delay_ms < 0:
            raise ValidationError("retry delay must be non-negative", field="retry_delay_ms")
        self.strategy = RetryStrategy(self.strategy)

    @classmethod
    def from_transaction_options(cls, options: TransactionOptions) -> RetryPolicy:
        return cls(
            max_retries=options.max_retries,
            delay_ms=options.retry_delay_ms,
            strategy=options.retry_strategy,
            max_delay_ms=options.max_retry_delay_ms,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-indexed)."""
        delay_ms = self.delay_ms
        if self.strategy is RetryStrategy.EXPONENTIAL:
            delay_ms = min(self.delay_ms * (self.exponential_base ** attempt), self.max_delay_ms)
        if self.jitter:
            delay_ms = delay_ms * (0.5 + random.random())
        return delay_ms / 1000


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    name: str = "operation",
) -> T:
    """Run ``operation`` and repeat it on retryable failures.

    Non-retryable errors propagate immediately without consuming retry
    budget. When the budget is exhausted the last error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= policy.max_retries:
                if policy.max_retries:
                    logger.error(
                        "retry_exhausted",
                        operation=name,
                        attempts=attempt + 1,
                        error_type=type(e).__name__,
                        error_msg=describe_error(e),
                    )
                raise
            delay = policy.calculate_delay(attempt)
            attempt += 1
            logger.warning(
                "retry_attempt",
                operation=name,
                attempt=attempt,
                max_retries=policy.max_retries,
                delay=round(delay, 3),
                error_type=type(e).__name__,
                error_msg=describe_error(e),
            )
            await asyncio.sleep(delay)


__all__ = [
    "RetryPolicy",
    "describe_error",
    "extract_sqlstate",
    "is_transient_mongo_error",
    "is_transient_postgres_error",
    "run_with_retry",
]
