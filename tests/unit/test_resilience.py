"""Tests for retry policy and transient-error classification."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from pymongo.errors import DuplicateKeyError, OperationFailure
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from databasekit.contracts import RetryStrategy, TransactionOptions
from databasekit.exceptions import ValidationError
from databasekit.resilience import (
    RetryPolicy,
    describe_error,
    extract_sqlstate,
    is_transient_mongo_error,
    is_transient_postgres_error,
    run_with_retry,
)


class DriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__("SELECT secret FROM users")
        self.sqlstate = sqlstate


class TestSqlstateClassification:
    """Tests for is_transient_postgres_error."""

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "08006", "08001", "08003"])
    def test_transient_sqlstates(self, sqlstate):
        assert is_transient_postgres_error(OperationalError("SELECT 1", {}, DriverError(sqlstate)))

    @pytest.mark.parametrize("sqlstate", ["23505", "23503", "42P01"])
    def test_permanent_sqlstates(self, sqlstate):
        assert not is_transient_postgres_error(IntegrityError("INSERT", {}, DriverError(sqlstate)))

    def test_invalidated_connection_is_transient(self):
        error = DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)

        assert is_transient_postgres_error(error)

    def test_sqlalchemy_error_code_is_not_mistaken_for_sqlstate(self):
        assert extract_sqlstate(OperationalError("SELECT 1", {}, Exception("no code"))) is None

    def test_sqlstate_found_through_cause(self):
        wrapper = RuntimeError("wrapped")
        wrapper.__cause__ = DriverError("40001")

        assert extract_sqlstate(wrapper) == "40001"

    def test_description_hides_statement(self):
        message = describe_error(IntegrityError("INSERT", {}, DriverError("23505")))

        assert "secret" not in message
        assert "23505" in message


class TestMongoClassification:
    """Tests for is_transient_mongo_error."""

    def test_write_conflict_is_transient(self):
        assert is_transient_mongo_error(OperationFailure("conflict", code=112))

    @pytest.mark.parametrize("label", ["TransientTransactionError", "UnknownTransactionCommitResult"])
    def test_labels_are_transient(self, label):
        assert is_transient_mongo_error(OperationFailure("x", code=1, details={"errorLabels": [label]}))

    def test_duplicate_key_is_permanent(self):
        assert not is_transient_mongo_error(DuplicateKeyError("dup", code=11000))

    def test_non_driver_errors_are_permanent(self):
        assert not is_transient_mongo_error(ValueError("x"))


class TestRetryPolicy:
    """Tests for delay calculation."""

    def test_fixed_delay_is_constant(self):
        policy = RetryPolicy(max_retries=3, delay_ms=250)

        assert [policy.calculate_delay(n) for n in range(3)] == [0.25, 0.25, 0.25]

    def test_exponential_delay_doubles_and_caps(self):
        policy = RetryPolicy(max_retries=5, delay_ms=100, strategy="exponential", max_delay_ms=350)

        assert [policy.calculate_delay(n) for n in range(4)] == [0.1, 0.2, 0.35, 0.35]

    def test_from_transaction_options(self):
        options = TransactionOptions(max_retries=2, retry_delay_ms=50, retry_strategy=RetryStrategy.EXPONENTIAL)

        policy = RetryPolicy.from_transaction_options(options)

        assert (policy.max_retries, policy.delay_ms, policy.strategy) == (2, 50, RetryStrategy.EXPONENTIAL)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_retries=-1)

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(delay_ms=100, jitter=True)

        assert all(0.05 <= policy.calculate_delay(0) <= 0.15 for _ in range(20))


class TestRunWithRetry:
    """Tests for run_with_retry."""

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self):
        operation = AsyncMock(side_effect=[KeyError("a"), KeyError("b"), "ok"])
        policy = RetryPolicy(max_retries=2, delay_ms=100, strategy="exponential")

        with patch("databasekit.resilience.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await run_with_retry(operation, policy, lambda e: isinstance(e, KeyError))

        assert result == "ok"
        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_non_retryable_error_raises_immediately(self):
        operation = AsyncMock(side_effect=ValueError("permanent"))

        with pytest.raises(ValueError):
            await run_with_retry(operation, RetryPolicy(max_retries=3, delay_ms=0), lambda e: False)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self):
        operation = AsyncMock(side_effect=[KeyError("1"), KeyError("2"), KeyError("3")])

        with pytest.raises(KeyError) as exc_info:
            await run_with_retry(operation, RetryPolicy(max_retries=2, delay_ms=0), lambda e: True)

        assert exc_info.value.args == ("3",)
        assert operation.await_count == 3
