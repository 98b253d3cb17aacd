"""Adapter contract and the shared transaction state machine.

Each backend supplies a ``TransactionCoordinator`` with the five native
steps (acquire, begin, commit, abort, release). ``TransactionCoordinator.run``
drives them in a fixed order for every attempt and owns the retry loop, so
both backends get identical cleanup and retry semantics.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from databasekit.contracts import HealthCheckResult, Repository, RepositoryOptions, TransactionOptions
from databasekit.exceptions import ConnectionError, TransactionError
from databasekit.resilience import RetryPolicy, describe_error, run_with_retry
from databasekit.shared.utils.logging import get_logger

logger = get_logger(__name__)

H = TypeVar("H")
T = TypeVar("T")

# (options, native handle, guard raising once the transaction is over)
RepositoryFactory = Callable[[RepositoryOptions, Any, Callable[[], None]], Repository]


class TransactionState(str, Enum):
    """Lifecycle of one transaction attempt."""

    IDLE = "idle"
    BEGUN = "begun"
    COMMITTED = "committed"
    ABORTED = "aborted"


class TransactionContext(Generic[H]):
    """Handle passed to a ``with_transaction`` callback.

    Attributes:
        transaction: The native handle (``AsyncSession`` or motor client session)
    """

    def __init__(
        self,
        transaction: H,
        repository_factory: RepositoryFactory,
    ) -> None:
        self.transaction = transaction
        self._repository_factory = repository_factory
        self._final_state: TransactionState | None = None

    @property
    def closed(self) -> bool:
        return self._final_state is not None

    def ensure_active(self) -> None:
        """Raise once the attempt that owns this context has finished."""
        if self._final_state is not None:
            raise TransactionError("Transaction context is no longer active", state=self._final_state.value)

    def create_repository(self, options: RepositoryOptions) -> Repository:
        """Repository whose operations all join this transaction.

        The repository checks ``ensure_active`` before every operation, so
        it cannot be used after the callback returns.

        Raises:
            TransactionError: If the transaction has already finished
        """
        self.ensure_active()
        return self._repository_factory(options, self.transaction, self.ensure_active)

    def close(self, state: TransactionState) -> None:
        self._final_state = state


class TransactionCoordinator(ABC, Generic[H]):
    """Runs a callback inside one native transaction per attempt."""

    backend: str = ""

    def __init__(
        self,
        repository_factory: RepositoryFactory,
    ) -> None:
        self._repository_factory = repository_factory

    @abstractmethod
    async def acquire(self) -> H:
        """Obtain a fresh native handle (session) for one attempt."""

    @abstractmethod
    async def begin(self, handle: H, options: TransactionOptions) -> None: ...

    @abstractmethod
    async def commit(self, handle: H) -> None: ...

    @abstractmethod
    async def abort(self, handle: H) -> None: ...

    @abstractmethod
    async def release(self, handle: H) -> None: ...

    @abstractmethod
    def is_transient_error(self, error: BaseException) -> bool: ...

    def validate_options(self, options: TransactionOptions) -> None:
        """Reject options this backend cannot honour, before any attempt."""

    async def _attempt(
        self,
        callback: Callable[[TransactionContext[H]], Awaitable[T]],
        options: TransactionOptions,
    ) -> T:
        handle = await self.acquire()
        state = TransactionState.IDLE
        context = TransactionContext(handle, self._repository_factory)
        try:
            await self.begin(handle, options)
            state = TransactionState.BEGUN
            result = await callback(context)
            await self.commit(handle)
            state = TransactionState.COMMITTED
            return result
        except Exception as e:
            if state is TransactionState.BEGUN:
                try:
                    await self.abort(handle)
                except Exception as abort_error:
                    logger.error(
                        "transaction_abort_failed",
                        backend=self.backend,
                        error_type=type(abort_error).__name__,
                        error_msg=describe_error(abort_error),
                    )
                state = TransactionState.ABORTED
            logger.debug(
                "transaction_failed",
                backend=self.backend,
                state=state.value,
                error_type=type(e).__name__,
            )
            raise
        finally:
            context.close(state)
            await self.release(handle)

    async def run(
        self,
        callback: Callable[[TransactionContext[H]], Awaitable[T]],
        options: TransactionOptions | None = None,
    ) -> T:
        """Run ``callback`` atomically, retrying transient failures.

        Returns:
            Whatever the callback returned on the committed attempt
        """
        options = options or TransactionOptions()
        self.validate_options(options)
        policy = RetryPolicy.from_transaction_options(options)
        return await run_with_retry(
            lambda: self._attempt(callback, options),
            policy,
            self.is_transient_error,
            name=f"{self.backend}_transaction",
        )


class DatabaseAdapter(ABC):
    """Connection lifecycle, repository factory and transactions for one backend."""

    type: str = ""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection; calling it again while connected is a no-op."""

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def create_repository(self, options: RepositoryOptions) -> Repository: ...

    @abstractmethod
    async def with_transaction(
        self,
        callback: Callable[[TransactionContext[Any]], Awaitable[T]],
        options: TransactionOptions | None = None,
    ) -> T: ...

    @abstractmethod
    async def health_check(self) -> HealthCheckResult:
        """Probe the backend. Never raises; failures report ``healthy=False``."""

    def _require_connection(self) -> None:
        if not self.is_connected():
            raise ConnectionError(
                f"{self.type} adapter is not connected; call connect() first",
                backend=self.type,
            )

    async def __aenter__(self) -> DatabaseAdapter:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()


__all__ = [
    "DatabaseAdapter",
    "TransactionContext",
    "TransactionCoordinator",
    "TransactionState",
]
