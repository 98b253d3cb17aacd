"""Backend adapters: connection lifecycle, repositories and transactions."""

from databasekit.adapters.base import (
    DatabaseAdapter,
    TransactionContext,
    TransactionCoordinator,
    TransactionState,
)
from databasekit.adapters.mongo import MongoAdapter, MongoTransactionCoordinator
from databasekit.adapters.postgres import PostgresAdapter, PostgresTransactionCoordinator

__all__ = [
    "DatabaseAdapter",
    "MongoAdapter",
    "MongoTransactionCoordinator",
    "PostgresAdapter",
    "PostgresTransactionCoordinator",
    "TransactionContext",
    "TransactionCoordinator",
    "TransactionState",
]
