"""Repository layer: one shared contract, one implementation per backend."""

from databasekit.repositories.base import BaseRepository
from databasekit.repositories.mongo_repository import MongoRepository
from databasekit.repositories.postgres_repository import PostgresRepository

__all__ = [
    "BaseRepository",
    "MongoRepository",
    "PostgresRepository",
]
