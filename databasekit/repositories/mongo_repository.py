"""Document repository backed by a motor collection."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pymongo import ReturnDocument

from databasekit.contracts import Entity, MongoRepositoryOptions
from databasekit.filters.mongo import (
    translate_mongo_filter,
    translate_mongo_projection,
    translate_mongo_sort,
)
from databasekit.repositories.base import BaseRepository


def to_object_id(value: Any) -> Any:
    """Coerce 24-hex strings to ``ObjectId``; other values pass through."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


class MongoRepository(BaseRepository[MongoRepositoryOptions]):
    """Repository over one MongoDB collection.

    When bound to a client session every call joins that session's
    transaction and first checks ``ensure_active``.
    """

    def __init__(
        self,
        options: MongoRepositoryOptions,
        collection: AsyncIOMotorCollection,
        session: AsyncIOMotorClientSession | None = None,
        ensure_connected: Callable[[], None] | None = None,
        ensure_active: Callable[[], None] | None = None,
    ) -> None:
        super().__init__(options)
        self.collection = collection
        self._session = session
        self._ensure_connected = ensure_connected
        self._ensure_active = ensure_active

    @property
    def supports_concurrent_reads(self) -> bool:
        return self._session is None

    def _kwargs(self) -> dict[str, Any]:
        if self._ensure_connected is not None:
            self._ensure_connected()
        if self._ensure_active is not None:
            self._ensure_active()
        return {"session": self._session} if self._session is not None else {}

    @property
    def entity_name(self) -> str:
        return self.collection.name

    def _id_filter(self, entity_id: Any) -> dict[str, Any]:
        return {"_id": to_object_id(entity_id)}

    def _entity_id(self, entity: Entity) -> Any:
        return entity["_id"]

    # ===========================================
    # PRIMITIVES
    # ===========================================

    async def _insert(self, data: Entity) -> Entity:
        result = await self.collection.insert_one(data, **self._kwargs())
        return {**data, "_id": result.inserted_id}

    async def _insert_many(self, items: list[Entity]) -> list[Entity]:
        result = await self.collection.insert_many(items, **self._kwargs())
        return [{**item, "_id": inserted} for item, inserted in zip(items, result.inserted_ids)]

    async def _find(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        offset: int | None = None,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> list[Entity]:
        cursor = self.collection.find(
            translate_mongo_filter(filter),
            translate_mongo_projection(fields),
            **self._kwargs(),
        )
        if sort:
            cursor = cursor.sort(translate_mongo_sort(sort))
        if offset:
            cursor = cursor.skip(offset)
        if limit is not None:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def _count(self, filter: dict[str, Any]) -> int:
        return await self.collection.count_documents(translate_mongo_filter(filter), **self._kwargs())

    async def _exists(self, filter: dict[str, Any]) -> bool:
        found = await self.collection.find_one(
            translate_mongo_filter(filter), {"_id": 1}, **self._kwargs()
        )
        return found is not None

    async def _distinct(self, field: str, filter: dict[str, Any]) -> list[Any]:
        return await self.collection.distinct(field, translate_mongo_filter(filter), **self._kwargs())

    async def _update_one(self, filter: dict[str, Any], values: Entity) -> Entity | None:
        return await self.collection.find_one_and_update(
            translate_mongo_filter(filter),
            {"$set": values},
            return_document=ReturnDocument.AFTER,
            **self._kwargs(),
        )

    async def _update(self, filter: dict[str, Any], values: Entity) -> int:
        result = await self.collection.update_many(
            translate_mongo_filter(filter), {"$set": values}, **self._kwargs()
        )
        return result.matched_count

    async def _delete_one(self, filter: dict[str, Any]) -> bool:
        result = await self.collection.delete_one(translate_mongo_filter(filter), **self._kwargs())
        return result.deleted_count > 0

    async def _delete(self, filter: dict[str, Any]) -> int:
        result = await self.collection.delete_many(translate_mongo_filter(filter), **self._kwargs())
        return result.deleted_count


__all__ = [
    "MongoRepository",
    "to_object_id",
]
