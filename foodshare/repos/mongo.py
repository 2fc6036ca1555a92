# foodshare/repos/mongo.py
import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .base import (
    Doc, DuplicateEntity, EntityNotFound, EntityStore, PreconditionFailed,
    Sort, Where, new_id,
)

logger = logging.getLogger(__name__)


def _out(doc: Optional[Doc]) -> Optional[Doc]:
    if not doc:
        return doc
    d = dict(doc)
    d["id"] = str(d.pop("_id"))
    return d


def _ops(patch, inc, unset, push, add_to_set) -> Doc:
    ops: Doc = {}
    if patch:
        ops["$set"] = dict(patch)
    if inc:
        ops["$inc"] = dict(inc)
    if unset:
        ops["$unset"] = {k: "" for k in unset}
    if push:
        ops["$push"] = dict(push)
    if add_to_set:
        ops["$addToSet"] = dict(add_to_set)
    return ops


class MongoEntityStore(EntityStore):
    """
    Entity Store on MongoDB through Motor.

    Conditional writes are a single ``find_one_and_update`` whose filter
    carries the precondition, so the server decides the race. Subscriptions
    use change streams and therefore need a replica set (a single-node one
    is enough for development).
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def ensure_indexes(self):
        async def ensure_index(col, keys, name: str, **kwargs):
            existing = [ix["name"] async for ix in col.list_indexes()]
            if name in existing:
                return
            await col.create_index(keys, name=name, **kwargs)

        await ensure_index(self.db.users, [("email", ASCENDING)], "email_1", unique=True)
        await ensure_index(self.db.users, [("role", ASCENDING)], "role_1")
        await ensure_index(self.db.donations, [("status", ASCENDING)], "status_1")
        await ensure_index(self.db.donations, [("donor_id", ASCENDING)], "donor_id_1")
        await ensure_index(self.db.donations, [("accepted_by", ASCENDING)], "accepted_by_1", sparse=True)
        await ensure_index(self.db.donations, [("volunteer_id", ASCENDING)], "volunteer_id_1", sparse=True)
        await ensure_index(self.db.donations, [("status", ASCENDING), ("delivery_status", ASCENDING)],
                           "status_1_delivery_status_1")
        await ensure_index(self.db.chats, [("participants", ASCENDING)], "participants_1")
        await ensure_index(self.db.messages, [("chat_id", ASCENDING), ("seq", ASCENDING)], "chat_id_1_seq_1")
        await ensure_index(self.db.notifications, [("user_id", ASCENDING), ("created_at", DESCENDING)],
                           "user_id_1_created_at_-1")
        await ensure_index(self.db.complaints, [("created_at", DESCENDING)], "created_at_-1")
        await ensure_index(self.db.inventory, [("owner_id", ASCENDING)], "owner_id_1")
        logger.info("indexes ensured on %s", self.db.name)

    async def create(self, collection: str, doc: Doc, entity_id: Optional[str] = None) -> str:
        d = dict(doc)
        d.pop("id", None)
        d["_id"] = entity_id or new_id()
        try:
            await self.db[collection].insert_one(d)
        except DuplicateKeyError as ex:
            raise DuplicateEntity(str(ex))
        return d["_id"]

    async def create_if_absent(self, collection: str, entity_id: str, doc: Doc):
        d = {k: v for k, v in doc.items() if k not in ("id", "_id")}
        try:
            res = await self.db[collection].update_one(
                {"_id": entity_id}, {"$setOnInsert": d}, upsert=True
            )
            created = res.upserted_id is not None
        except DuplicateKeyError:
            # both sides upserted at once; the other one won
            created = False
        stored = await self.db[collection].find_one({"_id": entity_id})
        return _out(stored), created

    async def get(self, collection: str, entity_id: str) -> Optional[Doc]:
        return _out(await self.db[collection].find_one({"_id": entity_id}))

    async def find(self, collection: str, where: Optional[Where] = None,
                   sort: Optional[Sort] = None, limit: Optional[int] = None) -> List[Doc]:
        cur = self.db[collection].find(where or {})
        if sort:
            cur = cur.sort(list(sort))
        if limit:
            cur = cur.limit(limit)
        return [_out(d) async for d in cur]

    async def count(self, collection: str, where: Optional[Where] = None) -> int:
        return await self.db[collection].count_documents(where or {})

    async def _failed(self, collection: str, entity_id: str):
        current = await self.db[collection].find_one({"_id": entity_id})
        if current is None:
            return EntityNotFound(collection, entity_id)
        return PreconditionFailed(collection, entity_id, _out(current))

    async def update(self, collection, entity_id, patch=None, *, inc=None, unset=None,
                     push=None, add_to_set=None, precondition=None) -> Doc:
        flt = {"_id": entity_id, **(precondition or {})}
        doc = await self.db[collection].find_one_and_update(
            flt, _ops(patch, inc, unset, push, add_to_set),
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise await self._failed(collection, entity_id)
        return _out(doc)

    async def update_many(self, collection, where, patch=None, *, add_to_set=None) -> int:
        res = await self.db[collection].update_many(where, _ops(patch, None, None, None, add_to_set))
        return res.modified_count

    async def advance_clock(self, collection: str, entity_id: str, field: str, now: int) -> int:
        pipeline = [{"$set": {field: {"$max": [{"$add": [{"$ifNull": [f"${field}", 0]}, 1]}, now]}}}]
        doc = await self.db[collection].find_one_and_update(
            {"_id": entity_id}, pipeline, return_document=ReturnDocument.AFTER
        )
        if doc is None:
            raise EntityNotFound(collection, entity_id)
        return int(doc[field])

    async def delete(self, collection: str, entity_id: str, precondition: Optional[Where] = None) -> None:
        res = await self.db[collection].delete_one({"_id": entity_id, **(precondition or {})})
        if res.deleted_count == 0:
            raise await self._failed(collection, entity_id)

    async def subscribe(self, collection: str, where: Optional[Where] = None,
                        sort: Optional[Sort] = None):
        yield await self.find(collection, where, sort)
        async with self.db[collection].watch() as stream:
            async for _change in stream:
                yield await self.find(collection, where, sort)

    async def close(self) -> None:
        self.db.client.close()
