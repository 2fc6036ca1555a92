# foodshare/repos/inmemory.py
import asyncio
import copy
from collections import defaultdict
from typing import Dict, List, Optional, Set

from .base import (
    Doc, DuplicateEntity, EntityNotFound, EntityStore, PreconditionFailed,
    Sort, Where, get_path, matches, new_id, set_path, unset_path,
)


def _sorted(docs: List[Doc], sort: Optional[Sort]) -> List[Doc]:
    # missing values sort lowest, as in Mongo
    for field, direction in reversed(list(sort or [])):
        docs = sorted(
            docs,
            key=lambda d: (get_path(d, field) is not None, get_path(d, field)),
            reverse=direction < 0,
        )
    return docs


class InMemoryEntityStore(EntityStore):
    """
    Process-local store for development and tests.

    No method awaits between reading and writing a document, so every
    conditional write runs as one uninterrupted step on the event loop and
    behaves as a compare-and-swap for concurrent coroutines.
    """

    def __init__(self):
        self.collections: Dict[str, Dict[str, Doc]] = defaultdict(dict)
        self._watchers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def _changed(self, collection: str) -> None:
        for q in list(self._watchers[collection]):
            if q.empty():
                q.put_nowait(True)

    def _out(self, doc: Optional[Doc]) -> Optional[Doc]:
        return copy.deepcopy(doc) if doc is not None else None

    async def create(self, collection: str, doc: Doc, entity_id: Optional[str] = None) -> str:
        eid = entity_id or new_id()
        col = self.collections[collection]
        if eid in col:
            raise DuplicateEntity(f"{collection}/{eid} exists")
        stored = copy.deepcopy(doc)
        stored["id"] = eid
        col[eid] = stored
        self._changed(collection)
        return eid

    async def create_if_absent(self, collection: str, entity_id: str, doc: Doc):
        col = self.collections[collection]
        if entity_id in col:
            return self._out(col[entity_id]), False
        stored = copy.deepcopy(doc)
        stored["id"] = entity_id
        col[entity_id] = stored
        self._changed(collection)
        return self._out(stored), True

    async def get(self, collection: str, entity_id: str) -> Optional[Doc]:
        return self._out(self.collections[collection].get(entity_id))

    async def find(self, collection: str, where: Optional[Where] = None,
                   sort: Optional[Sort] = None, limit: Optional[int] = None) -> List[Doc]:
        docs = [d for d in self.collections[collection].values() if matches(d, where)]
        docs = _sorted(docs, sort)
        if limit:
            docs = docs[:limit]
        return [self._out(d) for d in docs]

    async def count(self, collection: str, where: Optional[Where] = None) -> int:
        return sum(1 for d in self.collections[collection].values() if matches(d, where))

    async def update(self, collection, entity_id, patch=None, *, inc=None, unset=None,
                     push=None, add_to_set=None, precondition=None) -> Doc:
        doc = self.collections[collection].get(entity_id)
        if doc is None:
            raise EntityNotFound(collection, entity_id)
        if precondition and not matches(doc, precondition):
            raise PreconditionFailed(collection, entity_id, self._out(doc))
        self._apply(doc, patch, inc, unset, push, add_to_set)
        self._changed(collection)
        return self._out(doc)

    def _apply(self, doc, patch, inc, unset, push, add_to_set) -> None:
        for path, value in (patch or {}).items():
            set_path(doc, path, copy.deepcopy(value))
        for path, delta in (inc or {}).items():
            set_path(doc, path, (get_path(doc, path) or 0) + delta)
        for path in (unset or []):
            unset_path(doc, path)
        for path, value in (push or {}).items():
            arr = list(get_path(doc, path) or [])
            arr.append(copy.deepcopy(value))
            set_path(doc, path, arr)
        for path, value in (add_to_set or {}).items():
            arr = list(get_path(doc, path) or [])
            if value not in arr:
                arr.append(value)
            set_path(doc, path, arr)

    async def update_many(self, collection, where, patch=None, *, add_to_set=None) -> int:
        n = 0
        for doc in self.collections[collection].values():
            if matches(doc, where):
                self._apply(doc, patch, None, None, None, add_to_set)
                n += 1
        if n:
            self._changed(collection)
        return n

    async def advance_clock(self, collection: str, entity_id: str, field: str, now: int) -> int:
        doc = self.collections[collection].get(entity_id)
        if doc is None:
            raise EntityNotFound(collection, entity_id)
        value = max((get_path(doc, field) or 0) + 1, now)
        set_path(doc, field, value)
        self._changed(collection)
        return value

    async def delete(self, collection: str, entity_id: str, precondition: Optional[Where] = None) -> None:
        col = self.collections[collection]
        doc = col.get(entity_id)
        if doc is None:
            raise EntityNotFound(collection, entity_id)
        if precondition and not matches(doc, precondition):
            raise PreconditionFailed(collection, entity_id, self._out(doc))
        del col[entity_id]
        self._changed(collection)

    async def subscribe(self, collection: str, where: Optional[Where] = None,
                        sort: Optional[Sort] = None):
        q: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._watchers[collection].add(q)
        try:
            yield await self.find(collection, where, sort)
            while True:
                await q.get()
                yield await self.find(collection, where, sort)
        finally:
            self._watchers[collection].discard(q)
