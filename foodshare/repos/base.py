# foodshare/repos/base.py
"""
Entity Store contract shared by the MongoDB and in-memory implementations.

Every mutating call that takes a ``precondition`` is a compare-and-swap: the
write is applied only if the stored document matches the precondition at the
moment of the write, otherwise ``PreconditionFailed`` is raised and nothing
changes. Services build all of their race-sensitive transitions on this.

Precondition / query language (deliberately tiny, a subset of MongoDB's):
  {"field": value}               equality; None matches a missing field;
                                 a scalar also matches when the stored value
                                 is a list containing it
  {"field": {"$in": [...]}}      membership
  {"field": {"$lt": value}}      strictly less than
  {"field": {"$ne": value}}      not equal
Dotted paths address nested mappings ("unread_count.u1").
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

Doc = Dict[str, Any]
Where = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]


def new_id() -> str:
    return str(ObjectId())


class StoreError(Exception):
    pass


class EntityNotFound(StoreError):
    def __init__(self, collection: str, entity_id: str):
        super().__init__(f"{collection}/{entity_id} not found")
        self.collection = collection
        self.entity_id = entity_id


class DuplicateEntity(StoreError):
    pass


class PreconditionFailed(StoreError):
    """The conditional write lost; ``current`` is the document as last observed."""

    def __init__(self, collection: str, entity_id: str, current: Optional[Doc]):
        super().__init__(f"precondition failed on {collection}/{entity_id}")
        self.collection = collection
        self.entity_id = entity_id
        self.current = current


def get_path(doc: Doc, path: str, default: Any = None) -> Any:
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def set_path(doc: Doc, path: str, value: Any) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def unset_path(doc: Doc, path: str) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        cur = cur.get(part)
        if not isinstance(cur, dict):
            return
    cur.pop(parts[-1], None)


def _match_value(actual: Any, expected: Any) -> bool:
    if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
        for op, arg in expected.items():
            if op == "$in":
                if isinstance(actual, list):
                    if not any(a in arg for a in actual):
                        return False
                elif actual not in arg:
                    return False
            elif op == "$ne":
                if actual == arg:
                    return False
            elif op == "$lt":
                if actual is None or not actual < arg:
                    return False
            else:
                raise StoreError(f"unsupported operator {op}")
        return True
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def matches(doc: Doc, where: Optional[Where]) -> bool:
    for key, expected in (where or {}).items():
        if not _match_value(get_path(doc, key), expected):
            return False
    return True


class EntityStore(ABC):
    """Durable, subscribable document store."""

    @abstractmethod
    async def create(self, collection: str, doc: Doc, entity_id: Optional[str] = None) -> str: ...

    @abstractmethod
    async def create_if_absent(self, collection: str, entity_id: str, doc: Doc) -> Tuple[Doc, bool]:
        """Idempotent upsert keyed on ``entity_id``; returns (stored doc, created?)."""

    @abstractmethod
    async def get(self, collection: str, entity_id: str) -> Optional[Doc]: ...

    @abstractmethod
    async def find(self, collection: str, where: Optional[Where] = None,
                   sort: Optional[Sort] = None, limit: Optional[int] = None) -> List[Doc]: ...

    @abstractmethod
    async def count(self, collection: str, where: Optional[Where] = None) -> int: ...

    @abstractmethod
    async def update(self, collection: str, entity_id: str, patch: Optional[Doc] = None, *,
                     inc: Optional[Dict[str, int]] = None,
                     unset: Optional[Sequence[str]] = None,
                     push: Optional[Doc] = None,
                     add_to_set: Optional[Doc] = None,
                     precondition: Optional[Where] = None) -> Doc:
        """Apply the write atomically and return the updated document."""

    @abstractmethod
    async def update_many(self, collection: str, where: Where, patch: Optional[Doc] = None, *,
                          add_to_set: Optional[Doc] = None) -> int: ...

    @abstractmethod
    async def advance_clock(self, collection: str, entity_id: str, field: str, now: int) -> int:
        """Atomically set ``field = max(field + 1, now)`` and return the new value."""

    @abstractmethod
    async def delete(self, collection: str, entity_id: str,
                     precondition: Optional[Where] = None) -> None: ...

    @abstractmethod
    def subscribe(self, collection: str, where: Optional[Where] = None,
                  sort: Optional[Sort] = None) -> AsyncIterator[List[Doc]]:
        """Push-based full result-set snapshots; the first one is the current state."""

    async def close(self) -> None:
        return None
