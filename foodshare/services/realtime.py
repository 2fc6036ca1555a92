# foodshare/services/realtime.py
"""
Shared realtime layer.

Screens that watch the same query share one underlying store subscription.
Each (collection, query, sort) key gets a channel with a pump task feeding
reference-counted local subscribers; the last snapshot is replayed to late
joiners and the pump is cancelled when the last subscriber leaves. If the
store feed dies, the channel is dropped and its subscribers simply end.
"""
import asyncio
import json
import logging
from typing import AsyncIterator, Dict, List, Optional, Set

from foodshare.repos.base import Doc, EntityStore, Sort, Where

logger = logging.getLogger(__name__)

_CLOSED = object()


def channel_key(collection: str, where: Optional[Where], sort: Optional[Sort]) -> str:
    return json.dumps([collection, where or {}, [list(s) for s in sort or []]],
                      sort_keys=True, default=str)


def _offer(q: asyncio.Queue, snapshot: List[Doc]) -> None:
    # subscribers only care about the newest snapshot
    if q.full():
        q.get_nowait()
    q.put_nowait(snapshot)


class _Channel:
    def __init__(self):
        self.queues: Set[asyncio.Queue] = set()
        self.last: Optional[List[Doc]] = None
        self.task: Optional[asyncio.Task] = None


class SubscriptionHub:
    def __init__(self, store: EntityStore):
        self.store = store
        self._channels: Dict[str, _Channel] = {}

    def subscriber_count(self, collection: str, where: Optional[Where] = None,
                         sort: Optional[Sort] = None) -> int:
        ch = self._channels.get(channel_key(collection, where, sort))
        return len(ch.queues) if ch else 0

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    async def _pump(self, ch: _Channel, key: str, collection: str, where, sort) -> None:
        try:
            async for snapshot in self.store.subscribe(collection, where, sort):
                ch.last = snapshot
                for q in list(ch.queues):
                    _offer(q, snapshot)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("subscription on %s %s stopped", collection, where)
        # the feed is gone: end current subscribers, later ones open a fresh channel
        if self._channels.get(key) is ch:
            del self._channels[key]
        for q in list(ch.queues):
            _offer(q, _CLOSED)

    async def subscribe(self, collection: str, where: Optional[Where] = None,
                        sort: Optional[Sort] = None) -> AsyncIterator[List[Doc]]:
        key = channel_key(collection, where, sort)
        ch = self._channels.get(key)
        if ch is None:
            ch = self._channels[key] = _Channel()
            ch.task = asyncio.create_task(self._pump(ch, key, collection, where, sort))
        q: asyncio.Queue = asyncio.Queue(maxsize=1)
        ch.queues.add(q)
        if ch.last is not None:
            _offer(q, ch.last)
        try:
            while True:
                snapshot = await q.get()
                if snapshot is _CLOSED:
                    return
                yield snapshot
        finally:
            ch.queues.discard(q)
            if not ch.queues and self._channels.get(key) is ch:
                del self._channels[key]
                ch.task.cancel()

    async def close(self) -> None:
        for ch in list(self._channels.values()):
            ch.task.cancel()
            for q in list(ch.queues):
                _offer(q, _CLOSED)
        self._channels.clear()
