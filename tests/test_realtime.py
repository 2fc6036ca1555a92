import anyio
import pytest

from foodshare.repos.inmemory import InMemoryEntityStore
from foodshare.services.realtime import SubscriptionHub
from tests.conftest import donation_fields

pytestmark = pytest.mark.anyio

PENDING = {"status": "pending"}


async def test_subscribers_share_one_channel(store):
    hub = SubscriptionHub(store)
    first = hub.subscribe("donations", PENDING)
    second = hub.subscribe("donations", PENDING)
    with anyio.fail_after(1):
        assert await first.__anext__() == []
        # late joiner gets the last snapshot replayed
        assert await second.__anext__() == []
        assert hub.channel_count == 1
        assert hub.subscriber_count("donations", PENDING) == 2

        await store.create("donations", {"status": "pending", "title": "Rice"})
        a = await first.__anext__()
        b = await second.__anext__()
    assert [d["title"] for d in a] == [d["title"] for d in b] == ["Rice"]

    await first.aclose()
    assert hub.subscriber_count("donations", PENDING) == 1
    await second.aclose()
    assert hub.channel_count == 0


async def test_different_queries_get_different_channels(store):
    hub = SubscriptionHub(store)
    pending = hub.subscribe("donations", PENDING)
    mine = hub.subscribe("donations", {"donor_id": "u1"})
    with anyio.fail_after(1):
        await pending.__anext__()
        await mine.__anext__()
    assert hub.channel_count == 2
    await hub.close()
    assert hub.channel_count == 0
    await pending.aclose()
    await mine.aclose()


class FlakyStore(InMemoryEntityStore):
    """Store whose first subscription dies, like a dropped change stream."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    async def subscribe(self, collection, where=None, sort=None):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("change stream lost")
        async for snapshot in super().subscribe(collection, where, sort):
            yield snapshot


async def test_dead_feed_ends_subscribers_and_next_one_reopens():
    hub = SubscriptionHub(FlakyStore())
    first = hub.subscribe("donations", PENDING)
    with anyio.fail_after(1):
        with pytest.raises(StopAsyncIteration):
            await first.__anext__()
    assert hub.channel_count == 0

    second = hub.subscribe("donations", PENDING)
    with anyio.fail_after(1):
        assert await second.__anext__() == []
    assert hub.channel_count == 1
    await second.aclose()


async def test_close_ends_open_subscribers(store):
    hub = SubscriptionHub(store)
    feed = hub.subscribe("donations", PENDING)
    with anyio.fail_after(1):
        await feed.__anext__()
        await hub.close()
        with pytest.raises(StopAsyncIteration):
            await feed.__anext__()


async def test_sent_message_reaches_every_participant(services, make_user):
    donor = await make_user("donor")
    ngo = await make_user("ngo")
    did = (await services.lifecycle.create_donation(donor["id"], donation_fields()))["id"]
    cid = (await services.chats.find_or_create_chat(donor["id"], ngo["id"], did))["id"]

    where, order = {"chat_id": cid}, [("seq", 1)]
    donor_feed = services.hub.subscribe("messages", where, order)
    ngo_feed = services.hub.subscribe("messages", where, order)
    with anyio.fail_after(1):
        assert await donor_feed.__anext__() == []
        assert await ngo_feed.__anext__() == []

        sent = await services.chats.send_message(cid, ngo["id"], "Picking up at 5")
        seen = [await donor_feed.__anext__(), await ngo_feed.__anext__()]

    for snapshot in seen:
        assert [(m["id"], m["text"], m["sender_id"]) for m in snapshot] == \
            [(sent["id"], "Picking up at 5", ngo["id"])]
    await donor_feed.aclose()
    await ngo_feed.aclose()
