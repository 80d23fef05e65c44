"""Tests for the event bus, the reconnecting offer change feed and the view cache."""

import asyncio

import pytest

from liquidswap.core.events import EventBus, SubscriptionClosed
from liquidswap.services.change_feed import (
    OfferChangeFeed,
    OfferViewCache,
    OfferViews,
    user_event_predicate,
)
from liquidswap.services.offer_store import OFFER_CHANGED


async def wait_for(condition, timeout: float = 2.0) -> None:
    async def poll():
        while not condition():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


async def start_feed(feed: OfferChangeFeed, event_bus: EventBus, user_id: str, received: list):
    async def on_change(change):
        received.append(change)

    subscribers_before = event_bus.subscriber_count
    task = asyncio.create_task(feed.run(user_id, on_change))
    await wait_for(lambda: event_bus.subscriber_count > subscribers_before)
    return task


async def stop(task: asyncio.Task) -> None:
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_subscribe_filters_and_closes():
    bus = EventBus()
    seen = []

    async def consume():
        async for event in bus.subscribe(lambda e: e["data"]["n"] % 2 == 0):
            seen.append(event["data"]["n"])

    task = asyncio.create_task(consume())
    await wait_for(lambda: bus.subscriber_count == 1)

    for n in range(4):
        await bus.publish("tick", {"n": n})
    await wait_for(lambda: len(seen) == 2)
    assert seen == [0, 2]

    bus.disconnect_all()
    with pytest.raises(SubscriptionClosed):
        await task
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_slow_subscriber_is_dropped():
    bus = EventBus(max_queue_size=1)
    subscription = bus.subscribe()
    pending = asyncio.create_task(subscription.__anext__())
    await wait_for(lambda: bus.subscriber_count == 1)

    # No chance for the consumer to run between the two publishes
    await bus.publish("one", {})
    await bus.publish("two", {})

    assert bus.subscriber_count == 0
    with pytest.raises(SubscriptionClosed):
        await pending


@pytest.mark.asyncio
async def test_feed_receives_own_offer_changes(app, engine, seed):
    event_bus = app.state.event_bus
    feed = OfferChangeFeed(event_bus, retry_seconds=0.01)
    bob_changes, carol_changes = [], []
    bob_task = await start_feed(feed, event_bus, seed.users["bob"], bob_changes)
    carol_task = await start_feed(OfferChangeFeed(event_bus), event_bus, seed.users["carol"], carol_changes)

    offer = await engine.create_offer(seed.users["alice"], [seed.items["a1"]], [seed.items["b1"]])
    await engine.respond_to_offer(offer.id, seed.users["bob"], accept=True)

    await wait_for(lambda: len(bob_changes) == 2)
    assert bob_changes[0] == {
        "change": "insert",
        "offer_id": offer.id,
        "sender_id": seed.users["alice"],
        "receiver_id": seed.users["bob"],
        "status": "pending",
    }
    assert bob_changes[1]["change"] == "update"
    assert bob_changes[1]["status"] == "accepted"
    assert carol_changes == []

    await stop(bob_task)
    await stop(carol_task)


@pytest.mark.asyncio
async def test_feed_resubscribes_after_disconnect():
    bus = EventBus()
    feed = OfferChangeFeed(bus, retry_seconds=0.01)
    received = []
    task = await start_feed(feed, bus, "bob", received)

    bus.disconnect_all()
    await wait_for(lambda: feed.connect_count == 2 and bus.subscriber_count == 1)

    await bus.publish(OFFER_CHANGED, {"offer_id": "o1", "sender_id": "alice", "receiver_id": "bob"})
    await wait_for(lambda: len(received) == 1)
    assert received[0]["offer_id"] == "o1"

    await stop(task)
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_feed_survives_handler_errors():
    bus = EventBus()
    feed = OfferChangeFeed(bus, retry_seconds=0.01)
    calls = []

    async def flaky(change):
        calls.append(change["offer_id"])
        if len(calls) == 1:
            raise RuntimeError("handler failed")

    task = asyncio.create_task(feed.run("bob", flaky))
    await wait_for(lambda: bus.subscriber_count == 1)
    await bus.publish(OFFER_CHANGED, {"offer_id": "o1", "sender_id": "bob", "receiver_id": "x"})

    await wait_for(lambda: feed.connect_count == 2 and bus.subscriber_count == 1)
    await bus.publish(OFFER_CHANGED, {"offer_id": "o2", "sender_id": "bob", "receiver_id": "x"})
    await wait_for(lambda: calls == ["o1", "o2"])

    await stop(task)


def test_user_event_predicate():
    predicate = user_event_predicate("bob")

    assert predicate({"type": OFFER_CHANGED, "data": {"sender_id": "alice", "receiver_id": "bob"}})
    assert not predicate({"type": OFFER_CHANGED, "data": {"sender_id": "alice", "receiver_id": "carol"}})
    assert predicate({"type": "notification", "data": {"user_id": "bob"}})
    assert not predicate({"type": "notification", "data": {"user_id": "alice"}})
    assert not predicate({"type": "trade_completed", "data": {"sender_id": "bob"}})


@pytest.mark.asyncio
async def test_view_cache_reads_through_and_invalidates():
    loads = []

    async def loader(user_id):
        loads.append(user_id)
        return OfferViews(incoming=[len(loads)])

    cache = OfferViewCache("bob", loader)

    assert (await cache.get()).incoming == [1]
    assert (await cache.get()).incoming == [1]
    assert loads == ["bob"]

    await cache.handle_change({"offer_id": "o1"})
    assert not cache.is_loaded
    assert (await cache.get()).incoming == [2]

    assert (await cache.refresh()).incoming == [3]


@pytest.mark.asyncio
async def test_view_cache_with_feed(app, make_engine, seed):
    """Views loaded from the engine are refreshed after a change arrives on the feed."""
    event_bus = app.state.event_bus
    bob = seed.users["bob"]
    cache = OfferViewCache(bob, make_engine().load_offer_views)
    feed = OfferChangeFeed.from_settings(event_bus, app.state.settings)

    views = await cache.get()
    assert views.incoming == []

    task = asyncio.create_task(feed.run(bob, cache.handle_change))
    await wait_for(lambda: event_bus.subscriber_count == 1)

    await make_engine().create_offer(seed.users["alice"], [seed.items["a1"]], [seed.items["b1"]])
    await wait_for(lambda: not cache.is_loaded)

    views = await cache.get()
    assert [h.offered_item.id for h in views.incoming] == [seed.items["a1"]]
    assert views.related_profiles[seed.users["alice"]].username == "alice"

    await stop(task)
