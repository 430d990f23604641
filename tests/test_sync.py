"""View sync channel and order feeds."""
import asyncio

import pytest

from orderdesk.models import SyncEvent
from orderdesk.services.cart import CartAggregator
from orderdesk.services.sync import OrderFeed, ViewSyncChannel


async def eventually(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def test_publish_reaches_subscribers_of_that_event(channel):
    created, updated = [], []
    channel.subscribe(SyncEvent.ORDER_CREATED, created.append)
    channel.subscribe("order.updated", updated.append)

    channel.publish("order.created", "rest_1")

    assert [m.restaurant_id for m in created] == ["rest_1"]
    assert updated == []


def test_disposer_is_idempotent(channel):
    received = []
    dispose = channel.subscribe(SyncEvent.ORDER_UPDATED, received.append)
    other = channel.subscribe(SyncEvent.ORDER_UPDATED, received.append)

    dispose()
    dispose()
    assert channel.subscriber_count(SyncEvent.ORDER_UPDATED) == 1

    channel.publish(SyncEvent.ORDER_UPDATED, "rest_1")
    assert len(received) == 1
    other()
    assert channel.subscriber_count() == 0


def test_failing_handler_does_not_stop_others(channel):
    received = []

    def broken(message):
        raise RuntimeError("view crashed")

    channel.subscribe(SyncEvent.ORDER_CREATED, broken)
    channel.subscribe(SyncEvent.ORDER_CREATED, received.append)

    channel.publish(SyncEvent.ORDER_CREATED, "rest_1")
    assert len(received) == 1


def test_unknown_event_name_is_rejected(channel):
    with pytest.raises(ValueError):
        channel.publish("order.deleted", "rest_1")


async def test_async_handlers_are_scheduled(channel):
    received = []

    async def handler(message):
        received.append(message.restaurant_id)

    channel.subscribe(SyncEvent.ORDER_CREATED, handler)
    channel.publish(SyncEvent.ORDER_CREATED, "rest_1")

    await eventually(lambda: received == ["rest_1"])


async def test_feed_follows_store_changes(store, channel, burger, customer, pickup):
    renders = []
    async with OrderFeed(store, channel, "rest_1", on_change=renders.append, poll_interval=60) as feed:
        assert feed.orders == []
        cart = CartAggregator()
        cart.add_item(burger)
        order = await store.submit_cart("rest_1", cart, customer, pickup)

        await eventually(lambda: [o.id for o in feed.orders] == [order.id])
        await store.update_status(order.id, "accepted")
        await eventually(lambda: feed.orders[0].status.value == "accepted")

    assert len(renders) == feed.refresh_count
    assert channel.subscriber_count() == 0
    assert not feed.running


async def test_feed_ignores_other_restaurants(store, channel, burger, customer, pickup):
    async with OrderFeed(store, channel, "rest_1", poll_interval=60) as feed:
        baseline = feed.refresh_count
        cart = CartAggregator()
        cart.add_item(burger)
        await store.submit_cart("rest_2", cart, customer, pickup)
        await asyncio.sleep(0.05)
        assert feed.refresh_count == baseline


class GatedStore:
    """Store whose list() blocks until released."""

    def __init__(self):
        self.calls = 0
        self.gate = asyncio.Event()

    async def list(self, restaurant_id, order_filter=None):
        self.calls += 1
        await self.gate.wait()
        return []


async def test_concurrent_refreshes_coalesce():
    gated = GatedStore()
    feed = OrderFeed(gated, ViewSyncChannel(), "rest_1", poll_interval=60)

    first = feed.request_refresh()
    second = feed.request_refresh()
    assert first is second

    gated.gate.set()
    await asyncio.gather(first, feed.refresh())
    assert gated.calls == 1

    await feed.refresh()
    assert gated.calls == 2


async def test_polling_refreshes_without_events(store, channel):
    async with OrderFeed(store, channel, "rest_1", poll_interval=0.01) as feed:
        await eventually(lambda: feed.refresh_count >= 3)


class FlakyStore:
    """Store whose list() breaks with a non-business error on some calls."""

    def __init__(self, broken_calls):
        self.calls = 0
        self.broken_calls = set(broken_calls)

    async def list(self, restaurant_id, order_filter=None):
        self.calls += 1
        if self.calls in self.broken_calls:
            raise ValueError("restaurant id is required")
        return []


async def test_polling_survives_unexpected_errors(channel, caplog):
    flaky = FlakyStore(broken_calls={2, 3})
    async with OrderFeed(flaky, channel, "rest_1", poll_interval=0.01) as feed:
        await eventually(lambda: feed.refresh_count >= 3)
        assert feed.running

    assert flaky.calls >= 5
    assert "unexpected error while polling rest_1" in caplog.text
