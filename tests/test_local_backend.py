"""Local fallback store: per-restaurant JSON record sets."""
import asyncio
import json
from datetime import timedelta

import pytest

from orderdesk.core.exceptions import FallbackStoreError, InvalidTransition, OrderNotFound
from orderdesk.models import OrderStatus
from orderdesk.services import status_machine
from orderdesk.services.backends import LocalOrderBackend


def accept(order):
    return status_machine.transition(order, OrderStatus.ACCEPTED)


async def test_create_and_get(local_backend, order_factory):
    order = order_factory()
    stored = await local_backend.create_order(order)

    assert stored == order
    assert await local_backend.get_order(order.id, "rest_1") == order
    # restaurant id is optional; the store locates the record set
    assert await local_backend.get_order(order.id) == order


async def test_record_set_layout(local_backend, order_factory):
    order = await local_backend.create_order(order_factory())
    payload = json.loads(local_backend.record_path("rest_1").read_text())

    assert payload["restaurantId"] == "rest_1"
    raw = payload["orders"][order.id]
    assert raw["orderNumber"] == order.order_number
    assert raw["totals"]["total"] == "28.75"
    assert raw["statusHistory"][0]["status"] == "pending"


async def test_records_survive_a_new_instance(tmp_path, local_backend, order_factory):
    order = await local_backend.create_order(order_factory())
    reopened = LocalOrderBackend(data_directory=str(tmp_path))
    assert await reopened.get_order(order.id, "rest_1") == order


async def test_list_is_newest_first_and_paginated(local_backend, order_factory):
    orders = [order_factory() for _ in range(5)]
    for order in orders:
        await local_backend.create_order(order)

    first = await local_backend.list_orders("rest_1", limit=2, page=1)
    third = await local_backend.list_orders("rest_1", limit=2, page=3)
    assert [o.id for o in first] == [orders[4].id, orders[3].id]
    assert [o.id for o in third] == [orders[0].id]


async def test_restaurants_are_namespaced(local_backend, order_factory):
    ours = await local_backend.create_order(order_factory(restaurant_id="rest_1"))
    theirs = await local_backend.create_order(order_factory(restaurant_id="rest/2"))

    assert [o.id for o in await local_backend.list_orders("rest_1")] == [ours.id]
    assert [o.id for o in await local_backend.list_orders("rest/2")] == [theirs.id]
    assert local_backend.restaurant_ids() == ["rest/2", "rest_1"]
    assert await local_backend.list_orders("rest_unknown") == []


async def test_unknown_order(local_backend, order_factory):
    await local_backend.create_order(order_factory())
    with pytest.raises(OrderNotFound):
        await local_backend.get_order("missing")
    with pytest.raises(OrderNotFound):
        await local_backend.update_order("missing", accept, "rest_1")


async def test_update_persists_mutation(tmp_path, local_backend, order_factory):
    order = await local_backend.create_order(order_factory())
    updated = await local_backend.update_order(order.id, accept)

    assert updated.status == OrderStatus.ACCEPTED
    reopened = LocalOrderBackend(data_directory=str(tmp_path))
    assert (await reopened.get_order(order.id)).status == OrderStatus.ACCEPTED


async def test_failed_mutation_leaves_record_untouched(local_backend, order_factory):
    order = await local_backend.create_order(order_factory())

    def deliver(current):
        return status_machine.transition(current, OrderStatus.DELIVERED)

    with pytest.raises(InvalidTransition):
        await local_backend.update_order(order.id, deliver, "rest_1")
    assert (await local_backend.get_order(order.id, "rest_1")).status == OrderStatus.PENDING


async def test_racing_updates_apply_once(local_backend, order_factory):
    order = await local_backend.create_order(order_factory())
    results = await asyncio.gather(
        local_backend.update_order(order.id, accept, "rest_1"),
        local_backend.update_order(order.id, accept, "rest_1"),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, InvalidTransition)) == 1
    stored = await local_backend.get_order(order.id, "rest_1")
    assert [h.status for h in stored.status_history] == [OrderStatus.PENDING, OrderStatus.ACCEPTED]


async def test_colliding_order_number_is_regenerated(local_backend, order_factory):
    first = await local_backend.create_order(order_factory())
    clash = order_factory().model_copy(update={"order_number": first.order_number})
    second = await local_backend.create_order(clash)

    assert second.order_number != first.order_number
    assert second.order_number.startswith("ORD-")


async def test_duplicate_id_is_rejected(local_backend, order_factory):
    order = await local_backend.create_order(order_factory())
    with pytest.raises(ValueError):
        await local_backend.create_order(order)


async def test_corrupted_record_set(local_backend, order_factory):
    await local_backend.create_order(order_factory())
    local_backend.record_path("rest_1").write_text("{not json")

    with pytest.raises(FallbackStoreError):
        await local_backend.list_orders("rest_1")


async def test_save_orders_keeps_newest_copy(local_backend, order_factory):
    order = await local_backend.create_order(order_factory())
    newer = status_machine.transition(order, OrderStatus.ACCEPTED, now=order.updated_at + timedelta(minutes=1))
    older = order.model_copy(update={"updated_at": order.updated_at - timedelta(minutes=1)})

    await local_backend.save_orders([newer])
    await local_backend.save_orders([older])

    assert (await local_backend.get_order(order.id, "rest_1")).status == OrderStatus.ACCEPTED


async def test_health_check(local_backend):
    assert await local_backend.health_check() is True
    assert local_backend.root.exists()
