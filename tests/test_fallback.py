"""Remote-then-local fallback behaviour."""
import httpx
import pytest

from orderdesk.core.config import EnvironmentMode, get_settings
from orderdesk.core.exceptions import FallbackStoreError, InvalidTransition, RemoteRejected
from orderdesk.models import OrderStatus
from orderdesk.services import status_machine
from orderdesk.services.backends import (
    FallbackOrderBackend,
    MockRemoteOrderBackend,
    RemoteOrderBackend,
    reset_order_backend,
)
from orderdesk.services.cart import CartAggregator
from orderdesk.services.orders import OrderStore, get_order_store, reset_order_store

from fakes import FailingBackend, HangingBackend


def accept(order):
    return status_machine.transition(order, OrderStatus.ACCEPTED)


def instant_remote():
    return MockRemoteOrderBackend(failure_rate=0.0, min_latency=0.0, max_latency=0.0)


async def test_remote_timeout_on_submit_lands_in_local_store(local_backend, channel, customer, pickup, burger):
    backend = FallbackOrderBackend(primary=HangingBackend(), fallback=local_backend, timeout=0.05)
    store = OrderStore(backend=backend, channel=channel, vat_rate_percent=15)
    cart = CartAggregator()
    cart.add_item(burger, quantity=2)

    order = await store.submit_cart("rest_1", cart, customer, pickup)

    assert [o.id for o in await local_backend.list_orders("rest_1")] == [order.id]
    assert [o.id for o in await store.list("rest_1")] == [order.id]
    assert backend.telemetry.fallbacks["create_order"] == 1
    assert backend.telemetry.fallbacks["list_orders"] == 1
    assert "exceeded" in backend.telemetry.last_failure


async def test_failing_primary_serves_everything_locally(local_backend, order_factory):
    backend = FallbackOrderBackend(primary=FailingBackend(), fallback=local_backend)
    order = await backend.create_order(order_factory())

    assert (await backend.get_order(order.id)).id == order.id
    updated = await backend.update_order(order.id, accept)
    assert updated.status == OrderStatus.ACCEPTED
    assert (await local_backend.get_order(order.id)).status == OrderStatus.ACCEPTED
    assert backend.telemetry.total_fallbacks == 3


async def test_fallback_is_not_sticky(local_backend, order_factory):
    primary = FailingBackend(failures=1)
    backend = FallbackOrderBackend(primary=primary, fallback=local_backend, mirror=False)

    local_only = await backend.create_order(order_factory())
    remote = await backend.create_order(order_factory())

    assert primary.calls == 2
    assert not local_only.id.startswith("mock_")
    assert remote.id.startswith("mock_")
    assert backend.telemetry.primary_calls == 2
    assert backend.telemetry.total_fallbacks == 1


async def test_remote_results_are_mirrored_locally(local_backend, order_factory):
    backend = FallbackOrderBackend(primary=instant_remote(), fallback=local_backend, mirror=True)
    created = await backend.create_order(order_factory())
    await backend.update_order(created.id, accept)

    mirrored = await local_backend.get_order(created.id, "rest_1")
    assert mirrored.status == OrderStatus.ACCEPTED
    assert backend.telemetry.total_fallbacks == 0


async def test_mirroring_can_be_disabled(local_backend, order_factory):
    backend = FallbackOrderBackend(primary=instant_remote(), fallback=local_backend, mirror=False)
    await backend.create_order(order_factory())
    assert await local_backend.list_orders("rest_1") == []


async def test_orders_unknown_to_remote_are_found_locally(local_backend, order_factory):
    backend = FallbackOrderBackend(primary=instant_remote(), fallback=local_backend)
    order = await local_backend.create_order(order_factory())

    assert (await backend.get_order(order.id)).id == order.id
    assert (await backend.update_order(order.id, accept)).status == OrderStatus.ACCEPTED
    assert backend.telemetry.total_fallbacks == 0


async def test_business_errors_are_not_retried_locally(local_backend, order_factory):
    backend = FallbackOrderBackend(primary=instant_remote(), fallback=local_backend, mirror=True)
    created = await backend.create_order(order_factory())
    await backend.update_order(created.id, accept)

    with pytest.raises(InvalidTransition):
        await backend.update_order(created.id, accept)

    history = (await local_backend.get_order(created.id)).status_history
    assert [h.status for h in history] == [OrderStatus.PENDING, OrderStatus.ACCEPTED]
    assert backend.telemetry.total_fallbacks == 0


async def test_remote_rejection_is_not_stored_locally(local_backend, channel, events, customer, pickup, burger):
    def reject(request):
        return httpx.Response(422, json={"success": False, "error": "TotalMismatch", "detail": "total differs"})

    remote = RemoteOrderBackend(base_url="http://orders.test", transport=httpx.MockTransport(reject))
    backend = FallbackOrderBackend(primary=remote, fallback=local_backend, timeout=1.0)
    store = OrderStore(backend=backend, channel=channel, vat_rate_percent=15)
    cart = CartAggregator()
    cart.add_item(burger)

    try:
        with pytest.raises(RemoteRejected):
            await store.submit_cart("rest_1", cart, customer, pickup)
    finally:
        await remote.close()

    assert await local_backend.list_orders("rest_1") == []
    assert backend.telemetry.total_fallbacks == 0
    assert not cart.is_empty
    assert events == []


async def test_broken_fallback_is_a_hard_failure(local_backend, order_factory):
    await local_backend.create_order(order_factory())
    local_backend.record_path("rest_1").write_text("[]")
    backend = FallbackOrderBackend(primary=FailingBackend(), fallback=local_backend)

    with pytest.raises(FallbackStoreError):
        await backend.list_orders("rest_1")


async def test_health_follows_the_fallback(local_backend):
    backend = FallbackOrderBackend(primary=FailingBackend(healthy=False), fallback=local_backend)
    assert await backend.health_check() is True
    assert backend.provider_name == "flaky+local"


def test_factory_wires_simulated_remote_in_front_of_local(tmp_path, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "env_mode", EnvironmentMode.DEVELOPMENT)
    monkeypatch.setattr(settings, "data_directory", str(tmp_path))
    reset_order_store()
    reset_order_backend()
    try:
        store = get_order_store()
        assert isinstance(store.backend, FallbackOrderBackend)
        assert store.backend.provider_name == "mock+local"
        assert store.backend.fallback.root == tmp_path / "orders"
        assert get_order_store() is store
    finally:
        reset_order_store()
        reset_order_backend()
