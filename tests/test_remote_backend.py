"""Remote order backend against a mocked HTTP transport."""
import json

import httpx
import pytest

from orderdesk.core.exceptions import (
    EmptyOrder,
    InvalidTransition,
    OrderNotFound,
    RemoteRejected,
    RemoteUnavailable,
)
from orderdesk.models import OrderStatus
from orderdesk.services import status_machine
from orderdesk.services.backends import RemoteOrderBackend

BASE_URL = "http://orders.test"


@pytest.fixture
async def make_remote():
    """Build backends over a handler and close their clients afterwards."""
    created = []

    def make(handler, token=None):
        backend = RemoteOrderBackend(
            base_url=BASE_URL,
            token=token,
            timeout=1.0,
            transport=httpx.MockTransport(handler),
        )
        created.append(backend)
        return backend

    yield make
    for backend in created:
        await backend.close()


async def test_create_order_posts_wire_body(make_remote, order_factory):
    order = order_factory()
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        assigned = order.model_copy(update={"id": "srv_1", "order_number": "ORD-9001"})
        return httpx.Response(201, json={"order": assigned.to_wire()})

    created = await make_remote(handler, token="secret").create_order(order)

    assert created.id == "srv_1"
    assert created.order_number == "ORD-9001"
    assert seen["method"] == "POST"
    assert seen["path"] == "/restaurants/rest_1/orders"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["totalAmount"] == "28.75"
    assert seen["body"]["paymentMethod"] == "cash"
    assert seen["body"]["deliveryMethod"] == "pickup"
    assert seen["body"]["items"][0]["menuItemId"] == "burger"
    assert "deliveryAddress" not in seen["body"]


async def test_list_orders_sends_paging_and_unwraps_envelope(make_remote, order_factory):
    orders = [order_factory(), order_factory()]
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200, json={"success": True, "data": {"orders": [o.to_wire() for o in orders]}}
        )

    listed = await make_remote(handler).list_orders("rest_1", limit=20, page=2)

    assert [o.id for o in listed] == [o.id for o in orders]
    assert seen["params"] == {"limit": "20", "page": "2"}


async def test_get_order_not_found(make_remote):
    backend = make_remote(lambda request: httpx.Response(404, json={"detail": "nope"}))
    with pytest.raises(OrderNotFound):
        await backend.get_order("missing")


@pytest.mark.parametrize("response", [
    httpx.Response(500, json={"detail": "boom"}),
    httpx.Response(503, text="maintenance"),
    httpx.Response(200, text="<html>proxy error</html>"),
    httpx.Response(200, json=["not", "an", "object"]),
    httpx.Response(200, json={"orders": [{"id": "half an order"}]}),
])
async def test_bad_responses_are_remote_failures(make_remote, response):
    backend = make_remote(lambda request: response)
    with pytest.raises(RemoteUnavailable):
        await backend.list_orders("rest_1")


@pytest.mark.parametrize("response", [
    httpx.Response(408, text="request timeout"),
    httpx.Response(429, json={"detail": "slow down"}),
])
async def test_throttling_is_a_remote_failure(make_remote, order_factory, response):
    backend = make_remote(lambda request: response)
    with pytest.raises(RemoteUnavailable):
        await backend.create_order(order_factory())


async def test_client_error_is_a_rejection(make_remote, order_factory):
    backend = make_remote(lambda request: httpx.Response(
        422, json={"success": False, "error": "TotalMismatch", "detail": "Submitted total 10.00 differs"},
    ))

    with pytest.raises(RemoteRejected) as excinfo:
        await backend.create_order(order_factory())

    assert excinfo.value.status_code == 422
    assert excinfo.value.error == "TotalMismatch"
    assert excinfo.value.detail == "Submitted total 10.00 differs"
    assert not isinstance(excinfo.value, RemoteUnavailable)


async def test_known_rejection_becomes_our_error(make_remote, order_factory):
    backend = make_remote(lambda request: httpx.Response(
        400, json={"error": "EmptyOrder", "detail": "no lines"},
    ))
    with pytest.raises(EmptyOrder, match="no lines"):
        await backend.create_order(order_factory())


async def test_rejection_without_body(make_remote):
    backend = make_remote(lambda request: httpx.Response(403, text="forbidden"))
    with pytest.raises(RemoteRejected) as excinfo:
        await backend.list_orders("rest_1")
    assert excinfo.value.status_code == 403
    assert excinfo.value.error == "HTTP 403"


async def test_transport_errors_are_remote_failures(make_remote, order_factory):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = make_remote(handler)
    with pytest.raises(RemoteUnavailable):
        await backend.create_order(order_factory())
    assert await backend.health_check() is False


async def test_update_order_patches_status(make_remote, order_factory):
    order = order_factory()
    patches = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"order": order.to_wire()})
        body = json.loads(request.content)
        patches.append(body)
        updated = status_machine.transition(order, body["status"], body.get("note"))
        return httpx.Response(200, json={"order": updated.to_wire()})

    def accept(current):
        return status_machine.transition(current, OrderStatus.ACCEPTED, note="on it")

    updated = await make_remote(handler).update_order(order.id, accept)

    assert updated.status == OrderStatus.ACCEPTED
    assert patches == [{"status": "accepted", "note": "on it"}]


async def test_update_order_conflict_is_invalid_transition(make_remote, order_factory):
    order = order_factory()

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"order": order.to_wire()})
        return httpx.Response(409, json={"detail": "already accepted"})

    def accept(current):
        return status_machine.transition(current, OrderStatus.ACCEPTED)

    with pytest.raises(InvalidTransition):
        await make_remote(handler).update_order(order.id, accept)


async def test_illegal_mutation_never_reaches_the_network(make_remote, order_factory):
    order = order_factory()
    methods = []

    def handler(request):
        methods.append(request.method)
        return httpx.Response(200, json={"order": order.to_wire()})

    def deliver(current):
        return status_machine.transition(current, OrderStatus.DELIVERED)

    with pytest.raises(InvalidTransition):
        await make_remote(handler).update_order(order.id, deliver)
    assert methods == ["GET"]


async def test_health_check(make_remote):
    backend = make_remote(lambda request: httpx.Response(200, json={"status": "ok"}))
    assert await backend.health_check() is True


def test_base_url_is_required(monkeypatch):
    from orderdesk.core.config import get_settings

    monkeypatch.setattr(get_settings(), "order_service_url", None)
    with pytest.raises(ValueError):
        RemoteOrderBackend(base_url=None)
