"""Shared fixtures for the order lifecycle tests."""
import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from orderdesk.models import (
    Customization,
    CustomerInfo,
    DeliveryInfo,
    MenuItemRef,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    DeliveryMethod,
    StatusHistoryEntry,
    SyncEvent,
)
from orderdesk.services import pricing
from orderdesk.services.backends import LocalOrderBackend
from orderdesk.services.orders import OrderStore
from orderdesk.services.sync import ViewSyncChannel

BASE_TIME = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def burger():
    return MenuItemRef(id="burger", name="Burger", unit_price=Decimal("25.00"))


@pytest.fixture
def fries():
    return MenuItemRef(id="fries", name="Fries", unit_price=Decimal("3.00"))


@pytest.fixture
def large():
    return Customization(name="size", value="large", price_delta=Decimal("3.00"))


@pytest.fixture
def customer():
    return CustomerInfo(name="Sara Haddad", phone="+966500000001")


@pytest.fixture
def pickup():
    return DeliveryInfo()


@pytest.fixture
def order_factory():
    """Build valid orders directly, bypassing the store."""
    counter = itertools.count(1)

    def make(
        restaurant_id: str = "rest_1",
        status: OrderStatus = OrderStatus.PENDING,
        created_at: Optional[datetime] = None,
        customer_name: str = "Sara Haddad",
        phone: str = "+966500000001",
        quantity: int = 1,
    ) -> Order:
        n = next(counter)
        created_at = created_at or BASE_TIME + timedelta(minutes=n)
        item = OrderItem(
            menu_item_id="burger",
            name="Burger",
            quantity=quantity,
            unit_price=Decimal("25.00"),
            line_total=Decimal("25.00") * quantity,
        )
        history = [StatusHistoryEntry(status=OrderStatus.PENDING, timestamp=created_at)]
        if status != OrderStatus.PENDING:
            history.append(StatusHistoryEntry(status=status, timestamp=created_at))
        return Order(
            id=f"order_{n}",
            order_number=f"ORD-261018-{n:06d}",
            restaurant_id=restaurant_id,
            customer=CustomerInfo(name=customer_name, phone=phone),
            items=(item,),
            totals=pricing.aggregate([item], Decimal("15")),
            vat_rate_percent=Decimal("15"),
            status=status,
            status_history=tuple(history),
            payment_method=PaymentMethod.CASH,
            delivery_method=DeliveryMethod.PICKUP,
            created_at=created_at,
            updated_at=created_at,
        )

    return make


@pytest.fixture
def local_backend(tmp_path):
    return LocalOrderBackend(data_directory=str(tmp_path), lock_timeout=1, order_number_prefix="ORD")


@pytest.fixture
def channel():
    return ViewSyncChannel()


@pytest.fixture
def events(channel):
    """Every message published on the channel, in order."""
    received = []
    for event in SyncEvent:
        channel.subscribe(event, received.append)
    return received


@pytest.fixture
def store(local_backend, channel):
    return OrderStore(
        backend=local_backend,
        channel=channel,
        vat_rate_percent=Decimal("15"),
        order_number_prefix="ORD",
        page_size=50,
    )
