"""
Order Store

Owns the submitted orders of every restaurant. All reads and writes go
through one BaseOrderBackend (remote-then-local in practice); every status
change goes through the status machine; every successful mutation is
announced on the ViewSyncChannel.

Usage:
    from orderdesk.services.orders import get_order_store

    store = get_order_store()
    order = await store.submit_cart("rest_123", cart, customer, delivery)
    order = await store.update_status(order.id, "accepted")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Union

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import EmptyOrder, MissingCancellationReason, TotalMismatch
from orderdesk.models import (
    CustomerInfo,
    DeliveryInfo,
    Order,
    OrderItem,
    OrderStatus,
    StatusHistoryEntry,
    SyncEvent,
    SyncMessage,
    new_order_id,
    new_order_number,
    utc_now,
)
from orderdesk.services import pricing, status_machine
from orderdesk.services.backends import BaseOrderBackend, get_order_backend
from orderdesk.services.cart import CartAggregator
from orderdesk.services.status_machine import StatusCommand
from orderdesk.services.sync import ViewSyncChannel

logger = logging.getLogger(__name__)

TOP_ITEMS = 5


@dataclass
class OrderFilter:
    """
    Narrowing applied to a listed page of orders.

    Attributes:
        statuses: Keep only these statuses
        search: Case-insensitive match on order number or customer name,
            substring match on customer phone
        created_from / created_to: Inclusive creation time window
        limit / page: Page requested from the backend
    """
    statuses: Optional[Iterable[Union[OrderStatus, str]]] = None
    search: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    limit: Optional[int] = None
    page: int = 1

    def __post_init__(self):
        if self.statuses is not None:
            self.statuses = frozenset(OrderStatus(s) for s in self.statuses)

    def matches(self, order: Order) -> bool:
        if self.statuses is not None and order.status not in self.statuses:
            return False
        if self.created_from is not None and order.created_at < self.created_from:
            return False
        if self.created_to is not None and order.created_at > self.created_to:
            return False
        if self.search:
            query = self.search.strip().lower()
            if not (
                query in order.order_number.lower()
                or query in order.customer.name.lower()
                or self.search.strip() in order.customer.phone
            ):
                return False
        return True


@dataclass
class ItemSales:
    name: str
    quantity: int = 0
    revenue: Decimal = Decimal("0.00")

    def to_dict(self) -> dict:
        return {"name": self.name, "quantity": self.quantity, "revenue": str(self.revenue)}


@dataclass
class OrderStats:
    """
    Dashboard figures for one restaurant.

    Revenue, revenue_by_day and top_items leave cancelled orders out.
    Item revenue is the pre-VAT line total.
    """
    restaurant_id: str
    total_orders: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    revenue: Decimal = Decimal("0.00")
    average_order_value: Decimal = Decimal("0.00")
    revenue_by_day: dict[str, Decimal] = field(default_factory=dict)
    top_items: list[ItemSales] = field(default_factory=list)

    @property
    def pending_orders(self) -> int:
        return self.by_status.get(OrderStatus.PENDING.value, 0)

    @property
    def active_orders(self) -> int:
        return sum(
            count for status, count in self.by_status.items()
            if not status_machine.is_terminal(OrderStatus(status))
        )

    def to_dict(self) -> dict:
        return {
            "restaurantId": self.restaurant_id,
            "totalOrders": self.total_orders,
            "byStatus": dict(self.by_status),
            "pendingOrders": self.pending_orders,
            "activeOrders": self.active_orders,
            "revenue": str(self.revenue),
            "averageOrderValue": str(self.average_order_value),
            "revenueByDay": [
                {"date": day, "revenue": str(amount)} for day, amount in self.revenue_by_day.items()
            ],
            "topItems": [item.to_dict() for item in self.top_items],
        }


class OrderStore:
    """
    Authoritative collection of submitted orders.

    Example:
        >>> store = OrderStore(backend=LocalOrderBackend(), channel=ViewSyncChannel())
        >>> order = await store.submit("rest_1", items, customer, delivery)
        >>> order.status
        <OrderStatus.PENDING: 'pending'>
    """

    def __init__(
        self,
        backend: BaseOrderBackend,
        channel: Optional[ViewSyncChannel] = None,
        vat_rate_percent: Optional[Decimal] = None,
        order_number_prefix: Optional[str] = None,
        page_size: Optional[int] = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.channel = channel or ViewSyncChannel()
        self.vat_rate_percent = Decimal(
            str(settings.vat_rate_percent if vat_rate_percent is None else vat_rate_percent)
        )
        self._prefix = order_number_prefix or settings.order_number_prefix
        self._page_size = page_size or settings.default_page_size

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        restaurant_id: str,
        cart_snapshot: Sequence[OrderItem],
        customer: CustomerInfo,
        delivery: DeliveryInfo,
        vat_rate_percent: Optional[Decimal] = None,
        expected_total: Optional[Decimal] = None,
    ) -> Order:
        """
        Create a pending order from frozen cart lines.

        Raises:
            EmptyOrder: cart_snapshot has no lines
            TotalMismatch: a line total or expected_total disagrees with pricing
            RemoteRejected: the remote order service refused the order
            FallbackStoreError: neither backend could store the order
        """
        items = tuple(cart_snapshot)
        if not items:
            raise EmptyOrder()

        for item in items:
            computed = pricing.line_total(item)
            if item.line_total != computed:
                raise TotalMismatch(computed, item.line_total)

        vat_rate = self.vat_rate_percent if vat_rate_percent is None else Decimal(str(vat_rate_percent))
        totals = pricing.aggregate(items, vat_rate)
        if expected_total is not None and pricing.to_money(expected_total) != totals.total:
            raise TotalMismatch(totals.total, pricing.to_money(expected_total))

        now = utc_now()
        order = Order(
            id=new_order_id(),
            order_number=new_order_number(self._prefix, now),
            restaurant_id=restaurant_id,
            customer=customer,
            items=items,
            totals=totals,
            vat_rate_percent=vat_rate,
            status=OrderStatus.PENDING,
            status_history=(StatusHistoryEntry(status=OrderStatus.PENDING, timestamp=now),),
            payment_method=delivery.payment_method,
            delivery_method=delivery.delivery_method,
            table_number=delivery.table_number,
            delivery_address=delivery.delivery_address,
            special_instructions=delivery.special_instructions,
            created_at=now,
            updated_at=now,
        )

        stored = await self.backend.create_order(order)
        logger.info(
            f"Order {stored.order_number} submitted for restaurant {restaurant_id} "
            f"({stored.item_count} item(s), total {stored.totals.total})"
        )
        self._publish(SyncMessage(SyncEvent.ORDER_CREATED, stored.restaurant_id))
        return stored

    async def submit_cart(
        self,
        restaurant_id: str,
        cart: CartAggregator,
        customer: CustomerInfo,
        delivery: DeliveryInfo,
        vat_rate_percent: Optional[Decimal] = None,
        expected_total: Optional[Decimal] = None,
    ) -> Order:
        """Submit a cart and clear it once the order exists."""
        order = await self.submit(
            restaurant_id,
            cart.to_order_items(),
            customer,
            delivery,
            vat_rate_percent=vat_rate_percent,
            expected_total=expected_total,
        )
        cart.clear()
        return order

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(
        self,
        restaurant_id: str,
        order_filter: Optional[OrderFilter] = None,
    ) -> list[Order]:
        """A restaurant's orders, most recent first."""
        order_filter = order_filter or OrderFilter()
        orders = await self.backend.list_orders(
            restaurant_id,
            limit=order_filter.limit or self._page_size,
            page=order_filter.page,
        )
        selected = [o for o in orders if o.restaurant_id == restaurant_id and order_filter.matches(o)]
        selected.sort(key=lambda o: o.created_at, reverse=True)
        return selected

    async def get(self, order_id: str, restaurant_id: Optional[str] = None) -> Order:
        return await self.backend.get_order(order_id, restaurant_id)

    async def _all_orders(self, restaurant_id: str) -> list[Order]:
        """Every order of a restaurant, read from the backend page by page."""
        collected: dict[str, Order] = {}
        page = 1
        while True:
            batch = await self.backend.list_orders(restaurant_id, limit=self._page_size, page=page)
            fresh = [o for o in batch if o.id not in collected]
            collected.update((o.id, o) for o in fresh)
            # A page that adds nothing means the backend ignores paging
            if len(batch) < self._page_size or not fresh:
                break
            page += 1
        return [o for o in collected.values() if o.restaurant_id == restaurant_id]

    async def stats(self, restaurant_id: str) -> OrderStats:
        orders = await self._all_orders(restaurant_id)
        stats = OrderStats(restaurant_id=restaurant_id, total_orders=len(orders))
        billable = []
        items: dict[str, ItemSales] = {}
        for order in orders:
            stats.by_status[order.status.value] = stats.by_status.get(order.status.value, 0) + 1
            if order.status == OrderStatus.CANCELLED:
                continue
            billable.append(order.totals.total)

            day = order.created_at.date().isoformat()
            stats.revenue_by_day[day] = stats.revenue_by_day.get(day, Decimal("0")) + order.totals.total
            for item in order.items:
                sales = items.setdefault(item.name, ItemSales(name=item.name))
                sales.quantity += item.quantity
                sales.revenue += item.line_total

        if billable:
            stats.revenue = pricing.to_money(sum(billable, Decimal("0")))
            stats.average_order_value = pricing.to_money(stats.revenue / len(billable))
        stats.revenue_by_day = {
            day: pricing.to_money(amount) for day, amount in sorted(stats.revenue_by_day.items())
        }
        stats.top_items = sorted(items.values(), key=lambda s: (-s.quantity, -s.revenue, s.name))[:TOP_ITEMS]
        return stats

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def update_status(
        self,
        order_id: str,
        target_status: Union[OrderStatus, str],
        note: Optional[str] = None,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        """
        Apply one status transition.

        Raises:
            OrderNotFound: unknown order id
            InvalidTransition: illegal, skipped or repeated status
            MissingCancellationReason: cancelling without a note
        """
        if target_status == OrderStatus.CANCELLED and not (note and note.strip()):
            raise MissingCancellationReason()

        command = StatusCommand(target=target_status, note=note)
        events: list[SyncMessage] = []

        def mutate(current: Order) -> Order:
            updated, event = status_machine.apply_command(current, command)
            events.append(event)
            return updated

        updated = await self.backend.update_order(order_id, mutate, restaurant_id)
        logger.info(f"Order {updated.order_number} moved to {updated.status.value}")
        self._publish(events[-1] if events else SyncMessage(SyncEvent.ORDER_UPDATED, updated.restaurant_id))
        return updated

    async def cancel(
        self,
        order_id: str,
        reason: Optional[str],
        restaurant_id: Optional[str] = None,
    ) -> Order:
        return await self.update_status(
            order_id, OrderStatus.CANCELLED, note=reason, restaurant_id=restaurant_id
        )

    async def advance(
        self,
        order_id: str,
        note: Optional[str] = None,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        """Move an order one step forward (accept, prepare, ready, deliver)."""
        current = await self.get(order_id, restaurant_id)
        return await self.update_status(
            order_id,
            status_machine.next_status(current.status),
            note=note,
            restaurant_id=restaurant_id or current.restaurant_id,
        )

    def _publish(self, message: SyncMessage) -> None:
        self.channel.publish(message.event, message.restaurant_id)


@lru_cache()
def get_order_store() -> OrderStore:
    """
    Get the application-wide order store.

    Wires the environment-selected backend with a fresh ViewSyncChannel.
    """
    return OrderStore(backend=get_order_backend(), channel=ViewSyncChannel())


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()
