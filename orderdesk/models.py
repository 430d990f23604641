"""
Domain Models

Immutable snapshots used across the order lifecycle:
- MenuItemRef / Customization: what a shopper picked
- CartLine: the one mutable type, owned by an in-progress cart
- OrderItem / PricedTotals / StatusHistoryEntry / Order: the frozen record
  of a submitted order

Models serialize in camelCase so the same shape is written to the local
fallback store and exchanged with the remote order service.
"""

import enum
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, AfterValidator, model_validator
from pydantic.alias_generators import to_camel


CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round an amount to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, AfterValidator(quantize_money)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return uuid.uuid4().hex


def new_order_number(prefix: str = "ORD", now: Optional[datetime] = None) -> str:
    """Human-readable order number, e.g. ORD-261018-3FA9C1."""
    now = now or utc_now()
    return f"{prefix}-{now:%y%m%d}-{secrets.token_hex(3).upper()}"


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, enum.Enum):
    """Operational order states."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"


class DeliveryMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    DINE_IN = "dine-in"


class SyncEvent(str, enum.Enum):
    """Cross-view notifications published after a store mutation."""
    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"


@dataclass(frozen=True)
class SyncMessage:
    """Carries only the restaurant id; receivers re-read the store."""
    event: SyncEvent
    restaurant_id: str

    def to_wire(self) -> dict:
        return {"restaurantId": self.restaurant_id}


# =============================================================================
# BASE
# =============================================================================

class DomainModel(BaseModel):
    """Frozen model with camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Serialize to a JSON-compatible dict in the wire (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# CART INPUTS
# =============================================================================

class MenuItemRef(DomainModel):
    """Snapshot of a menu item taken when it is added to a cart."""
    id: str = Field(..., min_length=1)
    name: str
    unit_price: Money = Field(..., ge=0)
    available: bool = True


class Customization(DomainModel):
    """Additive modifier attached to a cart line."""
    name: str = Field(..., min_length=1)
    value: str = ""
    price_delta: Money = Decimal("0")

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.value)


@dataclass
class CartLine:
    """A line of an in-progress cart."""

    item: MenuItemRef
    quantity: int = 1
    notes: Optional[str] = None
    customizations: tuple[Customization, ...] = ()
    line_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def unit_price(self) -> Decimal:
        return self.item.unit_price

    @property
    def customization_keys(self) -> frozenset[tuple[str, str]]:
        return frozenset(c.key for c in self.customizations)


# =============================================================================
# SUBMITTED ORDER
# =============================================================================

class PricedTotals(DomainModel):
    subtotal: Money
    vat_amount: Money
    total: Money


class OrderItem(DomainModel):
    """Frozen counterpart of a CartLine inside a submitted order."""
    menu_item_id: str
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: Money = Field(..., ge=0)
    customizations: tuple[Customization, ...] = ()
    notes: Optional[str] = None
    line_total: Money


class StatusHistoryEntry(DomainModel):
    status: OrderStatus
    timestamp: datetime
    note: Optional[str] = None


class CustomerInfo(DomainModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=3, max_length=30)
    email: Optional[str] = None


class DeliveryInfo(DomainModel):
    """How the order is paid for and handed over."""
    payment_method: PaymentMethod = PaymentMethod.CASH
    delivery_method: DeliveryMethod = DeliveryMethod.PICKUP
    table_number: Optional[str] = None
    delivery_address: Optional[str] = None
    special_instructions: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_destination(self) -> "DeliveryInfo":
        if self.delivery_method == DeliveryMethod.DELIVERY and not (
            self.delivery_address and self.delivery_address.strip()
        ):
            raise ValueError("A delivery address is required for delivery orders")
        return self


class Order(DomainModel):
    """
    A submitted order.

    Invariants:
        - status equals the status of the last history entry
        - items is never empty
        - totals were computed from items at vat_rate_percent and are stored
    """
    id: str
    order_number: str
    restaurant_id: str
    customer: CustomerInfo
    items: tuple[OrderItem, ...] = Field(..., min_length=1)
    totals: PricedTotals
    vat_rate_percent: Decimal
    status: OrderStatus
    status_history: tuple[StatusHistoryEntry, ...] = Field(..., min_length=1)
    payment_method: PaymentMethod
    delivery_method: DeliveryMethod
    table_number: Optional[str] = None
    delivery_address: Optional[str] = None
    special_instructions: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def check_history(self) -> "Order":
        if self.status_history[-1].status != self.status:
            raise ValueError(
                f"status '{self.status.value}' does not match last history entry "
                f"'{self.status_history[-1].status.value}'"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def __repr__(self):
        return f"<Order {self.order_number} - {self.customer.name} - {self.status.value}>"
