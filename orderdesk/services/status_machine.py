"""
Order Status Machine

Single source of truth for legal order status transitions:

    pending -> accepted -> preparing -> ready -> delivered
       |          |
       +----------+--> cancelled

delivered and cancelled are terminal. Re-requesting the current status is
an error, never a silent no-op, so a double submit from an operator screen
surfaces as InvalidTransition and the caller re-fetches.

Every function is pure: it takes an Order and returns a new one with a
history entry appended.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from orderdesk.core.exceptions import InvalidTransition, MissingCancellationReason
from orderdesk.models import (
    Order,
    OrderStatus,
    StatusHistoryEntry,
    SyncEvent,
    SyncMessage,
    utc_now,
)


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Forward operator action for each non-terminal status.
FORWARD = {
    OrderStatus.PENDING: OrderStatus.ACCEPTED,
    OrderStatus.ACCEPTED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
}


def allowed_targets(status: OrderStatus) -> frozenset[OrderStatus]:
    return ALLOWED_TRANSITIONS[OrderStatus(status)]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in allowed_targets(current)


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def next_status(status: OrderStatus) -> OrderStatus:
    """
    The forward step an operator takes from `status`.

    Raises:
        InvalidTransition: status is terminal
    """
    status = OrderStatus(status)
    if status not in FORWARD:
        raise InvalidTransition(status, status)
    return FORWARD[status]


def transition(
    order: Order,
    target: OrderStatus,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Move an order to `target`.

    Returns:
        A new Order with status, updated_at and one appended history entry.

    Raises:
        InvalidTransition: target is not a legal successor of order.status
            (includes same-status and anything out of a terminal status)
    """
    try:
        target = OrderStatus(target)
    except ValueError:
        raise InvalidTransition(order.status, target)

    if not can_transition(order.status, target):
        raise InvalidTransition(order.status, target)

    now = now or utc_now()
    entry = StatusHistoryEntry(status=target, timestamp=now, note=note or None)
    return order.model_copy(
        update={
            "status": target,
            "updated_at": now,
            "status_history": order.status_history + (entry,),
        }
    )


def cancel(order: Order, reason: Optional[str], now: Optional[datetime] = None) -> Order:
    """
    Cancel a pending or accepted order.

    Raises:
        MissingCancellationReason: reason is empty or blank
        InvalidTransition: order is preparing or later
    """
    if reason is None or not reason.strip():
        raise MissingCancellationReason()
    return transition(order, OrderStatus.CANCELLED, note=reason.strip(), now=now)


# =============================================================================
# COMMAND FORM
# =============================================================================

@dataclass(frozen=True)
class StatusCommand:
    """An operator request against one order."""
    target: OrderStatus
    note: Optional[str] = None

    @classmethod
    def cancel(cls, reason: Optional[str]) -> "StatusCommand":
        return cls(target=OrderStatus.CANCELLED, note=reason)


def apply_command(
    order: Order,
    command: StatusCommand,
    now: Optional[datetime] = None,
) -> tuple[Order, SyncMessage]:
    """Pure (state, command) -> (new state, event to publish)."""
    if command.target == OrderStatus.CANCELLED:
        updated = cancel(order, command.note, now=now)
    else:
        updated = transition(order, command.target, command.note, now=now)
    return updated, SyncMessage(SyncEvent.ORDER_UPDATED, updated.restaurant_id)
