"""
Order Lifecycle Exceptions

Business-rule errors (EmptyOrder, InvalidTransition, MissingCancellationReason,
OrderNotFound) are returned to callers for user-facing messaging.
RemoteUnavailable never leaves the order store: it only signals the fallback
path. RemoteRejected carries a 4xx answer from the remote service back to the
caller. FallbackStoreError is the hard failure raised when the local store
itself cannot be used.
"""

from typing import Any, Optional


class OrderDeskError(Exception):
    """Base class for all order lifecycle errors."""

    message = "Order processing failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class EmptyOrder(OrderDeskError):
    """Raised when an order is submitted without any line."""

    message = "Please add at least one item before placing the order."


class InvalidTransition(OrderDeskError):
    """Raised for an illegal or no-op status change."""

    def __init__(self, current: Any, target: Any):
        self.current = getattr(current, "value", current)
        self.target = getattr(target, "value", target)
        super().__init__(
            f"Cannot move order from '{self.current}' to '{self.target}'"
        )


class MissingCancellationReason(OrderDeskError):
    """Raised when a cancellation is requested without a reason."""

    message = "Please provide a cancellation reason."


class OrderNotFound(OrderDeskError):
    """Raised when an order id is unknown to the store."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class RemoteUnavailable(OrderDeskError):
    """Network or server failure on the remote leg. Internal only."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Remote order service unavailable: {reason}")


class RemoteRejected(OrderDeskError):
    """
    The remote order service refused the request (4xx).

    A rejection is a business answer, not an outage: it is never retried
    against the local store.
    """

    def __init__(self, status_code: int, error: Optional[str] = None, detail: Optional[str] = None):
        self.status_code = status_code
        self.error = error or f"HTTP {status_code}"
        super().__init__(detail or f"Remote order service rejected the request ({self.error})")


class FallbackStoreError(OrderDeskError):
    """The local fallback store is corrupted or locked."""

    message = "Local order store is unavailable"


class CartLineNotFound(OrderDeskError, LookupError):
    """Raised when a cart line id does not exist."""

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__(f"Cart line {line_id} not found")


class ItemUnavailable(OrderDeskError):
    """Raised when an unavailable menu item is added to a cart."""

    def __init__(self, item_id: str, name: Optional[str] = None):
        self.item_id = item_id
        super().__init__(f"{name or item_id} is currently unavailable")


class TotalMismatch(OrderDeskError):
    """Raised when a client-computed total disagrees with the priced total."""

    def __init__(self, expected: Any, actual: Any):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Submitted total {actual} does not match computed total {expected}"
        )
