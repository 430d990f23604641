"""
Cart Aggregator

In-memory collection of CartLine entries for one shopper session.
Totals are never cached: every call to totals() prices the current lines.
The cart never talks to a store; OrderStore.submit_cart() freezes it with
to_order_items() and clears it once the order exists.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Union

from orderdesk.core.exceptions import CartLineNotFound, ItemUnavailable
from orderdesk.models import (
    CartLine,
    Customization,
    MenuItemRef,
    OrderItem,
    PricedTotals,
)
from orderdesk.services import pricing

logger = logging.getLogger(__name__)


class CartAggregator:
    """
    Builds and mutates the lines of an order in progress.

    Example:
        >>> cart = CartAggregator()
        >>> burger = MenuItemRef(id="m1", name="Burger", unit_price="25.00")
        >>> cart.add_item(burger, quantity=2)
        >>> cart.totals(15).total
        Decimal('57.50')
    """

    def __init__(self):
        self._lines: list[CartLine] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def lines(self) -> list[CartLine]:
        """Snapshot of the current lines."""
        return list(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        """Total units across all lines."""
        return sum(line.quantity for line in self._lines)

    def get_line(self, line_id: str) -> CartLine:
        for line in self._lines:
            if line.line_id == line_id:
                return line
        raise CartLineNotFound(line_id)

    def totals(self, vat_rate_percent: Union[Decimal, int, str]) -> PricedTotals:
        return pricing.aggregate(self._lines, vat_rate_percent)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(
        self,
        item: MenuItemRef,
        quantity: int = 1,
        customizations: Iterable[Customization] = (),
        notes: Optional[str] = None,
    ) -> CartLine:
        """
        Add units of a menu item.

        A line with the same item id and the same set of (name, value)
        customizations absorbs the quantity; otherwise a new line is
        appended. When merging, the existing line keeps its notes unless it
        had none.

        Raises:
            ItemUnavailable: The item snapshot is marked unavailable
            ValueError: quantity is not a positive integer
        """
        if not item.available:
            raise ItemUnavailable(item.id, item.name)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValueError(f"quantity must be a positive integer, got {quantity!r}")

        customizations = tuple(customizations)
        keys = frozenset(c.key for c in customizations)

        for line in self._lines:
            if line.item.id == item.id and line.customization_keys == keys:
                line.quantity += quantity
                if notes and not line.notes:
                    line.notes = notes
                logger.debug(f"Cart: {item.name} x{line.quantity} (merged)")
                return line

        line = CartLine(
            item=item,
            quantity=quantity,
            notes=notes,
            customizations=customizations,
        )
        self._lines.append(line)
        logger.debug(f"Cart: {item.name} x{quantity} (new line {line.line_id})")
        return line

    def update_quantity(self, line_id: str, new_quantity: int) -> Optional[CartLine]:
        """Set a line's quantity; zero or less removes the line."""
        line = self.get_line(line_id)
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
            raise ValueError(f"quantity must be an integer, got {new_quantity!r}")
        if new_quantity <= 0:
            self.remove_item(line_id)
            return None
        line.quantity = new_quantity
        return line

    def remove_item(self, line_id: str) -> None:
        line = self.get_line(line_id)
        self._lines.remove(line)

    def clear(self) -> None:
        self._lines.clear()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def to_order_items(self) -> list[OrderItem]:
        """Freeze the current lines, snapshotting unit prices and line totals."""
        return [
            OrderItem(
                menu_item_id=line.item.id,
                name=line.item.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                customizations=line.customizations,
                notes=line.notes,
                line_total=pricing.line_total(line),
            )
            for line in self._lines
        ]
