"""
Pricing Engine

Pure computation over cart lines and order items: line totals, customization
surcharges, VAT and grand total. No state, no I/O.

Rounding policy:
    - Every amount is a Decimal quantised to 0.01 with ROUND_HALF_UP.
    - vat_amount = round_half_up(subtotal * vat_rate_percent / 100)
    - total = subtotal + vat_amount (no further rounding)

Totals are persisted with the order, so the same inputs must always
reproduce the same figures on redisplay.
"""

from decimal import Decimal
from typing import Iterable, Protocol, Sequence, Union

from orderdesk.models import Customization, PricedTotals, quantize_money


Numeric = Union[Decimal, int, float, str]


class PricedLine(Protocol):
    """Anything priced like a cart line (CartLine or OrderItem)."""

    quantity: int
    customizations: Sequence[Customization]

    @property
    def unit_price(self) -> Decimal: ...


def to_money(value: Numeric) -> Decimal:
    """Normalise a number to a cent-quantised Decimal."""
    if isinstance(value, float):
        value = str(value)
    return quantize_money(Decimal(value))


def unit_amount(line: PricedLine) -> Decimal:
    """Unit price plus every customization surcharge."""
    surcharge = sum((c.price_delta for c in line.customizations), Decimal("0"))
    return to_money(line.unit_price + surcharge)


def line_total(line: PricedLine) -> Decimal:
    """
    (unit_price + sum of customization deltas) * quantity.

    Raises:
        ValueError: If the result is negative. Callers validate inputs, so
            this only happens on a programming error.
    """
    amount = to_money(unit_amount(line) * line.quantity)
    if amount < 0:
        raise ValueError(
            f"Negative line total {amount} (quantity={line.quantity}, "
            f"unit_price={line.unit_price})"
        )
    return amount


def vat_for(subtotal: Decimal, vat_rate_percent: Numeric) -> Decimal:
    return to_money(Decimal(subtotal) * Decimal(str(vat_rate_percent)) / Decimal(100))


def aggregate(lines: Iterable[PricedLine], vat_rate_percent: Numeric) -> PricedTotals:
    """Price a collection of lines."""
    subtotal = to_money(sum((line_total(line) for line in lines), Decimal("0")))
    vat_amount = vat_for(subtotal, vat_rate_percent)
    return PricedTotals(
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
    )


def totals_match(
    lines: Iterable[PricedLine],
    totals: PricedTotals,
    vat_rate_percent: Numeric,
) -> bool:
    """Check that stored totals are reproduced from their inputs."""
    return aggregate(lines, vat_rate_percent) == totals
