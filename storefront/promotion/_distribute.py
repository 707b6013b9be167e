"""
Discount allocation.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from storefront._types import ZERO, LineId
from storefront.promotion._types import PricedLine, line_subtotal


def distribute(total: Decimal, lines: Sequence[PricedLine]) -> dict[LineId, Decimal]:
    """
    Spread `total` over lines in proportion to each line's subtotal.

    Returns per-unit discounts keyed by line id. Lines contributing nothing
    (zero price) get zero; so does everything when the eligible subtotal is
    zero. Caller clears previous attributions first.

    Example:
        distribute(Decimal("30"), [a, b])  # a: 2 x 10, b: 1 x 40
        # a gets 10 of the 30 -> 5 per unit, b gets 20 -> 20 per unit
    """
    eligible_subtotal = sum((line_subtotal(line) for line in lines), ZERO)
    if eligible_subtotal <= ZERO or total <= ZERO:
        return {line.id: ZERO for line in lines}

    per_unit: dict[LineId, Decimal] = {}
    for line in lines:
        share = line_subtotal(line) / eligible_subtotal
        per_unit[line.id] = total * share / line.quantity
    return per_unit


__all__ = ("distribute",)
