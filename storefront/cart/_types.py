"""
Cart types — lines, applied promotions and the snapshot aggregate.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from storefront._types import ZERO, LineId, round_money


def new_line_id(product_id: str) -> LineId:
    return f"{product_id}_{uuid.uuid4().hex[:12]}"


# ═══════════════════════════════════════════════════════════════════════════════
# CartItem — one line
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartItem:
    """
    A cart line.

    Invariants: quantity >= 1, 0 <= per_unit_discount <= unit_price,
    unit_price <= original_unit_price. Identity is `id`, stable across
    quantity changes. Two lines never share (product_id, variant).

    The line discount is per_unit_discount * quantity rounded to the cent,
    so a discount spread unevenly over units still totals what was granted.
    """

    id: LineId
    product_id: str
    quantity: int
    unit_price: Decimal
    original_unit_price: Decimal
    per_unit_discount: Decimal = ZERO
    promotion_id: str | None = None
    variant: dict[str, str] | None = None
    name: str = ""
    category: str | None = None
    sku: str | None = None
    image_url: str | None = None
    added_at: datetime | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def discount(self) -> Decimal:
        """Line discount, to the cent."""
        return round_money(self.per_unit_discount * self.quantity)

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount

    def same_product(self, product_id: str, variant: dict[str, str] | None) -> bool:
        return self.product_id == product_id and (self.variant or None) == (variant or None)


# ═══════════════════════════════════════════════════════════════════════════════
# AppliedPromotion — a promotion bound to this cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class AppliedPromotion:
    id: str
    code: str
    discount_type: str
    discount_amount: Decimal
    name: str = ""
    free_shipping: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# CartSnapshot — the aggregate
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """
    Immutable cart state.

    subtotal, promotion_discount, discount_amount and total are derived.
    Only recompute() writes them; reduce() always calls it.
    """

    items: tuple[CartItem, ...] = ()
    applied_promotions: tuple[AppliedPromotion, ...] = ()
    loyalty_points_used: int = 0
    loyalty_discount: Decimal = ZERO
    free_shipping: bool = False
    free_shipping_promotion_id: str | None = None
    is_guest: bool = True

    # Derived
    subtotal: Decimal = ZERO
    promotion_discount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total: Decimal = ZERO

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def find(self, line_id: LineId) -> CartItem | None:
        for item in self.items:
            if item.id == line_id:
                return item
        return None


__all__ = (
    "new_line_id",
    "CartItem",
    "AppliedPromotion",
    "CartSnapshot",
)
