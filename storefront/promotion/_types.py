"""
Promotion types — discount kinds and scopes as tagged variants.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, assert_never

from storefront._types import HUNDRED, ZERO, LineId, ProductId

# ═══════════════════════════════════════════════════════════════════════════════
# Discount — what the promotion gives
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Percentage:
    value: Decimal


@dataclass(frozen=True, slots=True)
class FixedAmount:
    value: Decimal


@dataclass(frozen=True, slots=True)
class BuyXGetY:
    """For every `buy` qualifying units, `get` units receive percent_off."""

    buy: int = 2
    get: int = 1
    percent_off: Decimal = HUNDRED

    def __post_init__(self) -> None:
        if self.buy < 1 or self.get < 1:
            raise ValueError("buy and get must be >= 1")
        if not ZERO <= self.percent_off <= HUNDRED:
            raise ValueError("percent_off must be within [0, 100]")


@dataclass(frozen=True, slots=True)
class FreeShipping:
    pass


type Discount = Percentage | FixedAmount | BuyXGetY | FreeShipping


def discount_type(discount: Discount) -> str:
    """Wire name of a discount variant."""
    match discount:
        case Percentage():
            return "percentage"
        case FixedAmount():
            return "fixed_amount"
        case BuyXGetY():
            return "buy_x_get_y"
        case FreeShipping():
            return "free_shipping"
        case _:
            assert_never(discount)


# ═══════════════════════════════════════════════════════════════════════════════
# Scope — which cart lines the promotion looks at
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class AllProducts:
    pass


@dataclass(frozen=True, slots=True)
class SpecificProducts:
    product_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class SpecificCategories:
    category_ids: frozenset[str]


type Scope = AllProducts | SpecificProducts | SpecificCategories


def scope_type(scope: Scope) -> str:
    match scope:
        case AllProducts():
            return "all"
        case SpecificProducts():
            return "specific_products"
        case SpecificCategories():
            return "specific_categories"
        case _:
            assert_never(scope)


# ═══════════════════════════════════════════════════════════════════════════════
# Promotion
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Promotion:
    """
    A promo code and its rules.

    Created and edited outside this package. The engine only reads it and
    bumps current_usage_count after a successful application.
    """

    id: str
    code: str
    discount: Discount
    scope: Scope = field(default_factory=AllProducts)
    minimum_order_amount: Decimal = ZERO
    maximum_discount_amount: Decimal | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int | None = None
    current_usage_count: int = 0
    is_active: bool = True
    name: str = ""
    description: str | None = None

    @property
    def discount_type(self) -> str:
        return discount_type(self.discount)

    @property
    def applies_to(self) -> str:
        return scope_type(self.scope)

    @property
    def exhausted(self) -> bool:
        return self.usage_limit is not None and self.current_usage_count >= self.usage_limit


# ═══════════════════════════════════════════════════════════════════════════════
# Cart view — what the resolver needs from a cart
# ═══════════════════════════════════════════════════════════════════════════════


class PricedLine(Protocol):
    @property
    def id(self) -> LineId: ...
    @property
    def product_id(self) -> ProductId: ...
    @property
    def quantity(self) -> int: ...
    @property
    def unit_price(self) -> Decimal: ...


class PricedCart(Protocol):
    @property
    def items(self) -> Sequence[PricedLine]: ...


def line_subtotal(line: PricedLine) -> Decimal:
    return line.unit_price * line.quantity


# ═══════════════════════════════════════════════════════════════════════════════
# Resolution — successful outcome of resolve()
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Resolution:
    """
    promotion:      the record as read before the usage bump
    eligible_lines: line ids in scope, cart order
    discount_total: money off the cart (zero for free shipping)
    per_unit:       per-unit discount to attribute to each discounted line
    free_shipping:  shipping waiver granted instead of money off
    """

    promotion: Promotion
    eligible_lines: tuple[LineId, ...]
    discount_total: Decimal
    per_unit: Mapping[LineId, Decimal]
    free_shipping: bool = False


__all__ = (
    "Percentage",
    "FixedAmount",
    "BuyXGetY",
    "FreeShipping",
    "Discount",
    "discount_type",
    "AllProducts",
    "SpecificProducts",
    "SpecificCategories",
    "Scope",
    "scope_type",
    "Promotion",
    "PricedLine",
    "PricedCart",
    "line_subtotal",
    "Resolution",
)
