"""
Cart actions — every way the cart can change.

Actions are plain data. Anything non-deterministic (line ids, timestamps) is
fixed when the action is built, so reduce() stays pure.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from storefront._types import LineId, utcnow
from storefront.cart._types import AppliedPromotion, CartItem, new_line_id
from storefront.catalog import Product


@dataclass(frozen=True, slots=True)
class SetItems:
    items: tuple[CartItem, ...]


@dataclass(frozen=True, slots=True)
class AddItem:
    """
    Add `quantity` of a product. Merges into an existing line with the same
    product and variant, otherwise opens a line with `line_id`.
    """

    product: Product
    quantity: int = 1
    variant: dict[str, str] | None = None
    original_price: Decimal | None = None
    line_id: LineId = ""
    added_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.line_id:
            object.__setattr__(self, "line_id", new_line_id(self.product.id))


@dataclass(frozen=True, slots=True)
class UpdateQuantity:
    """quantity <= 0 removes the line."""

    line_id: LineId
    quantity: int


@dataclass(frozen=True, slots=True)
class RemoveItem:
    line_id: LineId


@dataclass(frozen=True, slots=True)
class Clear:
    pass


@dataclass(frozen=True, slots=True)
class ApplyPromotionToItems:
    promotion_id: str
    per_unit: Mapping[LineId, Decimal]


@dataclass(frozen=True, slots=True)
class ClearPromotionFromItems:
    """
    Drop discount attributions.

    With a promotion_id only that promotion is removed (its lines, its entry
    in applied_promotions and the shipping waiver it granted). Without one,
    every promotion is removed.
    """

    promotion_id: str | None = None


@dataclass(frozen=True, slots=True)
class AddAppliedPromotion:
    promotion: AppliedPromotion


@dataclass(frozen=True, slots=True)
class SetFreeShipping:
    enabled: bool
    promotion_id: str | None = None


@dataclass(frozen=True, slots=True)
class SetLoyaltyPoints:
    points: int
    discount: Decimal


@dataclass(frozen=True, slots=True)
class SetGuestMode:
    is_guest: bool


type CartAction = (
    SetItems
    | AddItem
    | UpdateQuantity
    | RemoveItem
    | Clear
    | ApplyPromotionToItems
    | ClearPromotionFromItems
    | AddAppliedPromotion
    | SetFreeShipping
    | SetLoyaltyPoints
    | SetGuestMode
)


__all__ = (
    "SetItems",
    "AddItem",
    "UpdateQuantity",
    "RemoveItem",
    "Clear",
    "ApplyPromotionToItems",
    "ClearPromotionFromItems",
    "AddAppliedPromotion",
    "SetFreeShipping",
    "SetLoyaltyPoints",
    "SetGuestMode",
    "CartAction",
)
