"""
Promotion — promo code resolution and discount allocation.

    from storefront import promotion as P

    resolver = P.PromotionResolver(P.MemoryPromotionStore([save20]), catalog)
    result = await resolver.resolve("SAVE20", cart)

    per_unit = P.distribute(Decimal("40"), lines)
"""

from __future__ import annotations

from storefront.promotion._types import (
    Percentage,
    FixedAmount,
    BuyXGetY,
    FreeShipping,
    Discount,
    AllProducts,
    SpecificProducts,
    SpecificCategories,
    Scope,
    Promotion,
    PricedLine,
    PricedCart,
    Resolution,
    discount_type,
    scope_type,
)
from storefront.promotion._distribute import distribute
from storefront.promotion._store import PromotionStore, MemoryPromotionStore
from storefront.promotion._sqlalchemy import SQLAlchemyPromotionStore
from storefront.promotion._resolve import PromotionResolver, buy_x_get_y, bogo_line_discounts

__all__ = (
    "Percentage",
    "FixedAmount",
    "BuyXGetY",
    "FreeShipping",
    "Discount",
    "AllProducts",
    "SpecificProducts",
    "SpecificCategories",
    "Scope",
    "Promotion",
    "PricedLine",
    "PricedCart",
    "Resolution",
    "discount_type",
    "scope_type",
    "distribute",
    "PromotionStore",
    "MemoryPromotionStore",
    "SQLAlchemyPromotionStore",
    "PromotionResolver",
    "buy_x_get_y",
    "bogo_line_discounts",
)
