"""
Cart state transitions.

reduce(snapshot, action) -> snapshot is pure and always finishes with
recompute(), so no transition can leave totals stale.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from typing import assert_never

from storefront._errors import ValidationError
from storefront._types import ZERO
from storefront.cart._actions import (
    AddAppliedPromotion,
    AddItem,
    ApplyPromotionToItems,
    CartAction,
    Clear,
    ClearPromotionFromItems,
    RemoveItem,
    SetFreeShipping,
    SetGuestMode,
    SetItems,
    SetLoyaltyPoints,
    UpdateQuantity,
)
from storefront.cart._types import CartItem, CartSnapshot

logger = logging.getLogger(__name__)

MAX_LINE_QUANTITY = 10


# ═══════════════════════════════════════════════════════════════════════════════
# recompute()
# ═══════════════════════════════════════════════════════════════════════════════


def recompute(snapshot: CartSnapshot) -> CartSnapshot:
    """Derive subtotal, discounts and total from lines and loyalty. Idempotent."""
    subtotal = sum((item.subtotal for item in snapshot.items), ZERO)
    promotion_discount = sum((item.discount for item in snapshot.items), ZERO)
    discount_amount = promotion_discount + snapshot.loyalty_discount
    return dataclasses.replace(
        snapshot,
        subtotal=subtotal,
        promotion_discount=promotion_discount,
        discount_amount=discount_amount,
        total=max(ZERO, subtotal - discount_amount),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Line helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _capped(quantity: int, limit: int, product_id: str) -> int:
    if quantity > limit:
        logger.debug("Capping %s at %d (requested %d)", product_id, limit, quantity)
        return limit
    return quantity


def merge_line(
    items: tuple[CartItem, ...],
    incoming: CartItem,
    *,
    max_line_quantity: int = MAX_LINE_QUANTITY,
) -> tuple[CartItem, ...]:
    """Add `incoming` to items, folding it into a line with the same product and variant."""
    merged: list[CartItem] = []
    folded = False
    for item in items:
        if not folded and item.same_product(incoming.product_id, incoming.variant):
            quantity = _capped(item.quantity + incoming.quantity, max_line_quantity, item.product_id)
            merged.append(dataclasses.replace(item, quantity=quantity))
            folded = True
        else:
            merged.append(item)
    if not folded:
        quantity = _capped(incoming.quantity, max_line_quantity, incoming.product_id)
        merged.append(dataclasses.replace(incoming, quantity=quantity))
    return tuple(merged)


def _without_promotion(items: Iterable[CartItem], promotion_id: str | None) -> tuple[CartItem, ...]:
    return tuple(
        dataclasses.replace(item, per_unit_discount=ZERO, promotion_id=None)
        if promotion_id is None or item.promotion_id == promotion_id
        else item
        for item in items
    )


# ═══════════════════════════════════════════════════════════════════════════════
# reduce()
# ═══════════════════════════════════════════════════════════════════════════════


def reduce(
    snapshot: CartSnapshot,
    action: CartAction,
    *,
    max_line_quantity: int = MAX_LINE_QUANTITY,
) -> CartSnapshot:
    """
    Apply one action.

    Raises ValidationError for malformed input; the caller keeps the old
    snapshot in that case.
    """
    return recompute(_transition(snapshot, action, max_line_quantity))


def _transition(
    snapshot: CartSnapshot,
    action: CartAction,
    max_line_quantity: int,
) -> CartSnapshot:
    match action:
        case SetItems(items=items):
            merged: tuple[CartItem, ...] = ()
            for item in items:
                if item.quantity < 1:
                    raise ValidationError(f"quantity must be at least 1 for {item.product_id}")
                merged = merge_line(merged, item, max_line_quantity=max_line_quantity)
            return dataclasses.replace(snapshot, items=merged)

        case AddItem(product=product, quantity=quantity, variant=variant):
            if quantity < 1:
                raise ValidationError("quantity must be at least 1")
            if product.price < ZERO:
                raise ValidationError(f"price of {product.id} is negative")
            original = product.price if action.original_price is None else action.original_price
            line = CartItem(
                id=action.line_id,
                product_id=product.id,
                quantity=quantity,
                unit_price=product.price,
                original_unit_price=max(original, product.price),
                variant=dict(variant) if variant else None,
                name=product.name,
                category=product.category_id,
                sku=product.sku,
                image_url=product.image_url,
                added_at=action.added_at,
            )
            return dataclasses.replace(
                snapshot,
                items=merge_line(snapshot.items, line, max_line_quantity=max_line_quantity),
            )

        case UpdateQuantity(line_id=line_id, quantity=quantity):
            if snapshot.find(line_id) is None:
                raise ValidationError(f"no cart line {line_id}")
            if quantity <= 0:
                items = tuple(i for i in snapshot.items if i.id != line_id)
            else:
                items = tuple(
                    dataclasses.replace(i, quantity=_capped(quantity, max_line_quantity, i.product_id))
                    if i.id == line_id
                    else i
                    for i in snapshot.items
                )
            return dataclasses.replace(snapshot, items=items)

        case RemoveItem(line_id=line_id):
            return dataclasses.replace(
                snapshot, items=tuple(i for i in snapshot.items if i.id != line_id)
            )

        case Clear():
            return CartSnapshot(is_guest=snapshot.is_guest)

        case ApplyPromotionToItems(promotion_id=promotion_id, per_unit=per_unit):
            items = tuple(
                dataclasses.replace(
                    item,
                    per_unit_discount=min(max(per_unit[item.id], ZERO), item.unit_price),
                    promotion_id=promotion_id,
                )
                if per_unit.get(item.id, ZERO) > ZERO
                else item
                for item in snapshot.items
            )
            return dataclasses.replace(snapshot, items=items)

        case ClearPromotionFromItems(promotion_id=None):
            return dataclasses.replace(
                snapshot,
                items=_without_promotion(snapshot.items, None),
                applied_promotions=(),
                free_shipping=False,
                free_shipping_promotion_id=None,
            )

        case ClearPromotionFromItems(promotion_id=promotion_id):
            waived_by_it = snapshot.free_shipping_promotion_id == promotion_id
            return dataclasses.replace(
                snapshot,
                items=_without_promotion(snapshot.items, promotion_id),
                applied_promotions=tuple(
                    p for p in snapshot.applied_promotions if p.id != promotion_id
                ),
                free_shipping=False if waived_by_it else snapshot.free_shipping,
                free_shipping_promotion_id=None if waived_by_it else snapshot.free_shipping_promotion_id,
            )

        case AddAppliedPromotion(promotion=promotion):
            kept = tuple(p for p in snapshot.applied_promotions if p.id != promotion.id)
            return dataclasses.replace(snapshot, applied_promotions=(*kept, promotion))

        case SetFreeShipping(enabled=enabled, promotion_id=promotion_id):
            return dataclasses.replace(
                snapshot,
                free_shipping=enabled,
                free_shipping_promotion_id=promotion_id if enabled else None,
            )

        case SetLoyaltyPoints(points=points, discount=discount):
            if points < 0 or discount < ZERO:
                raise ValidationError("loyalty points must not be negative")
            return dataclasses.replace(
                snapshot, loyalty_points_used=points, loyalty_discount=discount
            )

        case SetGuestMode(is_guest=is_guest):
            return dataclasses.replace(snapshot, is_guest=is_guest)

        case _:
            assert_never(action)


__all__ = ("reduce", "recompute", "merge_line", "MAX_LINE_QUANTITY")
