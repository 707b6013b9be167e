"""
Cart — action-driven cart state with derived totals.

    from storefront import cart as K

    snapshot = K.reduce(K.CartSnapshot(), K.AddItem(mug, quantity=2))

    store = K.CartStore(resolver=resolver, guest_storage=K.MemoryKeyValueStore())
    await store.add_item(mug)
    await store.apply_promo_code("SAVE20")
"""

from __future__ import annotations

from storefront.cart._types import CartItem, AppliedPromotion, CartSnapshot, new_line_id
from storefront.cart._actions import (
    SetItems,
    AddItem,
    UpdateQuantity,
    RemoveItem,
    Clear,
    ApplyPromotionToItems,
    ClearPromotionFromItems,
    AddAppliedPromotion,
    SetFreeShipping,
    SetLoyaltyPoints,
    SetGuestMode,
    CartAction,
)
from storefront.cart._reduce import reduce, recompute, merge_line, MAX_LINE_QUANTITY
from storefront.cart._persistence import (
    KeyValueStore,
    MemoryKeyValueStore,
    SQLAlchemyKeyValueStore,
    GuestCartDocument,
    GuestCartStorage,
    item_to_dict,
    item_from_dict,
    promotion_to_dict,
    promotion_from_dict,
)
from storefront.cart._store import CartStore, CartSummary, shipping_for

__all__ = (
    "CartItem",
    "AppliedPromotion",
    "CartSnapshot",
    "new_line_id",
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
    "reduce",
    "recompute",
    "merge_line",
    "MAX_LINE_QUANTITY",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "GuestCartDocument",
    "GuestCartStorage",
    "item_to_dict",
    "item_from_dict",
    "promotion_to_dict",
    "promotion_from_dict",
    "CartStore",
    "CartSummary",
    "shipping_for",
)
