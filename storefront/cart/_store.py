"""
CartStore — one cart, driven by actions.

Every mutation goes through reduce(), so totals are always recomputed.
Guest carts are written to durable storage after each mutation; on sign-in
the stored guest cart is merged into the session cart and cleared.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from decimal import Decimal

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError, PromotionError, ValidationError
from storefront._types import ZERO, LineId
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
from storefront.cart._persistence import GuestCartStorage, KeyValueStore
from storefront.cart._reduce import merge_line, reduce
from storefront.cart._types import AppliedPromotion, CartItem, CartSnapshot
from storefront.catalog import Product
from storefront.config import DEFAULT_SETTINGS, StorefrontSettings
from storefront.promotion import PromotionResolver, Resolution

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Shipping + summary
# ═══════════════════════════════════════════════════════════════════════════════


def shipping_for(snapshot: CartSnapshot, settings: StorefrontSettings = DEFAULT_SETTINGS) -> Decimal:
    """Flat fee, waived by a free-shipping promotion or once total reaches the threshold."""
    if snapshot.is_empty or snapshot.free_shipping:
        return ZERO
    if snapshot.total >= settings.free_shipping_threshold:
        return ZERO
    return settings.shipping_fee


@dataclass(frozen=True, slots=True)
class CartSummary:
    item_count: int
    subtotal: Decimal
    promotion_discount: Decimal
    loyalty_discount: Decimal
    total: Decimal
    shipping: Decimal
    grand_total: Decimal
    promotion_codes: tuple[str, ...]


# ═══════════════════════════════════════════════════════════════════════════════
# CartStore
# ═══════════════════════════════════════════════════════════════════════════════


class CartStore:
    """
    Stateful wrapper around reduce().

    Example:
        cart = CartStore(
            resolver=PromotionResolver(promotions, catalog),
            guest_storage=MemoryKeyValueStore(),
        )
        await cart.add_item(mug, quantity=2)

        match await cart.apply_promo_code("SAVE20"):
            case Ok(resolution):
                ...
            case Error(reason):
                print(reason)       # cart untouched

    Note: One instance per cart. Mutations are expected to be sequential;
    nothing here is locked.
    """

    def __init__(
        self,
        *,
        resolver: PromotionResolver | None = None,
        guest_storage: KeyValueStore | None = None,
        settings: StorefrontSettings = DEFAULT_SETTINGS,
        snapshot: CartSnapshot | None = None,
    ) -> None:
        self._resolver = resolver
        self._settings = settings
        self._guest = (
            None if guest_storage is None else GuestCartStorage(guest_storage, settings.guest_cart_key)
        )
        self._snapshot = snapshot or CartSnapshot()

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    @property
    def settings(self) -> StorefrontSettings:
        return self._settings

    # ───────────────────────────────────────────────────────────────────────────
    # Core transition
    # ───────────────────────────────────────────────────────────────────────────

    async def dispatch(self, *actions: CartAction) -> Result[CartSnapshot, ValidationError]:
        """
        Apply actions as one transition.

        Either every action applies or none does. A guest cart is persisted
        once afterwards; a persistence failure is logged and the in-memory
        cart stays authoritative.
        """
        snapshot = self._snapshot
        try:
            for action in actions:
                snapshot = reduce(snapshot, action, max_line_quantity=self._settings.max_line_quantity)
        except ValidationError as e:
            return Error(e)

        self._snapshot = snapshot
        await self._persist()
        return Ok(snapshot)

    async def _persist(self) -> None:
        if self._guest is None or not self._snapshot.is_guest:
            return
        match await self._guest.save(self._snapshot):
            case Error(e):
                logger.warning("Guest cart not persisted: %s", e)
            case Ok(_):
                pass

    # ───────────────────────────────────────────────────────────────────────────
    # Line operations
    # ───────────────────────────────────────────────────────────────────────────

    async def add_item(
        self,
        product: Product,
        quantity: int = 1,
        variant: dict[str, str] | None = None,
        *,
        original_price: Decimal | None = None,
    ) -> Result[CartSnapshot, ValidationError]:
        return await self.dispatch(AddItem(product, quantity, variant, original_price))

    async def update_quantity(self, line_id: LineId, quantity: int) -> Result[CartSnapshot, ValidationError]:
        return await self.dispatch(UpdateQuantity(line_id, quantity))

    async def remove_item(self, line_id: LineId) -> Result[CartSnapshot, ValidationError]:
        return await self.dispatch(RemoveItem(line_id))

    async def set_items(self, items: tuple[CartItem, ...]) -> Result[CartSnapshot, ValidationError]:
        return await self.dispatch(SetItems(items))

    async def clear(self) -> Result[CartSnapshot, ValidationError]:
        return await self.dispatch(Clear())

    # ───────────────────────────────────────────────────────────────────────────
    # Promotions + loyalty
    # ───────────────────────────────────────────────────────────────────────────

    async def apply_promo_code(self, code: str) -> Result[Resolution, PromotionError]:
        """
        Resolve `code` against the current cart and bind it.

        A new code replaces whatever promotion is active; discounts never
        stack. Re-applying the code that is already active is rejected
        before any lookup, so usage is not counted twice.
        """
        if self._resolver is None:
            return Error(ValidationError("promotions are not available for this cart"))

        normalized = code.strip()
        if any(p.code == normalized for p in self._snapshot.applied_promotions):
            return Error(ValidationError("promotion already applied"))

        match await self._resolver.resolve(normalized, self._snapshot):
            case Error(e):
                return Error(e)
            case Ok(resolution):
                pass

        promotion = resolution.promotion
        binding: CartAction = (
            SetFreeShipping(True, promotion.id)
            if resolution.free_shipping
            else ApplyPromotionToItems(promotion.id, resolution.per_unit)
        )
        applied = AppliedPromotion(
            id=promotion.id,
            code=promotion.code,
            discount_type=promotion.discount_type,
            discount_amount=resolution.discount_total,
            name=promotion.name,
            free_shipping=resolution.free_shipping,
        )
        match await self.dispatch(ClearPromotionFromItems(), binding, AddAppliedPromotion(applied)):
            case Error(e):
                return Error(e)
            case Ok(_):
                logger.info("Applied promotion %s to cart", promotion.code)
                return Ok(resolution)

    async def remove_promotion(self, promotion_id: str) -> Result[CartSnapshot, ValidationError]:
        return await self.dispatch(ClearPromotionFromItems(promotion_id))

    async def redeem_loyalty_points(self, points: int) -> Result[CartSnapshot, ValidationError]:
        """Redeem points at settings.loyalty_point_value each. Zero removes the redemption."""
        if points < 0:
            return Error(ValidationError("loyalty points must not be negative"))
        discount = self._settings.loyalty_point_value * points
        return await self.dispatch(SetLoyaltyPoints(points, discount))

    # ───────────────────────────────────────────────────────────────────────────
    # Guest lifecycle
    # ───────────────────────────────────────────────────────────────────────────

    async def load(self) -> Result[CartSnapshot, PersistenceError]:
        """Restore a guest cart from storage. No-op for signed-in carts."""
        if self._guest is None or not self._snapshot.is_guest:
            return Ok(self._snapshot)

        match await self._guest.load():
            case Error(e):
                return Error(e)
            case Ok(None):
                return Ok(self._snapshot)
            case Ok(document):
                pass

        snapshot = reduce(
            dataclasses.replace(
                self._snapshot,
                items=document.items,
                applied_promotions=document.applied_promotions,
                free_shipping=document.free_shipping_promotion_id is not None,
                free_shipping_promotion_id=document.free_shipping_promotion_id,
            ),
            SetGuestMode(True),
        )
        self._snapshot = snapshot
        return Ok(snapshot)

    async def authenticate(
        self,
        session_items: tuple[CartItem, ...] = (),
    ) -> Result[CartSnapshot, PersistenceError]:
        """
        Upgrade to a signed-in cart.

        session_items is the cart the signed-in identity already has. The guest
        lines held in memory are merged into it line by line; when there are
        none, the stored guest cart is merged instead. The stored guest cart is
        deleted either way. Calling this again is a no-op.
        """
        if not self._snapshot.is_guest:
            return Ok(self._snapshot)

        guest_items = self._snapshot.items
        if self._guest is not None:
            match await self._guest.load():
                case Error(e):
                    return Error(e)
                case Ok(document) if document is not None and not guest_items:
                    guest_items = document.items
                case Ok(_):
                    pass

            match await self._guest.clear():
                case Error(e):
                    return Error(e)
                case Ok(existed):
                    logger.info(
                        "Merged %d guest line(s) into session cart (guest record %s)",
                        len(guest_items),
                        "cleared" if existed else "absent",
                    )

        items = session_items
        for item in guest_items:
            items = merge_line(items, item, max_line_quantity=self._settings.max_line_quantity)

        self._snapshot = reduce(
            dataclasses.replace(self._snapshot, items=items, is_guest=False),
            SetGuestMode(False),
        )
        return Ok(self._snapshot)

    # ───────────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────────

    def item_count(self) -> int:
        return self._snapshot.item_count

    def can_checkout(self) -> bool:
        return not self._snapshot.is_empty

    def can_share(self) -> bool:
        return not self._snapshot.is_empty and self._snapshot.total > ZERO

    def shipping(self) -> Decimal:
        return shipping_for(self._snapshot, self._settings)

    def summary(self) -> CartSummary:
        s = self._snapshot
        shipping = self.shipping()
        return CartSummary(
            item_count=s.item_count,
            subtotal=s.subtotal,
            promotion_discount=s.promotion_discount,
            loyalty_discount=s.loyalty_discount,
            total=s.total,
            shipping=shipping,
            grand_total=s.total + shipping,
            promotion_codes=tuple(p.code for p in s.applied_promotions),
        )


__all__ = ("CartStore", "CartSummary", "shipping_for")
