"""
Shareable cart types.

A share freezes a cart so someone else can pay for it. Status only ever
moves away from ACTIVE:

    active ──► paid
           ──► expired
           ──► cancelled
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from storefront._types import ZERO
from storefront.cart import (
    AppliedPromotion,
    CartItem,
    CartSnapshot,
    item_from_dict,
    item_to_dict,
    promotion_from_dict,
    promotion_to_dict,
    recompute,
)


class ShareStatus(StrEnum):
    ACTIVE = "active"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    def can_become(self, target: ShareStatus) -> bool:
        return self is ShareStatus.ACTIVE and target is not ShareStatus.ACTIVE


# ═══════════════════════════════════════════════════════════════════════════════
# Cart data — frozen copy of the shared cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SharedCartData:
    items: tuple[CartItem, ...]
    subtotal: Decimal
    discount_amount: Decimal
    promotion_discount: Decimal
    total: Decimal
    applied_promotions: tuple[AppliedPromotion, ...] = ()
    loyalty_points_used: int = 0
    loyalty_discount: Decimal = ZERO

    @classmethod
    def from_snapshot(cls, snapshot: CartSnapshot) -> SharedCartData:
        return cls(
            items=snapshot.items,
            subtotal=snapshot.subtotal,
            discount_amount=snapshot.discount_amount,
            promotion_discount=snapshot.promotion_discount,
            total=snapshot.total,
            applied_promotions=snapshot.applied_promotions,
            loyalty_points_used=snapshot.loyalty_points_used,
            loyalty_discount=snapshot.loyalty_discount,
        )

    def to_snapshot(self) -> CartSnapshot:
        """Rebuild a signed-in cart; totals are derived again, not trusted."""
        free_shipping = next((p for p in self.applied_promotions if p.free_shipping), None)
        return recompute(CartSnapshot(
            items=self.items,
            applied_promotions=self.applied_promotions,
            loyalty_points_used=self.loyalty_points_used,
            loyalty_discount=self.loyalty_discount,
            free_shipping=free_shipping is not None,
            free_shipping_promotion_id=None if free_shipping is None else free_shipping.id,
            is_guest=False,
        ))

    def to_json(self) -> str:
        return json.dumps({
            "items": [item_to_dict(i) for i in self.items],
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "promotion_discount": str(self.promotion_discount),
            "total": str(self.total),
            "applied_promotions": [promotion_to_dict(p) for p in self.applied_promotions],
            "loyalty_points_used": self.loyalty_points_used,
            "loyalty_discount": str(self.loyalty_discount),
        })

    @classmethod
    def from_json(cls, payload: str) -> SharedCartData:
        data: dict[str, Any] = json.loads(payload)
        return cls(
            items=tuple(item_from_dict(i) for i in data.get("items", [])),
            subtotal=Decimal(data["subtotal"]),
            discount_amount=Decimal(data["discount_amount"]),
            promotion_discount=Decimal(data["promotion_discount"]),
            total=Decimal(data["total"]),
            applied_promotions=tuple(
                promotion_from_dict(p) for p in data.get("applied_promotions", [])
            ),
            loyalty_points_used=int(data.get("loyalty_points_used", 0)),
            loyalty_discount=Decimal(data.get("loyalty_discount", "0")),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ShareableCart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ShareableCart:
    id: str
    share_token: str
    original_user_id: str
    cart_data: SharedCartData
    expires_at: datetime
    created_at: datetime
    status: ShareStatus = ShareStatus.ACTIVE
    cart_metadata: dict[str, Any] = field(default_factory=dict)
    paid_by_user_id: str | None = None
    paid_at: datetime | None = None
    order_id: str | None = None
    access_count: int = 0
    last_accessed_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_available(self, now: datetime) -> bool:
        return self.status is ShareStatus.ACTIVE and not self.is_expired(now)


@dataclass(frozen=True, slots=True)
class ShareUpdate:
    """Fields to change on a share. None means leave as is."""

    status: ShareStatus | None = None
    expires_at: datetime | None = None
    paid_by_user_id: str | None = None
    paid_at: datetime | None = None
    order_id: str | None = None

    def values(self) -> dict[str, Any]:
        return {
            name: value
            for name in ("status", "expires_at", "paid_by_user_id", "paid_at", "order_id")
            if (value := getattr(self, name)) is not None
        }


__all__ = (
    "ShareStatus",
    "SharedCartData",
    "ShareableCart",
    "ShareUpdate",
)
