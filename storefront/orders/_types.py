"""
Order types.

An Order is written once, from a finalized cart plus payment and customer
details. OrderItems carry a frozen ProductSnapshot so later catalog edits
never change history.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from storefront._types import ZERO


class OrderStatus(StrEnum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentStatus(StrEnum):
    PAID = "paid"
    PENDING = "pending"


class Channel(StrEnum):
    ONLINE = "online"
    POS = "pos"


# ═══════════════════════════════════════════════════════════════════════════════
# Value objects
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Address:
    name: str
    address_line_1: str
    city: str
    state: str
    postal_code: str
    country: str
    address_line_2: str | None = None
    phone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Address:
        return cls(**data)


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    """Product as sold."""

    product_id: str
    name: str
    price: Decimal
    original_price: Decimal
    category: str | None = None
    image_url: str | None = None
    sku: str | None = None
    variant: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": str(self.price),
            "original_price": str(self.original_price),
            "category": self.category,
            "image_url": self.image_url,
            "sku": self.sku,
            "variant": self.variant,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProductSnapshot:
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            price=Decimal(data["price"]),
            original_price=Decimal(data["original_price"]),
            category=data.get("category"),
            image_url=data.get("image_url"),
            sku=data.get("sku"),
            variant=data.get("variant"),
        )


@dataclass(frozen=True, slots=True)
class PaymentConfirmation:
    """Opaque signal from the payment side that the money is secured."""

    method: str
    reference: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderLine:
    snapshot: ProductSnapshot
    quantity: int
    unit_price: Decimal
    discount_amount: Decimal = ZERO

    @property
    def product_id(self) -> str:
        return self.snapshot.product_id

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity - self.discount_amount


@dataclass(frozen=True, slots=True)
class OrderRequest:
    """
    Everything needed to write an order.

    Monetary fields are final: OrderCreator stores them as given (rounded
    to cents) and does not re-price.
    """

    lines: tuple[OrderLine, ...]
    subtotal: Decimal
    discount_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    billing_address: Address
    shipping_address: Address
    payment: PaymentConfirmation | None
    tax_amount: Decimal = ZERO
    channel: Channel = Channel.ONLINE
    currency: str = "ZAR"
    customer_id: str | None = None
    customer_email: str | None = None
    customer_info: dict[str, Any] = field(default_factory=dict)
    promotion_ids: tuple[str, ...] = ()
    notes: str | None = None
    order_number: str | None = None

    @property
    def stock_lines(self) -> list[tuple[str, int]]:
        return [(line.product_id, line.quantity) for line in self.lines]


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderItem:
    product_id: str
    snapshot: ProductSnapshot
    quantity: int
    unit_price: Decimal
    discount_amount: Decimal
    total_price: Decimal


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    channel: Channel
    currency: str
    subtotal: Decimal
    discount_amount: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    billing_address: Address
    shipping_address: Address
    items: tuple[OrderItem, ...]
    created_at: datetime
    customer_id: str | None = None
    customer_email: str | None = None
    customer_info: dict[str, Any] = field(default_factory=dict)
    payment_method: str | None = None
    promotion_ids: tuple[str, ...] = ()
    notes: str | None = None
    failure_reason: str | None = None


__all__ = (
    "OrderStatus",
    "PaymentStatus",
    "Channel",
    "Address",
    "ProductSnapshot",
    "PaymentConfirmation",
    "OrderLine",
    "OrderRequest",
    "OrderItem",
    "Order",
)
