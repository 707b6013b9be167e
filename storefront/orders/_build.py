"""
Checkout — turn a priced cart into an OrderRequest.
"""

from __future__ import annotations

from typing import Any

from kungfu import Error, Ok, Result

from storefront._errors import ValidationError
from storefront._types import ZERO, Money, round_money
from storefront.cart import CartItem, CartSnapshot, shipping_for
from storefront.config import DEFAULT_SETTINGS, StorefrontSettings
from storefront.orders._types import (
    Address,
    Channel,
    OrderLine,
    OrderRequest,
    PaymentConfirmation,
    ProductSnapshot,
)


def store_address(settings: StorefrontSettings) -> Address:
    a = settings.store_address
    return Address(
        name=a.name,
        address_line_1=a.address_line_1,
        city=a.city,
        state=a.state,
        postal_code=a.postal_code,
        country=a.country,
    )


def _line(item: CartItem) -> OrderLine:
    return OrderLine(
        snapshot=ProductSnapshot(
            product_id=item.product_id,
            name=item.name or item.product_id,
            price=item.unit_price,
            original_price=item.original_unit_price,
            category=item.category,
            image_url=item.image_url,
            sku=item.sku,
            variant=item.variant,
        ),
        quantity=item.quantity,
        unit_price=item.unit_price,
        discount_amount=round_money(item.discount),
    )


def build_order_request(
    snapshot: CartSnapshot,
    *,
    payment: PaymentConfirmation,
    settings: StorefrontSettings = DEFAULT_SETTINGS,
    channel: Channel = Channel.ONLINE,
    shipping_address: Address | None = None,
    billing_address: Address | None = None,
    customer_id: str | None = None,
    customer_email: str | None = None,
    customer_info: dict[str, Any] | None = None,
    tax_amount: Money = ZERO,
    notes: str | None = None,
    order_number: str | None = None,
) -> Result[OrderRequest, ValidationError]:
    """
    Price the checkout.

    Online orders pay the cart's shipping quote and need a shipping address.
    Point-of-sale orders ship nothing and default both addresses to the
    store's own.
    """
    if snapshot.is_empty:
        return Error(ValidationError("cart is empty"))
    if tax_amount < ZERO:
        return Error(ValidationError("tax must not be negative"))

    match channel:
        case Channel.POS:
            shipping = ZERO
            shipping_address = shipping_address or store_address(settings)
        case Channel.ONLINE:
            if shipping_address is None:
                return Error(ValidationError("shipping address is required"))
            shipping = shipping_for(snapshot, settings)

    info = dict(customer_info or {})
    if snapshot.loyalty_points_used:
        info.setdefault("loyalty_points_used", snapshot.loyalty_points_used)

    return Ok(OrderRequest(
        lines=tuple(_line(item) for item in snapshot.items),
        subtotal=round_money(snapshot.subtotal),
        discount_amount=round_money(snapshot.discount_amount),
        shipping_amount=round_money(shipping),
        tax_amount=round_money(tax_amount),
        total_amount=round_money(snapshot.total + shipping + tax_amount),
        billing_address=billing_address or shipping_address,
        shipping_address=shipping_address,
        payment=payment,
        channel=channel,
        currency=settings.currency,
        customer_id=customer_id,
        customer_email=customer_email,
        customer_info=info,
        promotion_ids=tuple(p.id for p in snapshot.applied_promotions),
        notes=notes,
        order_number=order_number,
    ))


__all__ = ("build_order_request", "store_address")
