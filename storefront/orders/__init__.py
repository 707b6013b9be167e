"""
Orders — checkout pricing and order creation.

    from storefront import orders as O

    request = O.build_order_request(
        cart.snapshot,
        payment=O.PaymentConfirmation("card", reference="pi_123"),
        shipping_address=address,
    ).unwrap()

    creator = O.OrderCreator(O.SQLAlchemyOrderStore(session_factory), reconciler)
    result = await creator.create_order(request)
"""

from __future__ import annotations

from storefront.orders._types import (
    OrderStatus,
    PaymentStatus,
    Channel,
    Address,
    ProductSnapshot,
    PaymentConfirmation,
    OrderLine,
    OrderRequest,
    OrderItem,
    Order,
)
from storefront.orders._numbers import ORDER_PREFIX, generate_order_number, to_base36
from storefront.orders._build import build_order_request, store_address
from storefront.orders._store import OrderStore, MemoryOrderStore
from storefront.orders._sqlalchemy import SQLAlchemyOrderStore
from storefront.orders._create import OrderCreator, ROLLBACK_REASON, validate

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
    "ORDER_PREFIX",
    "generate_order_number",
    "to_base36",
    "build_order_request",
    "store_address",
    "OrderStore",
    "MemoryOrderStore",
    "SQLAlchemyOrderStore",
    "OrderCreator",
    "ROLLBACK_REASON",
    "validate",
)
