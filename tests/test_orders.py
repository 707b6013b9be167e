"""Tests for checkout pricing and OrderCreator."""

import asyncio
import logging
import random
import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from conftest import NOW, fixed_clock, run
from storefront import saga as S
from storefront._errors import (
    CheckoutCancelled,
    InsufficientStockError,
    PersistenceError,
    ValidationError,
)
from storefront.cart import AddItem, CartSnapshot, SetLoyaltyPoints, reduce
from storefront.catalog import MemoryCatalog
from storefront.config import CallPolicy
from storefront.orders import (
    ROLLBACK_REASON,
    Address,
    Channel,
    MemoryOrderStore,
    OrderCreator,
    OrderStatus,
    PaymentConfirmation,
    PaymentStatus,
    build_order_request,
    generate_order_number,
    to_base36,
    validate,
)
from storefront.stock import StockReconciler

CARD = PaymentConfirmation("card", reference="pi_123")


@pytest.fixture
def address() -> Address:
    return Address(
        name="Thandi Mokoena",
        address_line_1="12 Long Street",
        city="Cape Town",
        state="Western Cape",
        postal_code="8001",
        country="South Africa",
    )


@pytest.fixture
def orders() -> MemoryOrderStore:
    return MemoryOrderStore()


@pytest.fixture
def creator(orders, catalog, settings) -> OrderCreator:
    return OrderCreator(
        orders,
        StockReconciler(catalog, call_policy=settings.call_policy),
        settings=settings,
        clock=fixed_clock(),
    )


def _cart(*adds) -> CartSnapshot:
    snapshot = CartSnapshot()
    for product, quantity in adds:
        snapshot = reduce(snapshot, AddItem(product, quantity))
    return snapshot


def _request(cart, address, **kwargs):
    return build_order_request(cart, payment=CARD, shipping_address=address, **kwargs).unwrap()


# ═══════════════════════════════════════════════════════════════════════════════
# Order numbers
# ═══════════════════════════════════════════════════════════════════════════════


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"


def test_order_number_format():
    moment = datetime(2026, 3, 1, tzinfo=timezone.utc)

    number = generate_order_number(now=moment, rng=random.Random(7))

    assert re.fullmatch(r"OD-[0-9A-Z]{10,}", number)
    assert number.startswith("OD-" + to_base36(int(moment.timestamp() * 1000)))


# ═══════════════════════════════════════════════════════════════════════════════
# build_order_request
# ═══════════════════════════════════════════════════════════════════════════════


def test_online_request_adds_shipping(mug, address):
    request = _request(_cart((mug, 2)), address)

    assert request.subtotal == Decimal("100.00")
    assert request.shipping_amount == Decimal("50.00")
    assert request.total_amount == Decimal("150.00")
    assert request.billing_address == address
    assert request.lines[0].snapshot.name == "Mug"


def test_online_request_needs_address(mug):
    result = build_order_request(_cart((mug, 1)), payment=CARD)

    assert result == Error(ValidationError("shipping address is required"))


def test_pos_request_uses_store_address(mug):
    result = build_order_request(_cart((mug, 1)), payment=CARD, channel=Channel.POS)

    request = result.unwrap()
    assert request.shipping_amount == Decimal("0")
    assert request.shipping_address.name == "POS Customer"
    assert request.channel is Channel.POS


def test_empty_cart_request_rejected(address):
    result = build_order_request(CartSnapshot(), payment=CARD, shipping_address=address)

    assert result == Error(ValidationError("cart is empty"))


def test_request_rounds_and_records_loyalty(mug, address):
    cart = reduce(_cart((mug, 1)), SetLoyaltyPoints(333, Decimal("3.33")))

    request = _request(cart, address, tax_amount=Decimal("7.005"))

    assert request.tax_amount == Decimal("7.01")
    assert request.discount_amount == Decimal("3.33")
    assert request.total_amount == Decimal("103.68")
    assert request.customer_info["loyalty_points_used"] == 333


# ═══════════════════════════════════════════════════════════════════════════════
# create_order
# ═══════════════════════════════════════════════════════════════════════════════


def test_create_order(creator, orders, catalog, mug, shirt, ebook, address):
    request = _request(_cart((mug, 2), (shirt, 1), (ebook, 1)), address, customer_id="u1")

    result = run(creator.create_order(request))

    assert isinstance(result, Ok)
    order = result.value
    assert order.status is OrderStatus.CONFIRMED
    assert order.payment_status is PaymentStatus.PAID
    assert order.payment_method == "card"
    assert order.order_number.startswith("OD-")
    assert order.created_at == NOW
    assert [i.product_id for i in order.items] == ["mug", "shirt", "ebook"]
    assert order.total_amount == Decimal("270.00")
    assert orders.orders == [order]
    assert catalog.stock_of("mug") == 8
    assert catalog.stock_of("shirt") == 4


def test_order_number_from_request_is_kept(creator, mug, address):
    request = _request(_cart((mug, 1)), address, order_number="OD-FIXED01")

    assert run(creator.create_order(request)).unwrap().order_number == "OD-FIXED01"


def test_insufficient_stock_writes_nothing(creator, orders, catalog, mug, shirt, address):
    request = _request(_cart((mug, 1), (shirt, 6)), address)

    result = run(creator.create_order(request))

    assert result == Error(InsufficientStockError("shirt", "Shirt", available=5, requested=6))
    assert len(orders) == 0
    assert catalog.stock_of("mug") == 10
    assert catalog.stock_of("shirt") == 5


def test_missing_payment_rejected(creator, orders, mug, address):
    request = build_order_request(_cart((mug, 1)), payment=None, shipping_address=address).unwrap()

    result = run(creator.create_order(request))

    assert result == Error(ValidationError("payment not confirmed"))
    assert len(orders) == 0


class _RejectingOrders(MemoryOrderStore):
    async def insert_order(self, order):
        return Error(PersistenceError("constraint violated"))


def test_persist_failure_leaves_stock(catalog, settings, mug, address):
    creator = OrderCreator(_RejectingOrders(), StockReconciler(catalog), settings=settings)

    result = run(creator.create_order(_request(_cart((mug, 3)), address)))

    assert result == Error(PersistenceError("constraint violated"))
    assert catalog.stock_of("mug") == 10


class _FailingShirts(MemoryCatalog):
    async def decrement_stock(self, product_id, quantity):
        if product_id == "shirt":
            return Error(PersistenceError("row locked"))
        return await super().decrement_stock(product_id, quantity)


def test_reconcile_failure_marks_order_failed(orders, settings, mug, shirt, address):
    catalog = _FailingShirts([mug, shirt])
    creator = OrderCreator(orders, StockReconciler(catalog), settings=settings)

    result = run(creator.create_order(_request(_cart((mug, 2), (shirt, 1)), address)))

    assert result == Error(PersistenceError("row locked"))
    [stored] = orders.orders
    assert stored.status is OrderStatus.FAILED
    assert stored.failure_reason == ROLLBACK_REASON
    assert catalog.stock_of("mug") == 10


def test_cancelled_before_start(creator, orders, catalog, mug, address):
    token = S.CancelToken()
    token.cancel()

    result = run(creator.create_order(_request(_cart((mug, 1)), address), cancel=token))

    assert result == Error(CheckoutCancelled("stock pre-check"))
    assert len(orders) == 0
    assert catalog.stock_of("mug") == 10


def test_cancelled_after_persist_rolls_back(catalog, settings, mug, address):
    token = S.CancelToken()

    class _CancellingOrders(MemoryOrderStore):
        async def insert_order(self, order):
            token.cancel("customer closed the tab")
            return await super().insert_order(order)

    orders = _CancellingOrders()
    creator = OrderCreator(orders, StockReconciler(catalog), settings=settings)

    result = run(creator.create_order(_request(_cart((mug, 1)), address), cancel=token))

    assert result == Error(CheckoutCancelled("reconcile stock"))
    [stored] = orders.orders
    assert stored.status is OrderStatus.FAILED
    assert len(stored.items) == 1
    assert catalog.stock_of("mug") == 10


def test_customer_orders_newest_first(orders, catalog, settings, mug, address):
    times = iter([datetime(2026, 1, d, tzinfo=timezone.utc) for d in (1, 2)])
    creator = OrderCreator(
        orders, StockReconciler(catalog), settings=settings, clock=lambda: next(times)
    )

    async def scenario():
        first = await creator.create_order(
            _request(_cart((mug, 1)), address, customer_id="u1", order_number="OD-A1")
        )
        second = await creator.create_order(
            _request(_cart((mug, 1)), address, customer_id="u1", order_number="OD-B2")
        )
        listed = await orders.list_customer_orders("u1")
        return first.unwrap(), second.unwrap(), listed.unwrap()

    first, second, listed = run(scenario())

    assert [o.id for o in listed] == [second.id, first.id]


class _SlowAckOrders(MemoryOrderStore):
    async def insert_order(self, order):
        stored = await super().insert_order(order)
        await asyncio.sleep(0.3)
        return stored


def test_timed_out_insert_is_marked_failed(catalog, settings, mug, address, caplog):
    orders = _SlowAckOrders()
    slow = settings.with_call_policy(
        CallPolicy(timeout_seconds=0.1, read_attempts=1, retry_delay_seconds=0.0)
    )
    creator = OrderCreator(orders, StockReconciler(catalog), settings=slow)

    with caplog.at_level(logging.WARNING, logger="storefront.orders"):
        result = run(creator.create_order(_request(_cart((mug, 2)), address)))

    assert isinstance(result, Error)
    assert isinstance(result.error, PersistenceError)
    assert "timed out" in str(result.error)
    [stored] = orders.orders
    assert stored.status is OrderStatus.FAILED
    assert stored.failure_reason == ROLLBACK_REASON
    assert catalog.stock_of("mug") == 10
    assert "marked failed" in caplog.text


def test_validate_yields_payment(mug, address):
    assert validate(_request(_cart((mug, 1)), address)) == Ok(CARD)
