"""
OrderCreator — commit a priced checkout.

Runs as a saga:

    stock pre-check ──► persist order (header + items) ──► reconcile stock
                         undo: mark order failed            undo: restock

A shortfall at pre-check fails the order before anything is written. A
failure after the order is stored marks it failed, and stock taken by a
partially applied reconciliation is put back. An insert reported as failed
that stored the order anyway leaves it marked failed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import timedelta

from kungfu import Error, LazyCoroResult, Ok, Result

from storefront import saga as S
from storefront._errors import CheckoutCancelled, OrderError, PersistenceError, ValidationError
from storefront._types import ZERO, Clock, round_money, utcnow
from storefront.catalog import StockChange, StockLevel
from storefront.config import DEFAULT_SETTINGS, StorefrontSettings
from storefront.orders._numbers import generate_order_number
from storefront.orders._store import OrderStore
from storefront.orders._types import (
    Order,
    OrderItem,
    OrderRequest,
    OrderStatus,
    PaymentConfirmation,
    PaymentStatus,
)
from storefront.stock import StockReconciler

logger = logging.getLogger(__name__)

ROLLBACK_REASON = "checkout rolled back"


def validate(request: OrderRequest) -> Result[PaymentConfirmation, ValidationError]:
    """Check a request before anything is written; yields its payment."""
    if not request.lines:
        return Error(ValidationError("order has no items"))
    if any(line.quantity < 1 for line in request.lines):
        return Error(ValidationError("every line needs a quantity of at least 1"))
    if request.payment is None:
        return Error(ValidationError("payment not confirmed"))
    if request.total_amount < ZERO:
        return Error(ValidationError("order total must not be negative"))
    return Ok(request.payment)


class OrderCreator:
    """
    Example:
        creator = OrderCreator(orders, StockReconciler(catalog))

        match await creator.create_order(request, cancel=token):
            case Ok(order):
                print(order.order_number)
            case Error(InsufficientStockError() as e):
                print(e)    # nothing was written
    """

    def __init__(
        self,
        orders: OrderStore,
        stock: StockReconciler,
        *,
        settings: StorefrontSettings = DEFAULT_SETTINGS,
        clock: Clock = utcnow,
        order_numbers: Callable[[], str] = generate_order_number,
        compensation_retry: S.policy.RetryPolicy = S.policy.compensate.retry(
            times=3, delay=timedelta(milliseconds=50)
        ),
    ) -> None:
        self._orders = orders
        self._stock = stock
        self._settings = settings
        self._clock = clock
        self._order_numbers = order_numbers
        self._compensation_retry = compensation_retry

    async def create_order(
        self,
        request: OrderRequest,
        cancel: S.CancelToken | None = None,
    ) -> Result[Order, OrderError]:
        match validate(request):
            case Error(e):
                return Error(e)
            case Ok(payment):
                pass

        order = self._draft(request, payment)
        lines = request.stock_lines

        def reconcile(observed: Mapping[str, StockLevel]) -> S.SagaStep[list[StockChange], PersistenceError]:
            return S.step(
                LazyCoroResult(lambda: self._stock.reconcile(lines, observed)),
                compensate=self._restock,
                name="reconcile stock",
            )

        def persist(observed: Mapping[str, StockLevel]) -> S.SagaExpr[list[StockChange], PersistenceError]:
            return S.step(
                LazyCoroResult(lambda: self._insert(order)),
                compensate=self._mark_failed,
                name="persist order",
            ).then(lambda _: reconcile(observed))

        checkout = S.step(
            LazyCoroResult(lambda: self._stock.check(lines)),
            name="stock pre-check",
        ).then(persist)

        policies: list[S.policy.Policy] = [self._compensation_retry]
        if cancel is not None:
            policies.append(S.policy.cancel(cancel, on_cancel=CheckoutCancelled))

        match await S.run(checkout, *policies):
            case Ok(result):
                logger.info(
                    "Order %s created: %d line(s), total %s %s, %d stock change(s)",
                    order.order_number,
                    len(order.items),
                    order.total_amount,
                    order.currency,
                    len(result.value),
                )
                return Ok(order)

            case Error(failure):
                self._log_failure(order, failure)
                return Error(failure.error)

    # ───────────────────────────────────────────────────────────────────────────

    def _draft(self, request: OrderRequest, payment: PaymentConfirmation) -> Order:
        return Order(
            id=uuid.uuid4().hex,
            order_number=request.order_number or self._order_numbers(),
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            channel=request.channel,
            currency=request.currency,
            subtotal=round_money(request.subtotal),
            discount_amount=round_money(request.discount_amount),
            shipping_amount=round_money(request.shipping_amount),
            tax_amount=round_money(request.tax_amount),
            total_amount=round_money(request.total_amount),
            billing_address=request.billing_address,
            shipping_address=request.shipping_address,
            items=tuple(
                OrderItem(
                    product_id=line.product_id,
                    snapshot=line.snapshot,
                    quantity=line.quantity,
                    unit_price=round_money(line.unit_price),
                    discount_amount=round_money(line.discount_amount),
                    total_price=round_money(line.total_price),
                )
                for line in request.lines
            ),
            created_at=self._clock(),
            customer_id=request.customer_id,
            customer_email=request.customer_email,
            customer_info=dict(request.customer_info),
            payment_method=payment.method,
            promotion_ids=request.promotion_ids,
            notes=request.notes,
        )

    async def _insert(self, order: Order) -> Result[Order, PersistenceError]:
        match await self._settings.call_policy.write(lambda: self._orders.insert_order(order)):
            case Ok(stored):
                return Ok(stored)
            case Error(e):
                await self._discard(order)
                return Error(e)

    async def _discard(self, order: Order) -> None:
        """Mark the order failed if a write reported as failed stored it anyway."""
        calls = self._settings.call_policy
        match await calls.read(lambda: self._orders.get_order(order.id)):
            case Ok(None):
                return
            case Error(e):
                logger.error(
                    "Order %s may have been stored by a failed write: %s", order.order_number, e
                )
                return
            case Ok(_):
                pass

        match await calls.write(lambda: self._orders.mark_failed(order.id, ROLLBACK_REASON)):
            case Ok(_):
                logger.warning("Order %s was stored by a failed write; marked failed", order.order_number)
            case Error(e):
                logger.error(
                    "Order %s was stored by a failed write and is not marked failed: %s",
                    order.order_number,
                    e,
                )

    async def _mark_failed(self, order: Order) -> None:
        match await self._orders.mark_failed(order.id, ROLLBACK_REASON):
            case Error(e):
                raise e
            case Ok(_):
                logger.info("Order %s marked failed", order.order_number)

    async def _restock(self, changes: Sequence[StockChange]) -> None:
        failed = await self._stock.undo(changes)
        if failed:
            raise PersistenceError(f"{failed} restock(s) failed")

    @staticmethod
    def _log_failure(order: Order, failure: S.SagaError[OrderError]) -> None:
        if not failure.rollback_complete:
            logger.error(
                "Order %s failed at %s and rollback is incomplete (%d compensator(s) failed): %s",
                order.order_number,
                failure.step_name,
                failure.compensators_failed,
                failure.error,
            )
        else:
            logger.warning(
                "Order %s failed at %s: %s",
                order.order_number,
                failure.step_name,
                failure.error,
            )


__all__ = ("OrderCreator", "validate", "ROLLBACK_REASON")
