"""
SQLAlchemy order store — `orders` header rows plus `order_items`.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.db import OrderItemTable, OrderTable, aware, from_cents, to_cents
from storefront.orders._types import (
    Address,
    Channel,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ProductSnapshot,
)


class SQLAlchemyOrderStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert_order(self, order: Order) -> Result[Order, PersistenceError]:
        """Header and items share one session and one commit."""
        try:
            async with self._session_factory() as session:
                session.add(_to_row(order))
                await session.flush()
                session.add_all(_to_item_rows(order))
                await session.commit()
                return Ok(order)

        except Exception as e:
            return Error(PersistenceError(f"Failed to insert order {order.order_number}: {e}", e))

    async def mark_failed(self, order_id: str, reason: str) -> Result[None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(OrderTable)
                    .where(OrderTable.id == order_id)
                    .values(status=OrderStatus.FAILED.value, failure_reason=reason)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return Error(PersistenceError(f"Order not found: {order_id}"))
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(PersistenceError(f"Failed to mark order {order_id} failed: {e}", e))

    async def get_order(self, order_id: str) -> Result[Order | None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(OrderTable, order_id)
                if row is None:
                    return Ok(None)
                items = await self._items(session, [row.id])
                return Ok(_to_order(row, items.get(row.id, [])))

        except Exception as e:
            return Error(PersistenceError(f"Failed to get order {order_id}: {e}", e))

    async def list_customer_orders(self, customer_id: str) -> Result[list[Order], PersistenceError]:
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(OrderTable)
                        .where(OrderTable.customer_id == customer_id)
                        .order_by(OrderTable.created_at.desc())
                    )
                ).scalars().all()
                items = await self._items(session, [r.id for r in rows])
                return Ok([_to_order(r, items.get(r.id, [])) for r in rows])

        except Exception as e:
            return Error(PersistenceError(f"Failed to list orders for {customer_id}: {e}", e))

    @staticmethod
    async def _items(
        session: AsyncSession, order_ids: Sequence[str]
    ) -> dict[str, list[OrderItemTable]]:
        if not order_ids:
            return {}
        rows = (
            await session.execute(
                select(OrderItemTable)
                .where(OrderItemTable.order_id.in_(order_ids))
                .order_by(OrderItemTable.order_id, OrderItemTable.position)
            )
        ).scalars().all()
        grouped: dict[str, list[OrderItemTable]] = {}
        for row in rows:
            grouped.setdefault(row.order_id, []).append(row)
        return grouped


# ═══════════════════════════════════════════════════════════════════════════════
# Row mapping
# ═══════════════════════════════════════════════════════════════════════════════


def _to_row(order: Order) -> OrderTable:
    return OrderTable(
        id=order.id,
        order_number=order.order_number,
        customer_id=order.customer_id,
        customer_email=order.customer_email,
        status=order.status.value,
        payment_status=order.payment_status.value,
        channel=order.channel.value,
        currency=order.currency,
        subtotal_cents=to_cents(order.subtotal),
        discount_cents=to_cents(order.discount_amount),
        shipping_cents=to_cents(order.shipping_amount),
        tax_cents=to_cents(order.tax_amount),
        total_cents=to_cents(order.total_amount),
        billing_address=order.billing_address.to_dict(),
        shipping_address=order.shipping_address.to_dict(),
        customer_info=order.customer_info,
        promotion_ids=list(order.promotion_ids),
        payment_method=order.payment_method,
        notes=order.notes,
        failure_reason=order.failure_reason,
        created_at=order.created_at,
    )


def _to_item_rows(order: Order) -> list[OrderItemTable]:
    return [
        OrderItemTable(
            order_id=order.id,
            position=position,
            product_id=item.product_id,
            product_snapshot=item.snapshot.to_dict(),
            quantity=item.quantity,
            unit_price_cents=to_cents(item.unit_price),
            discount_cents=to_cents(item.discount_amount),
            total_price_cents=to_cents(item.total_price),
        )
        for position, item in enumerate(order.items)
    ]


def _to_order(row: OrderTable, items: list[OrderItemTable]) -> Order:
    return Order(
        id=row.id,
        order_number=row.order_number,
        status=OrderStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        channel=Channel(row.channel),
        currency=row.currency,
        subtotal=from_cents(row.subtotal_cents),
        discount_amount=from_cents(row.discount_cents),
        shipping_amount=from_cents(row.shipping_cents),
        tax_amount=from_cents(row.tax_cents),
        total_amount=from_cents(row.total_cents),
        billing_address=Address.from_dict(row.billing_address),
        shipping_address=Address.from_dict(row.shipping_address),
        items=tuple(
            OrderItem(
                product_id=i.product_id,
                snapshot=ProductSnapshot.from_dict(i.product_snapshot),
                quantity=i.quantity,
                unit_price=from_cents(i.unit_price_cents),
                discount_amount=from_cents(i.discount_cents),
                total_price=from_cents(i.total_price_cents),
            )
            for i in items
        ),
        created_at=aware(row.created_at),
        customer_id=row.customer_id,
        customer_email=row.customer_email,
        customer_info=dict(row.customer_info or {}),
        payment_method=row.payment_method,
        promotion_ids=tuple(row.promotion_ids or ()),
        notes=row.notes,
        failure_reason=row.failure_reason,
    )


__all__ = ("SQLAlchemyOrderStore",)
