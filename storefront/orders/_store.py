"""
Order store — typed storage protocol.

insert_order() writes the header and every item in one transaction: either
the whole order exists afterwards or nothing does.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Protocol

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.orders._types import Order, OrderStatus


class OrderStore(Protocol):
    async def insert_order(self, order: Order) -> Result[Order, PersistenceError]:
        """Atomically insert header + items."""
        ...

    async def mark_failed(self, order_id: str, reason: str) -> Result[None, PersistenceError]:
        ...

    async def get_order(self, order_id: str) -> Result[Order | None, PersistenceError]:
        ...

    async def list_customer_orders(self, customer_id: str) -> Result[list[Order], PersistenceError]:
        """Newest first."""
        ...


class MemoryOrderStore:
    """
    In-memory order store.

    Note: Single-process only.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._orders)

    @property
    def orders(self) -> list[Order]:
        return list(self._orders.values())

    async def insert_order(self, order: Order) -> Result[Order, PersistenceError]:
        async with self._lock:
            if order.id in self._orders:
                return Error(PersistenceError(f"Order already exists: {order.id}"))
            if any(o.order_number == order.order_number for o in self._orders.values()):
                return Error(PersistenceError(f"Duplicate order number: {order.order_number}"))
            self._orders[order.id] = order
            return Ok(order)

    async def mark_failed(self, order_id: str, reason: str) -> Result[None, PersistenceError]:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return Error(PersistenceError(f"Order not found: {order_id}"))
            self._orders[order_id] = dataclasses.replace(
                order, status=OrderStatus.FAILED, failure_reason=reason
            )
            return Ok(None)

    async def get_order(self, order_id: str) -> Result[Order | None, PersistenceError]:
        async with self._lock:
            return Ok(self._orders.get(order_id))

    async def list_customer_orders(self, customer_id: str) -> Result[list[Order], PersistenceError]:
        async with self._lock:
            found = [o for o in self._orders.values() if o.customer_id == customer_id]
            return Ok(sorted(found, key=lambda o: o.created_at, reverse=True))


__all__ = ("OrderStore", "MemoryOrderStore")
