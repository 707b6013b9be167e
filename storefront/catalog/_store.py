"""
Catalog and stock stores — typed storage protocols.

ProductStore:     batch product reads (category lookup, order snapshots)
StockStore:       reads plus an atomic conditional decrement
VersionedStockStore: reads plus compare-and-set, for backends without
                  conditional updates
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Iterable, Sequence
from typing import Protocol

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.catalog._types import Product, StockChange, StockLevel

# ═══════════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════════


class ProductStore(Protocol):
    async def get_products(
        self, product_ids: Sequence[str]
    ) -> Result[list[Product], PersistenceError]:
        """Products for the given ids; unknown ids are simply absent."""
        ...


class VersionedStockStore(Protocol):
    async def get_stock(
        self, product_ids: Sequence[str]
    ) -> Result[dict[str, StockLevel], PersistenceError]:
        ...

    async def compare_and_set(
        self, product_id: str, expected: int, new: int
    ) -> Result[bool, PersistenceError]:
        """Write `new` only if stock still equals `expected`. Ok(False) on conflict."""
        ...


class StockStore(VersionedStockStore, Protocol):
    async def decrement_stock(
        self, product_id: str, quantity: int
    ) -> Result[StockChange, PersistenceError]:
        """
        Atomically apply max(0, stock - quantity).

        Must be a single read-modify-write at the storage boundary, never a
        client-side read followed by a blind write.
        """
        ...

    async def increment_stock(
        self, product_id: str, quantity: int
    ) -> Result[StockChange, PersistenceError]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Catalog — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryCatalog:
    """
    In-memory products + stock.

    Note: The lock makes each decrement atomic within one event loop, which
    is what a conditional UPDATE gives a SQL backend.
    """

    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products: dict[str, Product] = {p.id: p for p in products}
        self._lock = asyncio.Lock()

    def add(self, product: Product) -> None:
        self._products[product.id] = product

    def stock_of(self, product_id: str) -> int:
        return self._products[product_id].stock_quantity

    async def get_products(
        self, product_ids: Sequence[str]
    ) -> Result[list[Product], PersistenceError]:
        async with self._lock:
            return Ok([self._products[i] for i in dict.fromkeys(product_ids) if i in self._products])

    async def get_stock(
        self, product_ids: Sequence[str]
    ) -> Result[dict[str, StockLevel], PersistenceError]:
        async with self._lock:
            return Ok({
                p.id: StockLevel(p.id, p.stock_quantity, p.stock_tracking, p.name)
                for i in product_ids
                if (p := self._products.get(i)) is not None
            })

    async def decrement_stock(
        self, product_id: str, quantity: int
    ) -> Result[StockChange, PersistenceError]:
        async with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return Error(PersistenceError(f"Product not found: {product_id}"))

            previous = product.stock_quantity
            current = max(0, previous - quantity)
            self._products[product_id] = dataclasses.replace(product, stock_quantity=current)
            return Ok(StockChange(product_id, previous, current, quantity, clamped=previous < quantity))

    async def increment_stock(
        self, product_id: str, quantity: int
    ) -> Result[StockChange, PersistenceError]:
        async with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return Error(PersistenceError(f"Product not found: {product_id}"))

            previous = product.stock_quantity
            self._products[product_id] = dataclasses.replace(
                product, stock_quantity=previous + quantity
            )
            return Ok(StockChange(product_id, previous, previous + quantity, quantity))

    async def compare_and_set(
        self, product_id: str, expected: int, new: int
    ) -> Result[bool, PersistenceError]:
        async with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return Error(PersistenceError(f"Product not found: {product_id}"))
            if product.stock_quantity != expected:
                return Ok(False)
            self._products[product_id] = dataclasses.replace(product, stock_quantity=new)
            return Ok(True)


__all__ = ("ProductStore", "StockStore", "VersionedStockStore", "MemoryCatalog")
