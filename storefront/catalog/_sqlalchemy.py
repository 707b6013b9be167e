"""
SQLAlchemy catalog — products and stock in the `products` table.

Stock decrements are one conditional UPDATE per product:

    UPDATE products
       SET stock_quantity = CASE WHEN stock_quantity >= :q
                                 THEN stock_quantity - :q ELSE 0 END
     WHERE id = :id

The row is read FOR UPDATE first (ignored by SQLite, which serialises
writers anyway) so the reported previous value belongs to the same
transaction. New stock is never derived client-side from a stale read.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.catalog._types import Product, StockChange, StockLevel
from storefront.db import ProductTable, from_cents, to_cents


class SQLAlchemyCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_products(
        self, product_ids: Sequence[str]
    ) -> Result[list[Product], PersistenceError]:
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(ProductTable).where(ProductTable.id.in_(set(product_ids)))
                    )
                ).scalars().all()
                return Ok([_to_product(r) for r in rows])

        except Exception as e:
            return Error(PersistenceError(f"Failed to get products: {e}", e))

    async def get_stock(
        self, product_ids: Sequence[str]
    ) -> Result[dict[str, StockLevel], PersistenceError]:
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(
                            ProductTable.id,
                            ProductTable.stock_quantity,
                            ProductTable.stock_tracking,
                            ProductTable.name,
                        ).where(ProductTable.id.in_(set(product_ids)))
                    )
                ).all()
                return Ok({
                    pid: StockLevel(pid, qty, tracked, name)
                    for pid, qty, tracked, name in rows
                })

        except Exception as e:
            return Error(PersistenceError(f"Failed to get stock: {e}", e))

    async def decrement_stock(
        self, product_id: str, quantity: int
    ) -> Result[StockChange, PersistenceError]:
        stock = ProductTable.stock_quantity
        try:
            async with self._session_factory() as session:
                previous = await session.scalar(
                    select(stock).where(ProductTable.id == product_id).with_for_update()
                )
                if previous is None:
                    await session.rollback()
                    return Error(PersistenceError(f"Product not found: {product_id}"))

                await session.execute(
                    update(ProductTable)
                    .where(ProductTable.id == product_id)
                    .values(stock_quantity=case((stock >= quantity, stock - quantity), else_=0))
                )
                current = await self._read_stock(session, product_id)
                await session.commit()
                return Ok(StockChange(
                    product_id,
                    previous,
                    current,
                    quantity,
                    clamped=previous < quantity,
                ))

        except Exception as e:
            return Error(PersistenceError(f"Failed to decrement stock: {e}", e))

    async def increment_stock(
        self, product_id: str, quantity: int
    ) -> Result[StockChange, PersistenceError]:
        try:
            async with self._session_factory() as session:
                applied = await session.execute(
                    update(ProductTable)
                    .where(ProductTable.id == product_id)
                    .values(stock_quantity=ProductTable.stock_quantity + quantity)
                )
                if applied.rowcount == 0:
                    await session.rollback()
                    return Error(PersistenceError(f"Product not found: {product_id}"))

                current = await self._read_stock(session, product_id)
                await session.commit()
                return Ok(StockChange(product_id, current - quantity, current, quantity))

        except Exception as e:
            return Error(PersistenceError(f"Failed to increment stock: {e}", e))

    async def compare_and_set(
        self, product_id: str, expected: int, new: int
    ) -> Result[bool, PersistenceError]:
        try:
            async with self._session_factory() as session:
                applied = await session.execute(
                    update(ProductTable)
                    .where(
                        ProductTable.id == product_id,
                        ProductTable.stock_quantity == expected,
                    )
                    .values(stock_quantity=new)
                )
                await session.commit()
                return Ok(applied.rowcount == 1)

        except Exception as e:
            return Error(PersistenceError(f"Failed to compare-and-set stock: {e}", e))

    async def save(self, product: Product) -> Result[None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                await session.merge(_to_row(product))
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(PersistenceError(f"Failed to save product: {e}", e))

    @staticmethod
    async def _read_stock(session: AsyncSession, product_id: str) -> int:
        value = await session.scalar(
            select(ProductTable.stock_quantity).where(ProductTable.id == product_id)
        )
        if value is None:
            raise LookupError(f"Product vanished mid-transaction: {product_id}")
        return value


def _to_product(row: ProductTable) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=from_cents(row.price_cents),
        category_id=row.category_id,
        sku=row.sku,
        image_url=row.image_url,
        stock_quantity=row.stock_quantity,
        stock_tracking=row.stock_tracking,
    )


def _to_row(product: Product) -> ProductTable:
    return ProductTable(
        id=product.id,
        name=product.name,
        price_cents=to_cents(product.price),
        category_id=product.category_id,
        sku=product.sku,
        image_url=product.image_url,
        stock_quantity=product.stock_quantity,
        stock_tracking=product.stock_tracking,
    )


__all__ = ("SQLAlchemyCatalog",)
