"""
SQLAlchemy promotion store.

Promotions live in `promotions`; product and category scope sets live in the
`promotion_products` / `promotion_categories` link tables.
"""

from __future__ import annotations

from typing import Any, assert_never

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront._types import HUNDRED
from storefront.db import (
    PromotionCategoryTable,
    PromotionProductTable,
    PromotionTable,
    aware_or_none,
    from_cents,
    to_cents,
)
from storefront.promotion._types import (
    AllProducts,
    BuyXGetY,
    Discount,
    FixedAmount,
    FreeShipping,
    Percentage,
    Promotion,
    Scope,
    SpecificCategories,
    SpecificProducts,
)


class SQLAlchemyPromotionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_code(self, code: str) -> Result[Promotion | None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(PromotionTable).where(PromotionTable.code == code)
                    )
                ).scalar_one_or_none()
                if row is None:
                    return Ok(None)

                product_ids = (
                    await session.execute(
                        select(PromotionProductTable.product_id).where(
                            PromotionProductTable.promotion_id == row.id
                        )
                    )
                ).scalars().all()
                category_ids = (
                    await session.execute(
                        select(PromotionCategoryTable.category_id).where(
                            PromotionCategoryTable.promotion_id == row.id
                        )
                    )
                ).scalars().all()

                return Ok(_to_promotion(row, frozenset(product_ids), frozenset(category_ids)))

        except Exception as e:
            return Error(PersistenceError(f"Failed to find promotion: {e}", e))

    async def increment_usage(self, promotion_id: str) -> Result[int, PersistenceError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(PromotionTable)
                    .where(PromotionTable.id == promotion_id)
                    .values(current_usage_count=PromotionTable.current_usage_count + 1)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return Error(PersistenceError(f"Promotion not found: {promotion_id}"))

                count = await session.scalar(
                    select(PromotionTable.current_usage_count).where(
                        PromotionTable.id == promotion_id
                    )
                )
                await session.commit()
                return Ok(int(count or 0))

        except Exception as e:
            return Error(PersistenceError(f"Failed to increment usage: {e}", e))

    async def save(self, promotion: Promotion) -> Result[None, PersistenceError]:
        """Insert or replace a promotion together with its scope links."""
        try:
            async with self._session_factory() as session:
                await session.merge(_to_row(promotion))
                await session.execute(
                    delete(PromotionProductTable).where(
                        PromotionProductTable.promotion_id == promotion.id
                    )
                )
                await session.execute(
                    delete(PromotionCategoryTable).where(
                        PromotionCategoryTable.promotion_id == promotion.id
                    )
                )
                match promotion.scope:
                    case SpecificProducts(product_ids=ids):
                        session.add_all(
                            PromotionProductTable(promotion_id=promotion.id, product_id=i)
                            for i in sorted(ids)
                        )
                    case SpecificCategories(category_ids=ids):
                        session.add_all(
                            PromotionCategoryTable(promotion_id=promotion.id, category_id=i)
                            for i in sorted(ids)
                        )
                    case AllProducts():
                        pass
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(PersistenceError(f"Failed to save promotion: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Row mapping
# ═══════════════════════════════════════════════════════════════════════════════


def _to_discount(row: PromotionTable) -> Discount:
    value = from_cents(row.discount_value_cents)
    conditions: dict[str, Any] = row.conditions or {}

    match row.discount_type:
        case "percentage":
            return Percentage(value)
        case "fixed_amount":
            return FixedAmount(value)
        case "buy_x_get_y":
            buy = conditions.get("buy_quantity", conditions.get("minimum_quantity", 2))
            return BuyXGetY(
                buy=int(buy),
                get=int(conditions.get("get_quantity", 1)),
                percent_off=value if value > 0 else HUNDRED,
            )
        case "free_shipping":
            return FreeShipping()
        case other:
            raise ValueError(f"Unknown discount type: {other}")


def _to_scope(
    applies_to: str,
    product_ids: frozenset[str],
    category_ids: frozenset[str],
) -> Scope:
    match applies_to:
        case "specific_products":
            return SpecificProducts(product_ids)
        case "specific_categories":
            return SpecificCategories(category_ids)
        case _:
            return AllProducts()


def _to_promotion(
    row: PromotionTable,
    product_ids: frozenset[str],
    category_ids: frozenset[str],
) -> Promotion:
    return Promotion(
        id=row.id,
        code=row.code,
        discount=_to_discount(row),
        scope=_to_scope(row.applies_to, product_ids, category_ids),
        minimum_order_amount=from_cents(row.minimum_order_cents),
        maximum_discount_amount=(
            None if row.maximum_discount_cents is None else from_cents(row.maximum_discount_cents)
        ),
        start_date=aware_or_none(row.start_date),
        end_date=aware_or_none(row.end_date),
        usage_limit=row.usage_limit,
        current_usage_count=row.current_usage_count,
        is_active=row.is_active,
        name=row.name,
        description=row.description,
    )


def _to_row(promotion: Promotion) -> PromotionTable:
    conditions: dict[str, Any] = {}
    match promotion.discount:
        case Percentage(value=v) | FixedAmount(value=v):
            value_cents = to_cents(v)
        case BuyXGetY(buy=buy, get=get, percent_off=pct):
            value_cents = to_cents(pct)
            conditions = {"buy_quantity": buy, "get_quantity": get}
        case FreeShipping():
            value_cents = 0
        case _:
            assert_never(promotion.discount)

    return PromotionTable(
        id=promotion.id,
        code=promotion.code,
        name=promotion.name,
        description=promotion.description,
        discount_type=promotion.discount_type,
        discount_value_cents=value_cents,
        conditions=conditions,
        minimum_order_cents=to_cents(promotion.minimum_order_amount),
        maximum_discount_cents=(
            None
            if promotion.maximum_discount_amount is None
            else to_cents(promotion.maximum_discount_amount)
        ),
        applies_to=promotion.applies_to,
        start_date=promotion.start_date,
        end_date=promotion.end_date,
        usage_limit=promotion.usage_limit,
        current_usage_count=promotion.current_usage_count,
        is_active=promotion.is_active,
    )


__all__ = ("SQLAlchemyPromotionStore",)
