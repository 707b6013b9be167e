"""Pytest fixtures: a small catalog, a promotion book and fixed clocks."""

import asyncio
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from storefront.catalog import MemoryCatalog, Product
from storefront.config import CallPolicy, StorefrontSettings
from storefront.promotion import (
    BuyXGetY,
    FixedAmount,
    FreeShipping,
    MemoryPromotionStore,
    Percentage,
    Promotion,
    PromotionResolver,
    SpecificCategories,
    SpecificProducts,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def run[T](coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def fixed_clock(moment: datetime = NOW):
    return lambda: moment


@pytest.fixture
def settings() -> StorefrontSettings:
    # Short timeouts, no retry delay
    return StorefrontSettings().with_call_policy(
        CallPolicy(timeout_seconds=1.0, read_attempts=2, retry_delay_seconds=0.0)
    )


@pytest.fixture
def mug() -> Product:
    return Product("mug", "Mug", Decimal("50"), category_id="kitchen", sku="MUG-1", stock_quantity=10)


@pytest.fixture
def shirt() -> Product:
    return Product("shirt", "Shirt", Decimal("100"), category_id="apparel", stock_quantity=5)


@pytest.fixture
def ebook() -> Product:
    return Product("ebook", "E-book", Decimal("20"), category_id="digital", stock_tracking=False)


@pytest.fixture
def catalog(mug, shirt, ebook) -> MemoryCatalog:
    return MemoryCatalog([mug, shirt, ebook])


@pytest.fixture
def promotions() -> MemoryPromotionStore:
    return MemoryPromotionStore([
        Promotion("p-save20", "SAVE20", Percentage(Decimal("20")), name="20% off"),
        Promotion("p-fixed50", "FIXED50", FixedAmount(Decimal("50"))),
        Promotion("p-fixed500", "FIXED500", FixedAmount(Decimal("500"))),
        Promotion("p-bogo", "BOGO", BuyXGetY(buy=2, get=1)),
        Promotion("p-ship", "FREESHIP", FreeShipping()),
        Promotion(
            "p-capped",
            "HALFCAP",
            Percentage(Decimal("50")),
            maximum_discount_amount=Decimal("30"),
        ),
        Promotion(
            "p-min",
            "MIN300",
            Percentage(Decimal("10")),
            minimum_order_amount=Decimal("300"),
        ),
        Promotion(
            "p-kitchen",
            "KITCHEN10",
            Percentage(Decimal("10")),
            scope=SpecificCategories(frozenset({"kitchen"})),
        ),
        Promotion(
            "p-shirts",
            "SHIRTS",
            FixedAmount(Decimal("15")),
            scope=SpecificProducts(frozenset({"shirt"})),
        ),
        Promotion("p-off", "OFF", Percentage(Decimal("10")), is_active=False),
        Promotion(
            "p-expired",
            "EXPIRED",
            Percentage(Decimal("10")),
            end_date=NOW - timedelta(days=1),
        ),
        Promotion(
            "p-future",
            "FUTURE",
            Percentage(Decimal("10")),
            start_date=NOW + timedelta(days=1),
        ),
        Promotion(
            "p-used",
            "USEDUP",
            Percentage(Decimal("10")),
            usage_limit=5,
            current_usage_count=5,
        ),
    ])


@pytest.fixture
def resolver(promotions, catalog, settings) -> PromotionResolver:
    return PromotionResolver(
        promotions,
        catalog,
        call_policy=settings.call_policy,
        clock=fixed_clock(),
    )
