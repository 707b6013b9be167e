"""
Catalog — products and stock levels.

    from storefront import catalog

    products = catalog.MemoryCatalog([catalog.Product("p1", "Mug", Decimal("50"))])
"""

from __future__ import annotations

from storefront.catalog._types import Product, StockLevel, StockChange
from storefront.catalog._store import (
    ProductStore,
    StockStore,
    VersionedStockStore,
    MemoryCatalog,
)
from storefront.catalog._sqlalchemy import SQLAlchemyCatalog

__all__ = (
    "Product",
    "StockLevel",
    "StockChange",
    "ProductStore",
    "StockStore",
    "VersionedStockStore",
    "MemoryCatalog",
    "SQLAlchemyCatalog",
)
