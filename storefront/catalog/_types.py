"""
Catalog types.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Decimal
    category_id: str | None = None
    sku: str | None = None
    image_url: str | None = None
    stock_quantity: int = 0
    stock_tracking: bool = True


@dataclass(frozen=True, slots=True)
class StockLevel:
    """Stock as observed at one point in time."""

    product_id: str
    quantity: int
    tracked: bool = True
    name: str = ""


@dataclass(frozen=True, slots=True)
class StockChange:
    """
    Outcome of one decrement or restock.

    previous: stock right before this write
    current:  stock right after it
    clamped:  the store had less than requested and floored at zero
    """

    product_id: str
    previous: int
    current: int
    requested: int
    clamped: bool = False


__all__ = ("Product", "StockLevel", "StockChange")
