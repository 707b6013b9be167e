"""
Stock — pre-check and conditional decrement of inventory.

    from storefront import stock

    reconciler = stock.StockReconciler(catalog)
    reconciler = stock.StockReconciler(legacy_store, strategy=stock.Strategy.COMPARE_AND_SET)
"""

from __future__ import annotations

from storefront.stock._reconcile import Strategy, StockReconciler, aggregate

__all__ = ("Strategy", "StockReconciler", "aggregate")
