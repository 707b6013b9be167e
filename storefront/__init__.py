"""
storefront — cart pricing, promotions and order checkout.

    from storefront import cart as K       # Cart state and guest persistence
    from storefront import promotion as P  # Promo code resolution
    from storefront import orders as O     # Checkout and order creation
    from storefront import stock           # Stock reconciliation
    from storefront import share           # Shareable cart links
    from storefront import saga as S       # Compensated multi-step writes
"""

from storefront import saga
from storefront import catalog
from storefront import promotion
from storefront import cart
from storefront import stock
from storefront import orders
from storefront import share
from storefront._errors import (
    ValidationError,
    EligibilityError,
    InsufficientStockError,
    PersistenceError,
    CheckoutCancelled,
    PromotionError,
    OrderError,
)
from storefront._types import (
    Lazy,
    Money,
    money,
    round_money,
    LCR,
    NoError,
)
from storefront.config import CallPolicy, StoreAddress, StorefrontSettings, DEFAULT_SETTINGS

__version__ = "0.1.0"

__all__ = (
    "saga",
    "catalog",
    "promotion",
    "cart",
    "stock",
    "orders",
    "share",
    "ValidationError",
    "EligibilityError",
    "InsufficientStockError",
    "PersistenceError",
    "CheckoutCancelled",
    "PromotionError",
    "OrderError",
    "Lazy",
    "Money",
    "money",
    "round_money",
    "LCR",
    "NoError",
    "CallPolicy",
    "StoreAddress",
    "StorefrontSettings",
    "DEFAULT_SETTINGS",
)
