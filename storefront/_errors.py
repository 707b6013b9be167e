"""
Error taxonomy.

Errors travel as values inside kungfu Result. They subclass Exception so
they can also be raised from pure code (see cart.reduce) and caught at the
store boundary.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ValidationError(Exception):
    """Malformed input or an unusable promo code. Recoverable."""

    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass(frozen=True, slots=True)
class EligibilityError(Exception):
    """Promotion exists but does not apply to this cart. Recoverable."""

    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass(frozen=True, slots=True)
class InsufficientStockError(Exception):
    product_id: str
    name: str
    available: int
    requested: int

    def __str__(self) -> str:
        return (
            f"Insufficient stock for {self.name}. "
            f"Available: {self.available}, Required: {self.requested}"
        )


@dataclass(frozen=True, slots=True)
class PersistenceError(Exception):
    """Store call failed, timed out, or returned something unusable."""

    message: str
    cause: BaseException | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class CheckoutCancelled(Exception):
    step: str

    def __str__(self) -> str:
        return f"checkout cancelled before {self.step}"


type PromotionError = ValidationError | EligibilityError | PersistenceError
type OrderError = (
    ValidationError | InsufficientStockError | PersistenceError | CheckoutCancelled
)


__all__ = (
    "ValidationError",
    "EligibilityError",
    "InsufficientStockError",
    "PersistenceError",
    "CheckoutCancelled",
    "PromotionError",
    "OrderError",
)
