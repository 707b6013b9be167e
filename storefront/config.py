"""
Storefront settings — behaviour knobs shared by cart, checkout and sharing.

Fluent builder pattern, same as every other policy object here:

    settings = (
        StorefrontSettings()
        .with_currency("USD")
        .with_shipping(threshold=Decimal("750"), fee=Decimal("60"))
        .with_call_policy(CallPolicy(timeout_seconds=2.0, read_attempts=2))
    )

Note: Immutable — each method returns new settings.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal

import combinators as C
from kungfu import LazyCoroResult, Result

from storefront._errors import PersistenceError

# ═══════════════════════════════════════════════════════════════════════════════
# Call Policy — timeout + bounded retry around every store call
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CallPolicy:
    """
    Bounds on a single store round trip.

    Reads are retried up to read_attempts times. Writes get the timeout only:
    a write that timed out may still have landed, so it is never replayed.
    """

    timeout_seconds: float = 5.0
    read_attempts: int = 3
    retry_delay_seconds: float = 0.05

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.read_attempts < 1:
            raise ValueError("read_attempts must be >= 1")

    def read[T](
        self,
        call: Callable[[], Awaitable[Result[T, PersistenceError]]],
    ) -> LazyCoroResult[T, PersistenceError]:
        return C.retry(
            self._bounded(call),
            policy=C.RetryPolicy.fixed(self.read_attempts, self.retry_delay_seconds),
        )

    def write[T](
        self,
        call: Callable[[], Awaitable[Result[T, PersistenceError]]],
    ) -> LazyCoroResult[T, PersistenceError]:
        return self._bounded(call)

    def _bounded[T](
        self,
        call: Callable[[], Awaitable[Result[T, PersistenceError]]],
    ) -> LazyCoroResult[T, PersistenceError]:
        async def impl() -> Result[T, PersistenceError]:
            return await call()

        seconds = self.timeout_seconds

        def widen(e: PersistenceError | C.TimeoutError) -> PersistenceError:
            match e:
                case PersistenceError():
                    return e
                case _:
                    return PersistenceError(f"store call timed out after {seconds}s", e)

        return C.timeout(LazyCoroResult(impl), seconds=seconds).map_err(widen)


# ═══════════════════════════════════════════════════════════════════════════════
# Store Address — frozen into point-of-sale orders
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StoreAddress:
    name: str = "POS Customer"
    address_line_1: str = "Store Location"
    city: str = "Store City"
    state: str = "Store State"
    postal_code: str = "00000"
    country: str = "South Africa"


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StorefrontSettings:
    max_line_quantity: int = 10
    loyalty_point_value: Decimal = Decimal("0.01")
    free_shipping_threshold: Decimal = Decimal("500")
    shipping_fee: Decimal = Decimal("50")
    currency: str = "ZAR"
    guest_cart_key: str = "ecommerce_guest_cart"
    share_expiry_days: int = 7
    share_base_url: str = "http://localhost:3000"
    call_policy: CallPolicy = field(default_factory=CallPolicy)
    store_address: StoreAddress = field(default_factory=StoreAddress)

    def with_max_line_quantity(self, quantity: int) -> StorefrontSettings:
        if quantity < 1:
            raise ValueError("max_line_quantity must be >= 1")
        return dataclasses.replace(self, max_line_quantity=quantity)

    def with_loyalty_point_value(self, value: Decimal) -> StorefrontSettings:
        return dataclasses.replace(self, loyalty_point_value=value)

    def with_shipping(
        self,
        *,
        threshold: Decimal | None = None,
        fee: Decimal | None = None,
    ) -> StorefrontSettings:
        """
        Flat-rate shipping, waived once the cart total reaches threshold.

        Example:
            .with_shipping(threshold=Decimal("750"))
            .with_shipping(fee=Decimal("0"))  # always free
        """
        return dataclasses.replace(
            self,
            free_shipping_threshold=self.free_shipping_threshold if threshold is None else threshold,
            shipping_fee=self.shipping_fee if fee is None else fee,
        )

    def with_currency(self, currency: str) -> StorefrontSettings:
        return dataclasses.replace(self, currency=currency)

    def with_guest_cart_key(self, key: str) -> StorefrontSettings:
        return dataclasses.replace(self, guest_cart_key=key)

    def with_share(
        self,
        *,
        expiry_days: int | None = None,
        base_url: str | None = None,
    ) -> StorefrontSettings:
        return dataclasses.replace(
            self,
            share_expiry_days=self.share_expiry_days if expiry_days is None else expiry_days,
            share_base_url=self.share_base_url if base_url is None else base_url,
        )

    def with_call_policy(self, policy: CallPolicy) -> StorefrontSettings:
        return dataclasses.replace(self, call_policy=policy)

    def with_store_address(self, address: StoreAddress) -> StorefrontSettings:
        return dataclasses.replace(self, store_address=address)


DEFAULT_SETTINGS = StorefrontSettings()


__all__ = (
    "CallPolicy",
    "StoreAddress",
    "StorefrontSettings",
    "DEFAULT_SETTINGS",
)
