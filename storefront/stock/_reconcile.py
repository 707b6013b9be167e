"""
Stock reconciliation — pre-check and conditional decrement.

Two write strategies:

    ATOMIC           store.decrement_stock(): one conditional UPDATE
    COMPARE_AND_SET  read, compute max(0, stock - q), compare_and_set(); retried
                     on conflict. For stores that cannot do the former.

Neither ever writes a value derived from a read it does not re-validate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from enum import Enum, auto

from kungfu import Error, Ok, Result

from storefront._errors import InsufficientStockError, PersistenceError, ValidationError
from storefront.catalog import StockChange, StockLevel, StockStore, VersionedStockStore
from storefront.config import CallPolicy

logger = logging.getLogger(__name__)


class Strategy(Enum):
    ATOMIC = auto()
    COMPARE_AND_SET = auto()


def aggregate(lines: Iterable[tuple[str, int]]) -> dict[str, int]:
    """Sum quantities per product, keeping first-seen order."""
    totals: dict[str, int] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


class StockReconciler:
    """
    Example:
        reconciler = StockReconciler(catalog)

        match await reconciler.check([("p1", 2)]):
            case Ok(observed):
                await reconciler.reconcile([("p1", 2)], observed)
            case Error(InsufficientStockError() as e):
                print(e)
    """

    def __init__(
        self,
        store: StockStore | VersionedStockStore,
        *,
        strategy: Strategy = Strategy.ATOMIC,
        call_policy: CallPolicy | None = None,
        cas_attempts: int = 5,
    ) -> None:
        if cas_attempts < 1:
            raise ValueError("cas_attempts must be >= 1")
        self._store = store
        self._strategy = strategy
        self._calls = call_policy or CallPolicy()
        self._cas_attempts = cas_attempts

    # ───────────────────────────────────────────────────────────────────────────
    # Pre-check
    # ───────────────────────────────────────────────────────────────────────────

    async def check(
        self,
        lines: Sequence[tuple[str, int]],
    ) -> Result[
        dict[str, StockLevel],
        InsufficientStockError | ValidationError | PersistenceError,
    ]:
        """Read stock for every product in one batch and verify tracked quantities."""
        wanted = aggregate(lines)
        match await self._calls.read(lambda: self._store.get_stock(list(wanted))):
            case Error(e):
                return Error(e)
            case Ok(levels):
                pass

        for product_id, requested in wanted.items():
            level = levels.get(product_id)
            if level is None:
                return Error(ValidationError(f"Product not found: {product_id}"))
            if level.tracked and level.quantity < requested:
                return Error(InsufficientStockError(
                    product_id=product_id,
                    name=level.name or product_id,
                    available=level.quantity,
                    requested=requested,
                ))
        return Ok(levels)

    # ───────────────────────────────────────────────────────────────────────────
    # Single-product writes
    # ───────────────────────────────────────────────────────────────────────────

    async def decrement(
        self,
        product_id: str,
        quantity: int,
        *,
        expected: int | None = None,
    ) -> Result[StockChange, PersistenceError]:
        """
        Apply max(0, stock - quantity).

        `expected` is the value seen at pre-check; a mismatch is logged, not
        treated as failure.
        """
        match self._strategy:
            case Strategy.ATOMIC:
                result = await self._calls.write(
                    lambda: self._store.decrement_stock(product_id, quantity)  # type: ignore[union-attr]
                )
            case Strategy.COMPARE_AND_SET:
                result = await self._decrement_cas(product_id, quantity)

        match result:
            case Ok(change):
                self._warn_on_drift(change, expected)
        return result

    async def restock(self, product_id: str, quantity: int) -> Result[StockChange, PersistenceError]:
        match self._strategy:
            case Strategy.ATOMIC:
                return await self._calls.write(
                    lambda: self._store.increment_stock(product_id, quantity)  # type: ignore[union-attr]
                )
            case Strategy.COMPARE_AND_SET:
                return await self._cas_loop(product_id, quantity, lambda current: current + quantity)

    async def _decrement_cas(self, product_id: str, quantity: int) -> Result[StockChange, PersistenceError]:
        return await self._cas_loop(product_id, quantity, lambda current: max(0, current - quantity))

    async def _cas_loop(
        self,
        product_id: str,
        quantity: int,
        compute: Callable[[int], int],
    ) -> Result[StockChange, PersistenceError]:
        for attempt in range(self._cas_attempts):
            match await self._calls.read(lambda: self._store.get_stock([product_id])):
                case Error(e):
                    return Error(e)
                case Ok(levels):
                    pass

            level = levels.get(product_id)
            if level is None:
                return Error(PersistenceError(f"Product not found: {product_id}"))

            new = compute(level.quantity)
            match await self._calls.write(
                lambda: self._store.compare_and_set(product_id, level.quantity, new)
            ):
                case Error(e):
                    return Error(e)
                case Ok(True):
                    return Ok(StockChange(
                        product_id,
                        level.quantity,
                        new,
                        quantity,
                        clamped=new == 0 and level.quantity < quantity,
                    ))
                case Ok(False):
                    logger.debug("Stock for %s changed under us (attempt %d)", product_id, attempt + 1)

        return Error(PersistenceError(
            f"Stock for {product_id} kept changing; gave up after {self._cas_attempts} attempts"
        ))

    @staticmethod
    def _warn_on_drift(change: StockChange, expected: int | None) -> None:
        if change.clamped:
            logger.warning(
                "Stock for %s floored at 0: had %d, order needed %d",
                change.product_id,
                change.previous,
                change.requested,
            )
        elif expected is not None and change.previous != expected:
            logger.warning(
                "Stock for %s moved between pre-check (%d) and commit (%d)",
                change.product_id,
                expected,
                change.previous,
            )

    # ───────────────────────────────────────────────────────────────────────────
    # Whole order
    # ───────────────────────────────────────────────────────────────────────────

    async def reconcile(
        self,
        lines: Sequence[tuple[str, int]],
        observed: Mapping[str, StockLevel],
    ) -> Result[list[StockChange], PersistenceError]:
        """
        Decrement every tracked product of an order.

        On failure the decrements already made are restocked before the
        error is returned.
        """
        changes: list[StockChange] = []
        for product_id, quantity in aggregate(lines).items():
            level = observed.get(product_id)
            if level is not None and not level.tracked:
                continue

            match await self.decrement(
                product_id,
                quantity,
                expected=None if level is None else level.quantity,
            ):
                case Ok(change):
                    changes.append(change)
                case Error(e):
                    await self.undo(changes)
                    return Error(e)

        return Ok(changes)

    async def undo(self, changes: Sequence[StockChange]) -> int:
        """Give back what `changes` took. Returns how many restocks failed."""
        failed = 0
        for change in reversed(changes):
            taken = change.previous - change.current
            if taken <= 0:
                continue
            match await self.restock(change.product_id, taken):
                case Error(e):
                    failed += 1
                    logger.error("Could not restock %d of %s: %s", taken, change.product_id, e)
                case Ok(_):
                    pass
        return failed


__all__ = ("Strategy", "StockReconciler", "aggregate")
