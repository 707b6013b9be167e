"""
Promotion resolution — code lookup, eligibility, discount computation.

Checks run in a fixed order and stop at the first failure:

    1. code is non-empty after trimming
    2. an active promotion has exactly this code
    3. now is inside [start_date, end_date]
    4. usage limit not reached
    5. scope picks the eligible lines
    6. minimum order amount is met
    7. the discount is computed, capped, and must be positive
    8. usage is recorded (best-effort)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import assert_never

from kungfu import Error, Ok, Result

from storefront._errors import EligibilityError, PersistenceError, PromotionError, ValidationError
from storefront._types import HUNDRED, ZERO, Clock, LineId, utcnow
from storefront.catalog import ProductStore
from storefront.config import CallPolicy
from storefront.promotion._distribute import distribute
from storefront.promotion._store import PromotionStore
from storefront.promotion._types import (
    AllProducts,
    BuyXGetY,
    FixedAmount,
    FreeShipping,
    Percentage,
    PricedCart,
    PricedLine,
    Promotion,
    Resolution,
    Scope,
    SpecificCategories,
    SpecificProducts,
    line_subtotal,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Buy X Get Y
# ═══════════════════════════════════════════════════════════════════════════════


def bogo_line_discounts(offer: BuyXGetY, lines: Sequence[PricedLine]) -> dict[LineId, Decimal]:
    """
    Discount per line for a buy-X-get-Y offer.

    sets = floor(eligible quantity / buy), sets * get units are discounted,
    cheapest units first.
    """
    discounts: dict[LineId, Decimal] = {line.id: ZERO for line in lines}
    remaining = (sum(line.quantity for line in lines) // offer.buy) * offer.get

    for line in sorted(lines, key=lambda l: l.unit_price):
        if remaining <= 0:
            break
        covered = min(remaining, line.quantity)
        discounts[line.id] = line.unit_price * covered * offer.percent_off / HUNDRED
        remaining -= covered

    return discounts


def buy_x_get_y(offer: BuyXGetY, lines: Sequence[PricedLine]) -> dict[LineId, Decimal]:
    """
    Per-unit discounts for a buy-X-get-Y offer.

    A line with some covered units spreads their discount over its whole
    quantity; per_unit * quantity, to the cent, is the discount of the
    covered units.
    """
    discounts = bogo_line_discounts(offer, lines)
    return {line.id: discounts[line.id] / line.quantity for line in lines}


# ═══════════════════════════════════════════════════════════════════════════════
# Resolver
# ═══════════════════════════════════════════════════════════════════════════════


class PromotionResolver:
    """
    Turns a promo code plus a cart into a Resolution.

    Example:
        resolver = PromotionResolver(promotions, catalog)

        match await resolver.resolve(" SAVE20 ", cart):
            case Ok(r):
                print(r.discount_total, dict(r.per_unit))
            case Error(e):
                print(f"rejected: {e}")
    """

    def __init__(
        self,
        promotions: PromotionStore,
        products: ProductStore,
        *,
        call_policy: CallPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._promotions = promotions
        self._products = products
        self._calls = call_policy or CallPolicy()
        self._clock = clock

    async def resolve(self, code: str, cart: PricedCart) -> Result[Resolution, PromotionError]:
        normalized = code.strip()
        if not normalized:
            return Error(ValidationError("empty code"))

        match await self._calls.read(lambda: self._promotions.find_by_code(normalized)):
            case Error(e):
                return Error(e)
            case Ok(found):
                promotion = found

        if promotion is None or not promotion.is_active:
            return Error(ValidationError("invalid or inactive code"))

        now = self._clock()
        if promotion.start_date is not None and now < promotion.start_date:
            return Error(ValidationError("not started"))
        if promotion.end_date is not None and now > promotion.end_date:
            return Error(ValidationError("expired"))
        if promotion.exhausted:
            return Error(ValidationError("usage limit reached"))

        match await self._eligible_lines(promotion.scope, cart.items):
            case Error(e):
                return Error(e)
            case Ok(lines):
                eligible = lines

        eligible_subtotal = sum((line_subtotal(line) for line in eligible), ZERO)
        basis = (
            eligible_subtotal
            if eligible
            else sum((line_subtotal(line) for line in cart.items), ZERO)
        )
        if basis < promotion.minimum_order_amount:
            return Error(EligibilityError(
                f"minimum order amount of {promotion.minimum_order_amount} not met"
            ))
        if not eligible:
            return Error(EligibilityError("does not apply"))

        resolution = self._compute(promotion, eligible, eligible_subtotal)
        if not resolution.free_shipping and resolution.discount_total <= ZERO:
            return Error(EligibilityError("does not apply"))

        await self._record_usage(promotion)
        logger.info(
            "Promotion %s resolved: %s off across %d line(s)%s",
            promotion.code,
            resolution.discount_total,
            len(resolution.per_unit),
            " with free shipping" if resolution.free_shipping else "",
        )
        return Ok(resolution)

    # ───────────────────────────────────────────────────────────────────────────

    async def _eligible_lines(
        self,
        scope: Scope,
        lines: Sequence[PricedLine],
    ) -> Result[list[PricedLine], PersistenceError]:
        match scope:
            case AllProducts():
                return Ok(list(lines))
            case SpecificProducts(product_ids=ids):
                return Ok([line for line in lines if line.product_id in ids])
            case SpecificCategories(category_ids=ids):
                product_ids = list(dict.fromkeys(line.product_id for line in lines))
                if not product_ids:
                    return Ok([])
                match await self._calls.read(lambda: self._products.get_products(product_ids)):
                    case Error(e):
                        return Error(e)
                    case Ok(products):
                        category_of = {p.id: p.category_id for p in products}
                return Ok([line for line in lines if category_of.get(line.product_id) in ids])
            case _:
                assert_never(scope)

    def _compute(
        self,
        promotion: Promotion,
        lines: list[PricedLine],
        eligible_subtotal: Decimal,
    ) -> Resolution:
        eligible_ids = tuple(line.id for line in lines)
        cap = promotion.maximum_discount_amount

        match promotion.discount:
            case FreeShipping():
                return Resolution(promotion, eligible_ids, ZERO, {}, free_shipping=True)

            case BuyXGetY() as offer:
                per_unit = buy_x_get_y(offer, lines)
                total = sum(bogo_line_discounts(offer, lines).values(), ZERO)
                if cap is not None and total > cap:
                    scale = cap / total
                    per_unit = {line_id: d * scale for line_id, d in per_unit.items()}
                    total = cap
                return Resolution(promotion, eligible_ids, total, per_unit)

            case Percentage(value=value):
                total = eligible_subtotal * value / HUNDRED

            case FixedAmount(value=value):
                total = value

            case _:
                assert_never(promotion.discount)

        total = min(total, eligible_subtotal)
        if cap is not None:
            total = min(total, cap)
        return Resolution(promotion, eligible_ids, total, distribute(total, lines))

    async def _record_usage(self, promotion: Promotion) -> None:
        match await self._calls.write(lambda: self._promotions.increment_usage(promotion.id)):
            case Ok(count):
                logger.debug("Promotion %s usage now %d", promotion.code, count)
            case Error(e):
                logger.warning("Could not record usage of promotion %s: %s", promotion.code, e)


__all__ = ("PromotionResolver", "buy_x_get_y", "bogo_line_discounts")
