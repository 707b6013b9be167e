"""Tests for promo code resolution."""

import asyncio
import logging
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from conftest import fixed_clock, run
from storefront._errors import EligibilityError, PersistenceError, ValidationError
from storefront._types import round_money
from storefront.cart import AddItem, CartSnapshot, reduce
from storefront.config import CallPolicy
from storefront.promotion import MemoryPromotionStore, PromotionResolver


def _cart(*adds: tuple) -> CartSnapshot:
    snapshot = CartSnapshot()
    for product, quantity in adds:
        snapshot = reduce(snapshot, AddItem(product, quantity))
    return snapshot


def _resolve(resolver, code, cart):
    return run(resolver.resolve(code, cart))


# ═══════════════════════════════════════════════════════════════════════════════
# Discount kinds
# ═══════════════════════════════════════════════════════════════════════════════


def test_percentage_code(resolver, mug, shirt):
    cart = _cart((mug, 2), (shirt, 1))

    result = _resolve(resolver, "SAVE20", cart)

    assert isinstance(result, Ok)
    resolution = result.value
    mug_line, shirt_line = cart.items
    assert resolution.discount_total == Decimal("40")
    assert resolution.per_unit[mug_line.id] == Decimal("10")
    assert resolution.per_unit[shirt_line.id] == Decimal("20")
    assert resolution.eligible_lines == (mug_line.id, shirt_line.id)


def test_code_is_trimmed(resolver, mug):
    result = _resolve(resolver, "  SAVE20 ", _cart((mug, 1)))

    assert isinstance(result, Ok)
    assert result.value.promotion.code == "SAVE20"


def test_code_is_case_sensitive(resolver, mug):
    result = _resolve(resolver, "save20", _cart((mug, 1)))

    assert result == Error(ValidationError("invalid or inactive code"))


def test_fixed_amount_never_exceeds_eligible_subtotal(resolver, mug):
    result = _resolve(resolver, "FIXED500", _cart((mug, 2)))

    assert isinstance(result, Ok)
    assert result.value.discount_total == Decimal("100")


def test_maximum_discount_caps_total(resolver, shirt):
    result = _resolve(resolver, "HALFCAP", _cart((shirt, 1)))

    assert isinstance(result, Ok)
    assert result.value.discount_total == Decimal("30")


def test_bogo_three_mugs(resolver, mug):
    cart = _cart((mug, 3))

    result = _resolve(resolver, "BOGO", cart)

    assert isinstance(result, Ok)
    assert result.value.discount_total == Decimal("50")
    per_unit = result.value.per_unit[cart.items[0].id]
    assert round_money(per_unit * 3) == Decimal("50.00")


def test_bogo_below_threshold_does_not_apply(resolver, mug):
    result = _resolve(resolver, "BOGO", _cart((mug, 1)))

    assert result == Error(EligibilityError("does not apply"))


def test_free_shipping(resolver, mug):
    result = _resolve(resolver, "FREESHIP", _cart((mug, 1)))

    assert isinstance(result, Ok)
    assert result.value.free_shipping is True
    assert result.value.discount_total == Decimal("0")
    assert dict(result.value.per_unit) == {}


# ═══════════════════════════════════════════════════════════════════════════════
# Scope + minimum
# ═══════════════════════════════════════════════════════════════════════════════


def test_category_scope_only_discounts_matching_lines(resolver, mug, shirt):
    cart = _cart((mug, 2), (shirt, 1))

    result = _resolve(resolver, "KITCHEN10", cart)

    assert isinstance(result, Ok)
    mug_line, shirt_line = cart.items
    assert result.value.discount_total == Decimal("10")
    assert result.value.eligible_lines == (mug_line.id,)
    assert shirt_line.id not in result.value.per_unit


def test_product_scope(resolver, mug, shirt):
    cart = _cart((mug, 1), (shirt, 2))

    result = _resolve(resolver, "SHIRTS", cart)

    assert isinstance(result, Ok)
    assert result.value.discount_total == Decimal("15")
    assert result.value.per_unit[cart.items[1].id] == Decimal("7.5")


def test_scope_without_matching_lines(resolver, shirt):
    result = _resolve(resolver, "KITCHEN10", _cart((shirt, 1)))

    assert result == Error(EligibilityError("does not apply"))


def test_minimum_order_not_met(resolver, mug):
    result = _resolve(resolver, "MIN300", _cart((mug, 2)))

    assert isinstance(result, Error)
    assert isinstance(result.error, EligibilityError)
    assert "minimum order amount" in str(result.error)


def test_minimum_order_met(resolver, shirt):
    result = _resolve(resolver, "MIN300", _cart((shirt, 3)))

    assert isinstance(result, Ok)
    assert result.value.discount_total == Decimal("30")


# ═══════════════════════════════════════════════════════════════════════════════
# Code validity, in check order
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("code", "reason"),
    [
        ("   ", "empty code"),
        ("NOPE", "invalid or inactive code"),
        ("OFF", "invalid or inactive code"),
        ("FUTURE", "not started"),
        ("EXPIRED", "expired"),
        ("USEDUP", "usage limit reached"),
    ],
)
def test_invalid_codes(resolver, mug, code, reason):
    result = _resolve(resolver, code, _cart((mug, 1)))

    assert result == Error(ValidationError(reason))


# ═══════════════════════════════════════════════════════════════════════════════
# Usage + store failures
# ═══════════════════════════════════════════════════════════════════════════════


def test_usage_is_recorded(resolver, promotions, mug):
    _resolve(resolver, "SAVE20", _cart((mug, 1)))

    assert promotions.get("p-save20").current_usage_count == 1


def test_rejected_code_does_not_count_usage(resolver, promotions, mug):
    _resolve(resolver, "MIN300", _cart((mug, 1)))

    assert promotions.get("p-min").current_usage_count == 0


class _BrokenUsage(MemoryPromotionStore):
    async def increment_usage(self, promotion_id):
        return Error(PersistenceError("usage table locked"))


def test_usage_failure_is_logged_not_propagated(promotions, catalog, mug, caplog):
    store = _BrokenUsage([promotions.get("p-save20")])
    resolver = PromotionResolver(store, catalog, clock=fixed_clock())

    with caplog.at_level(logging.WARNING, logger="storefront.promotion"):
        result = _resolve(resolver, "SAVE20", _cart((mug, 1)))

    assert isinstance(result, Ok)
    assert "Could not record usage" in caplog.text


class _FlakyLookup(MemoryPromotionStore):
    def __init__(self, promotions, failures):
        super().__init__(promotions)
        self.calls = 0
        self._failures = failures

    async def find_by_code(self, code):
        self.calls += 1
        if self.calls <= self._failures:
            return Error(PersistenceError("connection reset"))
        return await super().find_by_code(code)


def test_lookup_is_retried(promotions, catalog, mug):
    store = _FlakyLookup([promotions.get("p-save20")], failures=1)
    policy = CallPolicy(timeout_seconds=1.0, read_attempts=3, retry_delay_seconds=0.0)
    resolver = PromotionResolver(store, catalog, call_policy=policy, clock=fixed_clock())

    result = _resolve(resolver, "SAVE20", _cart((mug, 1)))

    assert isinstance(result, Ok)
    assert store.calls == 2


def test_lookup_gives_up_after_attempts(promotions, catalog, mug):
    store = _FlakyLookup([promotions.get("p-save20")], failures=10)
    policy = CallPolicy(timeout_seconds=1.0, read_attempts=3, retry_delay_seconds=0.0)
    resolver = PromotionResolver(store, catalog, call_policy=policy, clock=fixed_clock())

    result = _resolve(resolver, "SAVE20", _cart((mug, 1)))

    assert result == Error(PersistenceError("connection reset"))
    assert store.calls == 3


class _SlowLookup(MemoryPromotionStore):
    async def find_by_code(self, code):
        await asyncio.sleep(1)
        return await super().find_by_code(code)


def test_slow_lookup_times_out(promotions, catalog, mug):
    store = _SlowLookup([promotions.get("p-save20")])
    policy = CallPolicy(timeout_seconds=0.05, read_attempts=1)
    resolver = PromotionResolver(store, catalog, call_policy=policy, clock=fixed_clock())

    result = _resolve(resolver, "SAVE20", _cart((mug, 1)))

    assert isinstance(result, Error)
    assert isinstance(result.error, PersistenceError)
    assert "timed out" in str(result.error)
