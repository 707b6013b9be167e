"""Tests for CartStore: promotions, loyalty, guest persistence and sign-in merge."""

import json
import logging
from decimal import Decimal

from kungfu import Error, Ok

from conftest import run
from storefront._errors import PersistenceError, ValidationError
from storefront.cart import CartItem, CartStore, MemoryKeyValueStore

GUEST_KEY = "ecommerce_guest_cart"


def _store(resolver=None, kv=None, **kwargs) -> CartStore:
    return CartStore(resolver=resolver, guest_storage=kv, **kwargs)


# ═══════════════════════════════════════════════════════════════════════════════
# Promotions
# ═══════════════════════════════════════════════════════════════════════════════


def test_apply_code_discounts_lines(resolver, mug, shirt):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.add_item(shirt)
        return await cart.apply_promo_code("SAVE20")

    result = run(scenario())

    assert isinstance(result, Ok)
    assert cart.snapshot.promotion_discount == Decimal("40")
    assert cart.snapshot.total == Decimal("160")
    assert [p.code for p in cart.snapshot.applied_promotions] == ["SAVE20"]
    assert all(i.promotion_id == "p-save20" for i in cart.snapshot.items)


def test_new_code_replaces_previous(resolver, mug, shirt):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.add_item(shirt)
        await cart.apply_promo_code("SAVE20")
        return await cart.apply_promo_code("FIXED50")

    result = run(scenario())

    assert isinstance(result, Ok)
    assert cart.snapshot.promotion_discount == Decimal("50")
    assert [p.code for p in cart.snapshot.applied_promotions] == ["FIXED50"]


def test_bogo_totals_are_exact(resolver, mug):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 3)
        return await cart.apply_promo_code("BOGO")

    result = run(scenario())

    assert isinstance(result, Ok)
    assert cart.snapshot.promotion_discount == Decimal("50")
    assert str(cart.snapshot.promotion_discount) == "50.00"
    assert cart.snapshot.total == Decimal("100")


def test_same_code_twice_is_rejected(resolver, promotions, mug):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.apply_promo_code("SAVE20")
        return await cart.apply_promo_code("SAVE20")

    result = run(scenario())

    assert result == Error(ValidationError("promotion already applied"))
    assert promotions.get("p-save20").current_usage_count == 1
    assert cart.snapshot.promotion_discount == Decimal("20")


def test_rejected_code_leaves_cart_unchanged(resolver, mug):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.apply_promo_code("SAVE20")
        before = cart.snapshot
        result = await cart.apply_promo_code("MIN300")
        return before, result

    before, result = run(scenario())

    assert isinstance(result, Error)
    assert cart.snapshot == before


def test_free_shipping_code_waives_fee(resolver, mug):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug)
        assert cart.shipping() == Decimal("50")
        return await cart.apply_promo_code("FREESHIP")

    run(scenario())

    assert cart.snapshot.free_shipping is True
    assert cart.snapshot.free_shipping_promotion_id == "p-ship"
    assert cart.shipping() == Decimal("0")
    assert cart.snapshot.total == Decimal("50")


def test_percentage_code_replaces_free_shipping(resolver, mug):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.apply_promo_code("FREESHIP")
        await cart.apply_promo_code("SAVE20")

    run(scenario())

    assert cart.snapshot.free_shipping is False
    assert cart.shipping() == Decimal("50")


def test_remove_promotion(resolver, mug):
    cart = _store(resolver)

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.apply_promo_code("SAVE20")
        return await cart.remove_promotion("p-save20")

    run(scenario())

    assert cart.snapshot.promotion_discount == Decimal("0")
    assert cart.snapshot.applied_promotions == ()


def test_apply_without_resolver():
    result = run(_store().apply_promo_code("SAVE20"))

    assert isinstance(result, Error)
    assert isinstance(result.error, ValidationError)


# ═══════════════════════════════════════════════════════════════════════════════
# Loyalty + summary
# ═══════════════════════════════════════════════════════════════════════════════


def test_loyalty_points_redeemed_at_one_cent(mug):
    cart = _store()

    async def scenario():
        await cart.add_item(mug, 2)
        return await cart.redeem_loyalty_points(1500)

    run(scenario())

    assert cart.snapshot.loyalty_discount == Decimal("15.00")
    assert cart.snapshot.total == Decimal("85.00")


def test_negative_loyalty_rejected(mug):
    cart = _store()

    result = run(cart.redeem_loyalty_points(-5))

    assert isinstance(result, Error)
    assert cart.snapshot.loyalty_points_used == 0


def test_summary_and_shipping_threshold(mug, shirt):
    cart = _store()

    async def scenario():
        await cart.add_item(shirt, 5)
        await cart.add_item(mug)

    run(scenario())
    summary = cart.summary()

    assert summary.item_count == 6
    assert summary.total == Decimal("550")
    assert summary.shipping == Decimal("0")
    assert summary.grand_total == Decimal("550")


def test_can_share_requires_positive_total(mug):
    cart = _store()

    assert cart.can_share() is False
    assert cart.can_checkout() is False

    run(cart.add_item(mug))

    assert cart.can_share() is True
    assert cart.can_checkout() is True


# ═══════════════════════════════════════════════════════════════════════════════
# Guest persistence
# ═══════════════════════════════════════════════════════════════════════════════


def test_guest_cart_written_after_each_mutation(mug):
    kv = MemoryKeyValueStore()
    cart = _store(kv=kv)

    run(cart.add_item(mug, 3))

    document = json.loads(run(kv.get(GUEST_KEY)).value)
    assert document["metadata"]["total_items"] == 3
    assert document["metadata"]["subtotal"] == "150"
    assert document["items"][0]["product_id"] == "mug"


def test_guest_created_at_is_preserved(mug, shirt):
    kv = MemoryKeyValueStore()
    cart = _store(kv=kv)

    run(cart.add_item(mug))
    first = json.loads(run(kv.get(GUEST_KEY)).value)["metadata"]
    run(cart.add_item(shirt))
    second = json.loads(run(kv.get(GUEST_KEY)).value)["metadata"]

    assert second["created_at"] == first["created_at"]
    assert second["updated_at"] >= first["updated_at"]


def test_guest_cart_round_trip(resolver, mug, shirt):
    kv = MemoryKeyValueStore()
    cart = _store(resolver, kv)

    async def scenario():
        await cart.add_item(mug, 2, {"colour": "blue"})
        await cart.add_item(shirt)
        await cart.apply_promo_code("SAVE20")
        restored = _store(resolver, kv)
        await restored.load()
        return restored

    restored = run(scenario())

    assert restored.snapshot.items == cart.snapshot.items
    assert restored.snapshot.total == cart.snapshot.total
    assert restored.snapshot.applied_promotions == cart.snapshot.applied_promotions


def test_corrupt_guest_document(mug):
    kv = MemoryKeyValueStore()
    run(kv.set(GUEST_KEY, "{not json"))

    result = run(_store(kv=kv).load())

    assert isinstance(result, Error)
    assert isinstance(result.error, PersistenceError)


class _ReadOnlyStore(MemoryKeyValueStore):
    async def set(self, key, value):
        return Error(PersistenceError("disk full"))


def test_guest_persist_failure_is_logged(mug, caplog):
    cart = _store(kv=_ReadOnlyStore())

    with caplog.at_level(logging.WARNING, logger="storefront.cart"):
        result = run(cart.add_item(mug))

    assert isinstance(result, Ok)
    assert cart.snapshot.item_count == 1
    assert "Guest cart not persisted" in caplog.text


# ═══════════════════════════════════════════════════════════════════════════════
# Sign-in merge
# ═══════════════════════════════════════════════════════════════════════════════


def test_authenticate_merges_guest_cart_once(mug, shirt):
    kv = MemoryKeyValueStore()
    cart = _store(kv=kv)
    session_line = CartItem("s1", "mug", 1, Decimal("50"), Decimal("50"))

    async def scenario():
        await cart.add_item(mug, 2)
        await cart.add_item(shirt)
        first = await cart.authenticate((session_line,))
        second = await cart.authenticate((session_line,))
        return first, second

    first, second = run(scenario())

    assert isinstance(first, Ok)
    items = {i.product_id: i.quantity for i in cart.snapshot.items}
    assert items == {"mug": 3, "shirt": 1}
    assert cart.snapshot.is_guest is False
    assert GUEST_KEY not in kv
    assert second.value == first.value


def test_signed_in_cart_is_not_persisted_as_guest(mug):
    kv = MemoryKeyValueStore()
    cart = _store(kv=kv)

    async def scenario():
        await cart.authenticate()
        await cart.add_item(mug)

    run(scenario())

    assert GUEST_KEY not in kv


def test_authenticate_caps_merged_quantity(mug):
    kv = MemoryKeyValueStore()
    cart = _store(kv=kv)
    session_line = CartItem("s1", "mug", 8, Decimal("50"), Decimal("50"))

    async def scenario():
        await cart.add_item(mug, 5)
        await cart.authenticate((session_line,))

    run(scenario())

    assert cart.snapshot.items[0].quantity == 10


def test_authenticate_without_storage_keeps_guest_lines(mug):
    cart = CartStore()

    async def scenario():
        await cart.add_item(mug, 2)
        return await cart.authenticate()

    result = run(scenario())

    assert isinstance(result, Ok)
    assert [(i.product_id, i.quantity) for i in cart.snapshot.items] == [("mug", 2)]
    assert cart.snapshot.is_guest is False


def test_authenticate_merges_stored_cart_into_fresh_store(mug):
    kv = MemoryKeyValueStore()

    async def scenario():
        await _store(kv=kv).add_item(mug, 2)
        fresh = _store(kv=kv)
        await fresh.authenticate()
        return fresh

    fresh = run(scenario())

    assert [(i.product_id, i.quantity) for i in fresh.snapshot.items] == [("mug", 2)]
    assert GUEST_KEY not in kv
