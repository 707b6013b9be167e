"""Tests for shareable carts."""

import itertools
import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from conftest import NOW, run
from storefront._errors import PersistenceError, ValidationError
from storefront.cart import (
    AddAppliedPromotion,
    AddItem,
    AppliedPromotion,
    CartSnapshot,
    SetFreeShipping,
    reduce,
)
from storefront.share import (
    MemoryShareStore,
    ShareableCartService,
    SharedCartData,
    ShareStatus,
    new_share_token,
)


class _Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def store() -> MemoryShareStore:
    return MemoryShareStore()


@pytest.fixture
def shares(store, settings, clock) -> ShareableCartService:
    tokens = (f"tok-{n}" for n in itertools.count(1))
    return ShareableCartService(store, settings=settings, clock=clock, token_factory=lambda: next(tokens))


@pytest.fixture
def cart(mug, shirt) -> CartSnapshot:
    snapshot = reduce(CartSnapshot(is_guest=False), AddItem(mug, 2))
    return reduce(snapshot, AddItem(shirt, 1))


def test_token_is_url_safe():
    token = new_share_token()

    assert len(token) == 32
    assert all(c.isalnum() or c in "-_" for c in token)


# ═══════════════════════════════════════════════════════════════════════════════
# Create + read
# ═══════════════════════════════════════════════════════════════════════════════


def test_create_share(shares, store, cart):
    result = run(shares.create(cart, "u1", message="Pay for me?"))

    assert isinstance(result, Ok)
    share = result.value
    assert share.share_token == "tok-1"
    assert share.status is ShareStatus.ACTIVE
    assert share.expires_at == NOW + timedelta(days=7)
    assert share.cart_metadata == {"expires_in_days": 7, "message": "Pay for me?"}
    assert share.cart_data.total == Decimal("200")
    assert len(store) == 1


def test_empty_cart_cannot_be_shared(shares, store):
    result = run(shares.create(CartSnapshot(), "u1"))

    assert result == Error(ValidationError("cart cannot be shared"))
    assert len(store) == 0


def test_expiry_must_be_positive(shares, cart):
    result = run(shares.create(cart, "u1", expires_in_days=0))

    assert isinstance(result, Error)
    assert isinstance(result.error, ValidationError)


def test_get_counts_access(shares, cart, clock):
    async def scenario():
        await shares.create(cart, "u1")
        await shares.get_by_token("tok-1")
        clock.advance(hours=1)
        return await shares.get_by_token("tok-1")

    share = run(scenario()).unwrap()

    assert share.access_count == 2
    assert share.last_accessed_at == NOW + timedelta(hours=1)


def test_unknown_token(shares):
    result = run(shares.get_by_token("nope"))

    assert result == Error(ValidationError("shared cart not found"))


def test_expired_share_is_marked_expired(shares, store, cart, clock):
    async def scenario():
        await shares.create(cart, "u1", expires_in_days=1)
        clock.advance(days=1)
        result = await shares.get_by_token("tok-1")
        stored = await store.get_by_token("tok-1")
        return result, stored.unwrap()

    result, stored = run(scenario())

    assert result == Error(ValidationError("shared cart has expired"))
    assert stored.status is ShareStatus.EXPIRED
    assert stored.access_count == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════════════════════════


def test_mark_paid_once(shares, cart):
    async def scenario():
        await shares.create(cart, "u1")
        first = await shares.mark_paid("tok-1", "order-1", paid_by="u2")
        second = await shares.mark_paid("tok-1", "order-2", paid_by="u3")
        return first, second

    first, second = run(scenario())

    paid = first.unwrap()
    assert paid.status is ShareStatus.PAID
    assert paid.order_id == "order-1"
    assert paid.paid_by_user_id == "u2"
    assert paid.paid_at == NOW
    assert second == Error(ValidationError("shared cart is paid"))


def test_only_owner_can_cancel(shares, cart):
    async def scenario():
        await shares.create(cart, "u1")
        stranger = await shares.cancel("tok-1", "u2")
        owner = await shares.cancel("tok-1", "u1")
        return stranger, owner

    stranger, owner = run(scenario())

    assert stranger == Error(ValidationError("no active shared cart for this token"))
    assert owner.unwrap().status is ShareStatus.CANCELLED


def test_cancelled_share_cannot_be_paid(shares, cart):
    async def scenario():
        await shares.create(cart, "u1")
        await shares.cancel("tok-1", "u1")
        return await shares.mark_paid("tok-1", "order-1")

    assert run(scenario()) == Error(ValidationError("shared cart is cancelled"))


def test_expired_share_cannot_be_cancelled(shares, store, cart, clock):
    async def scenario():
        await shares.create(cart, "u1", expires_in_days=1)
        clock.advance(days=2)
        result = await shares.cancel("tok-1", "u1")
        stored = await store.get_by_token("tok-1")
        return result, stored.unwrap()

    result, stored = run(scenario())

    assert result == Error(ValidationError("shared cart has expired"))
    assert stored.status is ShareStatus.EXPIRED


def test_extend_active_share(shares, cart, clock):
    async def scenario():
        await shares.create(cart, "u1", expires_in_days=1)
        clock.advance(hours=12)
        return await shares.extend("tok-1", 3, owner_id="u1")

    share = run(scenario()).unwrap()

    assert share.expires_at == NOW + timedelta(hours=12, days=3)
    assert share.status is ShareStatus.ACTIVE


def test_extend_does_not_revive_paid_share(shares, cart):
    async def scenario():
        await shares.create(cart, "u1")
        await shares.mark_paid("tok-1", "order-1")
        return await shares.extend("tok-1", 3)

    assert run(scenario()) == Error(ValidationError("shared cart is paid"))


def test_list_for_owner_newest_first(shares, cart, clock):
    async def scenario():
        await shares.create(cart, "u1")
        clock.advance(minutes=5)
        await shares.create(cart, "u1")
        await shares.create(cart, "u2")
        return await shares.list_for_owner("u1")

    listed = run(scenario()).unwrap()

    assert [s.share_token for s in listed] == ["tok-2", "tok-1"]


class _BrokenUpdates(MemoryShareStore):
    async def update(self, token, changes, *, expected=ShareStatus.ACTIVE, owner_id=None):
        return Error(PersistenceError("read-only replica"))


def test_expire_failure_is_logged(settings, clock, cart, caplog):
    shares = ShareableCartService(
        _BrokenUpdates(), settings=settings, clock=clock, token_factory=lambda: "tok"
    )

    async def scenario():
        await shares.create(cart, "u1", expires_in_days=1)
        clock.advance(days=2)
        return await shares.get_by_token("tok")

    with caplog.at_level(logging.WARNING, logger="storefront.share"):
        result = run(scenario())

    assert result == Error(ValidationError("shared cart has expired"))
    assert "Could not expire" in caplog.text


def test_shareable_url(shares):
    assert shares.shareable_url("abc") == "http://localhost:3000/checkout?shared=abc"
    assert shares.shareable_url("abc", "https://shop.example/") == (
        "https://shop.example/checkout?shared=abc"
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Cart data
# ═══════════════════════════════════════════════════════════════════════════════


def test_cart_data_json_round_trip(cart):
    data = SharedCartData.from_snapshot(cart)

    assert SharedCartData.from_json(data.to_json()) == data


def test_to_snapshot_restores_free_shipping(mug):
    snapshot = reduce(CartSnapshot(), AddItem(mug, 1))
    snapshot = reduce(
        snapshot,
        AddAppliedPromotion(
            AppliedPromotion("p-ship", "FREESHIP", "free_shipping", Decimal("0"), free_shipping=True)
        ),
    )
    snapshot = reduce(snapshot, SetFreeShipping(True, "p-ship"))

    restored = SharedCartData.from_snapshot(snapshot).to_snapshot()

    assert restored.free_shipping is True
    assert restored.free_shipping_promotion_id == "p-ship"
    assert restored.is_guest is False
    assert restored.total == snapshot.total
