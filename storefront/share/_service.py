"""
ShareableCartService — share a cart by link, let someone else pay for it.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable, Mapping
from datetime import timedelta
from typing import Any

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError, ValidationError
from storefront._types import ZERO, Clock, utcnow
from storefront.cart import CartSnapshot
from storefront.config import DEFAULT_SETTINGS, StorefrontSettings
from storefront.share._store import ShareStore
from storefront.share._types import ShareableCart, SharedCartData, ShareStatus, ShareUpdate

logger = logging.getLogger(__name__)

type ShareError = ValidationError | PersistenceError


def new_share_token() -> str:
    """24 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(24)


class ShareableCartService:
    """
    Example:
        shares = ShareableCartService(MemoryShareStore())

        match await shares.create(cart.snapshot, owner_id="u1", message="Pay for me?"):
            case Ok(share):
                print(shares.shareable_url(share.share_token))
    """

    def __init__(
        self,
        store: ShareStore,
        *,
        settings: StorefrontSettings = DEFAULT_SETTINGS,
        clock: Clock = utcnow,
        token_factory: Callable[[], str] = new_share_token,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock
        self._token_factory = token_factory

    async def create(
        self,
        snapshot: CartSnapshot,
        owner_id: str,
        *,
        message: str | None = None,
        expires_in_days: int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Result[ShareableCart, ShareError]:
        if snapshot.is_empty or snapshot.total <= ZERO:
            return Error(ValidationError("cart cannot be shared"))
        days = self._settings.share_expiry_days if expires_in_days is None else expires_in_days
        if days < 1:
            return Error(ValidationError("expiry must be at least one day"))

        now = self._clock()
        cart_metadata = dict(metadata or {})
        cart_metadata["expires_in_days"] = days
        if message:
            cart_metadata["message"] = message

        share = ShareableCart(
            id=uuid.uuid4().hex,
            share_token=self._token_factory(),
            original_user_id=owner_id,
            cart_data=SharedCartData.from_snapshot(snapshot),
            cart_metadata=cart_metadata,
            expires_at=now + timedelta(days=days),
            created_at=now,
        )

        match await self._settings.call_policy.write(lambda: self._store.insert(share)):
            case Ok(created):
                logger.info("Cart of %s shared until %s", owner_id, created.expires_at.isoformat())
                return Ok(created)
            case Error(e):
                return Error(e)

    async def get_by_token(self, token: str) -> Result[ShareableCart, ShareError]:
        """Fetch an available share and count the visit."""
        match await self._available(token):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        match await self._settings.call_policy.write(
            lambda: self._store.record_access(token, self._clock())
        ):
            case Ok(None):
                return Error(ValidationError("shared cart is no longer available"))
            case Ok(share):
                return Ok(share)
            case Error(e):
                return Error(e)

    async def mark_paid(
        self,
        token: str,
        order_id: str,
        *,
        paid_by: str | None = None,
    ) -> Result[ShareableCart, ShareError]:
        match await self._available(token):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        changes = ShareUpdate(
            status=ShareStatus.PAID,
            paid_by_user_id=paid_by,
            paid_at=self._clock(),
            order_id=order_id,
        )
        result = await self._transition(token, changes)
        match result:
            case Ok(share):
                logger.info("Shared cart %s paid by order %s", share.id, order_id)
        return result

    async def cancel(self, token: str, owner_id: str) -> Result[ShareableCart, ShareError]:
        """Only the owner can cancel, and only while the share is active."""
        match await self._available(token):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        return await self._transition(
            token, ShareUpdate(status=ShareStatus.CANCELLED), owner_id=owner_id
        )

    async def extend(
        self,
        token: str,
        days: int | None = None,
        *,
        owner_id: str | None = None,
    ) -> Result[ShareableCart, ShareError]:
        """Push expiry to now + days. Shares that already left ACTIVE stay where they are."""
        days = self._settings.share_expiry_days if days is None else days
        if days < 1:
            return Error(ValidationError("expiry must be at least one day"))

        match await self._available(token):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        return await self._transition(
            token,
            ShareUpdate(expires_at=self._clock() + timedelta(days=days)),
            owner_id=owner_id,
        )

    async def list_for_owner(self, owner_id: str) -> Result[list[ShareableCart], PersistenceError]:
        return await self._settings.call_policy.read(lambda: self._store.list_by_owner(owner_id))

    def shareable_url(self, token: str, base_url: str | None = None) -> str:
        base = (base_url or self._settings.share_base_url).rstrip("/")
        return f"{base}/checkout?shared={token}"

    # ───────────────────────────────────────────────────────────────────────────

    async def _available(self, token: str) -> Result[ShareableCart, ShareError]:
        """Active and unexpired. An active share found past its expiry is moved to EXPIRED."""
        match await self._settings.call_policy.read(lambda: self._store.get_by_token(token)):
            case Error(e):
                return Error(e)
            case Ok(None):
                return Error(ValidationError("shared cart not found"))
            case Ok(share):
                pass

        if share.status is not ShareStatus.ACTIVE:
            return Error(ValidationError(f"shared cart is {share.status.value}"))

        if share.is_expired(self._clock()):
            match await self._settings.call_policy.write(
                lambda: self._store.update(token, ShareUpdate(status=ShareStatus.EXPIRED))
            ):
                case Error(e):
                    logger.warning("Could not expire shared cart %s: %s", share.id, e)
                case Ok(_):
                    logger.info("Shared cart %s expired", share.id)
            return Error(ValidationError("shared cart has expired"))

        return Ok(share)

    async def _transition(
        self,
        token: str,
        changes: ShareUpdate,
        *,
        owner_id: str | None = None,
    ) -> Result[ShareableCart, ShareError]:
        match await self._settings.call_policy.write(
            lambda: self._store.update(token, changes, owner_id=owner_id)
        ):
            case Ok(None):
                return Error(ValidationError("no active shared cart for this token"))
            case Ok(share):
                return Ok(share)
            case Error(e):
                return Error(e)


__all__ = ("ShareableCartService", "ShareError", "new_share_token")
