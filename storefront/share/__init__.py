"""
Share — tokenised, expiring cart links.

    from storefront import share

    shares = share.ShareableCartService(share.SQLAlchemyShareStore(session_factory))
    created = await shares.create(cart.snapshot, owner_id="u1")
    url = shares.shareable_url(created.unwrap().share_token)
"""

from __future__ import annotations

from storefront.share._types import ShareStatus, SharedCartData, ShareableCart, ShareUpdate
from storefront.share._store import ShareStore, MemoryShareStore
from storefront.share._sqlalchemy import SQLAlchemyShareStore
from storefront.share._service import ShareableCartService, ShareError, new_share_token

__all__ = (
    "ShareStatus",
    "SharedCartData",
    "ShareableCart",
    "ShareUpdate",
    "ShareStore",
    "MemoryShareStore",
    "SQLAlchemyShareStore",
    "ShareableCartService",
    "ShareError",
    "new_share_token",
)
