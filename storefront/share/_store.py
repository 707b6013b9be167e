"""
Share store — typed storage protocol.

Every write is conditional on the share's current status, so two callers
racing to pay and to cancel the same share cannot both win.
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime
from typing import Protocol

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.share._types import ShareableCart, ShareStatus, ShareUpdate


class ShareStore(Protocol):
    async def insert(self, share: ShareableCart) -> Result[ShareableCart, PersistenceError]: ...

    async def get_by_token(self, token: str) -> Result[ShareableCart | None, PersistenceError]: ...

    async def update(
        self,
        token: str,
        changes: ShareUpdate,
        *,
        expected: ShareStatus = ShareStatus.ACTIVE,
        owner_id: str | None = None,
    ) -> Result[ShareableCart | None, PersistenceError]:
        """Apply changes if status is `expected` (and owner matches). Ok(None) if nothing matched."""
        ...

    async def record_access(
        self, token: str, at: datetime
    ) -> Result[ShareableCart | None, PersistenceError]:
        """access_count += 1 on an active share."""
        ...

    async def list_by_owner(self, owner_id: str) -> Result[list[ShareableCart], PersistenceError]:
        """Newest first."""
        ...


class MemoryShareStore:
    """
    In-memory share store.

    Note: Single-process only.
    """

    def __init__(self) -> None:
        self._shares: dict[str, ShareableCart] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._shares)

    async def insert(self, share: ShareableCart) -> Result[ShareableCart, PersistenceError]:
        async with self._lock:
            if share.share_token in self._shares:
                return Error(PersistenceError(f"Duplicate share token: {share.share_token}"))
            self._shares[share.share_token] = share
            return Ok(share)

    async def get_by_token(self, token: str) -> Result[ShareableCart | None, PersistenceError]:
        async with self._lock:
            return Ok(self._shares.get(token))

    async def update(
        self,
        token: str,
        changes: ShareUpdate,
        *,
        expected: ShareStatus = ShareStatus.ACTIVE,
        owner_id: str | None = None,
    ) -> Result[ShareableCart | None, PersistenceError]:
        async with self._lock:
            share = self._shares.get(token)
            if share is None or share.status is not expected:
                return Ok(None)
            if owner_id is not None and share.original_user_id != owner_id:
                return Ok(None)
            updated = dataclasses.replace(share, **changes.values())
            self._shares[token] = updated
            return Ok(updated)

    async def record_access(
        self, token: str, at: datetime
    ) -> Result[ShareableCart | None, PersistenceError]:
        async with self._lock:
            share = self._shares.get(token)
            if share is None or share.status is not ShareStatus.ACTIVE:
                return Ok(None)
            updated = dataclasses.replace(
                share, access_count=share.access_count + 1, last_accessed_at=at
            )
            self._shares[token] = updated
            return Ok(updated)

    async def list_by_owner(self, owner_id: str) -> Result[list[ShareableCart], PersistenceError]:
        async with self._lock:
            found = [s for s in self._shares.values() if s.original_user_id == owner_id]
            return Ok(sorted(found, key=lambda s: s.created_at, reverse=True))


__all__ = ("ShareStore", "MemoryShareStore")
