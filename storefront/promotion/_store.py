"""
Promotion store — typed storage protocol.

All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Iterable
from typing import Protocol

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.promotion._types import Promotion


class PromotionStore(Protocol):
    async def find_by_code(self, code: str) -> Result[Promotion | None, PersistenceError]:
        """Exact, case-sensitive lookup. Ok(None) if no such code."""
        ...

    async def increment_usage(self, promotion_id: str) -> Result[int, PersistenceError]:
        """Bump current_usage_count atomically. Returns the new count."""
        ...


class MemoryPromotionStore:
    """
    In-memory promotion store.

    Note: Single-process only. Used by tests and local tooling.
    """

    def __init__(self, promotions: Iterable[Promotion] = ()) -> None:
        self._by_id: dict[str, Promotion] = {p.id: p for p in promotions}
        self._lock = asyncio.Lock()

    def add(self, promotion: Promotion) -> None:
        self._by_id[promotion.id] = promotion

    def get(self, promotion_id: str) -> Promotion | None:
        return self._by_id.get(promotion_id)

    async def find_by_code(self, code: str) -> Result[Promotion | None, PersistenceError]:
        async with self._lock:
            for promotion in self._by_id.values():
                if promotion.code == code:
                    return Ok(promotion)
            return Ok(None)

    async def increment_usage(self, promotion_id: str) -> Result[int, PersistenceError]:
        async with self._lock:
            promotion = self._by_id.get(promotion_id)
            if promotion is None:
                return Error(PersistenceError(f"Promotion not found: {promotion_id}"))
            updated = dataclasses.replace(
                promotion, current_usage_count=promotion.current_usage_count + 1
            )
            self._by_id[promotion_id] = updated
            return Ok(updated.current_usage_count)


__all__ = ("PromotionStore", "MemoryPromotionStore")
