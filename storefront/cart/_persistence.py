"""
Guest cart persistence.

A guest cart lives under one fixed key as a JSON document:

    {
      "items": [...],
      "metadata": {
        "total_items": 3,
        "subtotal": "150.00",
        "created_at": "...",      # first write, preserved afterwards
        "updated_at": "...",
        "applied_promotions": [...],
        "free_shipping_promotion_id": null
      }
    }

Money is written as strings so Decimal values come back unchanged.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront._types import utcnow
from storefront.cart._types import AppliedPromotion, CartItem, CartSnapshot
from storefront.db import DocumentTable

# ═══════════════════════════════════════════════════════════════════════════════
# Key-value storage
# ═══════════════════════════════════════════════════════════════════════════════


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Result[str | None, PersistenceError]: ...

    async def set(self, key: str, value: str) -> Result[None, PersistenceError]: ...

    async def delete(self, key: str) -> Result[bool, PersistenceError]:
        """Ok(True) if the key existed."""
        ...


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, key: str) -> bool:
        return key in self._data

    async def get(self, key: str) -> Result[str | None, PersistenceError]:
        async with self._lock:
            return Ok(self._data.get(key))

    async def set(self, key: str, value: str) -> Result[None, PersistenceError]:
        async with self._lock:
            self._data[key] = value
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, PersistenceError]:
        async with self._lock:
            return Ok(self._data.pop(key, None) is not None)


class SQLAlchemyKeyValueStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Result[str | None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                payload = await session.scalar(
                    select(DocumentTable.payload).where(DocumentTable.key == key)
                )
                return Ok(payload)

        except Exception as e:
            return Error(PersistenceError(f"Failed to read {key}: {e}", e))

    async def set(self, key: str, value: str) -> Result[None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                await session.merge(DocumentTable(key=key, payload=value, updated_at=utcnow()))
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(PersistenceError(f"Failed to write {key}: {e}", e))

    async def delete(self, key: str) -> Result[bool, PersistenceError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(DocumentTable).where(DocumentTable.key == key))
                await session.commit()
                return Ok(result.rowcount > 0)

        except Exception as e:
            return Error(PersistenceError(f"Failed to delete {key}: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Document
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class GuestCartDocument:
    items: tuple[CartItem, ...]
    applied_promotions: tuple[AppliedPromotion, ...]
    free_shipping_promotion_id: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.items


def _dt(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _parse_dt(value: str | None) -> datetime | None:
    return None if value is None else datetime.fromisoformat(value)


def item_to_dict(item: CartItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "unit_price": str(item.unit_price),
        "original_unit_price": str(item.original_unit_price),
        "per_unit_discount": str(item.per_unit_discount),
        "promotion_id": item.promotion_id,
        "variant": item.variant,
        "name": item.name,
        "category": item.category,
        "sku": item.sku,
        "image_url": item.image_url,
        "added_at": _dt(item.added_at),
    }


def item_from_dict(data: dict[str, Any]) -> CartItem:
    return CartItem(
        id=data["id"],
        product_id=data["product_id"],
        quantity=int(data["quantity"]),
        unit_price=Decimal(data["unit_price"]),
        original_unit_price=Decimal(data["original_unit_price"]),
        per_unit_discount=Decimal(data.get("per_unit_discount", "0")),
        promotion_id=data.get("promotion_id"),
        variant=data.get("variant"),
        name=data.get("name", ""),
        category=data.get("category"),
        sku=data.get("sku"),
        image_url=data.get("image_url"),
        added_at=_parse_dt(data.get("added_at")),
    )


def promotion_to_dict(p: AppliedPromotion) -> dict[str, Any]:
    return {
        "id": p.id,
        "code": p.code,
        "discount_type": p.discount_type,
        "discount_amount": str(p.discount_amount),
        "name": p.name,
        "free_shipping": p.free_shipping,
    }


def promotion_from_dict(data: dict[str, Any]) -> AppliedPromotion:
    return AppliedPromotion(
        id=data["id"],
        code=data["code"],
        discount_type=data["discount_type"],
        discount_amount=Decimal(data["discount_amount"]),
        name=data.get("name", ""),
        free_shipping=bool(data.get("free_shipping", False)),
    )


def encode(snapshot: CartSnapshot, *, created_at: datetime, updated_at: datetime) -> str:
    return json.dumps({
        "items": [item_to_dict(i) for i in snapshot.items],
        "metadata": {
            "total_items": snapshot.item_count,
            "subtotal": str(snapshot.subtotal),
            "created_at": created_at.isoformat(),
            "updated_at": updated_at.isoformat(),
            "applied_promotions": [promotion_to_dict(p) for p in snapshot.applied_promotions],
            "free_shipping_promotion_id": snapshot.free_shipping_promotion_id,
        },
    })


def decode(payload: str) -> GuestCartDocument:
    """Raises ValueError (or KeyError) on a malformed document."""
    data = json.loads(payload)
    metadata = data.get("metadata") or {}
    created = _parse_dt(metadata.get("created_at")) or utcnow()
    return GuestCartDocument(
        items=tuple(item_from_dict(i) for i in data.get("items", [])),
        applied_promotions=tuple(
            promotion_from_dict(p) for p in metadata.get("applied_promotions", [])
        ),
        free_shipping_promotion_id=metadata.get("free_shipping_promotion_id"),
        created_at=created,
        updated_at=_parse_dt(metadata.get("updated_at")) or created,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# GuestCartStorage — document-level access to one key
# ═══════════════════════════════════════════════════════════════════════════════


class GuestCartStorage:
    """Reads and writes the guest cart document, preserving created_at."""

    def __init__(self, store: KeyValueStore, key: str) -> None:
        self._store = store
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> Result[GuestCartDocument | None, PersistenceError]:
        match await self._store.get(self._key):
            case Error(e):
                return Error(e)
            case Ok(None):
                return Ok(None)
            case Ok(payload):
                try:
                    return Ok(decode(payload))
                except (ValueError, KeyError, TypeError) as e:
                    return Error(PersistenceError(f"Corrupt guest cart document: {e}", e))

    async def save(self, snapshot: CartSnapshot) -> Result[None, PersistenceError]:
        now = utcnow()
        match await self.load():
            case Ok(GuestCartDocument(created_at=created)):
                created_at = created
            case _:
                created_at = now
        return await self._store.set(
            self._key, encode(snapshot, created_at=created_at, updated_at=now)
        )

    async def clear(self) -> Result[bool, PersistenceError]:
        return await self._store.delete(self._key)


__all__ = (
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "GuestCartDocument",
    "GuestCartStorage",
    "item_to_dict",
    "item_from_dict",
    "promotion_to_dict",
    "promotion_from_dict",
    "encode",
    "decode",
)
