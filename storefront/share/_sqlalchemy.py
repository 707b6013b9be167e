"""
SQLAlchemy share store — `shareable_carts`.

Status changes are a single `UPDATE ... WHERE share_token = ? AND status = ?`;
the row count tells whether this caller won.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Error, Ok, Result

from storefront._errors import PersistenceError
from storefront.db import ShareableCartTable, aware, aware_or_none
from storefront.share._types import ShareableCart, SharedCartData, ShareStatus, ShareUpdate


class SQLAlchemyShareStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, share: ShareableCart) -> Result[ShareableCart, PersistenceError]:
        try:
            async with self._session_factory() as session:
                session.add(_to_row(share))
                await session.commit()
                return Ok(share)

        except Exception as e:
            return Error(PersistenceError(f"Failed to create shared cart: {e}", e))

    async def get_by_token(self, token: str) -> Result[ShareableCart | None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                row = await self._row(session, token)
                return Ok(None if row is None else _to_share(row))

        except Exception as e:
            return Error(PersistenceError(f"Failed to get shared cart: {e}", e))

    async def update(
        self,
        token: str,
        changes: ShareUpdate,
        *,
        expected: ShareStatus = ShareStatus.ACTIVE,
        owner_id: str | None = None,
    ) -> Result[ShareableCart | None, PersistenceError]:
        values: dict[str, Any] = changes.values()
        if "status" in values:
            values["status"] = values["status"].value

        stmt = (
            update(ShareableCartTable)
            .where(ShareableCartTable.share_token == token)
            .where(ShareableCartTable.status == expected.value)
            .values(**values)
        )
        if owner_id is not None:
            stmt = stmt.where(ShareableCartTable.original_user_id == owner_id)

        return await self._conditional(stmt, token, "update")

    async def record_access(
        self, token: str, at: datetime
    ) -> Result[ShareableCart | None, PersistenceError]:
        stmt = (
            update(ShareableCartTable)
            .where(ShareableCartTable.share_token == token)
            .where(ShareableCartTable.status == ShareStatus.ACTIVE.value)
            .values(
                access_count=ShareableCartTable.access_count + 1,
                last_accessed_at=at,
            )
        )
        return await self._conditional(stmt, token, "record access to")

    async def list_by_owner(self, owner_id: str) -> Result[list[ShareableCart], PersistenceError]:
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(ShareableCartTable)
                        .where(ShareableCartTable.original_user_id == owner_id)
                        .order_by(ShareableCartTable.created_at.desc())
                    )
                ).scalars().all()
                return Ok([_to_share(r) for r in rows])

        except Exception as e:
            return Error(PersistenceError(f"Failed to list shared carts: {e}", e))

    async def _conditional(
        self, stmt: Any, token: str, action: str
    ) -> Result[ShareableCart | None, PersistenceError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await session.rollback()
                    return Ok(None)
                row = await self._row(session, token)
                await session.commit()
                return Ok(None if row is None else _to_share(row))

        except Exception as e:
            return Error(PersistenceError(f"Failed to {action} shared cart: {e}", e))

    @staticmethod
    async def _row(session: AsyncSession, token: str) -> ShareableCartTable | None:
        return (
            await session.execute(
                select(ShareableCartTable)
                .where(ShareableCartTable.share_token == token)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()


# ═══════════════════════════════════════════════════════════════════════════════
# Row mapping
# ═══════════════════════════════════════════════════════════════════════════════


def _to_row(share: ShareableCart) -> ShareableCartTable:
    return ShareableCartTable(
        id=share.id,
        share_token=share.share_token,
        original_user_id=share.original_user_id,
        cart_data=share.cart_data.to_json(),
        cart_metadata=share.cart_metadata,
        status=share.status.value,
        expires_at=share.expires_at,
        paid_by_user_id=share.paid_by_user_id,
        paid_at=share.paid_at,
        order_id=share.order_id,
        access_count=share.access_count,
        last_accessed_at=share.last_accessed_at,
        created_at=share.created_at,
    )


def _to_share(row: ShareableCartTable) -> ShareableCart:
    return ShareableCart(
        id=row.id,
        share_token=row.share_token,
        original_user_id=row.original_user_id,
        cart_data=SharedCartData.from_json(row.cart_data),
        cart_metadata=dict(row.cart_metadata or {}),
        status=ShareStatus(row.status),
        expires_at=aware(row.expires_at),
        paid_by_user_id=row.paid_by_user_id,
        paid_at=aware_or_none(row.paid_at),
        order_id=row.order_id,
        access_count=row.access_count,
        last_accessed_at=aware_or_none(row.last_accessed_at),
        created_at=aware(row.created_at),
    )


__all__ = ("SQLAlchemyShareStore",)
