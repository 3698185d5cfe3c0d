from __future__ import annotations

from collections.abc import Collection, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quotarenew.domain.models import BucketInstance


async def list_by_service_ids(
    session: AsyncSession, service_ids: Collection[int]
) -> list[BucketInstance]:
    if not service_ids:
        return []
    result = await session.execute(
        select(BucketInstance)
        .where(BucketInstance.service_id.in_(list(service_ids)))
        .order_by(BucketInstance.id)
    )
    return list(result.scalars().all())


async def save_batch(
    session: AsyncSession,
    *,
    new_rows: Sequence[BucketInstance],
    balance_updates: Sequence[dict[str, Any]],
) -> None:
    # New grants and trimmed balances go out in one flush.
    if balance_updates:
        # ORM bulk UPDATE by primary key; each dict carries "id" and "current_balance".
        await session.execute(update(BucketInstance), list(balance_updates))
    session.add_all(list(new_rows))
    await session.flush()


async def find_expired_ids(session: AsyncSession, *, before: datetime, limit: int) -> list[int]:
    result = await session.execute(
        select(BucketInstance.id)
        .where(BucketInstance.expiration.is_not(None), BucketInstance.expiration < before)
        .order_by(BucketInstance.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def delete_by_ids(session: AsyncSession, ids: Collection[int]) -> int:
    if not ids:
        return 0
    result = await session.execute(delete(BucketInstance).where(BucketInstance.id.in_(list(ids))))
    return int(result.rowcount or 0)
