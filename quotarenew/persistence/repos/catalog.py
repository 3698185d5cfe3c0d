from __future__ import annotations

from collections.abc import Collection

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quotarenew.domain.models import Bucket, Plan, PlanToBucket, QOSProfile, User


# Each lookup is a single IN query so a page costs a constant number of round-trips.


async def users_by_username(session: AsyncSession, usernames: Collection[str]) -> list[User]:
    if not usernames:
        return []
    result = await session.execute(select(User).where(User.user_name.in_(list(usernames))))
    return list(result.scalars().all())


async def plans_by_plan_id(session: AsyncSession, plan_ids: Collection[str]) -> list[Plan]:
    if not plan_ids:
        return []
    result = await session.execute(select(Plan).where(Plan.plan_id.in_(list(plan_ids))))
    return list(result.scalars().all())


async def templates_by_plan_id(session: AsyncSession, plan_ids: Collection[str]) -> list[PlanToBucket]:
    if not plan_ids:
        return []
    result = await session.execute(
        select(PlanToBucket)
        .where(PlanToBucket.plan_id.in_(list(plan_ids)))
        .order_by(PlanToBucket.id)
    )
    return list(result.scalars().all())


async def buckets_by_bucket_id(session: AsyncSession, bucket_ids: Collection[str]) -> list[Bucket]:
    if not bucket_ids:
        return []
    result = await session.execute(select(Bucket).where(Bucket.bucket_id.in_(list(bucket_ids))))
    return list(result.scalars().all())


async def qos_profiles_by_id(session: AsyncSession, qos_ids: Collection[int]) -> list[QOSProfile]:
    if not qos_ids:
        return []
    result = await session.execute(select(QOSProfile).where(QOSProfile.id.in_(list(qos_ids))))
    return list(result.scalars().all())
