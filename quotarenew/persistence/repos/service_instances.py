from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quotarenew.domain.models import ServiceInstance


async def find_due_page(
    session: AsyncSession,
    *,
    window_start: datetime,
    window_end: datetime,
    after_id: int = 0,
    limit: int = 500,
) -> list[ServiceInstance]:
    # Keyset page over recurring services whose next cycle starts inside the window.
    stmt = (
        select(ServiceInstance)
        .where(
            ServiceInstance.recurring_flag.is_(True),
            ServiceInstance.next_cycle_start_date >= window_start,
            ServiceInstance.next_cycle_start_date < window_end,
            ServiceInstance.expiry_date > window_start,
            ServiceInstance.id > after_id,
        )
        .order_by(ServiceInstance.id)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_cycle(
    session: AsyncSession,
    *,
    service_id: int,
    service_start_date: datetime,
    cycle_start: datetime,
    cycle_end: datetime,
    next_cycle_start_date: datetime | None,
) -> None:
    await session.execute(
        update(ServiceInstance)
        .where(ServiceInstance.id == service_id)
        .values(
            service_start_date=service_start_date,
            service_cycle_start_date=cycle_start,
            service_cycle_end_date=cycle_end,
            next_cycle_start_date=next_cycle_start_date,
        )
    )
