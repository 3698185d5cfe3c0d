from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quotarenew.domain.models import ServiceProcessingFailure


def add_failure(session: AsyncSession, failure: ServiceProcessingFailure) -> ServiceProcessingFailure:
    session.add(failure)
    return failure


async def list_failures(
    session: AsyncSession,
    *,
    batch_id: str | None = None,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[ServiceProcessingFailure]:
    # Newest first so operators see the latest run at the top.
    stmt = select(ServiceProcessingFailure)
    if batch_id:
        stmt = stmt.where(ServiceProcessingFailure.batch_id == batch_id)
    if status:
        stmt = stmt.where(ServiceProcessingFailure.processing_status == status)
    stmt = stmt.order_by(ServiceProcessingFailure.id.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
