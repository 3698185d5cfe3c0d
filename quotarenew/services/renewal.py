from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import uuid

from quotarenew.core.clock import day_start, reference_now, tomorrow_window
from quotarenew.core.config import get_settings
from quotarenew.core.errors import classify_error
from quotarenew.domain.models import ServiceInstance
from quotarenew.persistence.db import get_session, pool_stats
from quotarenew.persistence.repos import service_instances as service_instances_repo
from quotarenew.services.batch_loader import PageContext, load_page_context
from quotarenew.services.failures import record_failure
from quotarenew.services.provisioning import provision_service
from quotarenew.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


@dataclass
class RenewalRunSummary:
    batch_id: str
    window_start: datetime
    window_end: datetime
    started_at: datetime
    finished_at: datetime | None = None
    pages: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


async def _renew_one(
    service: ServiceInstance,
    context: PageContext,
    summary: RenewalRunSummary,
    *,
    today: datetime,
    now: datetime,
) -> None:
    summary.processed += 1
    try:
        await provision_service(service, context, today=today, now=now)
    except Exception as exc:  # noqa: BLE001 - one failed record never stops the page
        summary.failed += 1
        increment_counter("renewals_failed_total")
        logger.error(
            "service_renewal_failed service_id=%s username=%s kind=%s batch_id=%s",
            service.id,
            service.username,
            classify_error(exc),
            summary.batch_id,
            exc_info=exc,
        )
        await record_failure(
            service,
            context.plans_by_plan_id.get(service.plan_id),
            service.username,
            exc,
            summary.batch_id,
            failure_date=now,
        )
        return
    summary.succeeded += 1
    increment_counter("renewals_succeeded_total")


async def run_renewal(
    *,
    page_size: int | None = None,
    now: datetime | None = None,
    batch_id: str | None = None,
) -> RenewalRunSummary:
    """Renew every service whose next cycle starts tomorrow in the reference zone.

    Pages are read with a keyset cursor on the service id, so services moved
    out of the due window by this run cannot shift later pages.
    """
    settings = get_settings()
    limit = max(1, int(page_size or settings.renewal_page_size))
    now = now or reference_now()
    today = day_start(now)
    window_start, window_end = tomorrow_window(now)
    summary = RenewalRunSummary(
        batch_id=batch_id or str(uuid.uuid4()),
        window_start=window_start,
        window_end=window_end,
        started_at=now,
    )
    logger.info(
        "renewal_run_started batch_id=%s window_start=%s window_end=%s page_size=%s",
        summary.batch_id,
        window_start,
        window_end,
        limit,
    )

    after_id = 0
    while True:
        # The page session only reads; each renewal commits in its own unit of work.
        async with get_session() as session:
            services = await service_instances_repo.find_due_page(
                session,
                window_start=window_start,
                window_end=window_end,
                after_id=after_id,
                limit=limit,
            )
            if not services:
                break
            context = await load_page_context(session, services)

        summary.pages += 1
        for service in services:
            await _renew_one(service, context, summary, today=today, now=now)
        after_id = services[-1].id
        logger.info(
            "renewal_page_completed batch_id=%s page=%s size=%s processed=%s succeeded=%s failed=%s",
            summary.batch_id,
            summary.pages,
            len(services),
            summary.processed,
            summary.succeeded,
            summary.failed,
        )
        if len(services) < limit:
            break

    summary.finished_at = reference_now()
    logger.info(
        "renewal_run_completed batch_id=%s pages=%s processed=%s succeeded=%s failed=%s pool=%s",
        summary.batch_id,
        summary.pages,
        summary.processed,
        summary.succeeded,
        summary.failed,
        pool_stats(),
    )
    return summary
