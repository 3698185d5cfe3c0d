from __future__ import annotations

from datetime import datetime
import logging
import traceback

from quotarenew.core.clock import reference_now
from quotarenew.core.config import get_settings
from quotarenew.core.errors import classify_error
from quotarenew.domain.models import (
    PROCESSING_STATUS_FAILED,
    Plan,
    ServiceInstance,
    ServiceProcessingFailure,
)
from quotarenew.persistence.db import get_session, unit_of_work
from quotarenew.persistence.repos import failures as failures_repo
from quotarenew.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def truncate(value: str | None, max_chars: int) -> str | None:
    # Keep the column bound including the trailing marker.
    if value is None or len(value) <= max_chars:
        return value
    if max_chars <= 3:
        return value[:max_chars]
    return value[: max_chars - 3] + "..."


def _stack_trace(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


async def record_failure(
    service: ServiceInstance,
    plan: Plan | None,
    username: str,
    exc: BaseException,
    batch_id: str,
    *,
    failure_date: datetime | None = None,
) -> None:
    """Persist an audit row for a failed renewal in its own transaction.

    Errors writing the row are logged and dropped so they never replace the
    original failure.
    """
    settings = get_settings()
    try:
        failure = ServiceProcessingFailure(
            service_instance_id=service.id,
            username=username,
            plan_id=plan.plan_id if plan is not None else service.plan_id,
            plan_name=plan.plan_name if plan is not None else service.plan_name,
            error_type=type(exc).__name__,
            error_kind=classify_error(exc),
            error_message=truncate(str(exc) or None, settings.failure_message_max_chars),
            stack_trace=truncate(_stack_trace(exc), settings.failure_trace_max_chars),
            retry_count=0,
            processing_status=PROCESSING_STATUS_FAILED,
            failure_date=failure_date or reference_now(),
            batch_id=batch_id,
            additional_info=truncate(
                f"ServiceId: {service.id}, NextCycleStart: {service.next_cycle_start_date}",
                settings.failure_info_max_chars,
            ),
        )
        async with unit_of_work() as session:
            failures_repo.add_failure(session, failure)
        logger.info(
            "processing_failure_recorded service_id=%s username=%s error_type=%s batch_id=%s",
            service.id,
            username,
            failure.error_type,
            batch_id,
        )
    except Exception as write_exc:  # noqa: BLE001 - recording is best-effort
        increment_counter("failure_record_errors_total")
        logger.error(
            "processing_failure_record_failed service_id=%s username=%s batch_id=%s",
            service.id,
            username,
            batch_id,
            exc_info=write_exc,
        )


async def list_failures(
    *,
    batch_id: str | None = None,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[ServiceProcessingFailure]:
    async with get_session() as session:
        return await failures_repo.list_failures(
            session, batch_id=batch_id, status=status, offset=offset, limit=limit
        )
