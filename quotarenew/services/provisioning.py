"""Per-service renewal: advance the cycle, provision buckets, sync the session cache.

Each call is one isolated unit of work. Storage writes for a service either
all commit or all roll back; the session cache is updated afterwards on a
best-effort basis and never fails the renewal.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime
import logging

from quotarenew.core.errors import (
    InternalProcessingError,
    NotFoundError,
    QuotaRenewError,
    classify_error,
)
from quotarenew.domain.models import BucketInstance, ServiceInstance
from quotarenew.domain.session import Balance
from quotarenew.persistence.db import unit_of_work
from quotarenew.persistence.repos import bucket_instances as bucket_instances_repo
from quotarenew.persistence.repos import service_instances as service_instances_repo
from quotarenew.services import session_cache
from quotarenew.services.allocation import BalanceTrim, CycleWindow, plan_provisioning
from quotarenew.services.batch_loader import PageContext
from quotarenew.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


@dataclass
class ProvisioningResult:
    service_id: int
    cycle: CycleWindow
    created: list[BucketInstance] = field(default_factory=list)
    trims: list[BalanceTrim] = field(default_factory=list)
    cache_synced: bool = False


def _parse_window(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("consumption_window_invalid value=%s", value)
        return None


def balances_from_instances(
    service: ServiceInstance,
    instances: Sequence[BucketInstance],
    *,
    service_start_date: datetime,
) -> list[Balance]:
    # Cache projection of freshly persisted bucket instances; bucketId is the row id.
    return [
        Balance(
            bucket_id=str(instance.id),
            service_id=str(instance.service_id),
            initial_balance=instance.initial_balance,
            quota=instance.current_balance,
            usage=instance.usage or 0,
            priority=instance.priority,
            service_expiry=service.expiry_date,
            bucket_expiry_date=instance.expiration,
            service_start_date=service_start_date,
            service_status=service.status,
            time_window=instance.time_window,
            consumption_limit=instance.consumption_limit,
            consumption_limit_window=_parse_window(instance.consumption_limit_window),
            bucket_username=service.username,
            unlimited=False,
            group=bool(service.is_group),
        )
        for instance in instances
    ]


async def sync_session_cache(
    service: ServiceInstance,
    created: Sequence[BucketInstance],
    trims: Sequence[BalanceTrim],
    *,
    service_start_date: datetime,
    now: datetime,
) -> bool:
    """Append new balances to the cached session document; returns False when skipped or failed."""
    try:
        data = await session_cache.get_user_data(service.username)
        if data is None:
            increment_counter("session_cache_skipped_total")
            logger.debug("session_cache_sync_skipped username=%s reason=no_entry", service.username)
            return False
        trimmed = {str(trim.instance_id): trim.new_balance for trim in trims}
        for balance in data.balance:
            if balance.bucket_id in trimmed:
                balance.quota = trimmed[balance.bucket_id]
        data.balance.extend(
            balances_from_instances(service, created, service_start_date=service_start_date)
        )
        await session_cache.update_user_data(service.username, data, now=now)
    except Exception as exc:  # noqa: BLE001 - the session cache must not fail a committed renewal
        increment_counter("session_cache_failures_total")
        logger.warning(
            "session_cache_sync_failed username=%s service_id=%s kind=%s",
            service.username,
            service.id,
            classify_error(exc),
            exc_info=exc,
        )
        return False
    return True


async def provision_service(
    service: ServiceInstance,
    context: PageContext,
    *,
    today: datetime,
    now: datetime,
) -> ProvisioningResult:
    """Renew one service instance from the page context.

    Raises a ``QuotaRenewError`` subclass when the renewal cannot be applied;
    nothing is written to storage in that case.
    """
    user = context.users_by_username.get(service.username)
    if user is None:
        raise NotFoundError(f"User not found: {service.username}")
    plan = context.plans_by_plan_id.get(service.plan_id)
    if plan is None:
        raise NotFoundError(f"Plan not found: {service.plan_id}")

    existing = context.bucket_instances_for(service.id)
    try:
        outcome = plan_provisioning(
            service_id=service.id,
            next_cycle_start=service.next_cycle_start_date,
            expiry_date=service.expiry_date,
            recurring_period=plan.recurring_period,
            recurring_flag=bool(plan.recurring_flag),
            billing=user.billing,
            templates=context.templates_for(plan.plan_id),
            existing=existing,
            buckets_by_id=context.buckets_by_bucket_id,
            qos_by_id=context.qos_by_id,
            today=today,
        )
    except QuotaRenewError:
        raise
    except Exception as exc:  # noqa: BLE001 - surfaced as an internal failure for this record
        raise InternalProcessingError(f"Failed to plan renewal for service {service.id}") from exc

    cycle = outcome.cycle
    created = [BucketInstance(**asdict(grant)) for grant in outcome.grants]
    try:
        async with unit_of_work() as session:
            await service_instances_repo.update_cycle(
                session,
                service_id=service.id,
                service_start_date=cycle.cycle_start,
                cycle_start=cycle.cycle_start,
                cycle_end=cycle.cycle_end,
                next_cycle_start_date=cycle.next_cycle_start_date,
            )
            await bucket_instances_repo.save_batch(
                session,
                new_rows=created,
                balance_updates=[
                    {"id": trim.instance_id, "current_balance": trim.new_balance}
                    for trim in outcome.trims
                ],
            )
    except QuotaRenewError:
        raise
    except Exception as exc:  # noqa: BLE001 - storage failures roll back and fail this record only
        raise InternalProcessingError(f"Failed to persist renewal for service {service.id}") from exc

    carried = len(outcome.carry_forward_grants)
    if carried:
        increment_counter("carry_forward_buckets_created_total", carried)
    if outcome.trims:
        increment_counter("carry_forward_buckets_trimmed_total", len(outcome.trims))
    logger.info(
        "service_renewed service_id=%s username=%s cycle_start=%s cycle_end=%s next_cycle_start=%s "
        "created=%s carried=%s trimmed=%s",
        service.id,
        service.username,
        cycle.cycle_start,
        cycle.cycle_end,
        cycle.next_cycle_start_date,
        len(created),
        carried,
        len(outcome.trims),
    )

    cache_synced = await sync_session_cache(
        service,
        created,
        outcome.trims,
        service_start_date=cycle.cycle_start,
        now=now,
    )
    return ProvisioningResult(
        service_id=service.id,
        cycle=cycle,
        created=created,
        trims=outcome.trims,
        cache_synced=cache_synced,
    )
