"""Cycle and quota arithmetic for a single service renewal.

Nothing in this module touches the database or the cache. The orchestrator
hands in ORM rows loaded for the page and gets back a ``ProvisioningPlan``
describing the new cycle window, the bucket instances to create and the
carry-forward balances to trim.
"""
from __future__ import annotations

import calendar
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from quotarenew.core.errors import InternalProcessingError, NotFoundError, PolicyConflictError
from quotarenew.domain.models import (
    BUCKET_TYPE_CARRY_FORWARD,
    Bucket,
    BucketInstance,
    PlanToBucket,
    QOSProfile,
)


logger = logging.getLogger(__name__)

CALENDAR_BILLING_TYPES = frozenset({"1", "2"})


@dataclass(frozen=True)
class CycleWindow:
    cycle_start: datetime
    cycle_end: datetime
    # None once the subscription stops renewing.
    next_cycle_start_date: datetime | None
    validity_days: int


@dataclass(frozen=True)
class BucketGrant:
    # Field names mirror BucketInstance columns.
    bucket_id: str
    service_id: int
    bucket_type: str
    rule: str
    priority: int
    initial_balance: int
    current_balance: int
    usage: int
    carry_forward: bool
    max_carry_forward: int | None
    total_carry_forward: int | None
    carry_forward_validity: int | None
    time_window: str | None
    consumption_limit: int | None
    consumption_limit_window: str | None
    expiration: datetime | None


@dataclass(frozen=True)
class BalanceTrim:
    instance_id: int
    bucket_id: str
    previous_balance: int
    new_balance: int


@dataclass
class ProvisioningPlan:
    cycle: CycleWindow
    grants: list[BucketGrant] = field(default_factory=list)
    trims: list[BalanceTrim] = field(default_factory=list)

    @property
    def carry_forward_grants(self) -> list[BucketGrant]:
        return [grant for grant in self.grants if grant.bucket_type == BUCKET_TYPE_CARRY_FORWARD]


def add_months(value: datetime, months: int) -> datetime:
    # Clamp to the last day of the target month (Jan 31 + 1 month -> Feb 28/29).
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def validity_days(recurring_period: str | None, billing: str | None, cycle_start: datetime) -> int:
    """Return the length in days of the cycle starting at ``cycle_start``.

    DAILY and WEEKLY periods are fixed. Calendar billing ("1" or "2") uses the
    length of the month containing the cycle start; anything else counts the
    days to the same day next month.
    """
    period = (recurring_period or "").upper()
    if period == "DAILY":
        return 1
    if period == "WEEKLY":
        return 7
    if billing in CALENDAR_BILLING_TYPES:
        return calendar.monthrange(cycle_start.year, cycle_start.month)[1]
    return (add_months(cycle_start, 1) - cycle_start).days


def advance_cycle(
    *,
    next_cycle_start: datetime | None,
    expiry_date: datetime,
    recurring_period: str | None,
    recurring_flag: bool,
    billing: str | None,
) -> CycleWindow:
    if next_cycle_start is None:
        raise InternalProcessingError("Service has no next cycle start date")
    try:
        days = validity_days(recurring_period, billing, next_cycle_start)
        cycle_end = next_cycle_start + timedelta(days=days - 1)
        candidate = cycle_end + timedelta(days=1)
    except (ValueError, OverflowError) as exc:
        raise InternalProcessingError(f"Failed to compute cycle dates from {next_cycle_start}") from exc
    next_start: datetime | None = candidate
    if candidate > expiry_date or not recurring_flag:
        next_start = None
    return CycleWindow(
        cycle_start=next_cycle_start,
        cycle_end=cycle_end,
        next_cycle_start_date=next_start,
        validity_days=days,
    )


def _resolve_definition(
    template: PlanToBucket,
    buckets_by_id: Mapping[str, Bucket],
    qos_by_id: Mapping[int, QOSProfile],
) -> tuple[Bucket, QOSProfile]:
    bucket = buckets_by_id.get(template.bucket_id)
    if bucket is None:
        raise PolicyConflictError(f"Bucket not found for bucketId: {template.bucket_id}")
    qos = qos_by_id.get(bucket.qos_id)
    if qos is None:
        raise PolicyConflictError(f"QOS profile not found for qosId: {bucket.qos_id}")
    return bucket, qos


def fresh_grant(
    template: PlanToBucket,
    bucket: Bucket,
    qos: QOSProfile,
    *,
    service_id: int,
    expiry_date: datetime,
) -> BucketGrant:
    return BucketGrant(
        bucket_id=bucket.bucket_id,
        service_id=service_id,
        bucket_type=bucket.bucket_type,
        rule=qos.bng_code,
        priority=bucket.priority,
        initial_balance=template.initial_quota,
        current_balance=template.initial_quota,
        usage=0,
        carry_forward=template.carry_forward,
        max_carry_forward=template.max_carry_forward,
        total_carry_forward=template.total_carry_forward,
        carry_forward_validity=template.carry_forward_validity,
        time_window=bucket.time_window,
        consumption_limit=template.consumption_limit,
        consumption_limit_window=template.consumption_limit_window,
        expiration=expiry_date,
    )


def previous_cycle_bucket(existing: Iterable[BucketInstance], bucket_id: str) -> BucketInstance | None:
    # The newest non carry-forward instance of the bucket is the one being superseded.
    candidates = [
        instance
        for instance in existing
        if instance.bucket_id == bucket_id and instance.bucket_type != BUCKET_TYPE_CARRY_FORWARD
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda instance: instance.id or 0)


def active_carry_forward_buckets(
    existing: Iterable[BucketInstance],
    bucket_id: str,
    *,
    today: datetime,
) -> list[BucketInstance]:
    """Carry-forward instances of ``bucket_id`` that stay active past tomorrow, oldest expiry first."""
    tomorrow = (today + timedelta(days=1)).date()
    active = [
        instance
        for instance in existing
        if instance.bucket_id == bucket_id
        and instance.bucket_type == BUCKET_TYPE_CARRY_FORWARD
        and instance.expiration is not None
        and instance.expiration >= today
        and instance.expiration.date() != tomorrow
    ]
    return sorted(active, key=lambda instance: (instance.expiration, instance.id or 0))


def carry_forward_amount(previous_balance: int, template: PlanToBucket) -> int:
    amount = previous_balance
    if template.max_carry_forward is not None:
        amount = min(amount, template.max_carry_forward)
    # A single grant can never exceed the cumulative cap on its own.
    if template.total_carry_forward is not None:
        amount = min(amount, template.total_carry_forward)
    return max(amount, 0)


def trim_to_total(
    existing: Sequence[BucketInstance],
    balances: dict[int, int],
    *,
    new_balance: int,
    limit: int | None,
) -> list[BalanceTrim]:
    """Trim older carried balances so they plus ``new_balance`` stay within ``limit``.

    ``existing`` must be ordered oldest expiry first. ``balances`` holds the
    working balance per instance id and is updated in place so that several
    templates sharing a bucket see each other's trims.
    """
    if limit is None:
        return []
    remaining = sum(balances[instance.id] for instance in existing) + new_balance
    trims: list[BalanceTrim] = []
    for instance in existing:
        if remaining <= limit:
            break
        balance = balances[instance.id]
        if balance <= 0:
            continue
        excess = remaining - limit
        if excess < balance:
            balances[instance.id] = balance - excess
            remaining -= excess
        else:
            balances[instance.id] = 0
            remaining -= balance
        trims.append(
            BalanceTrim(
                instance_id=instance.id,
                bucket_id=instance.bucket_id,
                previous_balance=balance,
                new_balance=balances[instance.id],
            )
        )
    return trims


def plan_provisioning(
    *,
    service_id: int,
    next_cycle_start: datetime | None,
    expiry_date: datetime,
    recurring_period: str | None,
    recurring_flag: bool,
    billing: str | None,
    templates: Sequence[PlanToBucket],
    existing: Sequence[BucketInstance],
    buckets_by_id: Mapping[str, Bucket],
    qos_by_id: Mapping[int, QOSProfile],
    today: datetime,
) -> ProvisioningPlan:
    """Compute everything one renewal writes, without mutating any input row."""
    if not templates:
        raise NotFoundError("No quota templates for plan")
    cycle = advance_cycle(
        next_cycle_start=next_cycle_start,
        expiry_date=expiry_date,
        recurring_period=recurring_period,
        recurring_flag=recurring_flag,
        billing=billing,
    )
    result = ProvisioningPlan(cycle=cycle)

    resolved = [(template, *_resolve_definition(template, buckets_by_id, qos_by_id)) for template in templates]
    for template, bucket, qos in resolved:
        result.grants.append(
            fresh_grant(template, bucket, qos, service_id=service_id, expiry_date=expiry_date)
        )

    balances = {instance.id: instance.current_balance for instance in existing}
    trimmed: dict[int, BalanceTrim] = {}
    for template, bucket, qos in resolved:
        if not template.carry_forward:
            continue
        previous = previous_cycle_bucket(existing, template.bucket_id)
        if previous is None:
            logger.info(
                "carry_forward_skipped reason=no_previous_bucket service_id=%s bucket_id=%s",
                service_id,
                template.bucket_id,
            )
            continue
        if previous.current_balance is None or previous.current_balance <= 0:
            logger.debug(
                "carry_forward_skipped reason=no_balance service_id=%s bucket_id=%s balance=%s",
                service_id,
                template.bucket_id,
                previous.current_balance,
            )
            continue
        if template.carry_forward_validity is None:
            raise NotFoundError(f"Carry forward validity missing for bucketId: {template.bucket_id}")

        amount = carry_forward_amount(previous.current_balance, template)
        grant = BucketGrant(
            bucket_id=bucket.bucket_id,
            service_id=service_id,
            bucket_type=BUCKET_TYPE_CARRY_FORWARD,
            rule=qos.bng_code,
            priority=bucket.priority,
            initial_balance=amount,
            current_balance=amount,
            usage=0,
            carry_forward=False,
            max_carry_forward=template.max_carry_forward,
            total_carry_forward=template.total_carry_forward,
            carry_forward_validity=template.carry_forward_validity,
            time_window=bucket.time_window,
            consumption_limit=template.consumption_limit,
            consumption_limit_window=template.consumption_limit_window,
            expiration=cycle.cycle_start + timedelta(days=template.carry_forward_validity),
        )
        result.grants.append(grant)

        carried = active_carry_forward_buckets(existing, template.bucket_id, today=today)
        for trim in trim_to_total(
            carried, balances, new_balance=amount, limit=template.total_carry_forward
        ):
            first = trimmed.get(trim.instance_id)
            if first is not None:
                trim = BalanceTrim(
                    instance_id=trim.instance_id,
                    bucket_id=trim.bucket_id,
                    previous_balance=first.previous_balance,
                    new_balance=trim.new_balance,
                )
            trimmed[trim.instance_id] = trim
    result.trims = list(trimmed.values())
    return result
