from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import func, select, update

from quotarenew.core.errors import KIND_NOT_FOUND
from quotarenew.domain.models import (
    PROCESSING_STATUS_FAILED,
    BucketInstance,
    ServiceInstance,
    ServiceProcessingFailure,
)
from quotarenew.persistence.db import SessionLocal
from quotarenew.services.renewal import run_renewal
from quotarenew.tests.utils.factories import (
    make_bucket,
    make_plan,
    make_qos,
    make_service,
    make_template,
    make_user,
    persist,
)


NOW = datetime(2026, 10, 19, 22, 0)
TOMORROW = datetime(2026, 10, 20)
EXPIRY = datetime(2027, 10, 1)


async def _seed_catalog() -> None:
    await persist(
        make_user("alice"),
        make_user("bob"),
        make_user("carol"),
        make_plan("PLAN-M"),
        make_qos(1),
        make_bucket("DATA", qos_id=1),
        make_template("PLAN-M", "DATA", initial_quota=1000),
    )


async def _count_instances(service_id: int) -> int:
    async with SessionLocal() as session:
        return await session.scalar(
            select(func.count()).select_from(BucketInstance).where(BucketInstance.service_id == service_id)
        )


async def _service(service_id: int) -> ServiceInstance:
    async with SessionLocal() as session:
        return await session.get(ServiceInstance, service_id)


async def _failures() -> list[ServiceProcessingFailure]:
    async with SessionLocal() as session:
        result = await session.execute(select(ServiceProcessingFailure))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_run_renewal_processes_only_due_services() -> None:
    await _seed_catalog()
    due_a = make_service(username="alice", next_cycle_start_date=TOMORROW, expiry_date=EXPIRY)
    due_b = make_service(username="bob", next_cycle_start_date=datetime(2026, 10, 20, 23, 59), expiry_date=EXPIRY)
    later = make_service(username="carol", next_cycle_start_date=datetime(2026, 10, 21), expiry_date=EXPIRY)
    one_off = make_service(
        username="carol", next_cycle_start_date=TOMORROW, expiry_date=EXPIRY, recurring_flag=False
    )
    expired = make_service(username="carol", next_cycle_start_date=TOMORROW, expiry_date=TOMORROW)
    await persist(due_a, due_b, later, one_off, expired)

    summary = await run_renewal(now=NOW, page_size=1, batch_id="batch-1")

    assert summary.batch_id == "batch-1"
    assert summary.window_start == TOMORROW
    assert summary.window_end == datetime(2026, 10, 21)
    assert summary.pages == 2
    assert summary.processed == 2
    assert summary.succeeded == 2
    assert summary.failed == 0
    assert summary.finished_at is not None
    for service in (due_a, due_b):
        assert await _count_instances(service.id) == 1
    for service in (later, one_off, expired):
        assert await _count_instances(service.id) == 0
    assert (await _service(due_a.id)).next_cycle_start_date == datetime(2026, 11, 20)


@pytest.mark.asyncio
async def test_missing_plan_records_one_failure_and_continues() -> None:
    await _seed_catalog()
    broken = make_service(
        username="alice", plan_id="PLAN-GONE", next_cycle_start_date=TOMORROW, expiry_date=EXPIRY
    )
    healthy = make_service(username="bob", next_cycle_start_date=TOMORROW, expiry_date=EXPIRY)
    await persist(broken, healthy)

    summary = await run_renewal(now=NOW)

    assert summary.processed == 2
    assert summary.succeeded == 1
    assert summary.failed == 1
    failures = await _failures()
    assert len(failures) == 1
    failure = failures[0]
    assert failure.batch_id == summary.batch_id
    assert failure.service_instance_id == broken.id
    assert failure.username == "alice"
    assert failure.plan_id == "PLAN-GONE"
    assert failure.plan_name == "PLAN-GONE name"
    assert failure.error_type == "NotFoundError"
    assert failure.error_kind == KIND_NOT_FOUND
    assert failure.processing_status == PROCESSING_STATUS_FAILED
    assert failure.retry_count == 0
    assert failure.failure_date == NOW
    assert failure.additional_info == f"ServiceId: {broken.id}, NextCycleStart: 2026-10-20 00:00:00"

    stored = await _service(broken.id)
    assert stored.next_cycle_start_date == TOMORROW
    assert stored.service_cycle_start_date is None
    assert await _count_instances(broken.id) == 0
    assert await _count_instances(healthy.id) == 1


@pytest.mark.asyncio
async def test_second_run_in_same_window_skips_renewed_services() -> None:
    await _seed_catalog()
    service = make_service(username="alice", next_cycle_start_date=TOMORROW, expiry_date=EXPIRY)
    await persist(service)

    await run_renewal(now=NOW)
    summary = await run_renewal(now=NOW)

    assert summary.processed == 0
    assert await _count_instances(service.id) == 1


@pytest.mark.asyncio
async def test_rerun_with_reset_cycle_duplicates_buckets() -> None:
    # Renewal is not idempotent: if a service is due again in the same window
    # its buckets are provisioned a second time.
    await _seed_catalog()
    service = make_service(username="alice", next_cycle_start_date=TOMORROW, expiry_date=EXPIRY)
    await persist(service)

    await run_renewal(now=NOW)
    async with SessionLocal() as session:
        await session.execute(
            update(ServiceInstance)
            .where(ServiceInstance.id == service.id)
            .values(next_cycle_start_date=TOMORROW)
        )
        await session.commit()
    summary = await run_renewal(now=NOW)

    assert summary.succeeded == 1
    assert await _count_instances(service.id) == 2


@pytest.mark.asyncio
async def test_empty_due_set_finishes_without_pages() -> None:
    summary = await run_renewal(now=NOW)
    assert summary.pages == 0
    assert summary.processed == 0
