from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import event

from quotarenew.persistence.db import SessionLocal, engine
from quotarenew.services import reference_cache
from quotarenew.services.batch_loader import load_page_context
from quotarenew.tests.utils.factories import (
    make_bucket,
    make_bucket_instance,
    make_plan,
    make_qos,
    make_service,
    make_template,
    make_user,
    persist,
)


NEXT = datetime(2026, 10, 20)
EXPIRY = datetime(2027, 10, 1)


async def _seed_page() -> list:
    services = [
        make_service(username=f"user-{i}", plan_id="PLAN-M", next_cycle_start_date=NEXT, expiry_date=EXPIRY)
        for i in range(3)
    ]
    services.append(
        make_service(username="user-x", plan_id="PLAN-GONE", next_cycle_start_date=NEXT, expiry_date=EXPIRY)
    )
    await persist(
        *[make_user(f"user-{i}") for i in range(3)],
        make_plan("PLAN-M"),
        make_qos(1),
        make_qos(2),
        make_bucket("DATA", qos_id=1),
        make_bucket("VOICE", qos_id=2),
        make_bucket("UNUSED", qos_id=2),
        make_template("PLAN-M", "DATA"),
        make_template("PLAN-M", "VOICE"),
        *services,
    )
    await persist(
        make_bucket_instance(service_id=services[0].id, current_balance=10, expiration=NEXT),
        make_bucket_instance(service_id=services[0].id, bucket_id="VOICE", current_balance=5, expiration=NEXT),
        make_bucket_instance(service_id=services[1].id, current_balance=7, expiration=NEXT),
    )
    return services


@pytest.mark.asyncio
async def test_load_page_context_builds_lookup_maps() -> None:
    services = await _seed_page()
    async with SessionLocal() as session:
        context = await load_page_context(session, services)

    assert set(context.users_by_username) == {"user-0", "user-1", "user-2"}
    assert set(context.plans_by_plan_id) == {"PLAN-M"}
    assert [t.bucket_id for t in context.templates_for("PLAN-M")] == ["DATA", "VOICE"]
    assert context.templates_for("PLAN-GONE") == []
    assert set(context.buckets_by_bucket_id) == {"DATA", "VOICE"}
    assert set(context.qos_by_id) == {1, 2}
    assert len(context.bucket_instances_for(services[0].id)) == 2
    assert len(context.bucket_instances_for(services[1].id)) == 1
    assert context.bucket_instances_for(services[2].id) == []


@pytest.mark.asyncio
async def test_load_page_context_uses_constant_query_count() -> None:
    services = await _seed_page()
    statements: list[str] = []

    def _count(conn, cursor, statement, parameters, context, executemany) -> None:
        statements.append(statement)

    event.listen(engine.sync_engine, "before_cursor_execute", _count)
    try:
        async with SessionLocal() as session:
            await load_page_context(session, services)
        first = len(statements)
        statements.clear()
        # Cached reference rows are served in-process; absent users and plans are looked up again.
        async with SessionLocal() as session:
            context = await load_page_context(session, services)
        second = len(statements)
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", _count)

    assert first == 6
    assert second == 3
    assert set(context.buckets_by_bucket_id) == {"DATA", "VOICE"}


@pytest.mark.asyncio
async def test_load_page_context_reads_storage_when_cache_disabled(monkeypatch) -> None:
    from quotarenew.core.config import get_settings

    services = await _seed_page()
    monkeypatch.setattr(get_settings(), "reference_cache_enabled", False)
    async with SessionLocal() as session:
        await load_page_context(session, services)
    hits, misses = reference_cache.get_many(reference_cache.KIND_PLANS, ["PLAN-M"])
    assert hits == {}
    assert misses == ["PLAN-M"]


@pytest.mark.asyncio
async def test_load_page_context_empty_page() -> None:
    async with SessionLocal() as session:
        context = await load_page_context(session, [])
    assert context.users_by_username == {}
    assert context.bucket_instances_by_service_id == {}
