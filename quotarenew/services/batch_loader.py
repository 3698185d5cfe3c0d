from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from quotarenew.core.config import get_settings
from quotarenew.domain.models import (
    Bucket,
    BucketInstance,
    Plan,
    PlanToBucket,
    QOSProfile,
    ServiceInstance,
    User,
)
from quotarenew.persistence.repos import bucket_instances as bucket_instances_repo
from quotarenew.persistence.repos import catalog
from quotarenew.services import reference_cache


logger = logging.getLogger(__name__)


@dataclass
class PageContext:
    # Lookup maps for one page of due services; read-only once built.
    users_by_username: dict[str, User] = field(default_factory=dict)
    plans_by_plan_id: dict[str, Plan] = field(default_factory=dict)
    bucket_instances_by_service_id: dict[int, list[BucketInstance]] = field(default_factory=dict)
    templates_by_plan_id: dict[str, list[PlanToBucket]] = field(default_factory=dict)
    buckets_by_bucket_id: dict[str, Bucket] = field(default_factory=dict)
    qos_by_id: dict[int, QOSProfile] = field(default_factory=dict)

    def bucket_instances_for(self, service_id: int) -> list[BucketInstance]:
        return self.bucket_instances_by_service_id.get(service_id, [])

    def templates_for(self, plan_id: str) -> list[PlanToBucket]:
        return self.templates_by_plan_id.get(plan_id, [])


async def _cache_aside(
    kind: str,
    keys: Iterable[Hashable],
    load: Callable[[list[Any]], Awaitable[dict[Any, Any]]],
) -> dict[Any, Any]:
    # Serve hits from the reference cache and load the misses with one storage call.
    unique = list(dict.fromkeys(key for key in keys if key is not None))
    if not unique:
        return {}
    if not get_settings().reference_cache_enabled:
        return await load(unique)
    hits, misses = reference_cache.get_many(kind, unique)
    if misses:
        loaded = await load(misses)
        reference_cache.put_many(kind, loaded)
        hits.update(loaded)
    return hits


def _group(rows: Iterable[Any], key: Callable[[Any], Any]) -> dict[Any, list[Any]]:
    grouped: dict[Any, list[Any]] = defaultdict(list)
    for row in rows:
        grouped[key(row)].append(row)
    return dict(grouped)


async def load_page_context(session: AsyncSession, services: Sequence[ServiceInstance]) -> PageContext:
    """Bulk-load everything the page's renewals need in a fixed number of queries."""
    if not services:
        return PageContext()

    async def load_users(usernames: list[str]) -> dict[str, User]:
        rows = await catalog.users_by_username(session, usernames)
        return {row.user_name: row for row in rows}

    async def load_plans(plan_ids: list[str]) -> dict[str, Plan]:
        rows = await catalog.plans_by_plan_id(session, plan_ids)
        return {row.plan_id: row for row in rows}

    async def load_templates(plan_ids: list[str]) -> dict[str, list[PlanToBucket]]:
        grouped = _group(await catalog.templates_by_plan_id(session, plan_ids), lambda row: row.plan_id)
        # Cache the absence of templates too so a misconfigured plan is not re-queried every page.
        return {plan_id: grouped.get(plan_id, []) for plan_id in plan_ids}

    async def load_buckets(bucket_ids: list[str]) -> dict[str, Bucket]:
        rows = await catalog.buckets_by_bucket_id(session, bucket_ids)
        return {row.bucket_id: row for row in rows}

    async def load_qos(qos_ids: list[int]) -> dict[int, QOSProfile]:
        rows = await catalog.qos_profiles_by_id(session, qos_ids)
        return {row.id: row for row in rows}

    users = await _cache_aside(reference_cache.KIND_USERS, (s.username for s in services), load_users)
    plans = await _cache_aside(reference_cache.KIND_PLANS, (s.plan_id for s in services), load_plans)
    templates = await _cache_aside(
        reference_cache.KIND_TEMPLATES, (s.plan_id for s in services), load_templates
    )
    bucket_ids = {template.bucket_id for rows in templates.values() for template in rows}
    buckets = await _cache_aside(reference_cache.KIND_BUCKETS, sorted(bucket_ids), load_buckets)
    qos_ids = {bucket.qos_id for bucket in buckets.values()}
    qos = await _cache_aside(reference_cache.KIND_QOS_PROFILES, sorted(qos_ids), load_qos)

    # Bucket instances are mutable state and always come from storage.
    instances = await bucket_instances_repo.list_by_service_ids(session, [s.id for s in services])

    context = PageContext(
        users_by_username=users,
        plans_by_plan_id=plans,
        bucket_instances_by_service_id=_group(instances, lambda row: row.service_id),
        templates_by_plan_id={plan_id: rows for plan_id, rows in templates.items() if rows},
        buckets_by_bucket_id=buckets,
        qos_by_id=qos,
    )
    logger.debug(
        "page_context_loaded services=%s users=%s plans=%s templates=%s buckets=%s qos=%s instances=%s",
        len(services),
        len(users),
        len(plans),
        sum(len(rows) for rows in context.templates_by_plan_id.values()),
        len(buckets),
        len(qos),
        len(instances),
    )
    return context
