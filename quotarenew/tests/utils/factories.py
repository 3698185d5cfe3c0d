from __future__ import annotations

from datetime import datetime
from typing import Any

from quotarenew.domain.models import (
    BUCKET_TYPE_NORMAL,
    Bucket,
    BucketInstance,
    Plan,
    PlanToBucket,
    QOSProfile,
    ServiceInstance,
    User,
)
from quotarenew.persistence.db import SessionLocal


def make_user(username: str = "alice", **overrides: Any) -> User:
    values: dict[str, Any] = {
        "user_id": f"u-{username}",
        "user_name": username,
        "billing": "3",
        "concurrency": 1,
        "group_id": None,
        "session_timeout": "3600",
        "status": "ACTIVE",
    }
    values.update(overrides)
    return User(**values)


def make_plan(plan_id: str = "PLAN-M", **overrides: Any) -> Plan:
    values: dict[str, Any] = {
        "plan_id": plan_id,
        "plan_name": f"{plan_id} name",
        "plan_type": "PREPAID",
        "recurring_flag": True,
        "recurring_period": "MONTHLY",
        "status": "ACTIVE",
    }
    values.update(overrides)
    return Plan(**values)


def make_qos(qos_id: int = 1, **overrides: Any) -> QOSProfile:
    values: dict[str, Any] = {
        "id": qos_id,
        "bng_code": f"BNG-{qos_id}",
        "qos_profile_name": f"qos-{qos_id}",
    }
    values.update(overrides)
    return QOSProfile(**values)


def make_bucket(bucket_id: str = "DATA", qos_id: int = 1, **overrides: Any) -> Bucket:
    values: dict[str, Any] = {
        "bucket_id": bucket_id,
        "bucket_name": f"{bucket_id} bucket",
        "bucket_type": BUCKET_TYPE_NORMAL,
        "qos_id": qos_id,
        "priority": 1,
        "time_window": "00-24",
    }
    values.update(overrides)
    return Bucket(**values)


def make_template(plan_id: str = "PLAN-M", bucket_id: str = "DATA", **overrides: Any) -> PlanToBucket:
    values: dict[str, Any] = {
        "plan_id": plan_id,
        "bucket_id": bucket_id,
        "initial_quota": 1000,
        "carry_forward": False,
        "max_carry_forward": None,
        "total_carry_forward": None,
        "carry_forward_validity": None,
        "consumption_limit": None,
        "consumption_limit_window": None,
    }
    values.update(overrides)
    return PlanToBucket(**values)


def make_service(
    *,
    username: str = "alice",
    plan_id: str = "PLAN-M",
    next_cycle_start_date: datetime,
    expiry_date: datetime,
    **overrides: Any,
) -> ServiceInstance:
    values: dict[str, Any] = {
        "plan_id": plan_id,
        "plan_name": f"{plan_id} name",
        "recurring_flag": True,
        "username": username,
        "next_cycle_start_date": next_cycle_start_date,
        "service_start_date": datetime(2026, 1, 1),
        "expiry_date": expiry_date,
        "status": "ACTIVE",
        "is_group": False,
    }
    values.update(overrides)
    return ServiceInstance(**values)


def make_bucket_instance(
    *,
    bucket_id: str = "DATA",
    service_id: int,
    bucket_type: str = BUCKET_TYPE_NORMAL,
    current_balance: int,
    expiration: datetime | None,
    **overrides: Any,
) -> BucketInstance:
    values: dict[str, Any] = {
        "bucket_id": bucket_id,
        "service_id": service_id,
        "bucket_type": bucket_type,
        "rule": "BNG-1",
        "priority": 1,
        "initial_balance": current_balance,
        "current_balance": current_balance,
        "usage": 0,
        "carry_forward": False,
        "expiration": expiration,
    }
    values.update(overrides)
    return BucketInstance(**values)


async def persist(*rows: Any) -> None:
    async with SessionLocal() as session:
        session.add_all(list(rows))
        await session.commit()
