from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLite only autoincrements INTEGER primary keys.
BigId = BigInteger().with_variant(Integer, "sqlite")

BUCKET_TYPE_NORMAL = "NORMAL"
BUCKET_TYPE_CARRY_FORWARD = "CARRY_FORWARD_BUCKET"

PROCESSING_STATUS_FAILED = "FAILED"
PROCESSING_STATUS_PENDING_RETRY = "PENDING_RETRY"
PROCESSING_STATUS_RESOLVED = "RESOLVED"


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    # Subscriber account; billing metadata drives cycle length.
    user_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_name: Mapped[str] = mapped_column(String, unique=True, index=True)
    # "1"/"2" are calendar-month billing, anything else is anniversary billing.
    billing: Mapped[str | None] = mapped_column(String, nullable=True)
    cycle_date: Mapped[int | None] = mapped_column(Integer, nullable=True)
    concurrency: Mapped[int | None] = mapped_column(Integer, nullable=True)
    group_id: Mapped[str | None] = mapped_column(String, nullable=True)
    session_timeout: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="ACTIVE")
    created_date: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    plan_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    plan_name: Mapped[str] = mapped_column(String(64))
    plan_type: Mapped[str] = mapped_column(String(64), default="PREPAID")
    recurring_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    # DAILY, WEEKLY or a calendar period (MONTHLY).
    recurring_period: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(64), default="ACTIVE")
    quota_proration_flag: Mapped[bool] = mapped_column(Boolean, default=False)


class QOSProfile(Base):
    __tablename__ = "qos_profiles"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    # Rule code pushed to the BNG when the bucket is active.
    bng_code: Mapped[str] = mapped_column(String(255))
    qos_profile_name: Mapped[str] = mapped_column(String(255))
    uplink_speed: Mapped[str] = mapped_column(String(255), default="")
    downlink_speed: Mapped[str] = mapped_column(String(255), default="")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)


class Bucket(Base):
    __tablename__ = "buckets"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    bucket_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    bucket_name: Mapped[str] = mapped_column(String(64))
    bucket_type: Mapped[str] = mapped_column(String(64), default=BUCKET_TYPE_NORMAL)
    qos_id: Mapped[int] = mapped_column(BigInteger)
    priority: Mapped[int] = mapped_column(BigInteger, default=0)
    time_window: Mapped[str | None] = mapped_column(String, nullable=True)


class PlanToBucket(Base):
    __tablename__ = "plan_to_buckets"
    __table_args__ = (
        Index("ix_plan_to_buckets_plan_bucket", "plan_id", "bucket_id"),
    )

    # Quota template per (plan, bucket).
    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    plan_id: Mapped[str] = mapped_column(String(64))
    bucket_id: Mapped[str] = mapped_column(String(64))
    initial_quota: Mapped[int] = mapped_column(BigInteger)
    carry_forward: Mapped[bool] = mapped_column(Boolean, default=False)
    # Cap applied to a single carried balance.
    max_carry_forward: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Cap across every still-active carried balance of the bucket.
    total_carry_forward: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Days a carried balance stays valid, counted from the cycle start.
    carry_forward_validity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    consumption_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    consumption_limit_window: Mapped[str | None] = mapped_column(String, nullable=True)


class ServiceInstance(Base):
    __tablename__ = "service_instances"
    __table_args__ = (
        Index(
            "ix_service_instances_due",
            "recurring_flag",
            "next_cycle_start_date",
            "expiry_date",
        ),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    plan_id: Mapped[str] = mapped_column(String(64))
    plan_name: Mapped[str] = mapped_column(String(64))
    plan_type: Mapped[str] = mapped_column(String(64), default="PREPAID")
    recurring_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    username: Mapped[str] = mapped_column(String(64), index=True)
    service_cycle_start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    service_cycle_end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # Null once no further renewal is due.
    next_cycle_start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    service_start_date: Mapped[datetime] = mapped_column(DateTime)
    expiry_date: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(64), default="ACTIVE")
    is_group: Mapped[bool] = mapped_column(Boolean, default=False)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class BucketInstance(Base):
    __tablename__ = "bucket_instances"

    # Provisioned quota grant for one service instance.
    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    bucket_id: Mapped[str] = mapped_column(String(64))
    service_id: Mapped[int] = mapped_column(BigInteger, index=True)
    bucket_type: Mapped[str] = mapped_column(String(64))
    rule: Mapped[str] = mapped_column(String(64))
    priority: Mapped[int] = mapped_column(BigInteger, default=0)
    initial_balance: Mapped[int] = mapped_column(BigInteger)
    current_balance: Mapped[int] = mapped_column(BigInteger)
    usage: Mapped[int] = mapped_column(BigInteger, default=0)
    carry_forward: Mapped[bool] = mapped_column(Boolean, default=False)
    max_carry_forward: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    total_carry_forward: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    carry_forward_validity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_window: Mapped[str | None] = mapped_column(String(64), nullable=True)
    consumption_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    consumption_limit_window: Mapped[str | None] = mapped_column(String, nullable=True)
    expiration: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class ServiceProcessingFailure(Base):
    __tablename__ = "service_processing_failures"
    __table_args__ = (
        Index("ix_service_processing_failures_batch", "batch_id"),
        Index("ix_service_processing_failures_status", "processing_status"),
    )

    # Audit row for a service instance that could not be renewed.
    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    service_instance_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    username: Mapped[str] = mapped_column(String(64))
    plan_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    plan_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    stack_trace: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    processing_status: Mapped[str] = mapped_column(String(50), default=PROCESSING_STATUS_FAILED)
    failure_date: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_retry_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolved_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    additional_info: Mapped[str | None] = mapped_column(String(1000), nullable=True)
