"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=50), primary_key=True),
        sa.Column("user_name", sa.String(), nullable=False),
        sa.Column("billing", sa.String(), nullable=True),
        sa.Column("cycle_date", sa.Integer(), nullable=True),
        sa.Column("concurrency", sa.Integer(), nullable=True),
        sa.Column("group_id", sa.String(), nullable=True),
        sa.Column("session_timeout", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="ACTIVE"),
        sa.Column("created_date", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_user_name", "users", ["user_name"], unique=True)

    op.create_table(
        "plans",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.String(length=64), nullable=False),
        sa.Column("plan_name", sa.String(length=64), nullable=False),
        sa.Column("plan_type", sa.String(length=64), nullable=False, server_default="PREPAID"),
        sa.Column("recurring_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_period", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=False, server_default="ACTIVE"),
        sa.Column("quota_proration_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_plans_plan_id", "plans", ["plan_id"], unique=True)

    op.create_table(
        "qos_profiles",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("bng_code", sa.String(length=255), nullable=False),
        sa.Column("qos_profile_name", sa.String(length=255), nullable=False),
        sa.Column("uplink_speed", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("downlink_speed", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "buckets",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("bucket_id", sa.String(length=64), nullable=False),
        sa.Column("bucket_name", sa.String(length=64), nullable=False),
        sa.Column("bucket_type", sa.String(length=64), nullable=False, server_default="NORMAL"),
        sa.Column("qos_id", sa.BigInteger(), nullable=False),
        sa.Column("priority", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("time_window", sa.String(), nullable=True),
    )
    op.create_index("ix_buckets_bucket_id", "buckets", ["bucket_id"], unique=True)

    op.create_table(
        "plan_to_buckets",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.String(length=64), nullable=False),
        sa.Column("bucket_id", sa.String(length=64), nullable=False),
        sa.Column("initial_quota", sa.BigInteger(), nullable=False),
        sa.Column("carry_forward", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_carry_forward", sa.BigInteger(), nullable=True),
        sa.Column("total_carry_forward", sa.BigInteger(), nullable=True),
        sa.Column("carry_forward_validity", sa.Integer(), nullable=True),
        sa.Column("consumption_limit", sa.BigInteger(), nullable=True),
        sa.Column("consumption_limit_window", sa.String(), nullable=True),
    )
    op.create_index("ix_plan_to_buckets_plan_bucket", "plan_to_buckets", ["plan_id", "bucket_id"])

    op.create_table(
        "service_instances",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.String(length=64), nullable=False),
        sa.Column("plan_name", sa.String(length=64), nullable=False),
        sa.Column("plan_type", sa.String(length=64), nullable=False, server_default="PREPAID"),
        sa.Column("recurring_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("service_cycle_start_date", sa.DateTime(), nullable=True),
        sa.Column("service_cycle_end_date", sa.DateTime(), nullable=True),
        sa.Column("next_cycle_start_date", sa.DateTime(), nullable=True),
        sa.Column("service_start_date", sa.DateTime(), nullable=False),
        sa.Column("expiry_date", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=64), nullable=False, server_default="ACTIVE"),
        sa.Column("is_group", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("request_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_service_instances_username", "service_instances", ["username"])
    # Supports the nightly due-record predicate.
    op.create_index(
        "ix_service_instances_due",
        "service_instances",
        ["recurring_flag", "next_cycle_start_date", "expiry_date"],
    )

    op.create_table(
        "bucket_instances",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("bucket_id", sa.String(length=64), nullable=False),
        sa.Column("service_id", sa.BigInteger(), nullable=False),
        sa.Column("bucket_type", sa.String(length=64), nullable=False),
        sa.Column("rule", sa.String(length=64), nullable=False),
        sa.Column("priority", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("initial_balance", sa.BigInteger(), nullable=False),
        sa.Column("current_balance", sa.BigInteger(), nullable=False),
        sa.Column("usage", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("carry_forward", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_carry_forward", sa.BigInteger(), nullable=True),
        sa.Column("total_carry_forward", sa.BigInteger(), nullable=True),
        sa.Column("carry_forward_validity", sa.Integer(), nullable=True),
        sa.Column("time_window", sa.String(length=64), nullable=True),
        sa.Column("consumption_limit", sa.BigInteger(), nullable=True),
        sa.Column("consumption_limit_window", sa.String(), nullable=True),
        sa.Column("expiration", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_bucket_instances_service_id", "bucket_instances", ["service_id"])
    op.create_index("ix_bucket_instances_expiration", "bucket_instances", ["expiration"])

    op.create_table(
        "service_processing_failures",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("service_instance_id", sa.BigInteger(), nullable=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("plan_id", sa.String(length=64), nullable=True),
        sa.Column("plan_name", sa.String(length=128), nullable=True),
        sa.Column("error_type", sa.String(length=100), nullable=True),
        sa.Column("error_kind", sa.String(length=50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("stack_trace", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processing_status", sa.String(length=50), nullable=False, server_default="FAILED"),
        sa.Column("failure_date", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_retry_date", sa.DateTime(), nullable=True),
        sa.Column("resolved_date", sa.DateTime(), nullable=True),
        sa.Column("batch_id", sa.String(length=100), nullable=True),
        sa.Column("additional_info", sa.String(length=1000), nullable=True),
    )
    op.create_index(
        "ix_service_processing_failures_batch", "service_processing_failures", ["batch_id"]
    )
    op.create_index(
        "ix_service_processing_failures_status", "service_processing_failures", ["processing_status"]
    )


def downgrade() -> None:
    op.drop_index("ix_service_processing_failures_status", table_name="service_processing_failures")
    op.drop_index("ix_service_processing_failures_batch", table_name="service_processing_failures")
    op.drop_table("service_processing_failures")
    op.drop_index("ix_bucket_instances_expiration", table_name="bucket_instances")
    op.drop_index("ix_bucket_instances_service_id", table_name="bucket_instances")
    op.drop_table("bucket_instances")
    op.drop_index("ix_service_instances_due", table_name="service_instances")
    op.drop_index("ix_service_instances_username", table_name="service_instances")
    op.drop_table("service_instances")
    op.drop_index("ix_plan_to_buckets_plan_bucket", table_name="plan_to_buckets")
    op.drop_table("plan_to_buckets")
    op.drop_index("ix_buckets_bucket_id", table_name="buckets")
    op.drop_table("buckets")
    op.drop_table("qos_profiles")
    op.drop_index("ix_plans_plan_id", table_name="plans")
    op.drop_table("plans")
    op.drop_index("ix_users_user_name", table_name="users")
    op.drop_table("users")
