from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CacheDocument(BaseModel):
    # Other services write these documents too; keep unknown fields on rewrite.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class Balance(_CacheDocument):
    # One entry per provisioned bucket instance.
    bucket_id: str | None = None
    service_id: str | None = None
    initial_balance: int | None = None
    quota: int | None = None
    usage: int = 0
    priority: int | None = None
    service_expiry: datetime | None = None
    bucket_expiry_date: datetime | None = None
    service_start_date: datetime | None = None
    service_status: str | None = None
    time_window: str | None = None
    consumption_limit: int | None = None
    consumption_limit_window: int | None = None
    bucket_username: str | None = None
    unlimited: bool = False
    group: bool = False


class SessionEntry(_CacheDocument):
    session_id: str | None = None
    session_start_time: str | None = None
    session_end_time: str | None = None
    status: str | None = None


class QosParam(_CacheDocument):
    qos_profile_id: str | None = None
    bandwidth_limit: int | None = None
    latency_threshold: int | None = None
    priority: str | None = None


class UserSessionData(_CacheDocument):
    session_time_out: str | None = None
    user_status: str | None = None
    user_name: str | None = None
    group_id: str | None = None
    concurrency: int = 0
    super_template_id: int = 0
    balance: list[Balance] = Field(default_factory=list)
    sessions: list[SessionEntry] = Field(default_factory=list)
    qos_param: QosParam | None = None
