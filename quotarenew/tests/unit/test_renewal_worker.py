from __future__ import annotations

import pytest

from quotarenew.core.config import get_settings
from quotarenew.workers.renewal_worker import (
    WorkerSettings,
    prune_expired_buckets,
    renew_due_services,
)


def test_worker_schedules_renewal_and_reaper() -> None:
    settings = get_settings()
    jobs = {job.name: job for job in WorkerSettings.cron_jobs}
    renewal = jobs["cron:renew_due_services"]
    reaper = jobs["cron:prune_expired_buckets"]
    assert renewal.hour == {settings.renewal_cron_hour}
    assert renewal.minute == {settings.renewal_cron_minute}
    assert renewal.timeout_s == settings.renewal_run_timeout_s
    assert reaper.hour == {settings.reaper_cron_hour}
    assert WorkerSettings.queue_name == settings.worker_queue_name


@pytest.mark.asyncio
async def test_worker_jobs_run_against_empty_store() -> None:
    result = await renew_due_services({})
    assert result["processed"] == 0
    assert result["failed"] == 0
    assert result["batch_id"]
    assert await prune_expired_buckets({}) == 0
