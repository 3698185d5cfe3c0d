from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from quotarenew.core.config import get_settings
from quotarenew.core.logging import configure_logging
from quotarenew.services.maintenance import prune_expired_bucket_instances
from quotarenew.services.renewal import run_renewal
from quotarenew.services.telemetry import get_counters

logger = logging.getLogger(__name__)


async def renew_due_services(ctx) -> dict[str, int | str]:
    # Nightly run renewing services whose next cycle starts tomorrow.
    summary = await run_renewal()
    return {
        "batch_id": summary.batch_id,
        "processed": summary.processed,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
    }


async def prune_expired_buckets(ctx) -> int:
    return await prune_expired_bucket_instances()


async def _startup(ctx) -> None:
    configure_logging()
    logger.info("renewal_worker_started")


async def _shutdown(ctx) -> None:
    logger.info("renewal_worker_stopped counters=%s", get_counters())


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.worker_queue_name
    functions = [renew_due_services, prune_expired_buckets]
    cron_jobs = [
        cron(
            renew_due_services,
            hour={settings.renewal_cron_hour},
            minute={settings.renewal_cron_minute},
            timeout=settings.renewal_run_timeout_s,
            unique=True,
            max_tries=1,
        ),
        cron(
            prune_expired_buckets,
            hour={settings.reaper_cron_hour},
            minute={settings.reaper_cron_minute},
            timeout=settings.renewal_run_timeout_s,
            unique=True,
            max_tries=1,
        ),
    ]
    on_startup = _startup
    on_shutdown = _shutdown
