from __future__ import annotations

from datetime import datetime
import logging

from quotarenew.core.clock import day_start, reference_now
from quotarenew.core.config import get_settings
from quotarenew.persistence.db import unit_of_work
from quotarenew.persistence.repos import bucket_instances as bucket_instances_repo
from quotarenew.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


async def prune_expired_bucket_instances(
    *,
    now: datetime | None = None,
    chunk_size: int | None = None,
) -> int:
    """Delete bucket instances that expired before today, one chunk per transaction."""
    settings = get_settings()
    limit = max(1, int(chunk_size or settings.reaper_chunk_size))
    cutoff = day_start(now or reference_now())
    total = 0
    chunks = 0
    while True:
        async with unit_of_work() as session:
            ids = await bucket_instances_repo.find_expired_ids(session, before=cutoff, limit=limit)
            if not ids:
                break
            deleted = await bucket_instances_repo.delete_by_ids(session, ids)
        chunks += 1
        total += deleted
        increment_counter("bucket_instances_reaped_total", deleted)
        logger.debug("expired_buckets_chunk_deleted chunk=%s deleted=%s", chunks, deleted)
        if len(ids) < limit:
            break
    logger.info("expired_buckets_pruned cutoff=%s deleted=%s chunks=%s", cutoff, total, chunks)
    return total
