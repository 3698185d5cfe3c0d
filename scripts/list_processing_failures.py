from __future__ import annotations

import argparse
import asyncio

from quotarenew.core.logging import configure_logging
from quotarenew.domain.models import (
    PROCESSING_STATUS_FAILED,
    PROCESSING_STATUS_PENDING_RETRY,
    PROCESSING_STATUS_RESOLVED,
)
from quotarenew.services.failures import list_failures


async def _list(batch_id: str | None, status: str | None, limit: int) -> None:
    # Operator view of failure audit rows, newest first.
    configure_logging()
    rows = await list_failures(batch_id=batch_id, status=status, limit=limit)
    for row in rows:
        print(
            f"id={row.id} service_id={row.service_instance_id} username={row.username} "
            f"plan_id={row.plan_id} error_type={row.error_type} kind={row.error_kind} "
            f"status={row.processing_status} retries={row.retry_count} batch_id={row.batch_id} "
            f"failed_at={row.failure_date.isoformat() if row.failure_date else ''}"
        )
        if row.error_message:
            print(f"  message={row.error_message}")
    print(f"count={len(rows)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="List service renewal failures")
    parser.add_argument("--batch-id", default=None)
    parser.add_argument(
        "--status",
        default=None,
        choices=[PROCESSING_STATUS_FAILED, PROCESSING_STATUS_PENDING_RETRY, PROCESSING_STATUS_RESOLVED],
    )
    parser.add_argument("--limit", type=int, default=50)
    args = parser.parse_args()
    asyncio.run(_list(args.batch_id, args.status, args.limit))


if __name__ == "__main__":
    main()
