from __future__ import annotations

import asyncio

from quotarenew.core.logging import configure_logging
from quotarenew.services.maintenance import prune_expired_bucket_instances


async def prune() -> None:
    configure_logging()
    deleted = await prune_expired_bucket_instances()
    print(f"pruned_bucket_instances={deleted}")


if __name__ == "__main__":
    asyncio.run(prune())
