from __future__ import annotations

import argparse
import asyncio

from quotarenew.core.config import get_settings
from quotarenew.core.logging import configure_logging
from quotarenew.services.renewal import run_renewal


async def _run(page_size: int | None) -> None:
    # Manual trigger for the nightly renewal, bounded by the run timeout.
    configure_logging()
    settings = get_settings()
    summary = await asyncio.wait_for(
        run_renewal(page_size=page_size),
        timeout=settings.renewal_run_timeout_s,
    )
    print(f"batch_id={summary.batch_id}")
    print(f"pages={summary.pages}")
    print(f"processed={summary.processed}")
    print(f"succeeded={summary.succeeded}")
    print(f"failed={summary.failed}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Renew service cycles due tomorrow")
    parser.add_argument("--page-size", type=int, default=None)
    args = parser.parse_args()
    asyncio.run(_run(args.page_size))


if __name__ == "__main__":
    main()
