from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from quotarenew.core.config import get_settings


def reference_now() -> datetime:
    # Stored timestamps are naive wall-clock values in the reference zone.
    zone = ZoneInfo(get_settings().reference_time_zone)
    return datetime.now(zone).replace(tzinfo=None)


def day_start(value: datetime) -> datetime:
    return datetime(value.year, value.month, value.day)


def tomorrow_window(now: datetime) -> tuple[datetime, datetime]:
    # [tomorrow 00:00, day after tomorrow 00:00)
    start = day_start(now) + timedelta(days=1)
    return start, start + timedelta(days=1)
