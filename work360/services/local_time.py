from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from work360.settings import get_settings

logger = logging.getLogger("work360.local_time")

DEFAULT_TIMEZONE = "Europe/Rome"


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("attendance_timezone_invalid", extra={"timezone": raw_name})
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_date_range_to_utc_bounds(
    start_date: date | None,
    end_date: date | None,
) -> tuple[datetime | None, datetime | None]:
    """Turn an inclusive local date range into a half-open UTC interval."""
    tz = attendance_timezone()
    start_utc = None
    end_utc = None
    if start_date is not None:
        start_utc = datetime.combine(start_date, datetime.min.time(), tzinfo=tz).astimezone(timezone.utc)
    if end_date is not None:
        end_local = datetime.combine(end_date + timedelta(days=1), datetime.min.time(), tzinfo=tz)
        end_utc = end_local.astimezone(timezone.utc)
    return start_utc, end_utc


def current_month_utc_bounds(now_utc: datetime) -> tuple[datetime, datetime]:
    tz = attendance_timezone()
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    local_today = now_utc.astimezone(tz).date()
    month_start = local_today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    return (
        datetime.combine(month_start, datetime.min.time(), tzinfo=tz).astimezone(timezone.utc),
        datetime.combine(next_month, datetime.min.time(), tzinfo=tz).astimezone(timezone.utc),
    )
