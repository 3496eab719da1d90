from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger


def resolve_timezone(name: str | None) -> ZoneInfo | timezone:
    """ZoneInfo for an IANA name, UTC when absent or unknown."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone, falling back to UTC", timezone=name)
        return timezone.utc


def local_date(now: datetime, tz_name: str | None) -> date:
    """Calendar date of ``now`` in the given timezone."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(resolve_timezone(tz_name)).date()


def week_start_date(now: datetime, tz_name: str | None) -> date:
    """Monday of the ISO week containing ``now`` in the user's timezone."""
    today = local_date(now, tz_name)
    return today - timedelta(days=today.weekday())
