"""Date helpers. Stored timestamps are naive UTC; calendar days belong to the firm's timezone."""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import FIRM_TIMEZONE


def utcnow() -> datetime:
    """Current time as naive UTC, matching DateTime column storage"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def firm_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or FIRM_TIMEZONE)


def to_firm_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a naive-UTC (or aware) timestamp to firm-local time"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(firm_zone(tz_name))


def firm_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    return to_firm_local(now or utcnow(), tz_name).date()


def day_window(
    offset_days: int, now: Optional[datetime] = None, tz_name: Optional[str] = None
) -> tuple[datetime, datetime]:
    """
    [start, end] of the firm-local calendar day `offset_days` from today,
    returned as naive UTC bounds (00:00:00.000 to 23:59:59.999 local).
    """
    zone = firm_zone(tz_name)
    target = firm_today(now, tz_name) + timedelta(days=offset_days)
    start_local = datetime.combine(target, time.min, tzinfo=zone)
    end_local = datetime.combine(target, time(23, 59, 59, 999000), tzinfo=zone)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def days_until(due: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until `due`, rounded up"""
    now = now or utcnow()
    if due.tzinfo is not None:
        due = due.astimezone(timezone.utc).replace(tzinfo=None)
    return math.ceil((due - now).total_seconds() / 86400)


def format_firm_datetime(value: datetime, tz_name: Optional[str] = None) -> str:
    """e.g. '03/14/2026 at 09:30 AM'"""
    local = to_firm_local(value, tz_name)
    return f"{local.strftime('%m/%d/%Y')} at {local.strftime('%I:%M %p')}"
