"""
Month bucketing helpers.

All month arithmetic happens in one reference timezone so that an
expense at 23:30 on the last day of a month lands in the same bucket
for every caller.
"""

import calendar
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def localize(dt: datetime, tz: tzinfo) -> datetime:
    """Interpret naive datetimes in `tz`; convert aware ones to `tz`."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def month_start(dt: datetime, tz: tzinfo) -> datetime:
    """First instant of the month containing `dt`."""
    local = localize(dt, tz)
    return local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def add_months(dt: datetime, months: int, tz: tzinfo) -> datetime:
    """Month start `months` away from the month containing `dt`."""
    start = month_start(dt, tz)
    index = start.year * 12 + (start.month - 1) + months
    year, month = divmod(index, 12)
    return start.replace(year=year, month=month + 1)


def month_end(dt: datetime, tz: tzinfo) -> datetime:
    """Last instant of the month containing `dt`."""
    return add_months(dt, 1, tz) - timedelta(microseconds=1)


def year_start(dt: datetime, tz: tzinfo) -> datetime:
    return month_start(dt, tz).replace(month=1)


def days_in_month(dt: datetime, tz: tzinfo) -> int:
    local = localize(dt, tz)
    return calendar.monthrange(local.year, local.month)[1]


def each_month(start: datetime, end: datetime, tz: tzinfo) -> list[datetime]:
    """Month starts from the month of `start` through the month of `end`."""
    months = []
    current = month_start(start, tz)
    last = month_start(end, tz)
    while current <= last:
        months.append(current)
        current = add_months(current, 1, tz)
    return months


def trailing_window(
    as_of: Optional[datetime],
    months: int,
    tz: tzinfo,
) -> tuple[datetime, datetime]:
    """(start, end) covering `months` whole months ending with the month of `as_of`."""
    anchor = as_of or utcnow()
    start = add_months(anchor, -(months - 1), tz)
    return start, month_end(anchor, tz)
