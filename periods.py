from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import ReportInterval


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: Optional[date]) -> bool:
        return value is not None and self.start <= value <= self.end


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int, *, desired_day: Optional[int] = None) -> date:
    """Shift ``base`` by whole months, snapping ``desired_day`` to the month end."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = desired_day if desired_day is not None else base.day
    return date(year, month, min(day, days_in_month(year, month)))


def month_start(value: date) -> date:
    return value.replace(day=1)


def month_end(value: date) -> date:
    return value.replace(day=days_in_month(value.year, value.month))


def month_period(value: date) -> Period:
    return Period("month", month_start(value), month_end(value))


def report_range(as_of: date, months: int) -> Period:
    """Whole calendar months ending with the month of ``as_of``."""
    end = month_end(as_of)
    start = add_months(month_start(as_of), -(months - 1))
    return Period("report", start, end)


def _bucket_start(value: date, interval: ReportInterval) -> date:
    if interval == ReportInterval.year:
        return date(value.year, 1, 1)
    if interval == ReportInterval.quarter:
        return date(value.year, ((value.month - 1) // 3) * 3 + 1, 1)
    return month_start(value)


_BUCKET_MONTHS = {
    ReportInterval.month: 1,
    ReportInterval.quarter: 3,
    ReportInterval.year: 12,
}


def iter_buckets(period: Period, interval: ReportInterval) -> list[Period]:
    """Calendar buckets covering ``period``, clipped to its bounds."""
    step = _BUCKET_MONTHS[interval]
    buckets: list[Period] = []
    cursor = _bucket_start(period.start, interval)
    while cursor <= period.end:
        next_cursor = add_months(cursor, step)
        bucket_end = next_cursor - date.resolution
        buckets.append(
            Period(
                interval.value,
                max(cursor, period.start),
                min(bucket_end, period.end),
            )
        )
        cursor = next_cursor
    return buckets


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if period == "last_month":
        last_month_end = month_start(today) - date.resolution
        return Period("last_month", month_start(last_month_end), last_month_end)
    if period == "this_year":
        return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    # this month
    return Period("this_month", month_start(today), month_end(today))
