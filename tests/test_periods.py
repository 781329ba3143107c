from datetime import date

import pytest

from models import ReportInterval
from periods import Period, add_months, iter_buckets, report_range, resolve_period


def test_add_months_clamps_day():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 2, 29), 1, desired_day=31) == date(2024, 3, 31)
    assert add_months(date(2024, 3, 15), -3) == date(2023, 12, 15)


def test_report_range_covers_whole_months():
    period = report_range(date(2024, 3, 17), 3)
    assert period.start == date(2024, 1, 1)
    assert period.end == date(2024, 3, 31)
    single = report_range(date(2024, 2, 10), 1)
    assert (single.start, single.end) == (date(2024, 2, 1), date(2024, 2, 29))


def test_quarter_buckets_are_calendar_aligned_and_clipped():
    period = Period("report", date(2024, 2, 1), date(2024, 7, 31))
    buckets = iter_buckets(period, ReportInterval.quarter)
    assert [(b.start, b.end) for b in buckets] == [
        (date(2024, 2, 1), date(2024, 3, 31)),
        (date(2024, 4, 1), date(2024, 6, 30)),
        (date(2024, 7, 1), date(2024, 7, 31)),
    ]


def test_year_buckets_span_year_boundary():
    period = Period("report", date(2023, 11, 1), date(2024, 2, 29))
    buckets = iter_buckets(period, ReportInterval.year)
    assert [(b.start, b.end) for b in buckets] == [
        (date(2023, 11, 1), date(2023, 12, 31)),
        (date(2024, 1, 1), date(2024, 2, 29)),
    ]


def test_resolve_period_slugs():
    today = date(2024, 3, 15)
    assert resolve_period(None, None, None, today=today) == Period(
        "this_month", date(2024, 3, 1), date(2024, 3, 31)
    )
    assert resolve_period("last_month", None, None, today=today) == Period(
        "last_month", date(2024, 2, 1), date(2024, 2, 29)
    )
    assert resolve_period("this_year", None, None, today=today).end == date(
        2024, 12, 31
    )
    custom = resolve_period("custom", "2024-01-05", "2024-01-20", today=today)
    assert (custom.start, custom.end) == (date(2024, 1, 5), date(2024, 1, 20))


def test_resolve_custom_period_rejects_bad_input():
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-05", None, today=date(2024, 1, 31))
    with pytest.raises(ValueError):
        resolve_period(
            "custom", "2024-02-01", "2024-01-01", today=date(2024, 1, 31)
        )


def test_period_contains_ignores_missing_dates():
    period = Period("t", date(2024, 1, 1), date(2024, 1, 31))
    assert period.contains(date(2024, 1, 31))
    assert not period.contains(date(2024, 2, 1))
    assert not period.contains(None)
