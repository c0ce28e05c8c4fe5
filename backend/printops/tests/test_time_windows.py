from datetime import datetime, timedelta, timezone

import pytest

from printops.services.time_windows import (
    DateRange,
    InvalidPeriod,
    date_range,
    project_report_range,
)

# Wednesday
NOW = datetime(2024, 5, 15, 14, 30, tzinfo=timezone.utc)


def test_today_spans_whole_day():
    window = date_range("today", NOW)
    assert window.start == datetime(2024, 5, 15, 0, 0, tzinfo=timezone.utc)
    assert window.end == datetime(2024, 5, 15, 23, 59, 59, 999000, tzinfo=timezone.utc)
    assert NOW in window


def test_this_week_starts_monday():
    window = date_range("thisWeek", NOW)
    assert window.start == datetime(2024, 5, 13, tzinfo=timezone.utc)
    assert window.start.weekday() == 0
    assert window.end.date() == NOW.date()


def test_this_week_on_monday_starts_same_day():
    monday = datetime(2024, 5, 13, 8, 0, tzinfo=timezone.utc)
    assert date_range("thisWeek", monday).start == datetime(2024, 5, 13, tzinfo=timezone.utc)


def test_this_month_covers_calendar_month():
    window = date_range("thisMonth", datetime(2024, 2, 10, tzinfo=timezone.utc))
    assert window.start == datetime(2024, 2, 1, tzinfo=timezone.utc)
    # leap year
    assert window.end.date() == datetime(2024, 2, 29).date()
    assert window.end.hour == 23 and window.end.minute == 59


def test_windows_keep_caller_timezone():
    tz = timezone(timedelta(hours=2))
    local_now = datetime(2024, 5, 15, 1, 0, tzinfo=tz)
    window = date_range("today", local_now)
    assert window.start == datetime(2024, 5, 15, tzinfo=tz)
    assert window.as_utc().start == datetime(2024, 5, 14, 22, 0, tzinfo=timezone.utc)


def test_unknown_period_rejected():
    with pytest.raises(InvalidPeriod):
        date_range("thisYear", NOW)
    with pytest.raises(InvalidPeriod):
        project_report_range("today", NOW)


def test_project_week_starts_sunday_and_ends_now():
    window = project_report_range("thisWeek", NOW)
    assert window.start == datetime(2024, 5, 12, tzinfo=timezone.utc)
    assert window.end == NOW


def test_project_week_on_sunday():
    sunday = datetime(2024, 5, 19, 9, 0, tzinfo=timezone.utc)
    assert project_report_range("thisWeek", sunday).start == datetime(2024, 5, 19, tzinfo=timezone.utc)


def test_project_month_and_year():
    assert project_report_range("thisMonth", NOW) == DateRange(datetime(2024, 5, 1, tzinfo=timezone.utc), NOW)
    assert project_report_range("thisYear", NOW).start == datetime(2024, 1, 1, tzinfo=timezone.utc)
