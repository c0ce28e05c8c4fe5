"""Calendar-aligned reporting windows."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

PRODUCTION_PERIODS = ("today", "thisWeek", "thisMonth")
PROJECT_PERIODS = ("thisWeek", "thisMonth", "thisYear")


class InvalidPeriod(ValueError):
    """Raised when a report period keyword is not recognised."""


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def as_utc(self) -> "DateRange":
        return DateRange(start=_to_utc(self.start), end=_to_utc(self.end))

    def __contains__(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(now: datetime) -> datetime:
    return now.replace(hour=23, minute=59, second=59, microsecond=999000)


def date_range(period: str, now: datetime) -> DateRange:
    """Return the production report window containing ``now``.

    Windows are computed in the timezone carried by ``now``: ``today`` spans
    the whole day, ``thisWeek`` starts on Monday and ends with today, and
    ``thisMonth`` covers every day of the calendar month.
    """

    if period == "today":
        return DateRange(_start_of_day(now), _end_of_day(now))
    if period == "thisWeek":
        monday = _start_of_day(now) - timedelta(days=now.weekday())
        return DateRange(monday, _end_of_day(now))
    if period == "thisMonth":
        last_day = calendar.monthrange(now.year, now.month)[1]
        return DateRange(
            _start_of_day(now).replace(day=1),
            _end_of_day(now).replace(day=last_day),
        )
    raise InvalidPeriod(f"period must be one of: {', '.join(PRODUCTION_PERIODS)}")


def project_report_range(period: str, now: datetime) -> DateRange:
    """Return the project report window, which always ends at ``now``.

    Unlike :func:`date_range` the week starts on Sunday.
    """

    if period == "thisWeek":
        days_since_sunday = (now.weekday() + 1) % 7
        return DateRange(_start_of_day(now) - timedelta(days=days_since_sunday), now)
    if period == "thisMonth":
        return DateRange(_start_of_day(now).replace(day=1), now)
    if period == "thisYear":
        return DateRange(_start_of_day(now).replace(month=1, day=1), now)
    raise InvalidPeriod(f"period must be one of: {', '.join(PROJECT_PERIODS)}")
