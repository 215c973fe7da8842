"""Conversion between Unix time and calendar time points."""

from __future__ import annotations

from dataclasses import dataclass

_NANOS_PER_SEC = 1_000_000_000
_SECS_PER_DAY = 86_400
_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    """Return whether ``year`` is a Gregorian leap year."""
    if year % 400 == 0:
        return True
    if year % 100 == 0:
        return False
    return year % 4 == 0


def day_in_month(month: int, year: int) -> int:
    """Return the length of the zero-based ``month`` of ``year``.

    In a leap year the extra day is given to the month with index 2.
    """
    if not 0 <= month < len(_DAYS_IN_MONTH):
        raise ValueError(f"month index out of range: {month}")
    days = _DAYS_IN_MONTH[month]
    if month == 2 and is_leap_year(year):
        days += 1
    return days


@dataclass(frozen=True)
class TimePoint:
    """A calendar time point in UTC; months and days of the year are zero-based."""

    year: int
    month: int
    day: int
    hour: int
    min: int
    second: int
    nanosec: int
    day_in_week: int
    day_in_year: int
    unix_seconds: int
    unix_nanos: int

    @classmethod
    def from_unix_time(cls, seconds: int, nanoseconds: int = 0) -> "TimePoint":
        """Build a time point from seconds and nanoseconds since the Unix epoch."""
        if seconds < 0 or nanoseconds < 0:
            raise ValueError("Unix time must not be negative")
        extra, nanoseconds = divmod(nanoseconds, _NANOS_PER_SEC)
        seconds += extra

        total_day, secs_remain = divmod(seconds, _SECS_PER_DAY)
        day_in_week = (total_day + 4) % 7
        hour, rest = divmod(secs_remain, 3600)
        minute, sec = divmod(rest, 60)

        year = 1970
        while True:
            year_length = 366 if is_leap_year(year) else 365
            if total_day < year_length:
                break
            total_day -= year_length
            year += 1

        day_in_year = total_day
        month = 0
        for mon in range(len(_DAYS_IN_MONTH)):
            length = day_in_month(mon, year)
            if total_day < length:
                month = mon
                break
            total_day -= length

        return cls(
            year=year,
            month=month,
            day=total_day + 1,
            hour=hour,
            min=minute,
            second=sec,
            nanosec=nanoseconds,
            day_in_week=day_in_week,
            day_in_year=day_in_year,
            unix_seconds=seconds,
            unix_nanos=nanoseconds,
        )

    def to_unix_time(self) -> tuple[int, int]:
        """Return ``(seconds, nanoseconds)`` since the Unix epoch."""
        return self.unix_seconds, self.unix_nanos