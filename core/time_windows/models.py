"""
Time Window Models

Date ranges used to scope production analytics:
- DateRange: inclusive [start, end] calendar range for reports
- WeekWindow: the Monday-Sunday planning week containing a given day
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import pytz

DEFAULT_TIMEZONE = "America/Sao_Paulo"


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive calendar date range.

    A single-day report is DateRange(day, day).
    """
    start: date
    end: date

    def __post_init__(self):
        """Validate date range"""
        if self.end < self.start:
            raise ValueError(
                f"End date ({self.end}) must not be before start date ({self.start})"
            )

    @property
    def days(self) -> int:
        """Number of calendar days covered, both ends included"""
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        """Check if day falls within this range"""
        return self.start <= day <= self.end

    @classmethod
    def single_day(cls, day: date) -> "DateRange":
        return cls(day, day)

    def __repr__(self) -> str:
        return f"DateRange({self.start.isoformat()} → {self.end.isoformat()})"


@dataclass(frozen=True)
class WeekWindow:
    """
    Monday-Sunday planning week, anchored on "today".

    days_remaining follows the shop-floor convention: 7 minus the ISO weekday
    of today, so it is 6 on Monday and 0 on Sunday.
    """
    monday: date
    today: date

    def __post_init__(self):
        if self.monday.weekday() != 0:
            raise ValueError(f"Week must start on a Monday, got {self.monday}")
        if not self.range.contains(self.today):
            raise ValueError(f"{self.today} is outside the week starting {self.monday}")

    @property
    def sunday(self) -> date:
        return self.monday + timedelta(days=6)

    @property
    def range(self) -> DateRange:
        return DateRange(self.monday, self.sunday)

    @property
    def days_remaining(self) -> int:
        return 7 - self.today.isoweekday()

    def contains(self, day: date) -> bool:
        return self.range.contains(day)

    @classmethod
    def containing(cls, day: date) -> "WeekWindow":
        """Create the week window for the week that contains day."""
        return cls(monday=day - timedelta(days=day.weekday()), today=day)


def today_in_timezone(timezone: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> date:
    """
    Current calendar date in the plant's timezone.

    Args:
        timezone: Timezone name
        now: Optional aware or naive (UTC) datetime, mainly for tests

    Returns:
        Local date
    """
    tz = pytz.timezone(timezone)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(tz).date()


def current_week(timezone: str = DEFAULT_TIMEZONE, today: Optional[date] = None) -> WeekWindow:
    """Week window containing today (in the plant's timezone unless given)."""
    if today is None:
        today = today_in_timezone(timezone)
    return WeekWindow.containing(today)
