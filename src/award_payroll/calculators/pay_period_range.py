"""Pay period boundaries for a calendar date."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from award_payroll.calculators.time_math import to_local
from award_payroll.calculators.types import PayFrequency

# Fortnights are counted in 14-day blocks from this Monday
FORTNIGHT_ANCHOR = date(1970, 1, 5)


@dataclass(frozen=True)
class DateRange:
    start_date: date
    end_date: date  # inclusive

    def __contains__(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


def weekly_range(day: date) -> DateRange:
    """Monday to Sunday week containing ``day``."""
    start = day - timedelta(days=day.weekday())
    return DateRange(start, start + timedelta(days=6))


def fortnightly_range(day: date) -> DateRange:
    offset = (day - FORTNIGHT_ANCHOR).days % 14
    start = day - timedelta(days=offset)
    return DateRange(start, start + timedelta(days=13))


def monthly_range(day: date) -> DateRange:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return DateRange(day.replace(day=1), day.replace(day=last_day))


def pay_period_range(day: date | datetime, frequency: PayFrequency, timezone: str | None = None) -> DateRange:
    """Pay period containing ``day``.

    A datetime is first converted to ``timezone`` so a shift starting late on
    a Sunday evening lands in the week it was worked.
    """
    if isinstance(day, datetime):
        day = to_local(day, timezone).date()

    if frequency == PayFrequency.WEEKLY:
        return weekly_range(day)
    if frequency == PayFrequency.FORTNIGHTLY:
        return fortnightly_range(day)
    return monthly_range(day)
