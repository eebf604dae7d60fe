"""Pure interval arithmetic for shifts.

Times of day are ``"HH:MM"`` strings; a window whose end is at or before its
start runs past midnight. Instants are ``datetime`` objects; an award's
timezone, when set, converts aware instants to local wall-clock time before
any window or calendar check. Naive instants are taken as already local.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from award_payroll.calculators.errors import InputError
from award_payroll.calculators.line_builder import SegmentBuilder
from award_payroll.calculators.types import BreakPeriod, PublicHoliday, Shift

MINUTES_PER_DAY = 24 * 60
ONE_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True)
class Duration:
    """Span of a shift.

    ``break_minutes`` is always the full nominal break, even when it exceeds
    the span and ``working_minutes`` has been clamped to zero.
    """

    total_minutes: int
    break_minutes: int
    working_minutes: int
    hours: Decimal


def parse_hhmm(value: str) -> int:
    """Parse ``"HH:MM"`` into minutes after midnight (``"24:00"`` allowed)."""
    try:
        hours_str, minutes_str = value.split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise InputError(f"Invalid time of day {value!r}, expected HH:MM", field="time")

    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise InputError(f"Time of day out of range: {value!r}", field="time")
    return hours * 60 + minutes


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end`` (partial minutes dropped)."""
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise InputError("Cannot mix timezone-aware and naive datetimes", field="end")
    return int((end - start).total_seconds() // 60)


def duration(start: datetime, end: datetime, break_minutes: int = 0) -> Duration:
    """Total and working minutes of a shift after break deduction."""
    if break_minutes < 0:
        raise InputError(f"Break minutes cannot be negative: {break_minutes}", field="break_minutes")
    total = minutes_between(start, end)
    if total <= 0:
        raise InputError(f"Shift end {end} must be after start {start}", field="end")

    working = max(0, total - break_minutes)
    return Duration(
        total_minutes=total,
        break_minutes=break_minutes,
        working_minutes=working,
        hours=SegmentBuilder.minutes_to_hours(working),
    )


def in_window(instant: datetime | time, start_hhmm: str, end_hhmm: str) -> bool:
    """True if the wall-clock time of ``instant`` falls in ``[start, end)``.

    ``end <= start`` wraps past midnight, so ``"22:00"``-``"06:00"`` covers
    23:30 and 02:00. Equal start and end cover the whole day.
    """
    start = parse_hhmm(start_hhmm)
    end = parse_hhmm(end_hhmm)
    moment = instant.hour * 60 + instant.minute

    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


def is_holiday(day: date, holidays: Iterable[PublicHoliday | date]) -> bool:
    """Exact calendar-date match against active holidays."""
    for holiday in holidays:
        if isinstance(holiday, PublicHoliday):
            if holiday.is_active and holiday.date == day:
                return True
        elif holiday == day:
            return True
    return False


def to_local(instant: datetime, timezone: str | None) -> datetime:
    """Convert an aware instant to the award's local time."""
    if timezone is None or instant.tzinfo is None:
        return instant
    try:
        return instant.astimezone(ZoneInfo(timezone))
    except ZoneInfoNotFoundError:
        raise InputError(f"Unknown timezone {timezone!r}", field="timezone")


def day_of_week(day: date) -> int:
    """Day number with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def validate_break_periods(
    break_periods: Sequence[BreakPeriod],
    shift_start: datetime,
    shift_end: datetime,
) -> None:
    """Reject break periods that are reversed, overlap, or fall outside the shift."""
    previous_end: datetime | None = None
    for bp in sorted(break_periods, key=lambda b: b.start):
        if bp.end <= bp.start:
            raise InputError("Break end time must be after break start time", field="break_periods")
        if bp.start < shift_start or bp.end > shift_end:
            raise InputError("Break periods must be within shift duration", field="break_periods")
        if previous_end is not None and bp.start < previous_end:
            raise InputError("Break periods must not overlap", field="break_periods")
        previous_end = bp.end


def break_period_minutes(break_periods: Iterable[BreakPeriod]) -> int:
    return sum(minutes_between(bp.start, bp.end) for bp in break_periods)


def worked_minute_starts(
    start: datetime,
    end: datetime,
    break_minutes: int = 0,
    break_periods: Sequence[BreakPeriod] = (),
) -> list[datetime]:
    """Chronological start instants of every worked minute.

    Structured break periods are cut out where they fall. Without them the
    nominal ``break_minutes`` are taken off the end of the shift.
    """
    total = duration(start, end, break_minutes).total_minutes
    minutes = [start + ONE_MINUTE * i for i in range(total)]

    if break_periods:
        validate_break_periods(break_periods, start, end)
        return [
            m for m in minutes
            if not any(bp.start <= m < bp.end for bp in break_periods)
        ]

    return minutes[: max(0, total - break_minutes)]


def worked_minutes(shift: Shift, end: datetime | None = None) -> list[datetime]:
    """Worked minute starts of ``shift``, optionally up to an extended ``end``."""
    end = end or shift.end
    if end is None:
        raise InputError(f"Shift {shift.id} is still open", field="end")
    return worked_minute_starts(shift.start, end, shift.break_minutes, shift.break_periods)
