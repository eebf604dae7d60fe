"""Partition a shift's worked minutes into priced pay segments.

Each worked minute gets exactly one classification, so the segments always
tile the working time. Classification runs in two passes:

1. Rate pass, evaluated on the shift's local start date
   - Public holiday: every minute is holiday time and the overtime pass is
     skipped
   - Day-of-week rule (no window): every minute takes the rule, highest
     multiplier wins
   - Time-window rules: each minute takes the highest-multiplier window
     covering it; uncovered minutes are regular
2. Overtime pass: minutes past the daily threshold, or past whatever is left
   of the weekly threshold, become tier 1 for two hours and tier 2 after
   that, replacing any penalty classification
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from award_payroll.calculators.errors import InputError
from award_payroll.calculators.line_builder import MINUTES_PER_HOUR
from award_payroll.calculators.rate_resolver import RateResolver
from award_payroll.calculators.time_math import (
    day_of_week,
    in_window,
    is_holiday,
    to_local,
    worked_minutes,
)
from award_payroll.calculators.types import (
    Award,
    OvertimeRule,
    PenaltyRule,
    PublicHoliday,
    Segment,
    SegmentKind,
    Shift,
)
from award_payroll.calculators.validation import validate_award, validate_shift

TIER1_MINUTES = 120
REGULAR_LABEL = "Ordinary hours"

# (kind, label, multiplier) identifies one output segment
SegmentKey = tuple[SegmentKind, str, Decimal]


def hours_to_minutes(hours: Decimal) -> int:
    return int(hours * MINUTES_PER_HOUR)


def overtime_threshold(award: Award, prior_week_minutes: int = 0) -> int:
    """Worked-minute index at which overtime starts for this shift."""
    threshold = hours_to_minutes(award.daily_overtime_threshold_hours)
    if award.weekly_overtime_threshold_hours is not None:
        weekly_left = hours_to_minutes(award.weekly_overtime_threshold_hours) - prior_week_minutes
        threshold = min(threshold, max(0, weekly_left))
    return threshold


def _holiday_key(award: Award) -> SegmentKey:
    rules = [r for r in award.penalty_rules if r.is_active and r.is_public_holiday]
    if rules:
        rule = max(rules, key=lambda r: r.multiplier)
        return (SegmentKind.HOLIDAY, rule.name, rule.multiplier)
    return (SegmentKind.HOLIDAY, "Public holiday", award.public_holiday_multiplier)


def _best(rules: Iterable[PenaltyRule | OvertimeRule]):
    best = None
    for rule in rules:
        if best is None or rule.multiplier > best.multiplier:
            best = rule
    return best


def _window_matches(rule: PenaltyRule | OvertimeRule, local: datetime, weekday: int) -> bool:
    if rule.day_of_week is not None and rule.day_of_week != weekday:
        return False
    if rule.has_window and not in_window(local, rule.window_start, rule.window_end):
        return False
    return True


def _rate_pass(
    award: Award,
    local_minutes: Sequence[datetime],
    weekday: int,
    holiday: bool,
) -> list[SegmentKey]:
    regular: SegmentKey = (SegmentKind.REGULAR, REGULAR_LABEL, Decimal("1"))

    if holiday:
        return [_holiday_key(award)] * len(local_minutes)

    active = [r for r in award.penalty_rules if r.is_active and not r.is_public_holiday]

    day_rule = _best(r for r in active if r.is_day_only and r.day_of_week == weekday)
    if day_rule is not None:
        return [(SegmentKind.PENALTY, day_rule.name, day_rule.multiplier)] * len(local_minutes)

    # Window rules and rules with no predicate at all compete minute by minute
    minute_rules = [r for r in active if not r.is_day_only]
    keys: list[SegmentKey] = []
    for local in local_minutes:
        rule = _best(r for r in minute_rules if _window_matches(r, local, weekday))
        if rule is None:
            keys.append(regular)
        else:
            keys.append((SegmentKind.PENALTY, rule.name, rule.multiplier))
    return keys


def _overtime_pass(
    award: Award,
    keys: list[SegmentKey],
    local_minutes: Sequence[datetime],
    weekday: int,
    prior_week_minutes: int,
) -> None:
    threshold = overtime_threshold(award, prior_week_minutes)
    rules = [r for r in award.overtime_rules if r.is_active and not r.is_public_holiday]

    for index in range(threshold, len(keys)):
        if index < threshold + TIER1_MINUTES:
            tier, multiplier = 1, award.overtime_tier1_multiplier
        else:
            tier, multiplier = 2, award.overtime_tier2_multiplier
        label = f"Overtime tier {tier}"

        rule = _best(r for r in rules if _window_matches(r, local_minutes[index], weekday))
        if rule is not None and rule.multiplier > multiplier:
            multiplier = rule.multiplier
            label = f"{rule.name} (tier {tier})"

        keys[index] = (SegmentKind.OVERTIME, label, multiplier)


def decompose(
    shift: Shift,
    award: Award,
    holidays: Iterable[PublicHoliday] | None = None,
    prior_week_minutes: int = 0,
    end: datetime | None = None,
) -> tuple[Segment, ...]:
    """Decompose one closed shift into priced segments.

    Args:
        shift: The shift to decompose (must be closed)
        award: Pay guide supplying rules, thresholds and rates
        holidays: Holiday calendar; defaults to the award's own
        prior_week_minutes: Minutes already worked earlier in the same week
        end: Effective end, e.g. after a minimum-shift extension

    Returns:
        Segments in order of first occurrence within the shift

    Raises:
        InputError: If the shift or award is malformed
    """
    validate_shift(shift)
    validate_award(award)
    if prior_week_minutes < 0:
        raise InputError(
            f"prior_week_minutes cannot be negative: {prior_week_minutes}",
            field="prior_week_minutes",
        )

    starts = worked_minutes(shift, end)
    if not starts:
        return ()

    local_minutes = [to_local(m, award.timezone) for m in starts]
    shift_day = to_local(shift.start, award.timezone).date()
    weekday = day_of_week(shift_day)
    calendar = award.public_holidays if holidays is None else tuple(holidays)
    holiday = is_holiday(shift_day, calendar)

    keys = _rate_pass(award, local_minutes, weekday, holiday)
    if not holiday:
        _overtime_pass(award, keys, local_minutes, weekday, prior_week_minutes)

    counts: dict[SegmentKey, int] = {}
    for key in keys:
        counts[key] = counts.get(key, 0) + 1

    resolver = RateResolver(award)
    return tuple(
        resolver.price(kind, label, multiplier, minutes)
        for (kind, label, multiplier), minutes in counts.items()
    )

