"""Hourly rate resolution and segment pricing for an award."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_CEILING, Decimal
from typing import Iterable

from award_payroll.calculators.line_builder import MINUTES_PER_HOUR, SegmentBuilder
from award_payroll.calculators.time_math import break_period_minutes, minutes_between
from award_payroll.calculators.types import Award, PayTotals, Segment, SegmentKind, Shift

ONE = Decimal("1")


class RateResolver:
    """Turns multipliers and minutes into money for one award.

    Rate formula:
        rate = multiplier * base_rate * (1 + casual_loading_rate)

    The casual loading compounds with every multiplier, penalties and
    overtime included.
    """

    def __init__(self, award: Award):
        self.award = award

    @property
    def loaded_base_rate(self) -> Decimal:
        return self.award.base_rate * (ONE + self.award.casual_loading_rate)

    def rate_for(self, multiplier: Decimal) -> Decimal:
        """Hourly rate for a multiplier, unrounded."""
        return multiplier * self.loaded_base_rate

    def price(
        self,
        kind: SegmentKind,
        label: str,
        multiplier: Decimal,
        minutes: int,
    ) -> Segment:
        return SegmentBuilder.create_segment(
            kind=kind,
            label=label,
            multiplier=multiplier,
            minutes=minutes,
            hourly_rate=self.rate_for(multiplier),
        )

    def resolve(self, segments: Iterable[Segment]) -> PayTotals:
        """Collapse priced segments into per-shift totals.

        Amounts are already rounded per segment, so the totals are exact
        sums of the itemized lines.
        """
        return SegmentBuilder.totals_from_segments(segments)


def minimum_shift_minutes(award: Award) -> int:
    if award.minimum_shift_hours is None:
        return 0
    minutes = award.minimum_shift_hours * MINUTES_PER_HOUR
    return int(minutes.to_integral_value(rounding=ROUND_CEILING))


def extend_for_minimum_shift(shift: Shift, award: Award) -> datetime:
    """Effective end of ``shift`` after the award's minimum engagement.

    When paid time after breaks falls short of ``minimum_shift_hours`` the
    end moves out by the shortfall; the extra minutes are then decomposed
    like any other worked time. Returns ``shift.end`` unchanged otherwise.
    """
    if shift.end is None:
        return shift.end

    required = minimum_shift_minutes(award)
    if required <= 0:
        return shift.end

    if shift.break_periods:
        breaks = break_period_minutes(shift.break_periods)
    else:
        breaks = shift.break_minutes

    total = minutes_between(shift.start, shift.end)
    shortfall = required + breaks - total
    if shortfall <= 0:
        return shift.end
    return shift.end + timedelta(minutes=shortfall)
