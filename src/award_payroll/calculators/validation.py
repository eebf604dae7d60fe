"""Input checks run before any decomposition or tax computation."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from award_payroll.calculators.errors import InputError
from award_payroll.calculators.time_math import minutes_between, parse_hhmm
from award_payroll.calculators.types import Award, Shift


def require_decimal(value: Any, field: str, allow_none: bool = False) -> None:
    """Money and hours must be Decimal; floats are rejected outright."""
    if value is None and allow_none:
        return
    if isinstance(value, bool) or not isinstance(value, Decimal):
        raise InputError(
            f"{field} must be a Decimal, got {type(value).__name__}", field=field
        )
    if not value.is_finite():
        raise InputError(f"{field} must be finite, got {value}", field=field)


def require_non_negative(value: Decimal | None, field: str) -> None:
    require_decimal(value, field, allow_none=True)
    if value is not None and value < 0:
        raise InputError(f"{field} cannot be negative", field=field)


def validate_award(award: Award) -> None:
    """Reject an award whose numbers or rule predicates are malformed."""
    require_non_negative(award.base_rate, "base_rate")
    require_non_negative(award.casual_loading_rate, "casual_loading_rate")
    require_non_negative(award.daily_overtime_threshold_hours, "daily_overtime_threshold_hours")
    require_non_negative(award.weekly_overtime_threshold_hours, "weekly_overtime_threshold_hours")
    require_non_negative(award.overtime_tier1_multiplier, "overtime_tier1_multiplier")
    require_non_negative(award.overtime_tier2_multiplier, "overtime_tier2_multiplier")
    require_non_negative(award.public_holiday_multiplier, "public_holiday_multiplier")
    require_non_negative(award.minimum_shift_hours, "minimum_shift_hours")
    require_non_negative(award.maximum_shift_hours, "maximum_shift_hours")

    if (
        award.minimum_shift_hours is not None
        and award.maximum_shift_hours is not None
        and award.minimum_shift_hours > award.maximum_shift_hours
    ):
        raise InputError(
            "minimum_shift_hours cannot exceed maximum_shift_hours",
            field="minimum_shift_hours",
        )

    for rule in (*award.penalty_rules, *award.overtime_rules):
        require_non_negative(rule.multiplier, f"{rule.name}.multiplier")
        if rule.day_of_week is not None and not 0 <= rule.day_of_week <= 6:
            raise InputError(
                f"{rule.name}: day_of_week must be 0-6, got {rule.day_of_week}",
                field="day_of_week",
            )
        if (rule.window_start is None) != (rule.window_end is None):
            raise InputError(
                f"{rule.name}: window_start and window_end must be set together",
                field="window_start",
            )
        if rule.has_window:
            parse_hhmm(rule.window_start)
            parse_hhmm(rule.window_end)


def validate_shift(shift: Shift) -> None:
    """Reject a closed shift with impossible times or breaks."""
    if shift.end is None:
        raise InputError(f"Shift {shift.id} is still open", field="end")
    if isinstance(shift.break_minutes, bool) or not isinstance(shift.break_minutes, int):
        raise InputError("break_minutes must be a whole number of minutes", field="break_minutes")
    if shift.break_minutes < 0:
        raise InputError(f"Break minutes cannot be negative: {shift.break_minutes}", field="break_minutes")
    if minutes_between(shift.start, shift.end) <= 0:
        raise InputError("Shift must be at least 1 minute long", field="end")
