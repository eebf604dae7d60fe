"""Payroll calculation engine - per-shift and per-period orchestration."""

from __future__ import annotations

import hashlib
import json
from collections import defaultdict
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from award_payroll.calculators.errors import AwardNotFoundError
from award_payroll.calculators.line_builder import SegmentBuilder
from award_payroll.calculators.rate_resolver import RateResolver, extend_for_minimum_shift
from award_payroll.calculators.shift_decomposer import decompose
from award_payroll.calculators.tax_calculator import TaxCalculator
from award_payroll.calculators.time_math import break_period_minutes, duration, to_local
from award_payroll.calculators.types import (
    ZERO,
    Award,
    PayPeriod,
    PayPeriodExtra,
    PayPeriodResult,
    PeriodTotals,
    PublicHoliday,
    RateTableSnapshot,
    Shift,
    ShiftBreakdown,
    TaxWithholdingProfile,
    YearToDateTax,
)
from award_payroll.calculators.validation import require_decimal, validate_award, validate_shift


class PayrollEngine:
    """Pure payroll calculation engine.

    Shift pipeline (stable order):
    1) Validate the shift and its award
    2) Extend to the award's minimum shift length
    3) Decompose worked minutes into priced segments
    4) Resolve segment amounts into base / overtime / penalty totals

    Period pipeline:
    1) Run every closed shift through the shift pipeline in start order,
       carrying worked minutes per week for weekly overtime
    2) Add period extras
    3) Withhold tax on the taxable gross
    4) Net = gross - total withholdings

    The engine does no I/O; the synchronizer loads inputs and persists the
    returned :class:`PayPeriodResult`.
    """

    def __init__(self, tax_calculator: TaxCalculator | None = None, engine_version: str = ""):
        self.tax_calculator = tax_calculator or TaxCalculator()
        self.engine_version = engine_version

    def compute_shift(
        self,
        shift: Shift,
        award: Award,
        holidays: Iterable[PublicHoliday] | None = None,
        prior_week_minutes: int = 0,
    ) -> ShiftBreakdown:
        """Calculate itemized pay for one closed shift.

        Raises:
            InputError: If the shift is open or any input is malformed
        """
        validate_shift(shift)
        validate_award(award)

        warnings: list[str] = []
        shift_day = to_local(shift.start, award.timezone).date()
        if not award.is_active:
            warnings.append(f"Award {award.name or award.id} is inactive")
        if not award.is_effective_on(shift_day):
            warnings.append(f"Award {award.name or award.id} is not effective on {shift_day}")

        effective_end = extend_for_minimum_shift(shift, award)
        if effective_end != shift.end:
            warnings.append(
                f"Extended to the minimum shift of {award.minimum_shift_hours} hours"
            )

        if shift.break_periods:
            breaks = break_period_minutes(shift.break_periods)
        else:
            breaks = shift.break_minutes
        span = duration(shift.start, effective_end, breaks)

        if award.maximum_shift_hours is not None and span.hours > award.maximum_shift_hours:
            warnings.append(
                f"Worked {span.hours} hours, over the maximum shift of {award.maximum_shift_hours}"
            )

        segments = decompose(
            shift,
            award,
            holidays=holidays,
            prior_week_minutes=prior_week_minutes,
            end=effective_end,
        )
        totals = RateResolver(award).resolve(segments)

        return ShiftBreakdown(
            shift_id=shift.id,
            total_minutes=span.total_minutes,
            break_minutes=span.break_minutes,
            working_minutes=span.working_minutes,
            total_hours=span.hours,
            segments=segments,
            totals=totals,
            effective_end=effective_end,
            warnings=tuple(warnings),
        )

    def compute_shifts(
        self,
        shifts: Sequence[Shift],
        awards: Mapping[UUID, Award],
        holidays: Iterable[PublicHoliday] | None = None,
    ) -> tuple[ShiftBreakdown, ...]:
        """Calculate a run of shifts in start order.

        Worked minutes accumulate per ISO week (in each award's timezone) so
        later shifts in the week see how much of the weekly threshold is
        already used.
        """
        holidays = tuple(holidays) if holidays is not None else None
        week_minutes: dict[tuple[int, int], int] = defaultdict(int)
        breakdowns: list[ShiftBreakdown] = []

        for shift in sorted(shifts, key=lambda s: s.start):
            award = awards.get(shift.award_id) if shift.award_id is not None else None
            if award is None:
                raise AwardNotFoundError(shift.award_id, shift.id)

            iso = to_local(shift.start, award.timezone).date().isocalendar()
            week = (iso[0], iso[1])

            breakdown = self.compute_shift(
                shift, award, holidays=holidays, prior_week_minutes=week_minutes[week]
            )
            week_minutes[week] += breakdown.working_minutes
            breakdowns.append(breakdown)

        return tuple(breakdowns)

    def calculate_period(
        self,
        period: PayPeriod,
        shifts: Sequence[Shift],
        awards: Mapping[UUID, Award],
        extras: Sequence[PayPeriodExtra],
        profile: TaxWithholdingProfile | None,
        snapshot: RateTableSnapshot,
        year_to_date: YearToDateTax | None = None,
        holidays: Iterable[PublicHoliday] | None = None,
    ) -> PayPeriodResult:
        """Recompute every aggregate of a pay period from its inputs.

        Args:
            period: The period being recomputed
            shifts: Closed shifts assigned to the period
            awards: Awards keyed by id, covering every shift's award
            extras: Manual allowances and deductions
            profile: Withholding profile; defaults to a resident who claimed
                the tax-free threshold
            snapshot: Rate tables for the period's fiscal year
            year_to_date: Year-to-date figures before this period
            holidays: Holiday calendar overriding each award's own

        Returns:
            PayPeriodResult ready to persist
        """
        for extra in extras:
            require_decimal(extra.amount, "extra.amount")
        if profile is None:
            profile = TaxWithholdingProfile(owner_id=period.owner_id)

        breakdowns = self.compute_shifts(shifts, awards, holidays)

        working_minutes = sum(b.working_minutes for b in breakdowns)
        base_pay = sum((b.totals.base_pay for b in breakdowns), ZERO)
        overtime_pay = sum((b.totals.overtime_pay for b in breakdowns), ZERO)
        penalty_pay = sum((b.totals.penalty_pay for b in breakdowns), ZERO)
        shift_gross = base_pay + overtime_pay + penalty_pay

        extras_total = sum((e.amount for e in extras), ZERO)
        taxable_extras = sum((e.amount for e in extras if e.taxable), ZERO)

        tax = self.tax_calculator.calculate_period_tax(
            shift_gross + taxable_extras,
            profile,
            period.pay_frequency,
            snapshot,
            year_to_date,
        )

        gross_pay = shift_gross + extras_total
        totals = PeriodTotals(
            total_hours=SegmentBuilder.minutes_to_hours(working_minutes),
            base_pay=base_pay,
            overtime_pay=overtime_pay,
            penalty_pay=penalty_pay,
            extras_total=extras_total,
            gross_pay=gross_pay,
            taxable_gross=shift_gross + taxable_extras,
            payg_withholding=tax.payg_withholding,
            medicare_levy=tax.medicare_levy,
            study_loan_repayment=tax.study_loan_repayment,
            extra_withholding=tax.extra_withholding,
            total_withholdings=tax.total_withholdings,
            net_pay=gross_pay - tax.total_withholdings,
        )

        return PayPeriodResult(
            period_id=period.id,
            owner_id=period.owner_id,
            tax_year=snapshot.tax_year,
            totals=totals,
            shift_breakdowns=breakdowns,
            tax=tax,
            engine_version=self.engine_version,
            rate_table_generation=snapshot.generation,
            inputs_fingerprint=self._compute_inputs_fingerprint(shifts, extras, profile, snapshot),
        )

    def _compute_inputs_fingerprint(
        self,
        shifts: Sequence[Shift],
        extras: Sequence[PayPeriodExtra],
        profile: TaxWithholdingProfile,
        snapshot: RateTableSnapshot,
    ) -> str:
        """Compute fingerprint of all inputs used in a period calculation."""
        data: dict[str, Any] = {
            "engine_version": self.engine_version,
            "tax_year": snapshot.tax_year,
            "rate_table_generation": snapshot.generation,
            "rate_table_default": snapshot.is_default,
            "shifts": sorted(
                (
                    {
                        "id": str(s.id),
                        "award_id": str(s.award_id),
                        "start": s.start.isoformat(),
                        "end": s.end.isoformat() if s.end else None,
                        "break_minutes": s.break_minutes,
                        "break_periods": [
                            [bp.start.isoformat(), bp.end.isoformat()] for bp in s.break_periods
                        ],
                    }
                    for s in shifts
                ),
                key=lambda d: (d["start"], d["id"]),
            ),
            "extras": sorted(
                [str(e.amount), e.taxable, e.description] for e in extras
            ),
            "profile": {
                "claimed_tax_free_threshold": profile.claimed_tax_free_threshold,
                "is_foreign_resident": profile.is_foreign_resident,
                "has_tax_identifier": profile.has_tax_identifier,
                "medicare_exemption": profile.medicare_exemption.value,
                "has_study_loan": profile.has_study_loan,
                "extra_withholding": str(profile.extra_withholding),
            },
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
