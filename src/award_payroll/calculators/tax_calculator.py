"""Period tax withholding from bracketed coefficient tables."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Sequence

from award_payroll.calculators.errors import ConfigurationError
from award_payroll.calculators.line_builder import SegmentBuilder
from award_payroll.calculators.tax_tables import default_coefficients
from award_payroll.calculators.types import (
    ZERO,
    MedicareConfig,
    MedicareExemption,
    PayFrequency,
    RateTableSnapshot,
    StudyLoanThresholdRow,
    TaxCoefficientRow,
    TaxResult,
    TaxScale,
    TaxWithholdingProfile,
    YearToDateTax,
)
from award_payroll.calculators.validation import require_decimal, require_non_negative

HALF = Decimal("0.5")


def select_scale(profile: TaxWithholdingProfile) -> TaxScale:
    """Pick the withholding scale; earlier checks win."""
    if not profile.has_tax_identifier:
        return TaxScale.NO_TAX_IDENTIFIER
    if profile.is_foreign_resident:
        return TaxScale.FOREIGN_RESIDENT
    if profile.medicare_exemption == MedicareExemption.FULL:
        return TaxScale.FULL_MEDICARE_EXEMPTION
    if profile.medicare_exemption == MedicareExemption.HALF:
        return TaxScale.HALF_MEDICARE_EXEMPTION
    if profile.claimed_tax_free_threshold:
        return TaxScale.TAX_FREE_THRESHOLD
    return TaxScale.NO_TAX_FREE_THRESHOLD


def find_bracket(rows: Sequence[TaxCoefficientRow], annual: Decimal) -> TaxCoefficientRow:
    """Row with ``earnings_from <= annual < earnings_to`` (or unbounded)."""
    for row in rows:
        if row.covers(annual):
            return row
    scale = rows[0].scale.value if rows else None
    raise ConfigurationError(f"No bracket covers annual earnings {annual}", scale=scale)


def nearest_bracket(rows: Sequence[TaxCoefficientRow], annual: Decimal) -> TaxCoefficientRow:
    """Closest row below ``annual``, or the lowest row if none starts below it."""
    below = [r for r in rows if r.earnings_from <= annual]
    if below:
        return max(below, key=lambda r: r.earnings_from)
    return min(rows, key=lambda r: r.earnings_from)


def annual_medicare_levy(annual: Decimal, config: MedicareConfig) -> Decimal:
    """Annual levy with the low-income shade-in between the two thresholds."""
    if annual < config.low_threshold:
        return ZERO
    if annual <= config.high_threshold:
        span = config.high_threshold - config.low_threshold
        if span <= 0:
            return config.rate * annual
        return config.rate * config.high_threshold * (annual - config.low_threshold) / span
    return config.rate * annual


def study_loan_rate(rows: Sequence[StudyLoanThresholdRow], annual: Decimal) -> Decimal:
    for row in rows:
        if row.covers(annual):
            return row.rate
    return ZERO


class TaxCalculator:
    """Computes one pay period's withholdings.

    Pipeline:
    1) Select the scale from the withholding profile
    2) Annualize gross by the pay frequency
    3) Look up the bracket and apply ``annual * A - B``
    4) De-annualize and round to the cent
    5) Medicare levy, study-loan repayment and extra withholding
    6) Net = gross - total withholdings

    Rate tables arrive as a snapshot on every call; the calculator holds no
    table state. Table problems never raise out of
    :meth:`calculate_period_tax`: the result is flagged ``degraded`` and
    carries a warning instead.
    """

    def __init__(self, fallback_scale: TaxScale = TaxScale.NO_TAX_FREE_THRESHOLD):
        self.fallback_scale = fallback_scale

    def calculate_period_tax(
        self,
        gross: Decimal,
        profile: TaxWithholdingProfile,
        pay_frequency: PayFrequency,
        snapshot: RateTableSnapshot,
        year_to_date: YearToDateTax | None = None,
    ) -> TaxResult:
        """Calculate withholdings for one period's taxable gross.

        Args:
            gross: Taxable gross pay for the period
            profile: Employee's withholding declarations
            pay_frequency: Period length, used to annualize
            snapshot: Rate tables for the fiscal year
            year_to_date: Prior year-to-date figures, reported back updated

        Returns:
            TaxResult with every component rounded to the cent
        """
        require_decimal(gross, "gross")
        require_non_negative(profile.extra_withholding, "extra_withholding")

        scale = select_scale(profile)
        periods = Decimal(pay_frequency.periods_per_year)

        if gross <= 0:
            return TaxResult(
                scale=scale,
                gross=gross,
                annual_earnings=ZERO,
                payg_withholding=ZERO,
                medicare_levy=ZERO,
                study_loan_repayment=ZERO,
                extra_withholding=ZERO,
                total_withholdings=ZERO,
                net_pay=gross,
                uses_default_tables=snapshot.is_default,
                year_to_date=self._updated_ytd(year_to_date, profile, snapshot, gross, ZERO, ZERO, ZERO, ZERO),
            )

        annual = gross * periods
        warnings: list[str] = []
        rows, from_bundle = self._rows_for(snapshot, scale, warnings)

        try:
            bracket = find_bracket(rows, annual)
        except ConfigurationError as exc:
            bracket = nearest_bracket(rows, annual)
            warnings.append(f"{exc}; using bracket from {bracket.earnings_from}")

        annual_tax = max(ZERO, annual * bracket.coefficient_a - bracket.coefficient_b)
        payg = SegmentBuilder.round_to_cents(annual_tax / periods)

        levy = self._period_levy(annual, periods, profile, snapshot.medicare)

        loan = ZERO
        if profile.has_study_loan:
            rate = study_loan_rate(snapshot.study_loan_thresholds, annual)
            loan = SegmentBuilder.round_to_cents(rate * gross)

        extra = SegmentBuilder.round_to_cents(profile.extra_withholding)
        total = payg + levy + loan + extra

        return TaxResult(
            scale=scale,
            gross=gross,
            annual_earnings=annual,
            payg_withholding=payg,
            medicare_levy=levy,
            study_loan_repayment=loan,
            extra_withholding=extra,
            total_withholdings=total,
            net_pay=gross - total,
            degraded=bool(warnings),
            uses_default_tables=snapshot.is_default or from_bundle,
            warnings=tuple(warnings),
            year_to_date=self._updated_ytd(year_to_date, profile, snapshot, gross, payg, levy, loan, total),
        )

    def _rows_for(
        self,
        snapshot: RateTableSnapshot,
        scale: TaxScale,
        warnings: list[str],
    ) -> tuple[tuple[TaxCoefficientRow, ...], bool]:
        """Rows for ``scale``, degrading to the fallback scale then the bundle.

        Returns the rows and whether they came from the bundled tables.
        """
        rows = snapshot.rows_for(scale)
        if rows:
            return rows, False

        if self.fallback_scale != scale:
            rows = snapshot.rows_for(self.fallback_scale)
            if rows:
                warnings.append(
                    f"No {scale.value} coefficients for {snapshot.tax_year}; "
                    f"using {self.fallback_scale.value}"
                )
                return rows, False

        bundled = default_coefficients(snapshot.tax_year)
        for candidate in (scale, self.fallback_scale, TaxScale.NO_TAX_FREE_THRESHOLD):
            rows = bundled.get(candidate, ())
            if rows:
                warnings.append(
                    f"No {scale.value} coefficients for {snapshot.tax_year}; "
                    f"using bundled {candidate.value} table"
                )
                return rows, True

        raise ConfigurationError(
            f"No coefficients available for {scale.value}",
            tax_year=snapshot.tax_year,
            scale=scale.value,
        )

    @staticmethod
    def _period_levy(
        annual: Decimal,
        periods: Decimal,
        profile: TaxWithholdingProfile,
        config: MedicareConfig,
    ) -> Decimal:
        if profile.is_foreign_resident or profile.medicare_exemption == MedicareExemption.FULL:
            return ZERO
        levy = annual_medicare_levy(annual, config)
        if profile.medicare_exemption == MedicareExemption.HALF:
            levy = levy * HALF
        return SegmentBuilder.round_to_cents(levy / periods)

    @staticmethod
    def _updated_ytd(
        year_to_date: YearToDateTax | None,
        profile: TaxWithholdingProfile,
        snapshot: RateTableSnapshot,
        gross: Decimal,
        payg: Decimal,
        levy: Decimal,
        loan: Decimal,
        total: Decimal,
    ) -> YearToDateTax:
        if year_to_date is None:
            year_to_date = YearToDateTax(owner_id=profile.owner_id, tax_year=snapshot.tax_year)
        return replace(
            year_to_date,
            gross_income=year_to_date.gross_income + gross,
            payg_withholding=year_to_date.payg_withholding + payg,
            medicare_levy=year_to_date.medicare_levy + levy,
            study_loan_repayment=year_to_date.study_loan_repayment + loan,
            total_withholdings=year_to_date.total_withholdings + total,
        )


def calculate_period_tax(
    gross: Decimal,
    profile: TaxWithholdingProfile,
    pay_frequency: PayFrequency,
    snapshot: RateTableSnapshot,
    year_to_date: YearToDateTax | None = None,
) -> TaxResult:
    """Module-level shortcut using the default fallback scale."""
    return TaxCalculator().calculate_period_tax(gross, profile, pay_frequency, snapshot, year_to_date)
