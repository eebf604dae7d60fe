"""Bundled withholding tables and fiscal-year helpers.

Fiscal years run July to June and are written ``"2024-25"``. The bundled
tables are the 2024-25 resident marginal rates expressed as A/B
coefficients on annual earnings. Each scale is listed as bracket starts
and marginal rates; B is derived so that ``A * x - B`` meets the previous
bracket exactly at its lower bound, which keeps withholding continuous
and non-decreasing in earnings. Scale 1 applies the same rates from the
first dollar. The Medicare levy is calculated separately and is not
folded into these coefficients. They are only used when the configured
rate-table source cannot answer.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from award_payroll.calculators.errors import ConfigurationError, InputError
from award_payroll.calculators.types import (
    MedicareConfig,
    RateTableSnapshot,
    StudyLoanThresholdRow,
    TaxCoefficientRow,
    TaxScale,
)

DEFAULT_TAX_YEAR = "2024-25"

# (annual earnings from, marginal rate); each bracket runs to the next start
_MARGINAL_RATES: dict[TaxScale, tuple[tuple[str, str], ...]] = {
    TaxScale.TAX_FREE_THRESHOLD: (
        ("0", "0"),
        ("18200", "0.16"),
        ("45000", "0.30"),
        ("135000", "0.37"),
        ("190000", "0.45"),
    ),
    TaxScale.NO_TAX_FREE_THRESHOLD: (
        ("0", "0.16"),
        ("45000", "0.30"),
        ("135000", "0.37"),
        ("190000", "0.45"),
    ),
    TaxScale.NO_TAX_IDENTIFIER: (
        ("0", "0.47"),
    ),
}

# (annual income from, annual income to, repayment rate)
_STUDY_LOAN_THRESHOLDS: tuple[tuple[str, str | None, str], ...] = (
    ("51550", "59518", "0.01"),
    ("59518", "63090", "0.02"),
    ("63090", "66662", "0.025"),
    ("66662", "70235", "0.03"),
    ("70235", "74808", "0.035"),
    ("74808", "79381", "0.04"),
    ("79381", "84981", "0.045"),
    ("84981", "90554", "0.05"),
    ("90554", "96127", "0.055"),
    ("96127", "101700", "0.06"),
    ("101700", "109177", "0.065"),
    ("109177", "116653", "0.07"),
    ("116653", "124130", "0.075"),
    ("124130", "131607", "0.08"),
    ("131607", "139083", "0.085"),
    ("139083", "147560", "0.09"),
    ("147560", "156037", "0.095"),
    ("156037", None, "0.10"),
)


def default_coefficients(tax_year: str = DEFAULT_TAX_YEAR) -> dict[TaxScale, tuple[TaxCoefficientRow, ...]]:
    """Bundled coefficient rows on annual earnings, keyed by scale."""
    tables: dict[TaxScale, tuple[TaxCoefficientRow, ...]] = {}
    for scale, brackets in _MARGINAL_RATES.items():
        rows: list[TaxCoefficientRow] = []
        offset = Decimal("0")
        previous_rate = Decimal("0")
        for index, (lo, rate) in enumerate(brackets):
            earnings_from = Decimal(lo)
            coefficient_a = Decimal(rate)
            offset += (coefficient_a - previous_rate) * earnings_from
            upper = brackets[index + 1][0] if index + 1 < len(brackets) else None
            rows.append(
                TaxCoefficientRow(
                    tax_year=tax_year,
                    scale=scale,
                    earnings_from=earnings_from,
                    earnings_to=Decimal(upper) if upper is not None else None,
                    coefficient_a=coefficient_a,
                    coefficient_b=offset,
                )
            )
            previous_rate = coefficient_a
        tables[scale] = tuple(rows)
    return tables


def default_study_loan_thresholds(tax_year: str = DEFAULT_TAX_YEAR) -> tuple[StudyLoanThresholdRow, ...]:
    return tuple(
        StudyLoanThresholdRow(
            tax_year=tax_year,
            income_from=Decimal(lo),
            income_to=Decimal(hi) if hi is not None else None,
            rate=Decimal(rate),
        )
        for lo, hi, rate in _STUDY_LOAN_THRESHOLDS
    )


def default_snapshot(tax_year: str = DEFAULT_TAX_YEAR, generation: int = 0) -> RateTableSnapshot:
    """Snapshot built from the bundled tables, flagged ``is_default``."""
    return RateTableSnapshot(
        tax_year=tax_year,
        coefficients=default_coefficients(tax_year),
        study_loan_thresholds=default_study_loan_thresholds(tax_year),
        medicare=MedicareConfig(tax_year=tax_year),
        generation=generation,
        is_default=True,
    )


def validate_coefficient_rows(rows: Iterable[TaxCoefficientRow]) -> None:
    """Check that each (tax year, scale) tiles the earnings axis.

    Brackets must start at zero, meet end-to-start with no gaps or
    overlaps, and finish in exactly one unbounded top row.

    Raises:
        ConfigurationError: On the first table that breaks the rule
    """
    grouped: dict[tuple[str, TaxScale], list[TaxCoefficientRow]] = defaultdict(list)
    for row in rows:
        grouped[(row.tax_year, row.scale)].append(row)

    for (tax_year, scale), group in grouped.items():
        group.sort(key=lambda r: r.earnings_from)
        scale_name = scale.value

        if group[0].earnings_from != 0:
            raise ConfigurationError(
                f"{scale_name} brackets start at {group[0].earnings_from}, not 0",
                tax_year=tax_year,
                scale=scale_name,
            )

        unbounded = [r for r in group if r.earnings_to is None]
        if len(unbounded) != 1 or group[-1].earnings_to is not None:
            raise ConfigurationError(
                f"{scale_name} must end in exactly one unbounded bracket",
                tax_year=tax_year,
                scale=scale_name,
            )

        for current, following in zip(group, group[1:]):
            if current.earnings_to <= current.earnings_from:
                raise ConfigurationError(
                    f"{scale_name} bracket at {current.earnings_from} is empty or reversed",
                    tax_year=tax_year,
                    scale=scale_name,
                )
            if current.earnings_to != following.earnings_from:
                raise ConfigurationError(
                    f"{scale_name} brackets break between {current.earnings_to} "
                    f"and {following.earnings_from}",
                    tax_year=tax_year,
                    scale=scale_name,
                )


# ===== Fiscal years =====


def tax_year_for(day: date) -> str:
    """Fiscal year containing ``day``: July onwards belongs to the next year."""
    start = day.year if day.month >= 7 else day.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def tax_year_bounds(tax_year: str) -> tuple[date, date]:
    """First and last calendar day of a fiscal year string."""
    try:
        start_str, end_suffix = tax_year.split("-")
        start_year = int(start_str)
    except (AttributeError, ValueError):
        raise InputError(f"Invalid tax year {tax_year!r}, expected e.g. '2024-25'", field="tax_year")

    if len(start_str) != 4 or len(end_suffix) != 2 or not end_suffix.isdigit():
        raise InputError(f"Invalid tax year {tax_year!r}, expected e.g. '2024-25'", field="tax_year")

    end_year = start_year + 1
    if end_year % 100 != int(end_suffix):
        raise InputError(f"Tax year {tax_year!r} does not span consecutive years", field="tax_year")

    return date(start_year, 7, 1), date(end_year, 6, 30)


def normalize_tax_year(tax_year: str | None, today: date | None = None) -> str:
    """Validated fiscal year string, defaulting to the year containing ``today``."""
    if tax_year:
        tax_year_bounds(tax_year)
        return tax_year
    return tax_year_for(today or date.today())
