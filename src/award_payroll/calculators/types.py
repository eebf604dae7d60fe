"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from award_payroll.calculators.errors import DriftDetectedError

ZERO = Decimal("0")


class SegmentKind(str, Enum):
    """Classification of a slice of worked time."""

    REGULAR = "REGULAR"
    OVERTIME = "OVERTIME"
    PENALTY = "PENALTY"
    HOLIDAY = "HOLIDAY"


class PayFrequency(str, Enum):
    """How often an employee is paid."""

    WEEKLY = "WEEKLY"
    FORTNIGHTLY = "FORTNIGHTLY"
    MONTHLY = "MONTHLY"

    @property
    def periods_per_year(self) -> int:
        return {
            PayFrequency.WEEKLY: 52,
            PayFrequency.FORTNIGHTLY: 26,
            PayFrequency.MONTHLY: 12,
        }[self]


class TaxScale(str, Enum):
    """Withholding scales, selected from the employee's tax profile."""

    NO_TAX_FREE_THRESHOLD = "scale1"
    TAX_FREE_THRESHOLD = "scale2"
    FOREIGN_RESIDENT = "scale3"
    NO_TAX_IDENTIFIER = "scale4"
    FULL_MEDICARE_EXEMPTION = "scale5"
    HALF_MEDICARE_EXEMPTION = "scale6"


class MedicareExemption(str, Enum):
    NONE = "none"
    HALF = "half"
    FULL = "full"


class PayPeriodStatus(str, Enum):
    """Pay period status values."""

    OPEN = "open"
    PROCESSING = "processing"
    PAID = "paid"
    VERIFIED = "verified"


# ===== Award configuration =====


@dataclass(frozen=True)
class PenaltyRule:
    """Pay multiplier for work at particular times, days or holidays.

    Every populated predicate must hold for the rule to match. A window whose
    end is at or before its start runs overnight.
    """

    multiplier: Decimal
    name: str = "Penalty"
    day_of_week: int | None = None  # 0 = Sunday ... 6 = Saturday
    window_start: str | None = None  # "HH:MM"
    window_end: str | None = None
    is_public_holiday: bool = False
    is_active: bool = True
    id: UUID | None = None

    @property
    def has_window(self) -> bool:
        return self.window_start is not None and self.window_end is not None

    @property
    def is_day_only(self) -> bool:
        return self.day_of_week is not None and not self.has_window and not self.is_public_holiday


@dataclass(frozen=True)
class OvertimeRule:
    """Overtime multiplier override, matched with the same predicates as penalties."""

    multiplier: Decimal
    name: str = "Overtime"
    day_of_week: int | None = None
    window_start: str | None = None
    window_end: str | None = None
    is_public_holiday: bool = False
    is_active: bool = True
    id: UUID | None = None

    @property
    def has_window(self) -> bool:
        return self.window_start is not None and self.window_end is not None


@dataclass(frozen=True)
class PublicHoliday:
    date: date
    name: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class Award:
    """Pay guide: base rate, overtime thresholds and the rules attached to it."""

    base_rate: Decimal
    id: UUID | None = None
    name: str = ""
    casual_loading_rate: Decimal = ZERO
    daily_overtime_threshold_hours: Decimal = Decimal("8")
    weekly_overtime_threshold_hours: Decimal | None = Decimal("38")
    overtime_tier1_multiplier: Decimal = Decimal("1.5")
    overtime_tier2_multiplier: Decimal = Decimal("2")
    minimum_shift_hours: Decimal | None = None
    maximum_shift_hours: Decimal | None = None
    public_holiday_multiplier: Decimal = Decimal("2.5")
    timezone: str | None = None
    effective_from: date | None = None
    effective_to: date | None = None
    is_active: bool = True
    penalty_rules: tuple[PenaltyRule, ...] = ()
    overtime_rules: tuple[OvertimeRule, ...] = ()
    public_holidays: tuple[PublicHoliday, ...] = ()

    def is_effective_on(self, day: date) -> bool:
        if self.effective_from is not None and day < self.effective_from:
            return False
        if self.effective_to is not None and day > self.effective_to:
            return False
        return True


# ===== Time records =====


@dataclass(frozen=True)
class BreakPeriod:
    start: datetime
    end: datetime
    shift_id: UUID | None = None


@dataclass(frozen=True)
class Shift:
    """A worked shift. Open while ``end`` is unset."""

    id: UUID
    owner_id: UUID
    start: datetime
    end: datetime | None
    award_id: UUID | None = None
    break_minutes: int = 0
    pay_period_id: UUID | None = None
    break_periods: tuple[BreakPeriod, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.end is None


# ===== Shift results =====


@dataclass(frozen=True)
class Segment:
    """One line of a shift's itemized pay."""

    kind: SegmentKind
    label: str
    multiplier: Decimal
    minutes: int
    hours: Decimal
    rate: Decimal  # Hourly rate after multiplier and casual loading
    amount: Decimal  # Rounded to the cent

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "multiplier": str(self.multiplier),
            "minutes": self.minutes,
            "hours": str(self.hours),
            "rate": str(self.rate),
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class PayTotals:
    base_pay: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    penalty_pay: Decimal = ZERO
    total_gross_pay: Decimal = ZERO


@dataclass(frozen=True)
class ShiftBreakdown:
    """Itemized pay for a single shift."""

    shift_id: UUID | None
    total_minutes: int
    break_minutes: int
    working_minutes: int
    total_hours: Decimal
    segments: tuple[Segment, ...]
    totals: PayTotals
    effective_end: datetime | None = None
    warnings: tuple[str, ...] = ()

    @property
    def gross_pay(self) -> Decimal:
        return self.totals.total_gross_pay

    @property
    def ordinary_minutes(self) -> int:
        """Worked minutes not reclassified as overtime."""
        return sum(s.minutes for s in self.segments if s.kind != SegmentKind.OVERTIME)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shift_id": str(self.shift_id) if self.shift_id else None,
            "total_minutes": self.total_minutes,
            "break_minutes": self.break_minutes,
            "working_minutes": self.working_minutes,
            "total_hours": str(self.total_hours),
            "effective_end": self.effective_end.isoformat() if self.effective_end else None,
            "segments": [s.to_dict() for s in self.segments],
            "base_pay": str(self.totals.base_pay),
            "overtime_pay": str(self.totals.overtime_pay),
            "penalty_pay": str(self.totals.penalty_pay),
            "total_gross_pay": str(self.totals.total_gross_pay),
            "warnings": list(self.warnings),
        }


# ===== Tax inputs =====


@dataclass(frozen=True)
class TaxWithholdingProfile:
    """Employee's declared withholding profile."""

    owner_id: UUID | None = None
    claimed_tax_free_threshold: bool = True
    is_foreign_resident: bool = False
    has_tax_identifier: bool = True
    medicare_exemption: MedicareExemption = MedicareExemption.NONE
    has_study_loan: bool = False
    extra_withholding: Decimal = ZERO


@dataclass(frozen=True)
class YearToDateTax:
    owner_id: UUID | None
    tax_year: str
    gross_income: Decimal = ZERO
    payg_withholding: Decimal = ZERO
    medicare_levy: Decimal = ZERO
    study_loan_repayment: Decimal = ZERO
    total_withholdings: Decimal = ZERO


@dataclass(frozen=True)
class TaxCoefficientRow:
    """One bracket of a withholding scale: tax = earnings * A - B."""

    tax_year: str
    scale: TaxScale
    earnings_from: Decimal
    earnings_to: Decimal | None  # None = top bracket
    coefficient_a: Decimal
    coefficient_b: Decimal

    def covers(self, earnings: Decimal) -> bool:
        if earnings < self.earnings_from:
            return False
        return self.earnings_to is None or earnings < self.earnings_to


@dataclass(frozen=True)
class StudyLoanThresholdRow:
    tax_year: str
    income_from: Decimal
    income_to: Decimal | None
    rate: Decimal

    def covers(self, income: Decimal) -> bool:
        if income < self.income_from:
            return False
        return self.income_to is None or income < self.income_to


@dataclass(frozen=True)
class MedicareConfig:
    tax_year: str
    rate: Decimal = Decimal("0.02")
    low_threshold: Decimal = Decimal("26000")
    high_threshold: Decimal = Decimal("32500")


@dataclass(frozen=True)
class RateTableSnapshot:
    """Immutable view of one tax year's rate tables.

    ``generation`` is the coefficient store's generation when the snapshot
    was built; ``is_default`` marks bundled fallback data.
    """

    tax_year: str
    coefficients: dict[TaxScale, tuple[TaxCoefficientRow, ...]]
    study_loan_thresholds: tuple[StudyLoanThresholdRow, ...]
    medicare: MedicareConfig
    generation: int = 0
    is_default: bool = False

    def rows_for(self, scale: TaxScale) -> tuple[TaxCoefficientRow, ...]:
        return self.coefficients.get(scale, ())


# ===== Tax results =====


@dataclass(frozen=True)
class TaxResult:
    scale: TaxScale
    gross: Decimal
    annual_earnings: Decimal
    payg_withholding: Decimal
    medicare_levy: Decimal
    study_loan_repayment: Decimal
    extra_withholding: Decimal
    total_withholdings: Decimal
    net_pay: Decimal
    degraded: bool = False
    uses_default_tables: bool = False
    warnings: tuple[str, ...] = ()
    year_to_date: YearToDateTax | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scale": self.scale.value,
            "gross": str(self.gross),
            "annual_earnings": str(self.annual_earnings),
            "payg_withholding": str(self.payg_withholding),
            "medicare_levy": str(self.medicare_levy),
            "study_loan_repayment": str(self.study_loan_repayment),
            "extra_withholding": str(self.extra_withholding),
            "total_withholdings": str(self.total_withholdings),
            "net_pay": str(self.net_pay),
            "degraded": self.degraded,
            "uses_default_tables": self.uses_default_tables,
            "warnings": list(self.warnings),
        }


# ===== Pay periods =====


@dataclass(frozen=True)
class PayPeriodExtra:
    """Manual allowance (positive) or deduction (negative) on a pay period."""

    amount: Decimal
    description: str = ""
    taxable: bool = True
    id: UUID | None = None
    pay_period_id: UUID | None = None


@dataclass(frozen=True)
class PeriodTotals:
    """Every derived aggregate of a pay period."""

    total_hours: Decimal = ZERO
    base_pay: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    penalty_pay: Decimal = ZERO
    extras_total: Decimal = ZERO
    gross_pay: Decimal = ZERO
    taxable_gross: Decimal = ZERO
    payg_withholding: Decimal = ZERO
    medicare_levy: Decimal = ZERO
    study_loan_repayment: Decimal = ZERO
    extra_withholding: Decimal = ZERO
    total_withholdings: Decimal = ZERO
    net_pay: Decimal = ZERO

    FIELDS = (
        "total_hours",
        "base_pay",
        "overtime_pay",
        "penalty_pay",
        "extras_total",
        "gross_pay",
        "taxable_gross",
        "payg_withholding",
        "medicare_levy",
        "study_loan_repayment",
        "extra_withholding",
        "total_withholdings",
        "net_pay",
    )

    def to_dict(self) -> dict[str, str]:
        return {name: str(getattr(self, name)) for name in self.FIELDS}


@dataclass(frozen=True)
class PayPeriod:
    """Stored pay period record. Aggregates are derived by the synchronizer."""

    id: UUID
    owner_id: UUID
    start_date: date
    end_date: date
    pay_frequency: PayFrequency = PayFrequency.WEEKLY
    status: PayPeriodStatus = PayPeriodStatus.OPEN
    totals: PeriodTotals = field(default_factory=PeriodTotals)
    actual_pay: Decimal | None = None

    @property
    def pay_variance(self) -> Decimal | None:
        """Observed pay minus computed net, when the actual figure is known."""
        if self.actual_pay is None:
            return None
        return self.actual_pay - self.totals.net_pay


@dataclass(frozen=True)
class PayPeriodResult:
    """Recomputed pay period, ready to persist."""

    period_id: UUID
    owner_id: UUID
    tax_year: str
    totals: PeriodTotals
    shift_breakdowns: tuple[ShiftBreakdown, ...]
    tax: TaxResult | None
    engine_version: str = ""
    rate_table_generation: int = 0
    inputs_fingerprint: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": str(self.period_id),
            "owner_id": str(self.owner_id),
            "tax_year": self.tax_year,
            "totals": self.totals.to_dict(),
            "shifts": [b.to_dict() for b in self.shift_breakdowns],
            "tax": self.tax.to_dict() if self.tax else None,
            "engine_version": self.engine_version,
            "rate_table_generation": self.rate_table_generation,
            "inputs_fingerprint": self.inputs_fingerprint,
        }


@dataclass(frozen=True)
class ValidationReport:
    """Expected-versus-stored comparison of a pay period's aggregates."""

    period_id: UUID
    expected: PeriodTotals
    actual: PeriodTotals
    differences: dict[str, Decimal]

    @property
    def is_valid(self) -> bool:
        return not self.differences

    def raise_for_drift(self) -> None:
        """Raise DriftDetectedError if any aggregate differs."""
        if self.differences:
            raise DriftDetectedError(self.period_id, self.differences)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": str(self.period_id),
            "is_valid": self.is_valid,
            "expected": self.expected.to_dict(),
            "actual": self.actual.to_dict(),
            "differences": {k: str(v) for k, v in self.differences.items()},
        }
