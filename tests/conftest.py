"""Pytest fixtures for award payroll tests."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

import pytest

from award_payroll.calculators.errors import RateTableUnavailableError
from award_payroll.calculators.tax_tables import default_coefficients, default_study_loan_thresholds
from award_payroll.calculators.types import (
    Award,
    MedicareConfig,
    PayFrequency,
    PayPeriod,
    PayPeriodExtra,
    PayPeriodResult,
    PayPeriodStatus,
    Shift,
    StudyLoanThresholdRow,
    TaxCoefficientRow,
    TaxScale,
    TaxWithholdingProfile,
    YearToDateTax,
)
from award_payroll.config import Settings

UTC = timezone.utc


def at(day: date, hhmm: str) -> datetime:
    """Aware UTC datetime for a wall-clock time on ``day``."""
    hours, minutes = (int(part) for part in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hours, minutes, tzinfo=UTC)


def make_shift(
    day: date,
    start: str,
    end: str,
    award_id: UUID | None = None,
    owner_id: UUID | None = None,
    break_minutes: int = 0,
    pay_period_id: UUID | None = None,
    **kwargs,
) -> Shift:
    start_dt = at(day, start)
    end_dt = at(day, end)
    if end_dt <= start_dt:
        end_dt += timedelta(days=1)
    return Shift(
        id=kwargs.pop("id", uuid4()),
        owner_id=owner_id or uuid4(),
        start=start_dt,
        end=end_dt,
        award_id=award_id,
        break_minutes=break_minutes,
        pay_period_id=pay_period_id,
        **kwargs,
    )


class InMemoryPayrollStore:
    """PayrollStore keeping everything in dictionaries."""

    def __init__(self) -> None:
        self.periods: dict[UUID, PayPeriod] = {}
        self.shifts: dict[UUID, Shift] = {}
        self.awards: dict[UUID, Award] = {}
        self.profiles: dict[UUID, TaxWithholdingProfile] = {}
        self.extras: dict[UUID, list[PayPeriodExtra]] = {}
        self.year_to_date: dict[tuple[UUID, str], YearToDateTax] = {}
        self.results: dict[UUID, PayPeriodResult] = {}
        self.save_count = 0
        self.deleted: list[UUID] = []

    # === Setup helpers ===

    def add_award(self, award: Award) -> Award:
        if award.id is None:
            award = replace(award, id=uuid4())
        self.awards[award.id] = award
        return award

    def add_period(self, period: PayPeriod) -> PayPeriod:
        self.periods[period.id] = period
        return period

    def add_shift(self, shift: Shift) -> Shift:
        self.shifts[shift.id] = shift
        return shift

    def add_extra(self, extra: PayPeriodExtra) -> PayPeriodExtra:
        self.extras.setdefault(extra.pay_period_id, []).append(extra)
        return extra

    # === PayrollStore ===

    async def get_pay_period(self, period_id: UUID) -> PayPeriod | None:
        return self.periods.get(period_id)

    async def list_shifts_for_period(self, period_id: UUID) -> Sequence[Shift]:
        return sorted(
            (s for s in self.shifts.values() if s.pay_period_id == period_id),
            key=lambda s: s.start,
        )

    async def get_shift(self, shift_id: UUID) -> Shift | None:
        return self.shifts.get(shift_id)

    async def get_award(self, award_id: UUID) -> Award | None:
        return self.awards.get(award_id)

    async def get_tax_profile(self, owner_id: UUID) -> TaxWithholdingProfile | None:
        return self.profiles.get(owner_id)

    async def list_period_extras(self, period_id: UUID) -> Sequence[PayPeriodExtra]:
        return list(self.extras.get(period_id, []))

    async def get_year_to_date(self, owner_id: UUID, tax_year: str) -> YearToDateTax | None:
        return self.year_to_date.get((owner_id, tax_year))

    async def save_period_result(self, result: PayPeriodResult, year_to_date: YearToDateTax) -> None:
        self.save_count += 1
        self.results[result.period_id] = result
        self.periods[result.period_id] = replace(self.periods[result.period_id], totals=result.totals)
        self.year_to_date[(year_to_date.owner_id, year_to_date.tax_year)] = year_to_date

    async def delete_pay_period(self, period_id: UUID, year_to_date: YearToDateTax | None = None) -> None:
        self.deleted.append(period_id)
        if year_to_date is not None:
            self.year_to_date[(year_to_date.owner_id, year_to_date.tax_year)] = year_to_date
        self.periods.pop(period_id, None)
        self.extras.pop(period_id, None)
        for shift in list(self.shifts.values()):
            if shift.pay_period_id == period_id:
                self.shifts[shift.id] = replace(shift, pay_period_id=None)

    async def update_period_status(self, period_id: UUID, status: PayPeriodStatus) -> None:
        self.periods[period_id] = replace(self.periods[period_id], status=PayPeriodStatus(status))


class InMemoryRateTableSource:
    """RateTableSource over lists of rows, with a switch to simulate an outage."""

    def __init__(
        self,
        coefficients: Sequence[TaxCoefficientRow] = (),
        study_loan_thresholds: Sequence[StudyLoanThresholdRow] = (),
        medicare: dict[str, MedicareConfig] | None = None,
    ) -> None:
        self.coefficients = list(coefficients)
        self.study_loan_thresholds = list(study_loan_thresholds)
        self.medicare = dict(medicare or {})
        self.unavailable = False
        self.calls = 0

    async def list_coefficients(
        self, tax_year: str, scale: TaxScale | None = None
    ) -> Sequence[TaxCoefficientRow]:
        self._check(tax_year)
        return [
            r for r in self.coefficients
            if r.tax_year == tax_year and (scale is None or r.scale == scale)
        ]

    async def list_study_loan_thresholds(self, tax_year: str) -> Sequence[StudyLoanThresholdRow]:
        self._check(tax_year)
        return [r for r in self.study_loan_thresholds if r.tax_year == tax_year]

    async def medicare_config(self, tax_year: str) -> MedicareConfig | None:
        self._check(tax_year)
        return self.medicare.get(tax_year)

    def _check(self, tax_year: str) -> None:
        self.calls += 1
        if self.unavailable:
            raise RateTableUnavailableError(tax_year, ConnectionError("connection refused"))


# ===== Fixtures =====


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def weekday() -> date:
    """A Wednesday."""
    return date(2024, 7, 10)


@pytest.fixture
def award() -> Award:
    """Simple award: $25/h, 8h daily threshold, 1.5x/2x overtime."""
    return Award(
        id=uuid4(),
        name="Retail award",
        base_rate=Decimal("25.00"),
        daily_overtime_threshold_hours=Decimal("8"),
        weekly_overtime_threshold_hours=Decimal("38"),
        overtime_tier1_multiplier=Decimal("1.5"),
        overtime_tier2_multiplier=Decimal("2"),
        public_holiday_multiplier=Decimal("2.5"),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        engine_version="test-1",
        default_tax_year="2024-25",
        fallback_scale=TaxScale.NO_TAX_FREE_THRESHOLD,
        log_level="DEBUG",
    )


@pytest.fixture
def seeded_rows() -> list[TaxCoefficientRow]:
    """Bundled 2024-25 coefficients as stored rows."""
    return [row for rows in default_coefficients("2024-25").values() for row in rows]


@pytest.fixture
def rate_source(seeded_rows) -> InMemoryRateTableSource:
    return InMemoryRateTableSource(
        coefficients=seeded_rows,
        study_loan_thresholds=default_study_loan_thresholds("2024-25"),
        medicare={"2024-25": MedicareConfig(tax_year="2024-25")},
    )


@pytest.fixture
def store() -> InMemoryPayrollStore:
    return InMemoryPayrollStore()


@pytest.fixture
def weekly_period(owner_id) -> PayPeriod:
    """Open weekly period, Monday 2024-07-08 to Sunday 2024-07-14."""
    return PayPeriod(
        id=uuid4(),
        owner_id=owner_id,
        start_date=date(2024, 7, 8),
        end_date=date(2024, 7, 14),
        pay_frequency=PayFrequency.WEEKLY,
    )
