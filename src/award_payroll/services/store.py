"""Storage protocols consumed by the services.

The services never talk to a database directly. Anything implementing these
protocols can back them; :mod:`award_payroll.repositories` provides the
SQLAlchemy implementation.
"""

from __future__ import annotations

from typing import Protocol, Sequence
from uuid import UUID

from award_payroll.calculators.types import (
    Award,
    MedicareConfig,
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


class RateTableSource(Protocol):
    """Read access to persisted withholding tables.

    Implementations raise ``RateTableUnavailableError`` when the backing
    store cannot be reached.
    """

    async def list_coefficients(
        self, tax_year: str, scale: TaxScale | None = None
    ) -> Sequence[TaxCoefficientRow]:
        """Active coefficient rows for a year, optionally one scale only."""
        ...

    async def list_study_loan_thresholds(self, tax_year: str) -> Sequence[StudyLoanThresholdRow]:
        ...

    async def medicare_config(self, tax_year: str) -> MedicareConfig | None:
        ...


class PayrollStore(Protocol):
    """Reads and writes the records a pay period sync touches."""

    async def get_pay_period(self, period_id: UUID) -> PayPeriod | None:
        ...

    async def list_shifts_for_period(self, period_id: UUID) -> Sequence[Shift]:
        """Every shift assigned to the period, open ones included."""
        ...

    async def get_shift(self, shift_id: UUID) -> Shift | None:
        ...

    async def get_award(self, award_id: UUID) -> Award | None:
        """Award with its penalty rules, overtime rules and holidays."""
        ...

    async def get_tax_profile(self, owner_id: UUID) -> TaxWithholdingProfile | None:
        ...

    async def list_period_extras(self, period_id: UUID) -> Sequence[PayPeriodExtra]:
        ...

    async def get_year_to_date(self, owner_id: UUID, tax_year: str) -> YearToDateTax | None:
        ...

    async def save_period_result(self, result: PayPeriodResult, year_to_date: YearToDateTax) -> None:
        """Persist period aggregates, shift segments and year-to-date together.

        Implementations must write everything in one unit of work.
        """
        ...

    async def delete_pay_period(self, period_id: UUID, year_to_date: YearToDateTax | None = None) -> None:
        """Delete a period and detach its shifts.

        When ``year_to_date`` is given it replaces the stored figures in the
        same unit of work.
        """
        ...

    async def update_period_status(self, period_id: UUID, status: PayPeriodStatus) -> None:
        ...
