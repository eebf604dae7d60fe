"""Exceptions raised by the payroll calculators and services."""

from __future__ import annotations

from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base class for award payroll errors."""


class InputError(PayrollError):
    """Raised when a time record or award value is malformed.

    Inputs are rejected whole before any decomposition runs.
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ConfigurationError(PayrollError):
    """Raised when rate tables cannot answer a question they should cover."""

    def __init__(self, message: str, tax_year: str | None = None, scale: str | None = None):
        self.tax_year = tax_year
        self.scale = scale
        super().__init__(message)


class RateTableUnavailableError(PayrollError):
    """Raised by a rate-table source that cannot be reached."""

    def __init__(self, tax_year: str, cause: Exception | None = None):
        self.tax_year = tax_year
        self.cause = cause
        msg = f"Rate tables for tax year {tax_year} are unavailable"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class DriftDetectedError(PayrollError):
    """Raised when stored pay period aggregates differ from a recomputation."""

    def __init__(self, period_id: UUID, differences: dict[str, Any]):
        self.period_id = period_id
        self.differences = differences
        fields = ", ".join(sorted(differences))
        super().__init__(f"Pay period {period_id} has drifted on: {fields}")


class PeriodNotFoundError(PayrollError):
    def __init__(self, period_id: UUID):
        self.period_id = period_id
        super().__init__(f"Pay period {period_id} not found")


class ShiftNotFoundError(PayrollError):
    def __init__(self, shift_id: UUID):
        self.shift_id = shift_id
        super().__init__(f"Shift {shift_id} not found")


class AwardNotFoundError(PayrollError):
    def __init__(self, award_id: UUID | None, shift_id: UUID | None = None):
        self.award_id = award_id
        self.shift_id = shift_id
        super().__init__(f"Award {award_id} not found for shift {shift_id}")


class PeriodLockedError(PayrollError):
    """Raised when recalculating a pay period whose results are immutable."""

    def __init__(self, period_id: UUID, status: str):
        self.period_id = period_id
        self.status = status
        super().__init__(f"Pay period {period_id} is '{status}' and cannot be recalculated")


class InvalidTransitionError(PayrollError):
    """Raised when an invalid pay period status transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
