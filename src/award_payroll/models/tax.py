"""Tax profile, year-to-date and rate table models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from award_payroll.models.base import Base, TimestampMixin, uuid_pk

ZERO = Decimal("0")


class TaxSettingsModel(Base, TimestampMixin):
    """Employee's withholding declarations."""

    __tablename__ = "tax_settings"

    owner_id: Mapped[UUID] = mapped_column(primary_key=True)
    claimed_tax_free_threshold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_foreign_resident: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_tax_identifier: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    medicare_exemption: Mapped[str] = mapped_column(String, nullable=False, default="none")
    has_study_loan: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    extra_withholding: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=ZERO)

    __table_args__ = (
        CheckConstraint(
            "medicare_exemption IN ('none', 'half', 'full')",
            name="tax_settings_medicare_exemption_check",
        ),
    )


class YearToDateTaxModel(Base, TimestampMixin):
    """Running tax-year totals per employee."""

    __tablename__ = "year_to_date_tax"

    year_to_date_tax_id: Mapped[UUID] = uuid_pk()
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    tax_year: Mapped[str] = mapped_column(String(7), nullable=False)
    gross_income: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    payg_withholding: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    medicare_levy: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    study_loan_repayment: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    total_withholdings: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)

    __table_args__ = (
        UniqueConstraint("owner_id", "tax_year", name="year_to_date_tax_owner_year_unique"),
    )


class TaxCoefficientModel(Base, TimestampMixin):
    """One withholding bracket on annual earnings: tax = earnings * A - B."""

    __tablename__ = "tax_coefficient"

    tax_coefficient_id: Mapped[UUID] = uuid_pk()
    tax_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    scale: Mapped[str] = mapped_column(String, nullable=False)
    earnings_from: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    earnings_to: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    coefficient_a: Mapped[Decimal] = mapped_column(Numeric(10, 6), nullable=False)
    coefficient_b: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tax_year", "scale", "earnings_from", name="tax_coefficient_bracket_unique"),
        CheckConstraint(
            "earnings_to IS NULL OR earnings_to > earnings_from",
            name="tax_coefficient_range_check",
        ),
    )


class StudyLoanThresholdModel(Base, TimestampMixin):
    """Study-loan repayment rate for an annual income band."""

    __tablename__ = "study_loan_threshold"

    study_loan_threshold_id: Mapped[UUID] = uuid_pk()
    tax_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    income_from: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    income_to: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tax_year", "income_from", name="study_loan_threshold_band_unique"),
    )


class MedicareConfigModel(Base, TimestampMixin):
    """Medicare levy rate and low-income thresholds for a tax year."""

    __tablename__ = "medicare_config"

    tax_year: Mapped[str] = mapped_column(String(7), primary_key=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    low_threshold: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    high_threshold: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
