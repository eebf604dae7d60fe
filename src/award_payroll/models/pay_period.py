"""Pay period and pay period extra models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from award_payroll.models.base import Base, TimestampMixin, uuid_pk

if TYPE_CHECKING:
    from award_payroll.models.shift import ShiftModel

ZERO = Decimal("0")


def _money() -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 2), nullable=False, default=ZERO)


class PayPeriodModel(Base, TimestampMixin):
    """Pay period with derived aggregates.

    Every money column except ``actual_pay`` is written only by the
    synchronizer.
    """

    __tablename__ = "pay_period"

    pay_period_id: Mapped[UUID] = uuid_pk()
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_frequency: Mapped[str] = mapped_column(String, nullable=False, default="WEEKLY")
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")

    total_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=ZERO)
    base_pay: Mapped[Decimal] = _money()
    overtime_pay: Mapped[Decimal] = _money()
    penalty_pay: Mapped[Decimal] = _money()
    extras_total: Mapped[Decimal] = _money()
    gross_pay: Mapped[Decimal] = _money()
    taxable_gross: Mapped[Decimal] = _money()
    payg_withholding: Mapped[Decimal] = _money()
    medicare_levy: Mapped[Decimal] = _money()
    study_loan_repayment: Mapped[Decimal] = _money()
    extra_withholding: Mapped[Decimal] = _money()
    total_withholdings: Mapped[Decimal] = _money()
    net_pay: Mapped[Decimal] = _money()
    actual_pay: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    tax_year: Mapped[str | None] = mapped_column(String(7), nullable=True)
    engine_version: Mapped[str | None] = mapped_column(String, nullable=True)
    rate_table_generation: Mapped[int | None] = mapped_column(Integer, nullable=True)
    inputs_fingerprint: Mapped[str | None] = mapped_column(String(32), nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "start_date", name="pay_period_owner_start_unique"),
        CheckConstraint(
            "status IN ('open', 'processing', 'paid', 'verified')",
            name="pay_period_status_check",
        ),
        CheckConstraint(
            "pay_frequency IN ('WEEKLY', 'FORTNIGHTLY', 'MONTHLY')",
            name="pay_period_frequency_check",
        ),
        CheckConstraint("end_date >= start_date", name="pay_period_dates_check"),
    )

    # Relationships
    shifts: Mapped[list[ShiftModel]] = relationship(back_populates="pay_period")
    extras: Mapped[list[PayPeriodExtraModel]] = relationship(
        back_populates="pay_period",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class PayPeriodExtraModel(Base, TimestampMixin):
    """Manual allowance or deduction on a pay period."""

    __tablename__ = "pay_period_extra"

    pay_period_extra_id: Mapped[UUID] = uuid_pk()
    pay_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_period.pay_period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    pay_period: Mapped[PayPeriodModel] = relationship(back_populates="extras")
