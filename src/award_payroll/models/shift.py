"""Shift, break period and persisted segment models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from award_payroll.models.base import Base, TimestampMixin, uuid_pk

if TYPE_CHECKING:
    from award_payroll.models.award import AwardModel
    from award_payroll.models.pay_period import PayPeriodModel


class ShiftModel(Base, TimestampMixin):
    """Worked shift; open while end_time is null."""

    __tablename__ = "shift"

    shift_id: Mapped[UUID] = uuid_pk()
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    award_id: Mapped[UUID] = mapped_column(
        ForeignKey("award.award_id", ondelete="RESTRICT"),
        nullable=False,
    )
    pay_period_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_period.pay_period_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("break_minutes >= 0", name="shift_break_minutes_check"),
        CheckConstraint("end_time IS NULL OR end_time > start_time", name="shift_times_check"),
    )

    # Relationships
    award: Mapped[AwardModel] = relationship()
    pay_period: Mapped[PayPeriodModel | None] = relationship(back_populates="shifts")
    break_periods: Mapped[list[BreakPeriodModel]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BreakPeriodModel.start_time",
    )
    segments: Mapped[list[ShiftSegmentModel]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        order_by="ShiftSegmentModel.position",
    )


class BreakPeriodModel(Base):
    """Unpaid break inside a shift."""

    __tablename__ = "break_period"

    break_period_id: Mapped[UUID] = uuid_pk()
    shift_id: Mapped[UUID] = mapped_column(
        ForeignKey("shift.shift_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="break_period_times_check"),
    )

    shift: Mapped[ShiftModel] = relationship(back_populates="break_periods")


class ShiftSegmentModel(Base):
    """Persisted line of a shift's itemized pay, written by each sync."""

    __tablename__ = "shift_segment"

    shift_segment_id: Mapped[UUID] = uuid_pk()
    shift_id: Mapped[UUID] = mapped_column(
        ForeignKey("shift.shift_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('REGULAR', 'OVERTIME', 'PENALTY', 'HOLIDAY')",
            name="shift_segment_kind_check",
        ),
        CheckConstraint("minutes > 0", name="shift_segment_minutes_check"),
    )

    shift: Mapped[ShiftModel] = relationship(back_populates="segments")
