"""Award (pay guide), penalty, overtime and public holiday models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
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


class AwardModel(Base, TimestampMixin):
    """Pay guide with base rate and overtime thresholds."""

    __tablename__ = "award"

    award_id: Mapped[UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String, nullable=False)
    base_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    casual_loading_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0"))
    daily_overtime_threshold_hours: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("8")
    )
    weekly_overtime_threshold_hours: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True, default=Decimal("38")
    )
    overtime_tier1_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=Decimal("1.5"))
    overtime_tier2_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=Decimal("2"))
    minimum_shift_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    maximum_shift_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    public_holiday_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=Decimal("2.5"))
    timezone: Mapped[str | None] = mapped_column(String, nullable=True)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("base_rate >= 0", name="award_base_rate_check"),
        CheckConstraint("casual_loading_rate >= 0", name="award_casual_loading_check"),
        CheckConstraint(
            "effective_to IS NULL OR effective_from IS NULL OR effective_to >= effective_from",
            name="award_effective_dates_check",
        ),
    )

    # Relationships
    penalty_rules: Mapped[list[PenaltyRuleModel]] = relationship(
        back_populates="award", cascade="all, delete-orphan", lazy="selectin"
    )
    overtime_rules: Mapped[list[OvertimeRuleModel]] = relationship(
        back_populates="award", cascade="all, delete-orphan", lazy="selectin"
    )
    public_holidays: Mapped[list[PublicHolidayModel]] = relationship(
        back_populates="award", cascade="all, delete-orphan", lazy="selectin"
    )


class PenaltyRuleModel(Base, TimestampMixin):
    """Penalty rate matched by day, time window or public holiday."""

    __tablename__ = "penalty_rule"

    penalty_rule_id: Mapped[UUID] = uuid_pk()
    award_id: Mapped[UUID] = mapped_column(
        ForeignKey("award.award_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    window_start: Mapped[str | None] = mapped_column(String(5), nullable=True)
    window_end: Mapped[str | None] = mapped_column(String(5), nullable=True)
    is_public_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "day_of_week IS NULL OR day_of_week BETWEEN 0 AND 6",
            name="penalty_rule_day_check",
        ),
        CheckConstraint("multiplier >= 0", name="penalty_rule_multiplier_check"),
    )

    award: Mapped[AwardModel] = relationship(back_populates="penalty_rules")


class OvertimeRuleModel(Base, TimestampMixin):
    """Overtime multiplier override matched like a penalty rule."""

    __tablename__ = "overtime_rule"

    overtime_rule_id: Mapped[UUID] = uuid_pk()
    award_id: Mapped[UUID] = mapped_column(
        ForeignKey("award.award_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    window_start: Mapped[str | None] = mapped_column(String(5), nullable=True)
    window_end: Mapped[str | None] = mapped_column(String(5), nullable=True)
    is_public_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "day_of_week IS NULL OR day_of_week BETWEEN 0 AND 6",
            name="overtime_rule_day_check",
        ),
    )

    award: Mapped[AwardModel] = relationship(back_populates="overtime_rules")


class PublicHolidayModel(Base):
    """Public holiday observed under an award."""

    __tablename__ = "public_holiday"

    public_holiday_id: Mapped[UUID] = uuid_pk()
    award_id: Mapped[UUID] = mapped_column(
        ForeignKey("award.award_id", ondelete="CASCADE"),
        nullable=False,
    )
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("award_id", "holiday_date", name="public_holiday_award_date_unique"),
    )

    award: Mapped[AwardModel] = relationship(back_populates="public_holidays")
