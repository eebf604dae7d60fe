"""SQLAlchemy implementations of the storage protocols."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from award_payroll.calculators.errors import RateTableUnavailableError
from award_payroll.calculators.types import (
    Award,
    BreakPeriod,
    MedicareConfig,
    MedicareExemption,
    OvertimeRule,
    PayFrequency,
    PayPeriod,
    PayPeriodExtra,
    PayPeriodResult,
    PayPeriodStatus,
    PenaltyRule,
    PeriodTotals,
    PublicHoliday,
    Shift,
    StudyLoanThresholdRow,
    TaxCoefficientRow,
    TaxScale,
    TaxWithholdingProfile,
    YearToDateTax,
)
from award_payroll.models import (
    AwardModel,
    BreakPeriodModel,
    MedicareConfigModel,
    OvertimeRuleModel,
    PayPeriodExtraModel,
    PayPeriodModel,
    PenaltyRuleModel,
    PublicHolidayModel,
    ShiftModel,
    ShiftSegmentModel,
    StudyLoanThresholdModel,
    TaxCoefficientModel,
    TaxSettingsModel,
    YearToDateTaxModel,
)


# ===== Row → record conversion =====


def to_award(row: AwardModel) -> Award:
    return Award(
        id=row.award_id,
        name=row.name,
        base_rate=row.base_rate,
        casual_loading_rate=row.casual_loading_rate,
        daily_overtime_threshold_hours=row.daily_overtime_threshold_hours,
        weekly_overtime_threshold_hours=row.weekly_overtime_threshold_hours,
        overtime_tier1_multiplier=row.overtime_tier1_multiplier,
        overtime_tier2_multiplier=row.overtime_tier2_multiplier,
        minimum_shift_hours=row.minimum_shift_hours,
        maximum_shift_hours=row.maximum_shift_hours,
        public_holiday_multiplier=row.public_holiday_multiplier,
        timezone=row.timezone,
        effective_from=row.effective_from,
        effective_to=row.effective_to,
        is_active=row.is_active,
        penalty_rules=tuple(
            PenaltyRule(
                id=r.penalty_rule_id,
                name=r.name,
                multiplier=r.multiplier,
                day_of_week=r.day_of_week,
                window_start=r.window_start,
                window_end=r.window_end,
                is_public_holiday=r.is_public_holiday,
                is_active=r.is_active,
            )
            for r in row.penalty_rules
        ),
        overtime_rules=tuple(
            OvertimeRule(
                id=r.overtime_rule_id,
                name=r.name,
                multiplier=r.multiplier,
                day_of_week=r.day_of_week,
                window_start=r.window_start,
                window_end=r.window_end,
                is_public_holiday=r.is_public_holiday,
                is_active=r.is_active,
            )
            for r in row.overtime_rules
        ),
        public_holidays=tuple(
            PublicHoliday(date=h.holiday_date, name=h.name, is_active=h.is_active)
            for h in row.public_holidays
        ),
    )


def to_shift(row: ShiftModel) -> Shift:
    return Shift(
        id=row.shift_id,
        owner_id=row.owner_id,
        start=row.start_time,
        end=row.end_time,
        award_id=row.award_id,
        break_minutes=row.break_minutes,
        pay_period_id=row.pay_period_id,
        break_periods=tuple(
            BreakPeriod(start=bp.start_time, end=bp.end_time, shift_id=row.shift_id)
            for bp in row.break_periods
        ),
    )


def to_pay_period(row: PayPeriodModel) -> PayPeriod:
    return PayPeriod(
        id=row.pay_period_id,
        owner_id=row.owner_id,
        start_date=row.start_date,
        end_date=row.end_date,
        pay_frequency=PayFrequency(row.pay_frequency),
        status=PayPeriodStatus(row.status),
        totals=PeriodTotals(**{name: getattr(row, name) for name in PeriodTotals.FIELDS}),
        actual_pay=row.actual_pay,
    )


def to_tax_profile(row: TaxSettingsModel) -> TaxWithholdingProfile:
    return TaxWithholdingProfile(
        owner_id=row.owner_id,
        claimed_tax_free_threshold=row.claimed_tax_free_threshold,
        is_foreign_resident=row.is_foreign_resident,
        has_tax_identifier=row.has_tax_identifier,
        medicare_exemption=MedicareExemption(row.medicare_exemption),
        has_study_loan=row.has_study_loan,
        extra_withholding=row.extra_withholding,
    )


class SqlAlchemyPayrollStore:
    """PayrollStore backed by an AsyncSession.

    Writes are flushed, never committed; the caller owns the transaction
    (see :func:`award_payroll.database.get_session`).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # === Reads ===

    async def get_pay_period(self, period_id: UUID) -> PayPeriod | None:
        row = await self.session.get(PayPeriodModel, period_id, populate_existing=True)
        return to_pay_period(row) if row is not None else None

    async def list_shifts_for_period(self, period_id: UUID) -> Sequence[Shift]:
        result = await self.session.execute(
            select(ShiftModel)
            .where(ShiftModel.pay_period_id == period_id)
            .order_by(ShiftModel.start_time)
            .execution_options(populate_existing=True)
        )
        return [to_shift(row) for row in result.scalars().all()]

    async def get_shift(self, shift_id: UUID) -> Shift | None:
        row = await self.session.get(ShiftModel, shift_id, populate_existing=True)
        return to_shift(row) if row is not None else None

    async def get_award(self, award_id: UUID) -> Award | None:
        row = await self.session.get(AwardModel, award_id)
        return to_award(row) if row is not None else None

    async def get_tax_profile(self, owner_id: UUID) -> TaxWithholdingProfile | None:
        row = await self.session.get(TaxSettingsModel, owner_id)
        return to_tax_profile(row) if row is not None else None

    async def list_period_extras(self, period_id: UUID) -> Sequence[PayPeriodExtra]:
        result = await self.session.execute(
            select(PayPeriodExtraModel)
            .where(PayPeriodExtraModel.pay_period_id == period_id)
            .order_by(PayPeriodExtraModel.created_at)
        )
        return [
            PayPeriodExtra(
                id=row.pay_period_extra_id,
                pay_period_id=row.pay_period_id,
                description=row.description,
                amount=row.amount,
                taxable=row.taxable,
            )
            for row in result.scalars().all()
        ]

    async def get_year_to_date(self, owner_id: UUID, tax_year: str) -> YearToDateTax | None:
        row = await self._get_ytd_row(owner_id, tax_year)
        if row is None:
            return None
        return YearToDateTax(
            owner_id=row.owner_id,
            tax_year=row.tax_year,
            gross_income=row.gross_income,
            payg_withholding=row.payg_withholding,
            medicare_levy=row.medicare_levy,
            study_loan_repayment=row.study_loan_repayment,
            total_withholdings=row.total_withholdings,
        )

    # === Writes ===

    async def save_period_result(self, result: PayPeriodResult, year_to_date: YearToDateTax) -> None:
        """Write aggregates, shift segments and year-to-date in one flush."""
        await self.session.execute(
            update(PayPeriodModel)
            .where(PayPeriodModel.pay_period_id == result.period_id)
            .values(
                **{name: getattr(result.totals, name) for name in PeriodTotals.FIELDS},
                tax_year=result.tax_year,
                engine_version=result.engine_version,
                rate_table_generation=result.rate_table_generation,
                inputs_fingerprint=result.inputs_fingerprint,
                calculated_at=datetime.now(timezone.utc),
            )
        )

        shift_ids = [b.shift_id for b in result.shift_breakdowns if b.shift_id is not None]
        if shift_ids:
            await self.session.execute(
                delete(ShiftSegmentModel).where(ShiftSegmentModel.shift_id.in_(shift_ids))
            )
        for breakdown in result.shift_breakdowns:
            if breakdown.shift_id is None:
                continue
            for position, segment in enumerate(breakdown.segments):
                self.session.add(
                    ShiftSegmentModel(
                        shift_id=breakdown.shift_id,
                        position=position,
                        kind=segment.kind.value,
                        label=segment.label,
                        multiplier=segment.multiplier,
                        minutes=segment.minutes,
                        rate=segment.rate,
                        amount=segment.amount,
                    )
                )

        await self._write_year_to_date(year_to_date)
        await self.session.flush()

    async def delete_pay_period(self, period_id: UUID, year_to_date: YearToDateTax | None = None) -> None:
        """Delete a period, detach its shifts and optionally rewrite year-to-date in one flush."""
        await self.session.execute(
            update(ShiftModel)
            .where(ShiftModel.pay_period_id == period_id)
            .values(pay_period_id=None)
        )
        await self.session.execute(
            delete(PayPeriodExtraModel).where(PayPeriodExtraModel.pay_period_id == period_id)
        )
        await self.session.execute(
            delete(PayPeriodModel).where(PayPeriodModel.pay_period_id == period_id)
        )
        if year_to_date is not None:
            await self._write_year_to_date(year_to_date)
        await self.session.flush()

    async def update_period_status(self, period_id: UUID, status: PayPeriodStatus) -> None:
        await self.session.execute(
            update(PayPeriodModel)
            .where(PayPeriodModel.pay_period_id == period_id)
            .values(status=PayPeriodStatus(status).value)
        )
        await self.session.flush()

    # === Record creation ===

    async def add_award(self, award: Award) -> UUID:
        row = AwardModel(
            name=award.name,
            base_rate=award.base_rate,
            casual_loading_rate=award.casual_loading_rate,
            daily_overtime_threshold_hours=award.daily_overtime_threshold_hours,
            weekly_overtime_threshold_hours=award.weekly_overtime_threshold_hours,
            overtime_tier1_multiplier=award.overtime_tier1_multiplier,
            overtime_tier2_multiplier=award.overtime_tier2_multiplier,
            minimum_shift_hours=award.minimum_shift_hours,
            maximum_shift_hours=award.maximum_shift_hours,
            public_holiday_multiplier=award.public_holiday_multiplier,
            timezone=award.timezone,
            effective_from=award.effective_from,
            effective_to=award.effective_to,
            is_active=award.is_active,
            penalty_rules=[
                PenaltyRuleModel(
                    name=r.name,
                    multiplier=r.multiplier,
                    day_of_week=r.day_of_week,
                    window_start=r.window_start,
                    window_end=r.window_end,
                    is_public_holiday=r.is_public_holiday,
                    is_active=r.is_active,
                )
                for r in award.penalty_rules
            ],
            overtime_rules=[
                OvertimeRuleModel(
                    name=r.name,
                    multiplier=r.multiplier,
                    day_of_week=r.day_of_week,
                    window_start=r.window_start,
                    window_end=r.window_end,
                    is_public_holiday=r.is_public_holiday,
                    is_active=r.is_active,
                )
                for r in award.overtime_rules
            ],
            public_holidays=[
                PublicHolidayModel(holiday_date=h.date, name=h.name, is_active=h.is_active)
                for h in award.public_holidays
            ],
        )
        if award.id is not None:
            row.award_id = award.id
        self.session.add(row)
        await self.session.flush()
        return row.award_id

    async def add_pay_period(self, period: PayPeriod) -> UUID:
        row = PayPeriodModel(
            pay_period_id=period.id,
            owner_id=period.owner_id,
            start_date=period.start_date,
            end_date=period.end_date,
            pay_frequency=period.pay_frequency.value,
            status=period.status.value,
            actual_pay=period.actual_pay,
            **{name: getattr(period.totals, name) for name in PeriodTotals.FIELDS},
        )
        self.session.add(row)
        await self.session.flush()
        return row.pay_period_id

    async def add_shift(self, shift: Shift) -> UUID:
        row = ShiftModel(
            shift_id=shift.id,
            owner_id=shift.owner_id,
            award_id=shift.award_id,
            pay_period_id=shift.pay_period_id,
            start_time=shift.start,
            end_time=shift.end,
            break_minutes=shift.break_minutes,
            break_periods=[
                BreakPeriodModel(start_time=bp.start, end_time=bp.end)
                for bp in shift.break_periods
            ],
        )
        self.session.add(row)
        await self.session.flush()
        return row.shift_id

    async def add_extra(self, extra: PayPeriodExtra) -> UUID:
        row = PayPeriodExtraModel(
            pay_period_id=extra.pay_period_id,
            description=extra.description,
            amount=extra.amount,
            taxable=extra.taxable,
        )
        if extra.id is not None:
            row.pay_period_extra_id = extra.id
        self.session.add(row)
        await self.session.flush()
        return row.pay_period_extra_id

    async def set_tax_profile(self, profile: TaxWithholdingProfile) -> None:
        row = await self.session.get(TaxSettingsModel, profile.owner_id)
        if row is None:
            row = TaxSettingsModel(owner_id=profile.owner_id)
            self.session.add(row)
        row.claimed_tax_free_threshold = profile.claimed_tax_free_threshold
        row.is_foreign_resident = profile.is_foreign_resident
        row.has_tax_identifier = profile.has_tax_identifier
        row.medicare_exemption = profile.medicare_exemption.value
        row.has_study_loan = profile.has_study_loan
        row.extra_withholding = profile.extra_withholding
        await self.session.flush()

    async def _write_year_to_date(self, year_to_date: YearToDateTax) -> None:
        row = await self._get_ytd_row(year_to_date.owner_id, year_to_date.tax_year)
        if row is None:
            row = YearToDateTaxModel(owner_id=year_to_date.owner_id, tax_year=year_to_date.tax_year)
            self.session.add(row)
        row.gross_income = year_to_date.gross_income
        row.payg_withholding = year_to_date.payg_withholding
        row.medicare_levy = year_to_date.medicare_levy
        row.study_loan_repayment = year_to_date.study_loan_repayment
        row.total_withholdings = year_to_date.total_withholdings

    async def _get_ytd_row(self, owner_id: UUID | None, tax_year: str) -> YearToDateTaxModel | None:
        result = await self.session.execute(
            select(YearToDateTaxModel).where(
                YearToDateTaxModel.owner_id == owner_id,
                YearToDateTaxModel.tax_year == tax_year,
            )
        )
        return result.scalar_one_or_none()


class SqlAlchemyRateTableSource:
    """RateTableSource backed by an AsyncSession.

    Database errors surface as RateTableUnavailableError so the coefficient
    store can fall back to the bundled tables. Each read runs under a
    SAVEPOINT so a failed statement is rolled back on its own and the
    shared session can still save the period afterwards.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_coefficients(
        self, tax_year: str, scale: TaxScale | None = None
    ) -> Sequence[TaxCoefficientRow]:
        query = select(TaxCoefficientModel).where(
            TaxCoefficientModel.tax_year == tax_year,
            TaxCoefficientModel.is_active.is_(True),
        )
        if scale is not None:
            query = query.where(TaxCoefficientModel.scale == TaxScale(scale).value)
        query = query.order_by(TaxCoefficientModel.scale, TaxCoefficientModel.earnings_from)

        try:
            async with self.session.begin_nested():
                result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            raise RateTableUnavailableError(tax_year, exc) from exc

        return [
            TaxCoefficientRow(
                tax_year=row.tax_year,
                scale=TaxScale(row.scale),
                earnings_from=row.earnings_from,
                earnings_to=row.earnings_to,
                coefficient_a=row.coefficient_a,
                coefficient_b=row.coefficient_b,
            )
            for row in result.scalars().all()
        ]

    async def list_study_loan_thresholds(self, tax_year: str) -> Sequence[StudyLoanThresholdRow]:
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    select(StudyLoanThresholdModel)
                    .where(
                        StudyLoanThresholdModel.tax_year == tax_year,
                        StudyLoanThresholdModel.is_active.is_(True),
                    )
                    .order_by(StudyLoanThresholdModel.income_from)
                )
        except SQLAlchemyError as exc:
            raise RateTableUnavailableError(tax_year, exc) from exc

        return [
            StudyLoanThresholdRow(
                tax_year=row.tax_year,
                income_from=row.income_from,
                income_to=row.income_to,
                rate=row.rate,
            )
            for row in result.scalars().all()
        ]

    async def medicare_config(self, tax_year: str) -> MedicareConfig | None:
        try:
            async with self.session.begin_nested():
                row = await self.session.get(MedicareConfigModel, tax_year)
        except SQLAlchemyError as exc:
            raise RateTableUnavailableError(tax_year, exc) from exc

        if row is None:
            return None
        return MedicareConfig(
            tax_year=row.tax_year,
            rate=row.rate,
            low_threshold=row.low_threshold,
            high_threshold=row.high_threshold,
        )

    async def replace_tables(
        self,
        tax_year: str,
        coefficients: Sequence[TaxCoefficientRow],
        study_loan_thresholds: Sequence[StudyLoanThresholdRow] = (),
        medicare: MedicareConfig | None = None,
    ) -> None:
        """Replace a tax year's tables; callers then invalidate their caches."""
        await self.session.execute(delete(TaxCoefficientModel).where(TaxCoefficientModel.tax_year == tax_year))
        for row in coefficients:
            self.session.add(
                TaxCoefficientModel(
                    tax_year=tax_year,
                    scale=row.scale.value,
                    earnings_from=row.earnings_from,
                    earnings_to=row.earnings_to,
                    coefficient_a=row.coefficient_a,
                    coefficient_b=row.coefficient_b,
                )
            )

        if study_loan_thresholds:
            await self.session.execute(
                delete(StudyLoanThresholdModel).where(StudyLoanThresholdModel.tax_year == tax_year)
            )
            for row in study_loan_thresholds:
                self.session.add(
                    StudyLoanThresholdModel(
                        tax_year=tax_year,
                        income_from=row.income_from,
                        income_to=row.income_to,
                        rate=row.rate,
                    )
                )

        if medicare is not None:
            existing = await self.session.get(MedicareConfigModel, tax_year)
            if existing is None:
                existing = MedicareConfigModel(tax_year=tax_year)
                self.session.add(existing)
            existing.rate = medicare.rate
            existing.low_threshold = medicare.low_threshold
            existing.high_threshold = medicare.high_threshold

        await self.session.flush()
