"""Integration tests for the SQLAlchemy store and rate table source.

Verifies that records survive a database round trip and that the
synchronizer keeps stored aggregates consistent against a real schema.
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event, func, inspect, select, text

from award_payroll.calculators.engine import PayrollEngine
from award_payroll.calculators.tax_tables import default_snapshot
from award_payroll.calculators.types import (
    BreakPeriod,
    MedicareExemption,
    PayPeriodExtra,
    PayPeriodStatus,
    PenaltyRule,
    PublicHoliday,
    TaxCoefficientRow,
    TaxScale,
    TaxWithholdingProfile,
    YearToDateTax,
)
from award_payroll.database import create_schema, get_engine
from award_payroll.models import ShiftSegmentModel, TaxCoefficientModel
from award_payroll.services.pay_period_synchronizer import PayPeriodSynchronizer
from award_payroll.services.tax_coefficient_store import TaxCoefficientStore

from tests.conftest import at, make_shift


@pytest.fixture
def rich_award(award):
    return replace(
        award,
        casual_loading_rate=Decimal("0.25"),
        timezone="Australia/Sydney",
        minimum_shift_hours=Decimal("3"),
        penalty_rules=(
            PenaltyRule(Decimal("1.25"), name="Evening", window_start="18:00", window_end="23:00"),
            PenaltyRule(Decimal("1.5"), name="Saturday", day_of_week=6),
        ),
        public_holidays=(PublicHoliday(date=date(2024, 12, 25), name="Christmas Day"),),
    )


class TestRoundTrips:
    """Test records come back as they went in."""

    async def test_award_round_trip(self, db_store, rich_award):
        award_id = await db_store.add_award(rich_award)

        loaded = await db_store.get_award(award_id)

        assert loaded.id == rich_award.id
        assert loaded.base_rate == Decimal("25.00")
        assert loaded.casual_loading_rate == Decimal("0.25")
        assert loaded.timezone == "Australia/Sydney"
        assert {r.name for r in loaded.penalty_rules} == {"Evening", "Saturday"}
        evening = next(r for r in loaded.penalty_rules if r.name == "Evening")
        assert (evening.window_start, evening.window_end) == ("18:00", "23:00")
        assert loaded.public_holidays[0].date == date(2024, 12, 25)

    async def test_missing_records(self, db_store):
        assert await db_store.get_award(uuid4()) is None
        assert await db_store.get_shift(uuid4()) is None
        assert await db_store.get_pay_period(uuid4()) is None
        assert await db_store.get_tax_profile(uuid4()) is None
        assert await db_store.get_year_to_date(uuid4(), "2024-25") is None

    async def test_shift_round_trip_keeps_utc(self, db_store, award, owner_id, weekday):
        await db_store.add_award(award)
        shift = make_shift(
            weekday,
            "09:00",
            "17:30",
            award_id=award.id,
            owner_id=owner_id,
            break_periods=(BreakPeriod(start=at(weekday, "12:00"), end=at(weekday, "12:30")),),
        )
        await db_store.add_shift(shift)

        loaded = await db_store.get_shift(shift.id)

        assert loaded.start == shift.start
        assert loaded.end == shift.end
        assert loaded.start.utcoffset() == timedelta(0)
        assert len(loaded.break_periods) == 1
        assert loaded.break_periods[0].end == at(weekday, "12:30")

    async def test_shifts_listed_in_start_order(self, db_store, award, owner_id, weekly_period):
        await db_store.add_award(award)
        await db_store.add_pay_period(weekly_period)
        for day in (10, 8, 9):
            await db_store.add_shift(
                make_shift(date(2024, 7, day), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
            )

        shifts = await db_store.list_shifts_for_period(weekly_period.id)

        assert [s.start.day for s in shifts] == [8, 9, 10]

    async def test_period_round_trip(self, db_store, weekly_period):
        await db_store.add_pay_period(weekly_period)

        loaded = await db_store.get_pay_period(weekly_period.id)

        assert loaded == weekly_period

    async def test_tax_profile_upsert(self, db_store, owner_id):
        await db_store.set_tax_profile(TaxWithholdingProfile(owner_id=owner_id, has_study_loan=True))
        await db_store.set_tax_profile(
            TaxWithholdingProfile(owner_id=owner_id, medicare_exemption=MedicareExemption.HALF)
        )

        profile = await db_store.get_tax_profile(owner_id)

        assert profile.has_study_loan is False
        assert profile.medicare_exemption == MedicareExemption.HALF

    async def test_extras_round_trip(self, db_store, weekly_period):
        await db_store.add_pay_period(weekly_period)
        await db_store.add_extra(
            PayPeriodExtra(amount=Decimal("-12.00"), description="Uniform", taxable=False, pay_period_id=weekly_period.id)
        )

        (extra,) = await db_store.list_period_extras(weekly_period.id)

        assert extra.amount == Decimal("-12.00")
        assert extra.taxable is False


class TestPeriodWrites:
    """Test result persistence, status updates and deletion."""

    async def test_save_period_result(self, db_store, db_session, award, owner_id, weekly_period):
        await db_store.add_award(award)
        await db_store.add_pay_period(weekly_period)
        shift = make_shift(date(2024, 7, 8), "09:00", "18:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
        await db_store.add_shift(shift)
        result = PayrollEngine(engine_version="it").calculate_period(
            weekly_period, [shift], {award.id: award}, [], None, default_snapshot("2024-25")
        )
        ytd = YearToDateTax(owner_id=owner_id, tax_year="2024-25", gross_income=Decimal("237.50"))

        await db_store.save_period_result(result, ytd)
        await db_store.save_period_result(result, replace(ytd, gross_income=Decimal("475.00")))

        loaded = await db_store.get_pay_period(weekly_period.id)
        assert loaded.totals == result.totals
        stored_ytd = await db_store.get_year_to_date(owner_id, "2024-25")
        assert stored_ytd.gross_income == Decimal("475.00")

        rows = (
            await db_session.execute(
                select(ShiftSegmentModel)
                .where(ShiftSegmentModel.shift_id == shift.id)
                .order_by(ShiftSegmentModel.position)
            )
        ).scalars().all()
        assert [(r.kind, r.minutes) for r in rows] == [("REGULAR", 480), ("OVERTIME", 60)]
        assert sum(r.amount for r in rows) == Decimal("237.50")

    async def test_update_status(self, db_store, weekly_period):
        await db_store.add_pay_period(weekly_period)

        await db_store.update_period_status(weekly_period.id, PayPeriodStatus.PROCESSING)

        assert (await db_store.get_pay_period(weekly_period.id)).status == PayPeriodStatus.PROCESSING

    async def test_delete_pay_period_detaches_shifts(self, db_store, award, owner_id, weekly_period):
        await db_store.add_award(award)
        await db_store.add_pay_period(weekly_period)
        await db_store.add_extra(PayPeriodExtra(amount=Decimal("5.00"), pay_period_id=weekly_period.id))
        shift = make_shift(date(2024, 7, 8), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
        await db_store.add_shift(shift)

        await db_store.delete_pay_period(weekly_period.id)

        assert await db_store.get_pay_period(weekly_period.id) is None
        assert (await db_store.get_shift(shift.id)).pay_period_id is None
        assert await db_store.list_period_extras(weekly_period.id) == []

    async def test_delete_pay_period_rewrites_year_to_date(self, db_store, owner_id, weekly_period):
        await db_store.add_pay_period(weekly_period)
        result = PayrollEngine(engine_version="it").calculate_period(
            weekly_period, [], {}, [], None, default_snapshot("2024-25")
        )
        await db_store.save_period_result(
            result, YearToDateTax(owner_id=owner_id, tax_year="2024-25", gross_income=Decimal("300.00"))
        )

        await db_store.delete_pay_period(
            weekly_period.id, YearToDateTax(owner_id=owner_id, tax_year="2024-25", gross_income=Decimal("100.00"))
        )

        assert await db_store.get_pay_period(weekly_period.id) is None
        assert (await db_store.get_year_to_date(owner_id, "2024-25")).gross_income == Decimal("100.00")


class TestRateTableSource:
    """Test rate table reads and replacement."""

    async def test_coefficients_by_scale(self, db_rate_source):
        rows = await db_rate_source.list_coefficients("2024-25", TaxScale.TAX_FREE_THRESHOLD)

        assert len(rows) == 5
        assert [r.earnings_from for r in rows] == sorted(r.earnings_from for r in rows)
        assert rows[-1].earnings_to is None

    async def test_other_year_empty(self, db_rate_source):
        assert await db_rate_source.list_coefficients("2023-24") == []
        assert await db_rate_source.medicare_config("2023-24") is None

    async def test_inactive_rows_excluded(self, db_rate_source, db_session):
        rows = (
            await db_session.execute(
                select(TaxCoefficientModel).where(TaxCoefficientModel.scale == TaxScale.NO_TAX_IDENTIFIER.value)
            )
        ).scalars().all()
        for row in rows:
            row.is_active = False
        await db_session.flush()

        assert await db_rate_source.list_coefficients("2024-25", TaxScale.NO_TAX_IDENTIFIER) == []

    async def test_replace_tables(self, db_rate_source, db_session):
        flat = TaxCoefficientRow("2024-25", TaxScale.TAX_FREE_THRESHOLD, Decimal("0"), None, Decimal("0.1"), Decimal("0"))

        await db_rate_source.replace_tables("2024-25", [flat])

        count = await db_session.scalar(select(func.count()).select_from(TaxCoefficientModel))
        assert count == 1
        assert len(await db_rate_source.list_study_loan_thresholds("2024-25")) == 18
        assert (await db_rate_source.medicare_config("2024-25")).rate == Decimal("0.02")


class TestSynchronizerOnDatabase:
    """End-to-end sync against the real schema."""

    @pytest.fixture
    def synchronizer(self, db_store, db_rate_source, settings):
        return PayPeriodSynchronizer(db_store, TaxCoefficientStore(db_rate_source), settings=settings)

    async def seed(self, db_store, award, owner_id, period):
        await db_store.add_award(award)
        await db_store.add_pay_period(period)
        for day, end in ((8, "18:00"), (9, "17:00")):
            await db_store.add_shift(
                make_shift(date(2024, 7, day), "09:00", end, award_id=award.id, owner_id=owner_id, pay_period_id=period.id)
            )

    async def test_sync_and_validate(self, synchronizer, db_store, award, owner_id, weekly_period):
        await self.seed(db_store, award, owner_id, weekly_period)

        result = await synchronizer.sync(weekly_period.id)
        report = await synchronizer.validate_totals(weekly_period.id)

        expected = PayrollEngine().calculate_period(
            weekly_period,
            await db_store.list_shifts_for_period(weekly_period.id),
            {award.id: award},
            [],
            None,
            default_snapshot("2024-25"),
        )
        assert result.totals == expected.totals
        assert result.totals.gross_pay == Decimal("437.50")
        assert result.tax.uses_default_tables is False
        assert report.is_valid

    async def test_resync_keeps_year_to_date(self, synchronizer, db_store, award, owner_id, weekly_period):
        await self.seed(db_store, award, owner_id, weekly_period)

        first = await synchronizer.sync(weekly_period.id)
        await synchronizer.sync(weekly_period.id)

        ytd = await db_store.get_year_to_date(owner_id, "2024-25")
        assert ytd.gross_income == first.totals.taxable_gross
        assert ytd.payg_withholding == first.totals.payg_withholding

    async def test_failed_rate_read_rolls_back_to_savepoint(
        self, synchronizer, db_store, db_session, test_engine, award, owner_id, weekly_period
    ):
        await self.seed(db_store, award, owner_id, weekly_period)
        await db_session.execute(text("DROP TABLE tax_coefficient"))
        statements: list[str] = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.strip().upper())

        event.listen(test_engine.sync_engine, "before_cursor_execute", record)
        try:
            result = await synchronizer.sync(weekly_period.id)
        finally:
            event.remove(test_engine.sync_engine, "before_cursor_execute", record)

        assert result.tax.uses_default_tables is True
        assert any(s.startswith("SAVEPOINT") for s in statements)
        assert any(s.startswith("ROLLBACK TO SAVEPOINT") for s in statements)
        stored = await db_store.get_pay_period(weekly_period.id)
        assert stored.totals == result.totals
        assert (await db_store.get_year_to_date(owner_id, "2024-25")).gross_income == Decimal("437.50")

    async def test_process_then_locked(self, synchronizer, db_store, award, owner_id, weekly_period):
        await self.seed(db_store, award, owner_id, weekly_period)

        await synchronizer.process(weekly_period.id)
        await synchronizer.transition(weekly_period.id, PayPeriodStatus.PAID)
        results = await synchronizer.on_extras_changed(weekly_period.id)

        assert results == []
        period = await db_store.get_pay_period(weekly_period.id)
        assert period.status == PayPeriodStatus.PAID
        assert period.totals.gross_pay == Decimal("437.50")


class TestDatabaseSetup:
    """Test engine creation and schema setup helpers."""

    async def test_create_schema_on_sqlite(self):
        engine = get_engine("sqlite+aiosqlite:///:memory:")
        try:
            await create_schema(engine)
            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        finally:
            await engine.dispose()

        assert {"award", "shift", "pay_period", "tax_coefficient", "year_to_date_tax"} <= set(tables)
