"""Tests for pay period synchronization."""

import asyncio
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from award_payroll.calculators.errors import (
    AwardNotFoundError,
    DriftDetectedError,
    InputError,
    InvalidTransitionError,
    PeriodLockedError,
    PeriodNotFoundError,
)
from award_payroll.calculators.types import (
    PayFrequency,
    PayPeriod,
    PayPeriodExtra,
    PayPeriodStatus,
    TaxWithholdingProfile,
)
from award_payroll.services.pay_period_synchronizer import PayPeriodSynchronizer
from award_payroll.services.tax_coefficient_store import TaxCoefficientStore

from tests.conftest import make_shift


@pytest.fixture
def synchronizer(store, rate_source, settings):
    return PayPeriodSynchronizer(store, TaxCoefficientStore(rate_source), settings=settings)


@pytest.fixture
def seeded(store, award, weekly_period, owner_id):
    """Weekly period with a 9h Monday shift and an 8h Tuesday shift."""
    store.add_award(award)
    store.add_period(weekly_period)
    monday = store.add_shift(
        make_shift(date(2024, 7, 8), "09:00", "18:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
    )
    tuesday = store.add_shift(
        make_shift(date(2024, 7, 9), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
    )
    return weekly_period, monday, tuesday


def next_week(period: PayPeriod) -> PayPeriod:
    return PayPeriod(
        id=uuid4(),
        owner_id=period.owner_id,
        start_date=date(2024, 7, 15),
        end_date=date(2024, 7, 21),
        pay_frequency=PayFrequency.WEEKLY,
    )


class TestSync:
    """Test recompute-and-persist."""

    async def test_sync_persists_totals(self, synchronizer, store, seeded):
        period, _, _ = seeded

        result = await synchronizer.sync(period.id)

        stored = store.periods[period.id].totals
        assert stored == result.totals
        assert stored.total_hours == Decimal("17.00")
        assert stored.gross_pay == Decimal("437.50")
        assert stored.net_pay == stored.gross_pay - stored.total_withholdings
        assert result.tax_year == "2024-25"
        assert result.engine_version == "test-1"
        assert len(result.shift_breakdowns) == 2
        assert store.save_count == 1

    async def test_sync_twice_is_idempotent(self, synchronizer, store, seeded, owner_id):
        period, _, _ = seeded

        first = await synchronizer.sync(period.id)
        ytd_after_first = store.year_to_date[(owner_id, "2024-25")]
        second = await synchronizer.sync(period.id)

        assert second.totals == first.totals
        assert second.shift_breakdowns == first.shift_breakdowns
        assert second.inputs_fingerprint == first.inputs_fingerprint
        assert store.year_to_date[(owner_id, "2024-25")] == ytd_after_first
        assert ytd_after_first.gross_income == first.totals.taxable_gross

    async def test_validate_after_sync_reports_no_drift(self, synchronizer, seeded):
        period, _, _ = seeded

        await synchronizer.sync(period.id)
        report = await synchronizer.validate_totals(period.id)

        assert report.is_valid
        assert report.differences == {}
        report.raise_for_drift()

    async def test_validate_detects_drift(self, synchronizer, store, seeded):
        period, _, _ = seeded
        await synchronizer.sync(period.id)
        stored = store.periods[period.id]
        store.periods[period.id] = replace(stored, totals=replace(stored.totals, gross_pay=Decimal("1.00")))
        saves = store.save_count

        report = await synchronizer.validate_totals(period.id)

        assert not report.is_valid
        assert report.differences == {"gross_pay": Decimal("1.00") - Decimal("437.50")}
        assert store.save_count == saves
        with pytest.raises(DriftDetectedError):
            report.raise_for_drift()

    async def test_unsynced_period_shows_drift(self, synchronizer, seeded):
        period, _, _ = seeded
        report = await synchronizer.validate_totals(period.id)
        assert "gross_pay" in report.differences

    async def test_open_shift_skipped(self, synchronizer, store, seeded, award, owner_id, caplog):
        period, _, _ = seeded
        store.add_shift(
            replace(
                make_shift(date(2024, 7, 10), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=period.id),
                end=None,
            )
        )

        with caplog.at_level(logging.WARNING):
            result = await synchronizer.sync(period.id)

        assert len(result.shift_breakdowns) == 2
        assert "open shift" in caplog.text

    async def test_missing_award(self, synchronizer, store, seeded):
        period, monday, _ = seeded
        store.shifts[monday.id] = replace(monday, award_id=uuid4())

        with pytest.raises(AwardNotFoundError):
            await synchronizer.sync(period.id)

    async def test_missing_period(self, synchronizer):
        with pytest.raises(PeriodNotFoundError):
            await synchronizer.sync(uuid4())

    async def test_invalid_tax_year(self, synchronizer, seeded):
        period, _, _ = seeded
        with pytest.raises(InputError):
            await synchronizer.sync(period.id, tax_year="2024-26")

    async def test_extras_and_profile(self, synchronizer, store, seeded, owner_id):
        period, _, _ = seeded
        store.add_extra(PayPeriodExtra(amount=Decimal("62.50"), pay_period_id=period.id, description="Meal allowance"))
        store.profiles[owner_id] = TaxWithholdingProfile(owner_id=owner_id, has_tax_identifier=False)

        result = await synchronizer.sync(period.id)

        assert result.totals.gross_pay == Decimal("500.00")
        assert result.totals.payg_withholding == Decimal("235.00")  # 47% of 500

    async def test_bundled_tables_when_source_down(self, synchronizer, rate_source, seeded, caplog):
        period, _, _ = seeded
        rate_source.unavailable = True

        with caplog.at_level(logging.WARNING):
            result = await synchronizer.sync(period.id)

        assert result.tax.uses_default_tables is True
        assert "bundled" in caplog.text

    async def test_concurrent_syncs_serialized(self, synchronizer, store, seeded, owner_id):
        period, _, _ = seeded

        results = await asyncio.gather(*(synchronizer.sync(period.id) for _ in range(5)))
        await synchronizer.join()

        assert store.save_count == 5
        assert all(r.totals == results[0].totals for r in results)
        assert store.year_to_date[(owner_id, "2024-25")].gross_income == results[0].totals.taxable_gross


class TestYearToDate:
    """Test year-to-date bookkeeping across periods."""

    async def test_two_periods_accumulate(self, synchronizer, store, seeded, award, owner_id):
        period, _, _ = seeded
        second = store.add_period(next_week(period))
        store.add_shift(
            make_shift(date(2024, 7, 15), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=second.id)
        )

        first_result = await synchronizer.sync(period.id)
        second_result = await synchronizer.sync(second.id)

        ytd = store.year_to_date[(owner_id, "2024-25")]
        assert ytd.gross_income == first_result.totals.taxable_gross + second_result.totals.taxable_gross
        assert ytd.total_withholdings == (
            first_result.totals.total_withholdings + second_result.totals.total_withholdings
        )

    async def test_resync_after_edit_replaces_contribution(self, synchronizer, store, seeded, owner_id):
        period, monday, _ = seeded
        await synchronizer.sync(period.id)

        store.shifts[monday.id] = replace(monday, end=monday.end.replace(hour=13))
        result = await synchronizer.sync(period.id)

        ytd = store.year_to_date[(owner_id, "2024-25")]
        assert result.totals.gross_pay == Decimal("300.00")
        assert ytd.gross_income == Decimal("300.00")
        assert ytd.payg_withholding == result.totals.payg_withholding


class TestChangeHandlers:
    """Test shift and extras change handlers."""

    async def test_on_shift_created(self, synchronizer, store, seeded):
        period, monday, _ = seeded

        results = await synchronizer.on_shift_created(monday.id)

        assert [r.period_id for r in results] == [period.id]
        assert store.periods[period.id].totals.gross_pay == Decimal("437.50")

    async def test_on_shift_created_unknown_shift(self, synchronizer):
        assert await synchronizer.on_shift_created(uuid4()) == []

    async def test_shift_moved_syncs_both_periods(self, synchronizer, store, seeded):
        period, _, tuesday = seeded
        second = store.add_period(next_week(period))
        await synchronizer.sync(period.id)

        store.shifts[tuesday.id] = replace(tuesday, pay_period_id=second.id)
        results = await synchronizer.on_shift_updated(tuesday.id, previous_period_id=period.id)

        assert [r.period_id for r in results] == [period.id, second.id]
        assert store.periods[period.id].totals.gross_pay == Decimal("237.50")
        assert store.periods[second.id].totals.gross_pay == Decimal("200.00")

    async def test_shift_updated_in_place_syncs_once(self, synchronizer, store, seeded):
        period, monday, _ = seeded

        results = await synchronizer.on_shift_updated(monday.id, previous_period_id=period.id)

        assert len(results) == 1
        assert store.save_count == 1

    async def test_deleting_last_shift_deletes_period(self, synchronizer, store, award, weekly_period, owner_id):
        store.add_award(award)
        store.add_period(weekly_period)
        shift = store.add_shift(
            make_shift(date(2024, 7, 8), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
        )
        await synchronizer.sync(weekly_period.id)

        del store.shifts[shift.id]
        results = await synchronizer.on_shift_deleted(shift.id, weekly_period.id)

        assert results == []
        assert store.deleted == [weekly_period.id]
        assert weekly_period.id not in store.periods

    async def test_deleting_last_shift_removes_year_to_date_share(
        self, synchronizer, store, award, weekly_period, owner_id
    ):
        store.add_award(award)
        store.add_period(weekly_period)
        shift = store.add_shift(
            make_shift(date(2024, 7, 8), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
        )
        await synchronizer.sync(weekly_period.id)
        assert store.year_to_date[(owner_id, "2024-25")].gross_income == Decimal("200.00")

        del store.shifts[shift.id]
        await synchronizer.on_shift_deleted(shift.id, weekly_period.id)

        ytd = store.year_to_date[(owner_id, "2024-25")]
        assert ytd.gross_income == 0
        assert ytd.payg_withholding == 0
        assert ytd.total_withholdings == 0

    async def test_deleting_period_keeps_other_periods_in_year_to_date(
        self, synchronizer, store, award, weekly_period, owner_id
    ):
        following = next_week(weekly_period)
        store.add_award(award)
        store.add_period(weekly_period)
        store.add_period(following)
        shift = store.add_shift(
            make_shift(date(2024, 7, 8), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
        )
        store.add_shift(
            make_shift(date(2024, 7, 15), "09:00", "15:00", award_id=award.id, owner_id=owner_id, pay_period_id=following.id)
        )
        await synchronizer.sync(weekly_period.id)
        kept = await synchronizer.sync(following.id)

        del store.shifts[shift.id]
        await synchronizer.on_shift_deleted(shift.id, weekly_period.id)

        ytd = store.year_to_date[(owner_id, "2024-25")]
        assert ytd.gross_income == kept.totals.taxable_gross
        assert ytd.payg_withholding == kept.totals.payg_withholding
        assert ytd.total_withholdings == kept.totals.total_withholdings

    async def test_deleting_shift_keeps_period_with_extras(self, synchronizer, store, award, weekly_period, owner_id):
        store.add_award(award)
        store.add_period(weekly_period)
        store.add_extra(PayPeriodExtra(amount=Decimal("40.00"), pay_period_id=weekly_period.id))
        shift = store.add_shift(
            make_shift(date(2024, 7, 8), "09:00", "17:00", award_id=award.id, owner_id=owner_id, pay_period_id=weekly_period.id)
        )
        await synchronizer.sync(weekly_period.id)

        del store.shifts[shift.id]
        await synchronizer.on_shift_deleted(shift.id, weekly_period.id)

        assert store.deleted == []
        assert store.periods[weekly_period.id].totals.gross_pay == Decimal("40.00")
        assert store.periods[weekly_period.id].totals.total_hours == 0

    async def test_deleting_one_of_several_shifts(self, synchronizer, store, seeded):
        period, monday, _ = seeded

        del store.shifts[monday.id]
        results = await synchronizer.on_shift_deleted(monday.id, period.id)

        assert len(results) == 1
        assert store.periods[period.id].totals.gross_pay == Decimal("200.00")

    async def test_deleted_shift_without_period(self, synchronizer):
        assert await synchronizer.on_shift_deleted(uuid4(), None) == []

    async def test_break_periods_changed(self, synchronizer, store, seeded):
        period, monday, _ = seeded
        store.shifts[monday.id] = replace(monday, break_minutes=60)

        await synchronizer.on_break_periods_changed(monday.id)

        assert store.periods[period.id].totals.gross_pay == Decimal("400.00")

    async def test_extras_changed(self, synchronizer, store, seeded):
        period, _, _ = seeded
        store.add_extra(PayPeriodExtra(amount=Decimal("-37.50"), pay_period_id=period.id, taxable=False))

        await synchronizer.on_extras_changed(period.id)

        assert store.periods[period.id].totals.gross_pay == Decimal("400.00")


class TestLockedPeriods:
    """Test paid and verified periods are left alone."""

    async def test_sync_paid_period_raises(self, synchronizer, store, seeded):
        period, _, _ = seeded
        store.periods[period.id] = replace(period, status=PayPeriodStatus.PAID)

        with pytest.raises(PeriodLockedError):
            await synchronizer.sync(period.id)
        assert store.save_count == 0

    async def test_handlers_log_and_continue(self, synchronizer, store, seeded, caplog):
        period, monday, _ = seeded
        store.periods[period.id] = replace(period, status=PayPeriodStatus.VERIFIED)

        with caplog.at_level(logging.WARNING):
            results = await synchronizer.on_shift_created(monday.id)

        assert results == []
        assert "cannot be recalculated" in caplog.text

    async def test_locked_period_drift_visible(self, synchronizer, store, seeded):
        period, monday, _ = seeded
        await synchronizer.sync(period.id)
        store.periods[period.id] = replace(store.periods[period.id], status=PayPeriodStatus.PAID)

        store.shifts[monday.id] = replace(monday, break_minutes=30)
        await synchronizer.on_shift_updated(monday.id)
        report = await synchronizer.validate_totals(period.id)

        assert not report.is_valid

    async def test_empty_locked_period_kept(self, synchronizer, store, award, weekly_period, owner_id):
        store.add_award(award)
        store.add_period(replace(weekly_period, status=PayPeriodStatus.PAID))

        await synchronizer.on_shift_deleted(uuid4(), weekly_period.id)

        assert store.deleted == []


class TestLifecycle:
    """Test process and status transitions."""

    async def test_process_moves_to_processing(self, synchronizer, store, seeded):
        period, _, _ = seeded

        result = await synchronizer.process(period.id)

        assert store.periods[period.id].status == PayPeriodStatus.PROCESSING
        assert store.periods[period.id].totals == result.totals

    async def test_process_empty_period_rejected(self, synchronizer, store, weekly_period):
        store.add_period(weekly_period)

        with pytest.raises(InvalidTransitionError):
            await synchronizer.process(weekly_period.id)
        assert store.periods[weekly_period.id].status == PayPeriodStatus.OPEN

    async def test_process_requires_open(self, synchronizer, store, seeded):
        period, _, _ = seeded
        store.periods[period.id] = replace(period, status=PayPeriodStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            await synchronizer.process(period.id)

    async def test_transition_to_paid_and_verified(self, synchronizer, store, seeded):
        period, _, _ = seeded
        await synchronizer.process(period.id)

        await synchronizer.transition(period.id, PayPeriodStatus.PAID)
        with pytest.raises(InvalidTransitionError):
            await synchronizer.transition(period.id, PayPeriodStatus.VERIFIED)

        store.periods[period.id] = replace(store.periods[period.id], actual_pay=Decimal("400.00"))
        await synchronizer.transition(period.id, PayPeriodStatus.VERIFIED)

        assert store.periods[period.id].status == PayPeriodStatus.VERIFIED

    async def test_reopen_returns_period_to_open(self, synchronizer, store, seeded, caplog):
        period, _, _ = seeded
        await synchronizer.process(period.id)

        with caplog.at_level(logging.INFO, logger="award_payroll.services.pay_period_synchronizer"):
            await synchronizer.transition(period.id, PayPeriodStatus.OPEN)

        assert store.periods[period.id].status == PayPeriodStatus.OPEN
        assert "Reopened pay period" in caplog.text

    async def test_rejected_transition_names_allowed_statuses(self, synchronizer, store, seeded):
        period, _, _ = seeded

        with pytest.raises(InvalidTransitionError) as exc_info:
            await synchronizer.transition(period.id, PayPeriodStatus.PAID)

        assert "allowed: processing" in str(exc_info.value)

    async def test_unserialized_synchronizer(self, store, rate_source, settings, seeded):
        period, _, _ = seeded
        synchronizer = PayPeriodSynchronizer(
            store, TaxCoefficientStore(rate_source), settings=settings, serialize=False
        )

        result = await synchronizer.sync(period.id)

        assert result.totals.gross_pay == Decimal("437.50")
