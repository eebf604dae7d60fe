"""Keeps pay period aggregates in step with their shifts."""

from __future__ import annotations

import logging
from dataclasses import replace
from uuid import UUID

from award_payroll.calculators.engine import PayrollEngine
from award_payroll.calculators.errors import (
    AwardNotFoundError,
    InvalidTransitionError,
    PeriodLockedError,
    PeriodNotFoundError,
)
from award_payroll.calculators.tax_calculator import TaxCalculator
from award_payroll.calculators.tax_tables import normalize_tax_year, tax_year_for
from award_payroll.calculators.types import (
    Award,
    PayPeriod,
    PayPeriodResult,
    PayPeriodStatus,
    PeriodTotals,
    ValidationReport,
    YearToDateTax,
)
from award_payroll.config import Settings, get_settings
from award_payroll.services.state_machine import PayPeriodStateMachine
from award_payroll.services.store import PayrollStore
from award_payroll.services.sync_queue import PeriodSyncQueue
from award_payroll.services.tax_coefficient_store import TaxCoefficientStore

logger = logging.getLogger(__name__)


class PayPeriodSynchronizer:
    """Recomputes and persists pay period aggregates.

    Operations:
    - sync: recompute a period from its shifts and extras, then persist
    - on_shift_created / on_shift_updated / on_shift_deleted: resync the
      period(s) a shift change touches
    - on_break_periods_changed / on_extras_changed: resync one period
    - validate_totals: compare stored aggregates with a fresh recompute
    - process: sync, then move the period from open to processing

    Every sync of a period goes through a :class:`PeriodSyncQueue`, so
    overlapping requests for one period run one after another. Paid and
    verified periods are never recomputed.
    """

    def __init__(
        self,
        store: PayrollStore,
        coefficient_store: TaxCoefficientStore,
        engine: PayrollEngine | None = None,
        settings: Settings | None = None,
        serialize: bool = True,
    ):
        self.store = store
        self.coefficient_store = coefficient_store
        self.settings = settings or get_settings()
        self.engine = engine or PayrollEngine(
            TaxCalculator(self.settings.fallback_scale),
            engine_version=self.settings.engine_version,
        )
        self._queue: PeriodSyncQueue[PayPeriodResult] | None = (
            PeriodSyncQueue(self._sync_now) if serialize else None
        )

    # === Sync ===

    async def sync(self, period_id: UUID, tax_year: str | None = None) -> PayPeriodResult:
        """Recompute and persist every aggregate of a pay period.

        Args:
            period_id: Period to recompute
            tax_year: Fiscal year such as "2024-25"; derived from the
                period start date when omitted

        Raises:
            PeriodNotFoundError: If the period does not exist
            PeriodLockedError: If the period is paid or verified
            AwardNotFoundError: If a shift's award is missing
            InputError: If a shift or award is malformed
        """
        if self._queue is not None:
            return await self._queue.submit(period_id, tax_year)
        return await self._sync_now(period_id, tax_year)

    async def _sync_now(self, period_id: UUID, tax_year: str | None = None) -> PayPeriodResult:
        period = await self._get_period(period_id)
        if not PayPeriodStateMachine.can_calculate(period.status):
            raise PeriodLockedError(period_id, period.status.value)

        tax_year = self._tax_year(period, tax_year)
        stored_ytd = await self.store.get_year_to_date(period.owner_id, tax_year)
        baseline = self._without_period(stored_ytd, period.totals) if stored_ytd else None

        result = await self._recompute(period, tax_year, baseline)

        year_to_date = result.tax.year_to_date if result.tax else None
        if year_to_date is None:
            year_to_date = YearToDateTax(owner_id=period.owner_id, tax_year=tax_year)
        await self.store.save_period_result(result, year_to_date)

        logger.debug(
            "Synced pay period %s: gross=%s net=%s generation=%d",
            period_id,
            result.totals.gross_pay,
            result.totals.net_pay,
            result.rate_table_generation,
        )
        return result

    async def _recompute(
        self,
        period: PayPeriod,
        tax_year: str,
        year_to_date: YearToDateTax | None = None,
    ) -> PayPeriodResult:
        shifts = await self.store.list_shifts_for_period(period.id)
        closed = [s for s in shifts if not s.is_open]
        if len(closed) != len(shifts):
            logger.warning(
                "Skipping %d open shift(s) in pay period %s",
                len(shifts) - len(closed),
                period.id,
            )

        awards: dict[UUID, Award] = {}
        for shift in closed:
            if shift.award_id is None:
                raise AwardNotFoundError(None, shift.id)
            if shift.award_id not in awards:
                award = await self.store.get_award(shift.award_id)
                if award is None:
                    raise AwardNotFoundError(shift.award_id, shift.id)
                awards[shift.award_id] = award

        extras = await self.store.list_period_extras(period.id)
        profile = await self.store.get_tax_profile(period.owner_id)
        snapshot = await self.coefficient_store.snapshot(tax_year)
        if snapshot.is_default:
            logger.warning("Pay period %s taxed with bundled %s tables", period.id, tax_year)

        result = self.engine.calculate_period(
            period,
            closed,
            awards,
            extras,
            profile,
            snapshot,
            year_to_date=year_to_date,
        )
        if result.tax is not None and result.tax.degraded:
            logger.warning(
                "Degraded tax result for pay period %s: %s",
                period.id,
                "; ".join(result.tax.warnings),
            )
        return result

    # === Change handlers ===

    async def on_shift_created(self, shift_id: UUID) -> list[PayPeriodResult]:
        shift = await self.store.get_shift(shift_id)
        if shift is None:
            logger.warning("Created shift %s not found; nothing to sync", shift_id)
            return []
        return await self._sync_each([shift.pay_period_id])

    async def on_shift_updated(
        self,
        shift_id: UUID,
        previous_period_id: UUID | None = None,
    ) -> list[PayPeriodResult]:
        """Resync the shift's period and, if it moved, the one it left."""
        shift = await self.store.get_shift(shift_id)
        current_period_id = shift.pay_period_id if shift is not None else None
        return await self._sync_each([previous_period_id, current_period_id])

    async def on_shift_deleted(
        self,
        shift_id: UUID,
        previous_period_id: UUID | None,
    ) -> list[PayPeriodResult]:
        """Resync the period a deleted shift belonged to.

        A period left with no shifts and no extras is deleted instead, and
        its stored contribution is taken back out of year-to-date.
        """
        if previous_period_id is None:
            return []

        period = await self.store.get_pay_period(previous_period_id)
        if period is None:
            return []

        shifts = await self.store.list_shifts_for_period(previous_period_id)
        extras = await self.store.list_period_extras(previous_period_id)
        if not shifts and not extras:
            if PayPeriodStateMachine.are_results_immutable(period.status):
                logger.warning(
                    "Shift %s removed from %s pay period %s; keeping the period",
                    shift_id,
                    period.status.value,
                    previous_period_id,
                )
                return []
            tax_year = self._tax_year(period, None)
            stored_ytd = await self.store.get_year_to_date(period.owner_id, tax_year)
            remaining = self._without_period(stored_ytd, period.totals) if stored_ytd else None
            await self.store.delete_pay_period(previous_period_id, remaining)
            logger.info("Deleted empty pay period %s after removing shift %s", previous_period_id, shift_id)
            return []

        return await self._sync_each([previous_period_id])

    async def on_break_periods_changed(self, shift_id: UUID) -> list[PayPeriodResult]:
        shift = await self.store.get_shift(shift_id)
        if shift is None:
            return []
        return await self._sync_each([shift.pay_period_id])

    async def on_extras_changed(self, period_id: UUID) -> list[PayPeriodResult]:
        return await self._sync_each([period_id])

    async def _sync_each(self, period_ids: list[UUID | None]) -> list[PayPeriodResult]:
        """Sync each distinct period once, skipping locked or missing ones."""
        results: list[PayPeriodResult] = []
        seen: set[UUID] = set()
        for period_id in period_ids:
            if period_id is None or period_id in seen:
                continue
            seen.add(period_id)
            try:
                results.append(await self.sync(period_id))
            except PeriodLockedError as exc:
                logger.warning("%s; leaving stored totals unchanged", exc)
            except PeriodNotFoundError:
                logger.warning("Pay period %s no longer exists; skipping sync", period_id)
        return results

    # === Validation & lifecycle ===

    async def validate_totals(self, period_id: UUID, tax_year: str | None = None) -> ValidationReport:
        """Compare stored aggregates with a fresh recompute. Never persists."""
        period = await self._get_period(period_id)
        result = await self._recompute(period, self._tax_year(period, tax_year))

        expected = result.totals
        actual = period.totals
        differences = {
            name: getattr(actual, name) - getattr(expected, name)
            for name in PeriodTotals.FIELDS
            if getattr(actual, name) != getattr(expected, name)
        }
        return ValidationReport(
            period_id=period_id,
            expected=expected,
            actual=actual,
            differences=differences,
        )

    async def process(self, period_id: UUID, tax_year: str | None = None) -> PayPeriodResult:
        """Sync a period, then transition it from open to processing.

        Raises:
            InvalidTransitionError: If the period is not open or has no pay
        """
        period = await self._get_period(period_id)
        PayPeriodStateMachine.validate_transition(period.status, PayPeriodStatus.PROCESSING)

        result = await self.sync(period_id, tax_year)

        synced = replace(period, totals=result.totals)
        errors = PayPeriodStateMachine.validate_period_for_transition(synced, PayPeriodStatus.PROCESSING)
        if errors:
            raise InvalidTransitionError(
                period.status.value, PayPeriodStatus.PROCESSING.value, "; ".join(errors)
            )

        await self.store.update_period_status(period_id, PayPeriodStatus.PROCESSING)
        logger.info("Pay period %s moved to processing", period_id)
        return result

    async def transition(self, period_id: UUID, to_status: PayPeriodStatus) -> None:
        """Move a period to ``to_status`` after validating the transition."""
        period = await self._get_period(period_id)
        errors = PayPeriodStateMachine.validate_period_for_transition(period, to_status)
        if errors:
            raise InvalidTransitionError(period.status.value, PayPeriodStatus(to_status).value, "; ".join(errors))
        await self.store.update_period_status(period_id, PayPeriodStatus(to_status))
        if PayPeriodStateMachine.is_reopen(period.status, to_status):
            logger.info("Reopened pay period %s; results can be recalculated again", period_id)

    async def join(self) -> None:
        """Wait for queued syncs to finish."""
        if self._queue is not None:
            await self._queue.join()

    # === Helpers ===

    async def _get_period(self, period_id: UUID) -> PayPeriod:
        period = await self.store.get_pay_period(period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    @staticmethod
    def _tax_year(period: PayPeriod, tax_year: str | None) -> str:
        if tax_year:
            return normalize_tax_year(tax_year)
        return tax_year_for(period.start_date)

    @staticmethod
    def _without_period(year_to_date: YearToDateTax, totals: PeriodTotals) -> YearToDateTax:
        """Year-to-date figures with this period's stored contribution removed."""
        return replace(
            year_to_date,
            gross_income=year_to_date.gross_income - totals.taxable_gross,
            payg_withholding=year_to_date.payg_withholding - totals.payg_withholding,
            medicare_levy=year_to_date.medicare_levy - totals.medicare_levy,
            study_loan_repayment=year_to_date.study_loan_repayment - totals.study_loan_repayment,
            total_withholdings=year_to_date.total_withholdings - totals.total_withholdings,
        )
