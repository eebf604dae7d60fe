"""Cached, generation-stamped access to withholding rate tables."""

from __future__ import annotations

import logging
from collections import defaultdict

from award_payroll.calculators.errors import ConfigurationError, RateTableUnavailableError
from award_payroll.calculators.tax_tables import (
    default_coefficients,
    default_snapshot,
    default_study_loan_thresholds,
    validate_coefficient_rows,
)
from award_payroll.calculators.types import (
    MedicareConfig,
    RateTableSnapshot,
    StudyLoanThresholdRow,
    TaxCoefficientRow,
    TaxScale,
)
from award_payroll.services.store import RateTableSource

logger = logging.getLogger(__name__)


class TaxCoefficientStore:
    """Read-through cache over a :class:`RateTableSource`.

    Cached tables are served until :meth:`invalidate` or
    :meth:`invalidate_all`; reads never re-check the source. Every
    invalidation advances a generation counter, and snapshots carry the
    generation they were built at so holders can ask :meth:`is_current`.

    When the source is unreachable or has no coefficients for a year, the
    bundled tables are returned with ``is_default=True``. Fallbacks are not
    cached, so the next read tries the source again.
    """

    def __init__(self, source: RateTableSource):
        self.source = source
        self._clock = 0
        self._all_generation = 0
        self._year_generation: dict[str, int] = {}
        self._coefficients: dict[tuple[str, TaxScale | None], tuple[TaxCoefficientRow, ...]] = {}
        self._study_loan: dict[str, tuple[StudyLoanThresholdRow, ...]] = {}
        self._medicare: dict[str, MedicareConfig] = {}
        self._snapshots: dict[str, RateTableSnapshot] = {}

    # === Generations ===

    def generation(self, tax_year: str) -> int:
        """Current generation of a tax year's tables."""
        return max(self._all_generation, self._year_generation.get(tax_year, 0))

    def is_current(self, snapshot: RateTableSnapshot) -> bool:
        """False once the snapshot's year has been invalidated since it was built."""
        return snapshot.generation == self.generation(snapshot.tax_year)

    def invalidate(self, tax_year: str) -> None:
        """Drop everything cached for one tax year."""
        self._clock += 1
        self._year_generation[tax_year] = self._clock
        for key in [k for k in self._coefficients if k[0] == tax_year]:
            del self._coefficients[key]
        self._study_loan.pop(tax_year, None)
        self._medicare.pop(tax_year, None)
        self._snapshots.pop(tax_year, None)
        logger.debug("Invalidated rate tables for %s (generation %d)", tax_year, self._clock)

    def invalidate_all(self) -> None:
        self._clock += 1
        self._all_generation = self._clock
        self._coefficients.clear()
        self._study_loan.clear()
        self._medicare.clear()
        self._snapshots.clear()
        logger.debug("Invalidated all rate tables (generation %d)", self._clock)

    # === Reads ===

    async def coefficients(
        self, tax_year: str, scale: TaxScale | None = None
    ) -> tuple[TaxCoefficientRow, ...]:
        """Coefficient rows for a year (and scale), sorted by lower bound."""
        key = (tax_year, scale)
        cached = self._coefficients.get(key)
        if cached is not None:
            return cached

        generation = self.generation(tax_year)
        try:
            rows = tuple(
                sorted(
                    await self.source.list_coefficients(tax_year, scale),
                    key=lambda r: (r.scale.value, r.earnings_from),
                )
            )
        except RateTableUnavailableError:
            logger.warning("Rate tables unavailable for %s; using bundled coefficients", tax_year, exc_info=True)
            return self._bundled_coefficients(tax_year, scale)

        if not rows:
            logger.warning("No coefficients stored for %s %s; using bundled coefficients", tax_year, scale)
            return self._bundled_coefficients(tax_year, scale)

        if self.generation(tax_year) == generation:
            self._coefficients[key] = rows
        return rows

    async def study_loan_thresholds(self, tax_year: str) -> tuple[StudyLoanThresholdRow, ...]:
        cached = self._study_loan.get(tax_year)
        if cached is not None:
            return cached

        generation = self.generation(tax_year)
        try:
            rows = tuple(
                sorted(
                    await self.source.list_study_loan_thresholds(tax_year),
                    key=lambda r: r.income_from,
                )
            )
        except RateTableUnavailableError:
            logger.warning("Study loan thresholds unavailable for %s; using bundled table", tax_year, exc_info=True)
            return default_study_loan_thresholds(tax_year)

        if not rows:
            logger.warning("No study loan thresholds stored for %s; using bundled table", tax_year)
            return default_study_loan_thresholds(tax_year)

        if self.generation(tax_year) == generation:
            self._study_loan[tax_year] = rows
        return rows

    async def medicare_config(self, tax_year: str) -> MedicareConfig:
        cached = self._medicare.get(tax_year)
        if cached is not None:
            return cached

        generation = self.generation(tax_year)
        try:
            config = await self.source.medicare_config(tax_year)
        except RateTableUnavailableError:
            logger.warning("Medicare config unavailable for %s; using defaults", tax_year, exc_info=True)
            return MedicareConfig(tax_year=tax_year)

        if config is None:
            logger.warning("No medicare config stored for %s; using defaults", tax_year)
            return MedicareConfig(tax_year=tax_year)

        if self.generation(tax_year) == generation:
            self._medicare[tax_year] = config
        return config

    async def snapshot(self, tax_year: str) -> RateTableSnapshot:
        """Immutable view of every table for a tax year.

        Returns the bundled tables, flagged ``is_default``, when the source
        is down or holds no coefficients for the year.
        """
        cached = self._snapshots.get(tax_year)
        if cached is not None:
            logger.debug("Rate table snapshot cache hit for %s", tax_year)
            return cached

        logger.debug("Rate table snapshot cache miss for %s", tax_year)
        generation = self.generation(tax_year)
        try:
            rows = await self.source.list_coefficients(tax_year)
            loan_rows = await self.source.list_study_loan_thresholds(tax_year)
            medicare = await self.source.medicare_config(tax_year)
        except RateTableUnavailableError:
            logger.warning(
                "Rate tables unavailable for %s; falling back to bundled tables",
                tax_year,
                exc_info=True,
            )
            return default_snapshot(tax_year, generation)

        if not rows:
            logger.warning("No coefficients stored for %s; falling back to bundled tables", tax_year)
            return default_snapshot(tax_year, generation)

        try:
            validate_coefficient_rows(rows)
        except ConfigurationError as exc:
            logger.warning("Coefficient tables for %s are inconsistent: %s", tax_year, exc)

        grouped: dict[TaxScale, list[TaxCoefficientRow]] = defaultdict(list)
        for row in rows:
            grouped[row.scale].append(row)

        if not loan_rows:
            logger.warning("No study loan thresholds stored for %s; using bundled table", tax_year)
            loan_rows = default_study_loan_thresholds(tax_year)

        snapshot = RateTableSnapshot(
            tax_year=tax_year,
            coefficients={
                scale: tuple(sorted(group, key=lambda r: r.earnings_from))
                for scale, group in grouped.items()
            },
            study_loan_thresholds=tuple(sorted(loan_rows, key=lambda r: r.income_from)),
            medicare=medicare or MedicareConfig(tax_year=tax_year),
            generation=generation,
        )

        if self.generation(tax_year) == generation:
            self._snapshots[tax_year] = snapshot
        return snapshot

    @staticmethod
    def _bundled_coefficients(tax_year: str, scale: TaxScale | None) -> tuple[TaxCoefficientRow, ...]:
        tables = default_coefficients(tax_year)
        if scale is not None:
            return tables.get(scale, ())
        return tuple(row for rows in tables.values() for row in rows)
