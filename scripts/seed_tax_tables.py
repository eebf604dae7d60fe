"""Seed script for withholding rate tables.

Run with:
    python scripts/seed_tax_tables.py [TAX_YEAR]

Creates the schema if needed and loads the bundled coefficient, study loan
and medicare tables for a tax year (default: $DEFAULT_TAX_YEAR).
"""

from __future__ import annotations

import asyncio
import sys

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from award_payroll.calculators.tax_tables import (
    default_coefficients,
    default_study_loan_thresholds,
    normalize_tax_year,
)
from award_payroll.calculators.types import MedicareConfig
from award_payroll.config import get_settings
from award_payroll.database import create_schema, dispose_engine, get_session, init_db
from award_payroll.models import TaxCoefficientModel
from award_payroll.repositories import SqlAlchemyRateTableSource


async def seed_tax_tables(session: AsyncSession, tax_year: str) -> None:
    """Load the bundled tables for ``tax_year`` unless rows already exist."""
    result = await session.execute(
        select(func.count()).select_from(TaxCoefficientModel).where(TaxCoefficientModel.tax_year == tax_year)
    )
    if result.scalar_one():
        print(f"Coefficients for {tax_year} already exist, skipping...")
        return

    rows = [row for scale_rows in default_coefficients(tax_year).values() for row in scale_rows]
    await SqlAlchemyRateTableSource(session).replace_tables(
        tax_year,
        rows,
        default_study_loan_thresholds(tax_year),
        MedicareConfig(tax_year=tax_year),
    )
    print(f"Created {len(rows)} coefficient rows for {tax_year}")
    print(f"Created study loan thresholds and medicare config for {tax_year}")


async def main(tax_year: str) -> None:
    """Run seed script."""
    print("Seeding tax tables...")

    engine, _ = init_db()
    await create_schema(engine)

    async with get_session() as session:
        await seed_tax_tables(session, tax_year)

    await dispose_engine()
    print("\nDone! Tax tables seeded successfully.")


if __name__ == "__main__":
    year = sys.argv[1] if len(sys.argv) > 1 else get_settings().default_tax_year
    asyncio.run(main(normalize_tax_year(year)))
