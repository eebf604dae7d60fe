"""Integration test fixtures with a real database.

Runs against an in-memory sqlite database through aiosqlite; the schema is
created fresh for every test.
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from award_payroll.calculators.tax_tables import default_study_loan_thresholds
from award_payroll.calculators.types import MedicareConfig
from award_payroll.models import Base
from award_payroll.repositories import SqlAlchemyPayrollStore, SqlAlchemyRateTableSource

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the schema in place."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for integration tests."""
    async with AsyncSession(test_engine, expire_on_commit=False, autoflush=False) as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def db_store(db_session) -> SqlAlchemyPayrollStore:
    return SqlAlchemyPayrollStore(db_session)


@pytest_asyncio.fixture
async def db_rate_source(db_session, seeded_rows) -> SqlAlchemyRateTableSource:
    """Rate table source seeded with the bundled 2024-25 tables."""
    source = SqlAlchemyRateTableSource(db_session)
    await source.replace_tables(
        "2024-25",
        seeded_rows,
        default_study_loan_thresholds("2024-25"),
        MedicareConfig(tax_year="2024-25"),
    )
    return source
