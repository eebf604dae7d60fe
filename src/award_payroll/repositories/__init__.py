"""Database-backed implementations of the storage protocols."""

from award_payroll.repositories.sqlalchemy_store import (
    SqlAlchemyPayrollStore,
    SqlAlchemyRateTableSource,
)

__all__ = ["SqlAlchemyPayrollStore", "SqlAlchemyRateTableSource"]
