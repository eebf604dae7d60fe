"""Award payroll services."""

from award_payroll.services.pay_period_synchronizer import PayPeriodSynchronizer
from award_payroll.services.state_machine import PayPeriodStateMachine
from award_payroll.services.store import PayrollStore, RateTableSource
from award_payroll.services.sync_queue import PeriodSyncQueue
from award_payroll.services.tax_coefficient_store import TaxCoefficientStore

__all__ = [
    "PayPeriodSynchronizer",
    "PayPeriodStateMachine",
    "PayrollStore",
    "RateTableSource",
    "PeriodSyncQueue",
    "TaxCoefficientStore",
]
