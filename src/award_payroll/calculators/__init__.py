"""Award payroll calculation engine."""

from award_payroll.calculators.engine import PayrollEngine
from award_payroll.calculators.line_builder import SegmentBuilder
from award_payroll.calculators.rate_resolver import RateResolver, extend_for_minimum_shift
from award_payroll.calculators.shift_decomposer import decompose
from award_payroll.calculators.tax_calculator import TaxCalculator, calculate_period_tax

__all__ = [
    "PayrollEngine",
    "SegmentBuilder",
    "RateResolver",
    "extend_for_minimum_shift",
    "decompose",
    "TaxCalculator",
    "calculate_period_tax",
]
