"""Award payroll: shift pay decomposition and period tax withholding."""

__version__ = "0.1.0"
