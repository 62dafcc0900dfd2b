"""Colombian payroll calculation and period lifecycle engine."""

__version__ = "1.0.0"
