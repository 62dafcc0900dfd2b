"""Payroll calculation engine."""

from nomina_engine.calculators.classifier import NovedadClassifier, NovedadSide
from nomina_engine.calculators.configuration import (
    ConfigurationCache,
    YearlyConfiguration,
    default_configuration,
)
from nomina_engine.calculators.deductions import (
    DeductionBackend,
    DeductionBreakdown,
    DeductionCalculator,
    DeductionRequest,
)
from nomina_engine.calculators.engine import EmployeeLiquidation, LiquidationEngine
from nomina_engine.calculators.ibc import IncomeBaseCalculator, IbcResult
from nomina_engine.calculators.incapacity import (
    IncapacityValueCalculator,
    calculate_incapacity,
)
from nomina_engine.calculators.novedad_values import NovedadValueCalculator

__all__ = [
    "ConfigurationCache",
    "DeductionBackend",
    "DeductionBreakdown",
    "DeductionCalculator",
    "DeductionRequest",
    "EmployeeLiquidation",
    "IbcResult",
    "IncapacityValueCalculator",
    "IncomeBaseCalculator",
    "LiquidationEngine",
    "NovedadClassifier",
    "NovedadSide",
    "NovedadValueCalculator",
    "YearlyConfiguration",
    "calculate_incapacity",
    "default_configuration",
]
