"""Statutory employee deductions.

Order of computation (fixed):
1) Health and pension on the IBC
2) Solidarity pension fund by minimum-wage bracket
3) Additional solidarity (>= 16x) and subsistence (>= 20x) flat rates
4) Withholding tax (Art. 383 E.T.) on the cleaned base, in UVT
5) Novedad-sourced deductions, verbatim
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Protocol, Sequence

from nomina_engine.calculators.configuration import YearlyConfiguration
from nomina_engine.calculators.money import DAYS_PER_MONTH, ZERO, round_pesos, total
from nomina_engine.calculators.types import CalculationPath
from nomina_engine.errors import CalculationFallback, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeductionRequest:
    """Inputs for one employee in one period."""

    ibc: Decimal
    gross_pay: Decimal
    base_salary: Decimal
    config: YearlyConfiguration
    worked_days: int = 30
    transport_allowance: Decimal = ZERO
    novedad_deductions: Sequence[Decimal] = ()

    def __post_init__(self) -> None:
        errors = []
        if self.ibc < 0:
            errors.append("ibc cannot be negative")
        if self.gross_pay < 0:
            errors.append("gross pay cannot be negative")
        if self.base_salary < 0:
            errors.append("base salary cannot be negative")
        if self.worked_days < 0:
            errors.append("worked days cannot be negative")
        if any(d < 0 for d in self.novedad_deductions):
            errors.append("novedad deductions cannot be negative")
        if errors:
            raise ValidationError(errors)


@dataclass
class DeductionBreakdown:
    """Deduction amounts in pesos, plus the values needed to audit them."""

    health: Decimal
    pension: Decimal
    solidarity_fund: Decimal
    additional_solidarity: Decimal
    subsistence: Decimal
    withholding: Decimal
    novedad_deductions: Decimal
    solidarity_rate: Decimal = ZERO
    salary_multiple: Decimal = ZERO
    withholding_base: Decimal = ZERO
    withholding_base_uvt: Decimal = ZERO
    withholding_rate: Decimal = ZERO
    calculation_path: CalculationPath = CalculationPath.PRIMARY
    fallback: CalculationFallback | None = field(default=None, compare=False)

    @property
    def solidarity_total(self) -> Decimal:
        return self.solidarity_fund + self.additional_solidarity + self.subsistence

    @property
    def statutory_total(self) -> Decimal:
        return self.health + self.pension + self.solidarity_total + self.withholding

    @property
    def total(self) -> Decimal:
        return self.statutory_total + self.novedad_deductions

    def to_trace(self) -> dict[str, Any]:
        return {
            "health": str(self.health),
            "pension": str(self.pension),
            "solidarity_fund": str(self.solidarity_fund),
            "solidarity_rate": str(self.solidarity_rate),
            "salary_multiple": str(self.salary_multiple),
            "additional_solidarity": str(self.additional_solidarity),
            "subsistence": str(self.subsistence),
            "withholding": str(self.withholding),
            "withholding_base": str(self.withholding_base),
            "withholding_base_uvt": str(self.withholding_base_uvt),
            "withholding_rate": str(self.withholding_rate),
            "novedad_deductions": str(self.novedad_deductions),
            "total": str(self.total),
            "calculation_path": self.calculation_path.value,
            "fallback": self.fallback.message if self.fallback else None,
        }


class DeductionBackend(Protocol):
    """Anything able to compute a full deduction breakdown."""

    def calculate(self, request: DeductionRequest) -> DeductionBreakdown: ...


class LocalDeductionBackend:
    """Authoritative in-process implementation of the deduction rules."""

    def calculate(self, request: DeductionRequest) -> DeductionBreakdown:
        config = request.config
        rates = config.contributions

        health = round_pesos(request.ibc * rates.employee_health)
        pension = round_pesos(request.ibc * rates.employee_pension)

        multiple = request.base_salary / config.minimum_wage
        days_factor = Decimal(request.worked_days) / DAYS_PER_MONTH

        bracket = config.solidarity_bracket_for(multiple)
        solidarity_rate = bracket.rate if bracket else ZERO
        solidarity_fund = round_pesos(request.base_salary * solidarity_rate * days_factor)

        additional = ZERO
        if multiple >= config.additional_solidarity_threshold:
            additional = round_pesos(
                request.base_salary * config.additional_solidarity_rate * days_factor
            )
        subsistence = ZERO
        if multiple >= config.subsistence_threshold:
            subsistence = round_pesos(request.base_salary * config.subsistence_rate * days_factor)

        base = request.gross_pay - health - pension - solidarity_fund - additional - subsistence
        base = max(base, ZERO)
        withholding, base_uvt, withholding_rate = self.withholding_tax(base, config)

        return DeductionBreakdown(
            health=health,
            pension=pension,
            solidarity_fund=solidarity_fund,
            additional_solidarity=additional,
            subsistence=subsistence,
            withholding=withholding,
            novedad_deductions=round_pesos(total(request.novedad_deductions)),
            solidarity_rate=solidarity_rate,
            salary_multiple=multiple,
            withholding_base=base,
            withholding_base_uvt=base_uvt,
            withholding_rate=withholding_rate,
        )

    @staticmethod
    def withholding_tax(
        base: Decimal, config: YearlyConfiguration
    ) -> tuple[Decimal, Decimal, Decimal]:
        """Return (withholding, base in UVT, marginal rate) for a cleaned base."""
        base_uvt = base / config.uvt
        bracket = config.withholding_bracket_for(base_uvt)
        if bracket is None or bracket.rate == 0:
            return ZERO, base_uvt, ZERO
        tax_uvt = (base_uvt - bracket.min_uvt) * bracket.rate + bracket.fixed_uvt
        return max(round_pesos(tax_uvt * config.uvt), ZERO), base_uvt, bracket.rate


class DeductionCalculator:
    """Computes employee deductions, tolerating a failing primary backend.

    When a primary backend is configured and raises, the failure is logged,
    the local implementation produces the result, and the result is marked
    with ``calculation_path = fallback`` and the fallback notice. The result
    shape is the same on both paths.
    """

    def __init__(self, primary: DeductionBackend | None = None):
        self.primary = primary
        self.local = LocalDeductionBackend()

    def calculate(self, request: DeductionRequest) -> DeductionBreakdown:
        if self.primary is None:
            return self.local.calculate(request)

        try:
            result = self.primary.calculate(request)
        except Exception as e:
            notice = CalculationFallback("deductions", e)
            logger.warning("%s", notice.message, exc_info=True)
            result = self.local.calculate(request)
            return replace(result, calculation_path=CalculationPath.FALLBACK, fallback=notice)

        return replace(result, calculation_path=CalculationPath.PRIMARY, fallback=None)
