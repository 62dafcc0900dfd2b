"""Per-employee liquidation pipeline.

Calculation pipeline (stable order per employee):
1) Worked days from the period kind, minus incapacity days
2) Prorated salary and transport allowance
3) Partition novedades into earnings and deductions
4) IBC from salary + constitutive earnings
5) Statutory and novedad deductions (strictly after the IBC)
6) Gross and net pay
7) Employer contributions and provisions on the IBC
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from nomina_engine.calculators.classifier import NovedadClassifier
from nomina_engine.calculators.configuration import YearlyConfiguration
from nomina_engine.calculators.deductions import DeductionCalculator, DeductionRequest
from nomina_engine.calculators.ibc import IncomeBaseCalculator
from nomina_engine.calculators.money import ZERO, prorate, round_pesos
from nomina_engine.calculators.types import (
    CalculationPath,
    EmployeeSnapshot,
    IbcMode,
    NovedadInput,
    PeriodContext,
    PeriodKind,
    PeriodTotals,
    PolicySnapshot,
)
from nomina_engine.errors import CalculationFallback, ValidationError

TRANSPORT_ALLOWANCE_LIMIT = Decimal("2")  # multiples of minimum wage
MAX_MONTH_DAYS = 30


def period_days(period: PeriodContext) -> int:
    """Days paid by a period before any incapacity reduction."""
    if period.kind == PeriodKind.WEEKLY:
        return 7
    if period.kind == PeriodKind.BIWEEKLY:
        return 15
    if period.kind == PeriodKind.CUSTOM:
        if period.custom_worked_days is None:
            raise ValidationError("custom periods require custom_worked_days")
        return period.custom_worked_days

    if _is_full_calendar_month(period.start_date, period.end_date):
        return MAX_MONTH_DAYS
    calendar_days = (period.end_date - period.start_date).days + 1
    return min(calendar_days, MAX_MONTH_DAYS)


def _is_full_calendar_month(start: date, end: date) -> bool:
    if start.day != 1 or (start.year, start.month) != (end.year, end.month):
        return False
    return end.day == calendar.monthrange(end.year, end.month)[1]


@dataclass(frozen=True)
class EmployerContributions:
    health: Decimal
    pension: Decimal
    arl: Decimal
    family_fund: Decimal
    icbf: Decimal
    sena: Decimal

    @property
    def total(self) -> Decimal:
        return self.health + self.pension + self.arl + self.family_fund + self.icbf + self.sena

    def to_dict(self) -> dict[str, str]:
        return {
            "health": str(self.health),
            "pension": str(self.pension),
            "arl": str(self.arl),
            "family_fund": str(self.family_fund),
            "icbf": str(self.icbf),
            "sena": str(self.sena),
            "total": str(self.total),
        }


@dataclass(frozen=True)
class EmployerProvisions:
    severance: Decimal
    severance_interest: Decimal
    service_bonus: Decimal
    vacation: Decimal

    @property
    def total(self) -> Decimal:
        return self.severance + self.severance_interest + self.service_bonus + self.vacation

    def to_dict(self) -> dict[str, str]:
        return {
            "severance": str(self.severance),
            "severance_interest": str(self.severance_interest),
            "service_bonus": str(self.service_bonus),
            "vacation": str(self.vacation),
            "total": str(self.total),
        }


@dataclass
class EmployeeLiquidation:
    """Result of liquidating one employee for one period."""

    employee_id: UUID
    base_salary_used: Decimal = ZERO
    worked_days: int = 0
    prorated_salary: Decimal = ZERO
    transport_allowance: Decimal = ZERO
    ibc: Decimal = ZERO
    health_deduction: Decimal = ZERO
    pension_deduction: Decimal = ZERO
    solidarity_deductions: Decimal = ZERO
    withholding_tax: Decimal = ZERO
    novedad_earnings: Decimal = ZERO
    novedad_deductions: Decimal = ZERO
    gross_pay: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO
    employer_contributions: Decimal = ZERO
    contributions_detail: dict[str, Any] = field(default_factory=dict)
    provisions_detail: dict[str, Any] = field(default_factory=dict)
    breakdown: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    calculation_path: CalculationPath = CalculationPath.PRIMARY
    fallback: CalculationFallback | None = None

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def record_values(self) -> dict[str, Any]:
        """Column values for the payroll record of this employee."""
        return {
            "base_salary_used": self.base_salary_used,
            "worked_days": self.worked_days,
            "prorated_salary": self.prorated_salary,
            "transport_allowance": self.transport_allowance,
            "ibc": self.ibc,
            "health_deduction": self.health_deduction,
            "pension_deduction": self.pension_deduction,
            "solidarity_deductions": self.solidarity_deductions,
            "withholding_tax": self.withholding_tax,
            "novedad_earnings": self.novedad_earnings,
            "novedad_deductions": self.novedad_deductions,
            "gross_pay": self.gross_pay,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
            "employer_contributions": self.employer_contributions,
            "contributions_detail": self.contributions_detail or None,
            "provisions_detail": self.provisions_detail or None,
            "breakdown": self.breakdown or None,
            "status": "calculated" if self.success else "error",
            "validation_errors": list(self.errors) or None,
            "warnings": list(self.warnings) or None,
            "calculation_path": self.calculation_path.value,
        }

    @classmethod
    def failed(
        cls, employee_id: UUID, errors: list[str], base_salary: Decimal = ZERO
    ) -> EmployeeLiquidation:
        return cls(employee_id=employee_id, base_salary_used=base_salary, errors=list(errors))


class LiquidationEngine:
    """Pure per-employee calculation; no I/O.

    Collaborating calculators are injectable so a primary deduction backend
    can be configured once for every employee.
    """

    def __init__(
        self,
        deduction_calculator: DeductionCalculator | None = None,
        classifier: NovedadClassifier | None = None,
    ):
        self.classifier = classifier or NovedadClassifier()
        self.ibc_calculator = IncomeBaseCalculator(self.classifier)
        self.deduction_calculator = deduction_calculator or DeductionCalculator()

    def calculate_employee(
        self,
        employee: EmployeeSnapshot,
        period: PeriodContext,
        novedades: Sequence[NovedadInput],
        config: YearlyConfiguration,
        policy: PolicySnapshot | None = None,
    ) -> EmployeeLiquidation:
        policy = policy or PolicySnapshot()
        base_salary = employee.base_salary

        errors = self._validate_employee(employee, config)
        if errors:
            return EmployeeLiquidation.failed(employee.employee_id, errors, base_salary)

        warnings: list[str] = []
        if not employee.health_insurer:
            warnings.append("Employee has no health insurer (EPS) on file")
        if not employee.pension_fund:
            warnings.append("Employee has no pension fund (AFP) on file")

        # 1) Worked days
        paid_days = period_days(period)
        partition = self.classifier.partition(novedades)
        worked_days = max(paid_days - partition.incapacity_days, 0)

        # 2) Salary and transport allowance
        prorated_salary = prorate(base_salary, worked_days)
        transport_allowance = ZERO
        if base_salary <= config.minimum_wage * TRANSPORT_ALLOWANCE_LIMIT:
            transport_allowance = prorate(config.transport_allowance, worked_days)

        # 3-4) IBC
        ibc_days = paid_days if policy.ibc_mode == IbcMode.FULL_SALARY else worked_days
        salary_component = (
            prorate(base_salary, ibc_days)
            if policy.ibc_mode == IbcMode.FULL_SALARY
            else prorated_salary
        )
        ibc = self.ibc_calculator.calculate_from_totals(
            salary_component, partition.constitutive_total, config, ibc_days
        )

        # 5-6) Deductions and pay
        novedad_earnings = round_pesos(partition.earnings_total)
        gross_pay = prorated_salary + transport_allowance + novedad_earnings
        deductions = self.deduction_calculator.calculate(
            DeductionRequest(
                ibc=ibc.ibc,
                gross_pay=gross_pay,
                base_salary=base_salary,
                config=config,
                worked_days=worked_days,
                transport_allowance=transport_allowance,
                novedad_deductions=[n.value for n in partition.deductions],
            )
        )
        net_pay = gross_pay - deductions.total
        if net_pay < 0:
            warnings.append(f"Net pay is negative ({net_pay})")

        # 7) Employer side
        contributions = self.employer_contributions(ibc.ibc, employee.arl_risk_class, config)
        provisions = self.employer_provisions(ibc.ibc, transport_allowance, config)

        breakdown = {
            "period_days": paid_days,
            "incapacity_days": partition.incapacity_days,
            "ibc_mode": policy.ibc_mode.value,
            "ibc": ibc.to_trace(),
            "deductions": deductions.to_trace(),
            "novedades": {
                "earnings": [_novedad_trace(n) for n in partition.earnings],
                "deductions": [_novedad_trace(n) for n in partition.deductions],
                "excluded": [_novedad_trace(n) for n in partition.excluded],
            },
            "configuration": {"year": config.year, "version": config.version},
        }

        return EmployeeLiquidation(
            employee_id=employee.employee_id,
            base_salary_used=base_salary,
            worked_days=worked_days,
            prorated_salary=prorated_salary,
            transport_allowance=transport_allowance,
            ibc=ibc.ibc,
            health_deduction=deductions.health,
            pension_deduction=deductions.pension,
            solidarity_deductions=deductions.solidarity_total,
            withholding_tax=deductions.withholding,
            novedad_earnings=novedad_earnings,
            novedad_deductions=deductions.novedad_deductions,
            gross_pay=gross_pay,
            total_deductions=deductions.total,
            net_pay=net_pay,
            employer_contributions=contributions.total,
            contributions_detail=contributions.to_dict(),
            provisions_detail=provisions.to_dict(),
            breakdown=breakdown,
            warnings=warnings,
            calculation_path=deductions.calculation_path,
            fallback=deductions.fallback,
        )

    @staticmethod
    def employer_contributions(
        ibc: Decimal, risk_class: str, config: YearlyConfiguration
    ) -> EmployerContributions:
        rates = config.contributions
        return EmployerContributions(
            health=round_pesos(ibc * rates.employer_health),
            pension=round_pesos(ibc * rates.employer_pension),
            arl=round_pesos(ibc * config.arl_rate(risk_class)),
            family_fund=round_pesos(ibc * rates.family_fund),
            icbf=round_pesos(ibc * rates.icbf),
            sena=round_pesos(ibc * rates.sena),
        )

    @staticmethod
    def employer_provisions(
        ibc: Decimal, transport_allowance: Decimal, config: YearlyConfiguration
    ) -> EmployerProvisions:
        rates = config.provisions
        benefit_base = ibc + transport_allowance
        return EmployerProvisions(
            severance=round_pesos(benefit_base * rates.severance),
            severance_interest=round_pesos(benefit_base * rates.severance_interest),
            service_bonus=round_pesos(benefit_base * rates.service_bonus),
            vacation=round_pesos(ibc * rates.vacation),
        )

    @staticmethod
    def _validate_employee(employee: EmployeeSnapshot, config: YearlyConfiguration) -> list[str]:
        errors: list[str] = []
        if employee.base_salary <= 0:
            errors.append(f"Base salary must be positive (got {employee.base_salary})")
        if employee.arl_risk_class not in config.arl_rates:
            errors.append(f"Unknown ARL risk class '{employee.arl_risk_class}'")
        return errors


def aggregate_totals(records: Sequence[Any]) -> PeriodTotals:
    """Sum gross, deductions, net and employer contributions over records.

    Works with payroll records and employee liquidations alike; records in
    error are counted out.
    """
    totals = PeriodTotals()
    for record in records:
        if getattr(record, "status", "calculated") == "error":
            continue
        if isinstance(record, EmployeeLiquidation) and not record.success:
            continue
        totals.gross_pay += Decimal(record.gross_pay)
        totals.total_deductions += Decimal(record.total_deductions)
        totals.net_pay += Decimal(record.net_pay)
        totals.employer_contributions += Decimal(record.employer_contributions)
        totals.employee_count += 1
    return totals


def _novedad_trace(novedad: NovedadInput) -> dict[str, Any]:
    return {
        "novedad_id": str(novedad.novedad_id) if novedad.novedad_id else None,
        "kind": novedad.kind,
        "subtype": novedad.subtype,
        "value": str(novedad.value),
    }
