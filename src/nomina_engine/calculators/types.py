"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from nomina_engine.models import Employee, Novedad, PayrollPeriod


class PeriodKind(str, Enum):
    """Payroll period frequency."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class PeriodState(str, Enum):
    """Payroll period lifecycle states."""

    DRAFT = "draft"
    CLOSED = "closed"
    REOPENED = "reopened"
    CANCELLED = "cancelled"


class IbcMode(str, Enum):
    """How the salary component of the IBC is prorated."""

    PROPORTIONAL = "proportional"
    FULL_SALARY = "full_salary"


class IncapacityPolicy(str, Enum):
    """Company policy for general (non-occupational) sick leave."""

    STANDARD_2D_100_REST_66 = "standard_2d_100_rest_66"
    FROM_DAY1_66_WITH_FLOOR = "from_day1_66_with_floor"


class IncapacitySubtype(str, Enum):
    GENERAL = "general"
    OCCUPATIONAL = "occupational"


class OvertimeSubtype(str, Enum):
    DAYTIME = "daytime"
    NIGHT = "night"
    HOLIDAY_DAYTIME = "holiday_daytime"
    HOLIDAY_NIGHT = "holiday_night"


class SundaySurchargeSubtype(str, Enum):
    DAYTIME = "daytime"
    NIGHT = "night"


class RiskClass(str, Enum):
    """ARL occupational risk classes."""

    I = "I"  # noqa: E741
    II = "II"
    III = "III"
    IV = "IV"
    V = "V"


class NovedadKind(str, Enum):
    """Closed set of payroll event kinds."""

    # Earnings, constitutive of salary by default
    OVERTIME = "overtime"
    NIGHT_SURCHARGE = "night_surcharge"
    SUNDAY_SURCHARGE = "sunday_surcharge"
    BONUS = "bonus"
    COMMISSION = "commission"
    VACATION = "vacation"
    PAID_LEAVE = "paid_leave"

    # Earnings, non-constitutive by default
    INCAPACITY = "incapacity"
    TRANSPORT_SUBSIDY_ADJ = "transport_subsidy_adj"
    NON_SALARY_BONUS = "non_salary_bonus"

    # Deductions
    UNPAID_LEAVE = "unpaid_leave"
    ABSENCE = "absence"
    GARNISHMENT = "garnishment"
    LOAN = "loan"
    FINE = "fine"
    VOLUNTARY_DEDUCTION = "voluntary_deduction"
    WITHHOLDING_ADJUSTMENT = "withholding_adjustment"
    SOLIDARITY_FUND = "solidarity_fund"

    @classmethod
    def parse(cls, raw: str | NovedadKind | None) -> NovedadKind | None:
        """Return the kind for a stored value, or None if unrecognized."""
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


# Kinds that carry a subtype, and the subtypes allowed for each
SUBTYPES_BY_KIND: dict[NovedadKind, type[Enum]] = {
    NovedadKind.INCAPACITY: IncapacitySubtype,
    NovedadKind.OVERTIME: OvertimeSubtype,
    NovedadKind.SUNDAY_SURCHARGE: SundaySurchargeSubtype,
}


class NovedadSource(str, Enum):
    MANUAL = "manual"
    SYSTEM = "system"
    CORRECTIVE_ADJUSTMENT = "corrective_adjustment"
    COMPENSATORY_ADJUSTMENT = "compensatory_adjustment"


class CalculationPath(str, Enum):
    """Which deduction implementation produced a result."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class AdjustmentType(str, Enum):
    CORRECTIVE = "corrective"
    COMPENSATORY = "compensatory"


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Employee fields the calculators read."""

    employee_id: UUID
    base_salary: Decimal
    arl_risk_class: str = "I"
    health_insurer: str | None = None
    pension_fund: str | None = None
    status: str = "active"

    @classmethod
    def from_model(cls, employee: Employee) -> EmployeeSnapshot:
        return cls(
            employee_id=employee.employee_id,
            base_salary=Decimal(employee.base_salary),
            arl_risk_class=employee.arl_risk_class,
            health_insurer=employee.health_insurer,
            pension_fund=employee.pension_fund,
            status=employee.status,
        )


@dataclass(frozen=True)
class PeriodContext:
    """Period fields the calculators read."""

    period_id: UUID | None
    start_date: date
    end_date: date
    kind: PeriodKind = PeriodKind.MONTHLY
    custom_worked_days: int | None = None

    @classmethod
    def from_model(cls, period: PayrollPeriod) -> PeriodContext:
        return cls(
            period_id=period.period_id,
            start_date=period.start_date,
            end_date=period.end_date,
            kind=PeriodKind(period.period_kind),
            custom_worked_days=period.custom_worked_days,
        )


def covered_days(
    days: int | None, start_date: date | None, end_date: date | None
) -> int | None:
    """Explicit day count, else the inclusive length of the date range."""
    if days is not None:
        return days
    if start_date and end_date:
        return (end_date - start_date).days + 1
    return None


@dataclass(frozen=True)
class NovedadInput:
    """A novedad as seen by the calculators.

    ``kind`` stays a raw string so unrecognized stored kinds reach the
    classifier instead of failing at load time.
    """

    kind: str
    value: Decimal
    subtype: str | None = None
    days: int | None = None
    hours: Decimal | None = None
    constitutive: bool | None = None
    novedad_id: UUID | None = None

    @classmethod
    def from_model(cls, novedad: Novedad) -> NovedadInput:
        return cls(
            kind=novedad.kind,
            value=Decimal(novedad.value),
            subtype=novedad.subtype,
            days=covered_days(novedad.days, novedad.start_date, novedad.end_date),
            hours=Decimal(novedad.hours) if novedad.hours is not None else None,
            constitutive=novedad.constitutive,
            novedad_id=novedad.novedad_id,
        )


@dataclass(frozen=True)
class PolicySnapshot:
    """Company payroll policy as read by the calculators."""

    company_id: UUID | None = None
    ibc_mode: IbcMode = IbcMode.PROPORTIONAL
    incapacity_policy: IncapacityPolicy = IncapacityPolicy.STANDARD_2D_100_REST_66


@dataclass
class PeriodTotals:
    """Aggregate totals of a period, summed from its records."""

    gross_pay: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    net_pay: Decimal = Decimal("0")
    employer_contributions: Decimal = Decimal("0")
    employee_count: int = 0

    def as_values(self) -> dict[str, Any]:
        return {
            "gross_pay": self.gross_pay,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
            "employer_contributions": self.employer_contributions,
            "employee_count": self.employee_count,
        }

