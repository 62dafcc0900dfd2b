"""Sick leave and occupational disability pay."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from nomina_engine.calculators.configuration import YearlyConfiguration
from nomina_engine.calculators.money import ZERO, daily_amount, round_pesos
from nomina_engine.calculators.types import IncapacityPolicy, IncapacitySubtype
from nomina_engine.errors import ValidationError

TWO_THIRDS = Decimal(2) / Decimal(3)
EMPLOYER_FULL_PAY_DAYS = 2


@dataclass(frozen=True)
class IncapacityCalculation:
    """Incapacity value plus the per-payer split used as calculation trace."""

    value: Decimal
    daily_salary: Decimal
    days: int
    subtype: IncapacitySubtype
    policy: IncapacityPolicy
    full_pay_days: int
    full_pay_value: Decimal
    reduced_days: int
    reduced_daily_value: Decimal
    floor_applied: bool
    payer: str

    def to_trace(self) -> dict[str, Any]:
        return {
            "method": "incapacity",
            "subtype": self.subtype.value,
            "policy": self.policy.value,
            "daily_salary": str(self.daily_salary),
            "days": self.days,
            "full_pay_days": self.full_pay_days,
            "full_pay_value": str(self.full_pay_value),
            "reduced_days": self.reduced_days,
            "reduced_daily_value": str(self.reduced_daily_value),
            "floor_applied": self.floor_applied,
            "payer": self.payer,
            "value": str(self.value),
        }


def calculate_incapacity(
    monthly_salary: Decimal,
    days: int,
    subtype: IncapacitySubtype | str,
    policy: IncapacityPolicy | str,
    minimum_wage: Decimal,
) -> IncapacityCalculation:
    """Pure function of (salary, days, subtype, policy, minimum wage).

    Occupational: 100% of daily salary from day 1 (ARL), any policy.
    General, standard policy: 2 days at 100% (employer), the rest at
    ``max(daily * 2/3, minimum_wage / 30)`` (EPS).
    General, from-day-1 policy: every day at ``max(daily * 2/3, minimum_wage / 30)``.
    """
    subtype = IncapacitySubtype(subtype)
    policy = IncapacityPolicy(policy)
    if monthly_salary <= 0:
        raise ValidationError("monthly salary must be positive")
    if days < 0:
        raise ValidationError("incapacity days cannot be negative")

    daily = daily_amount(monthly_salary)

    if subtype == IncapacitySubtype.OCCUPATIONAL:
        value = daily * days
        return IncapacityCalculation(
            value=round_pesos(value),
            daily_salary=daily,
            days=days,
            subtype=subtype,
            policy=policy,
            full_pay_days=days,
            full_pay_value=round_pesos(value),
            reduced_days=0,
            reduced_daily_value=ZERO,
            floor_applied=False,
            payer="arl",
        )

    floor = daily_amount(minimum_wage)
    reduced_daily = max(daily * TWO_THIRDS, floor)
    floor_applied = floor > daily * TWO_THIRDS

    if policy == IncapacityPolicy.STANDARD_2D_100_REST_66:
        full_days = min(days, EMPLOYER_FULL_PAY_DAYS)
    else:
        full_days = 0
    reduced_days = days - full_days

    full_value = daily * full_days
    value = full_value + reduced_daily * reduced_days
    if reduced_days == 0:
        payer = "employer" if full_days else "none"
    else:
        payer = "employer+eps" if full_days else "eps"

    return IncapacityCalculation(
        value=round_pesos(value),
        daily_salary=daily,
        days=days,
        subtype=subtype,
        policy=policy,
        full_pay_days=full_days,
        full_pay_value=round_pesos(full_value),
        reduced_days=reduced_days,
        reduced_daily_value=reduced_daily,
        floor_applied=floor_applied and reduced_days > 0,
        payer=payer,
    )


class IncapacityValueCalculator:
    """Binds the pure function to a yearly configuration."""

    def calculate(
        self,
        monthly_salary: Decimal,
        days: int,
        subtype: IncapacitySubtype | str,
        policy: IncapacityPolicy | str,
        config: YearlyConfiguration,
    ) -> IncapacityCalculation:
        return calculate_incapacity(monthly_salary, days, subtype, policy, config.minimum_wage)
