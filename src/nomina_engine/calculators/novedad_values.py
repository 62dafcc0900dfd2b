"""System-computed values for novedades that derive from salary and quantities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from nomina_engine.calculators.configuration import YearlyConfiguration
from nomina_engine.calculators.incapacity import calculate_incapacity
from nomina_engine.calculators.money import daily_amount, round_pesos
from nomina_engine.calculators.types import (
    IncapacityPolicy,
    IncapacitySubtype,
    NovedadKind,
    OvertimeSubtype,
    SundaySurchargeSubtype,
)
from nomina_engine.errors import ValidationError

# Ley 2101 de 2021: gradual reduction of the maximum working week
WEEKLY_HOURS_SCHEDULE: tuple[tuple[date, int], ...] = (
    (date(2026, 7, 15), 42),
    (date(2025, 7, 15), 44),
    (date(2024, 7, 15), 46),
    (date(2023, 7, 15), 47),
)
LEGACY_WEEKLY_HOURS = 48
WORKING_DAYS_PER_WEEK = 6

# Surcharges use a fixed monthly divisor from this date on
FIXED_DIVISOR_FROM = date(2025, 7, 1)
FIXED_MONTHLY_DIVISOR = Decimal("220")

NIGHT_SURCHARGE_RATE = Decimal("0.35")

# Ley 2466 de 2025: sunday and holiday surcharge increases
SUNDAY_SURCHARGE_SCHEDULE: tuple[tuple[date, Decimal], ...] = (
    (date(2027, 7, 1), Decimal("1.00")),
    (date(2026, 7, 1), Decimal("0.90")),
    (date(2025, 7, 1), Decimal("0.80")),
)
LEGACY_SUNDAY_SURCHARGE = Decimal("0.75")

OVERTIME_FACTORS: dict[OvertimeSubtype, Decimal] = {
    OvertimeSubtype.DAYTIME: Decimal("1.25"),
    OvertimeSubtype.NIGHT: Decimal("1.75"),
    OvertimeSubtype.HOLIDAY_DAYTIME: Decimal("2.00"),
    OvertimeSubtype.HOLIDAY_NIGHT: Decimal("2.50"),
}

MONTHLY_HOURS_BY_WEEK: dict[int, Decimal] = {
    48: Decimal("240"),
    47: Decimal("235"),
    46: Decimal("230"),
    44: Decimal("220"),
    42: Decimal("210"),
}


def legal_weekly_hours(on: date) -> int:
    for effective, hours in WEEKLY_HOURS_SCHEDULE:
        if on >= effective:
            return hours
    return LEGACY_WEEKLY_HOURS


def legal_daily_hours(on: date) -> Decimal:
    return Decimal(legal_weekly_hours(on)) / WORKING_DAYS_PER_WEEK


def surcharge_divisor(on: date) -> Decimal:
    """Monthly hours used to turn a salary into an hourly surcharge base."""
    if on >= FIXED_DIVISOR_FROM:
        return FIXED_MONTHLY_DIVISOR
    return MONTHLY_HOURS_BY_WEEK[legal_weekly_hours(on)]


def sunday_surcharge_rate(on: date) -> Decimal:
    for effective, rate in SUNDAY_SURCHARGE_SCHEDULE:
        if on >= effective:
            return rate
    return LEGACY_SUNDAY_SURCHARGE


@dataclass(frozen=True)
class NovedadValue:
    value: Decimal
    trace: dict[str, Any]


class NovedadValueCalculator:
    """Computes values for overtime, surcharges, leave, absences and incapacity.

    Kinds that are plain amounts (bonus, loan, garnishment, ...) have no
    formula and must be supplied with an explicit value.
    """

    COMPUTED_KINDS = frozenset(
        {
            NovedadKind.OVERTIME,
            NovedadKind.NIGHT_SURCHARGE,
            NovedadKind.SUNDAY_SURCHARGE,
            NovedadKind.VACATION,
            NovedadKind.PAID_LEAVE,
            NovedadKind.UNPAID_LEAVE,
            NovedadKind.ABSENCE,
            NovedadKind.INCAPACITY,
        }
    )

    def can_compute(self, kind: NovedadKind) -> bool:
        return kind in self.COMPUTED_KINDS

    def calculate(
        self,
        kind: NovedadKind,
        monthly_salary: Decimal,
        config: YearlyConfiguration,
        on: date,
        subtype: str | None = None,
        days: int | None = None,
        hours: Decimal | None = None,
        incapacity_policy: IncapacityPolicy = IncapacityPolicy.STANDARD_2D_100_REST_66,
    ) -> NovedadValue:
        if monthly_salary <= 0:
            raise ValidationError("monthly salary must be positive to compute a novedad value")
        if not self.can_compute(kind):
            raise ValidationError(f"Novedad kind '{kind.value}' requires an explicit value")

        if kind == NovedadKind.OVERTIME:
            return self._overtime(monthly_salary, on, subtype, _require_hours(kind, hours))
        if kind == NovedadKind.NIGHT_SURCHARGE:
            return self._surcharge(
                kind, monthly_salary, on, NIGHT_SURCHARGE_RATE, _require_hours(kind, hours)
            )
        if kind == NovedadKind.SUNDAY_SURCHARGE:
            rate = sunday_surcharge_rate(on)
            if SundaySurchargeSubtype(subtype or "daytime") == SundaySurchargeSubtype.NIGHT:
                rate += NIGHT_SURCHARGE_RATE
            return self._surcharge(kind, monthly_salary, on, rate, _require_hours(kind, hours))
        if kind == NovedadKind.INCAPACITY:
            calc = calculate_incapacity(
                monthly_salary,
                _require_days(kind, days),
                subtype or IncapacitySubtype.GENERAL,
                incapacity_policy,
                config.minimum_wage,
            )
            return NovedadValue(calc.value, calc.to_trace())

        # vacation, paid leave, unpaid leave, absence
        days_value = _require_days(kind, days)
        daily = daily_amount(monthly_salary)
        value = round_pesos(daily * days_value)
        return NovedadValue(
            value,
            {
                "method": "daily_salary",
                "kind": kind.value,
                "daily_salary": str(daily),
                "days": days_value,
                "value": str(value),
            },
        )

    def _overtime(
        self, monthly_salary: Decimal, on: date, subtype: str | None, hours: Decimal
    ) -> NovedadValue:
        overtime_type = OvertimeSubtype(subtype or "daytime")
        hourly = daily_amount(monthly_salary) / legal_daily_hours(on)
        factor = OVERTIME_FACTORS[overtime_type]
        value = round_pesos(hourly * factor * hours)
        return NovedadValue(
            value,
            {
                "method": "overtime",
                "subtype": overtime_type.value,
                "weekly_hours": legal_weekly_hours(on),
                "hourly_rate": str(hourly),
                "factor": str(factor),
                "hours": str(hours),
                "value": str(value),
            },
        )

    def _surcharge(
        self,
        kind: NovedadKind,
        monthly_salary: Decimal,
        on: date,
        rate: Decimal,
        hours: Decimal,
    ) -> NovedadValue:
        divisor = surcharge_divisor(on)
        hourly = monthly_salary / divisor
        value = round_pesos(hourly * rate * hours)
        return NovedadValue(
            value,
            {
                "method": "surcharge",
                "kind": kind.value,
                "divisor": str(divisor),
                "hourly_rate": str(hourly),
                "rate": str(rate),
                "hours": str(hours),
                "value": str(value),
            },
        )


def _require_hours(kind: NovedadKind, hours: Decimal | None) -> Decimal:
    if hours is None or hours <= 0:
        raise ValidationError(f"Novedad kind '{kind.value}' requires a positive number of hours")
    return hours


def _require_days(kind: NovedadKind, days: int | None) -> int:
    if days is None or days <= 0:
        raise ValidationError(f"Novedad kind '{kind.value}' requires a positive number of days")
    return days
