"""Income base for contributions (IBC)."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from nomina_engine.calculators.classifier import NovedadClassifier
from nomina_engine.calculators.configuration import YearlyConfiguration
from nomina_engine.calculators.money import DAYS_PER_MONTH, round_pesos
from nomina_engine.calculators.types import NovedadInput
from nomina_engine.errors import ValidationError

IBC_CEILING_MULTIPLE = Decimal("25")


@dataclass(frozen=True)
class IbcResult:
    ibc: Decimal
    raw: Decimal
    salary_component: Decimal
    constitutive_total: Decimal
    floor: Decimal
    ceiling: Decimal
    clipped: bool
    clip_reason: str | None  # "floor" | "ceiling"

    def to_trace(self) -> dict[str, Any]:
        return {
            "ibc": str(self.ibc),
            "raw": str(self.raw),
            "salary_component": str(self.salary_component),
            "constitutive_total": str(self.constitutive_total),
            "floor": str(self.floor),
            "ceiling": str(self.ceiling),
            "clipped": self.clipped,
            "clip_reason": self.clip_reason,
        }


class IncomeBaseCalculator:
    """Computes the IBC from the prorated salary and constitutive earnings.

    ``ibc = clip(salary + constitutive, minimum_wage, 25 * minimum_wage)``.
    Both limits are scaled by ``days / 30`` for periods shorter than a month.
    """

    def __init__(self, classifier: NovedadClassifier | None = None):
        self.classifier = classifier or NovedadClassifier()

    def calculate(
        self,
        salary_component: Decimal,
        novedades: Iterable[NovedadInput],
        config: YearlyConfiguration,
        days: int = 30,
    ) -> IbcResult:
        constitutive_total = self.classifier.constitutive_total(novedades)
        return self.calculate_from_totals(salary_component, constitutive_total, config, days)

    def calculate_from_totals(
        self,
        salary_component: Decimal,
        constitutive_total: Decimal,
        config: YearlyConfiguration,
        days: int = 30,
    ) -> IbcResult:
        if salary_component < 0:
            raise ValidationError("salary component cannot be negative")
        if constitutive_total < 0:
            raise ValidationError("constitutive earnings cannot be negative")
        if days < 0:
            raise ValidationError("days cannot be negative")

        factor = Decimal(days) / DAYS_PER_MONTH
        floor = round_pesos(config.minimum_wage * factor)
        ceiling = round_pesos(config.minimum_wage * IBC_CEILING_MULTIPLE * factor)
        raw = salary_component + constitutive_total

        clip_reason = None
        value = raw
        if raw < floor:
            value, clip_reason = floor, "floor"
        elif raw > ceiling:
            value, clip_reason = ceiling, "ceiling"

        return IbcResult(
            ibc=round_pesos(value),
            raw=raw,
            salary_component=salary_component,
            constitutive_total=constitutive_total,
            floor=floor,
            ceiling=ceiling,
            clipped=clip_reason is not None,
            clip_reason=clip_reason,
        )
