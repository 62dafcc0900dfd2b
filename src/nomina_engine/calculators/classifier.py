"""Novedad classification into earnings and deductions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable

from nomina_engine.calculators.money import ZERO
from nomina_engine.calculators.types import NovedadInput, NovedadKind

logger = logging.getLogger(__name__)


class NovedadSide(str, Enum):
    EARNING = "earning"
    DEDUCTION = "deduction"
    EXCLUDED = "excluded"


# kind -> (side, constitutive of salary by default)
CLASSIFICATION_TABLE: dict[NovedadKind, tuple[NovedadSide, bool]] = {
    NovedadKind.OVERTIME: (NovedadSide.EARNING, True),
    NovedadKind.NIGHT_SURCHARGE: (NovedadSide.EARNING, True),
    NovedadKind.SUNDAY_SURCHARGE: (NovedadSide.EARNING, True),
    NovedadKind.BONUS: (NovedadSide.EARNING, True),
    NovedadKind.COMMISSION: (NovedadSide.EARNING, True),
    NovedadKind.VACATION: (NovedadSide.EARNING, True),
    NovedadKind.PAID_LEAVE: (NovedadSide.EARNING, True),
    NovedadKind.INCAPACITY: (NovedadSide.EARNING, False),
    NovedadKind.TRANSPORT_SUBSIDY_ADJ: (NovedadSide.EARNING, False),
    NovedadKind.NON_SALARY_BONUS: (NovedadSide.EARNING, False),
    NovedadKind.UNPAID_LEAVE: (NovedadSide.DEDUCTION, False),
    NovedadKind.ABSENCE: (NovedadSide.DEDUCTION, False),
    NovedadKind.GARNISHMENT: (NovedadSide.DEDUCTION, False),
    NovedadKind.LOAN: (NovedadSide.DEDUCTION, False),
    NovedadKind.FINE: (NovedadSide.DEDUCTION, False),
    NovedadKind.VOLUNTARY_DEDUCTION: (NovedadSide.DEDUCTION, False),
    NovedadKind.WITHHOLDING_ADJUSTMENT: (NovedadSide.DEDUCTION, False),
    NovedadKind.SOLIDARITY_FUND: (NovedadSide.DEDUCTION, False),
}


@dataclass(frozen=True)
class Classification:
    kind: NovedadKind | None
    side: NovedadSide
    constitutive: bool

    @property
    def is_earning(self) -> bool:
        return self.side == NovedadSide.EARNING

    @property
    def is_deduction(self) -> bool:
        return self.side == NovedadSide.DEDUCTION


UNRECOGNIZED = Classification(kind=None, side=NovedadSide.EXCLUDED, constitutive=False)


@dataclass
class NovedadPartition:
    """Novedades of one employee split by side, with running totals."""

    earnings: list[NovedadInput] = field(default_factory=list)
    deductions: list[NovedadInput] = field(default_factory=list)
    excluded: list[NovedadInput] = field(default_factory=list)
    earnings_total: Decimal = ZERO
    deductions_total: Decimal = ZERO
    constitutive_total: Decimal = ZERO
    incapacity_days: int = 0


class NovedadClassifier:
    """Maps novedad kinds to {earning, deduction} and a constitutive default.

    Unrecognized kinds are excluded from every total and logged, never
    guessed.
    """

    def __init__(self, table: dict[NovedadKind, tuple[NovedadSide, bool]] | None = None):
        self.table = table or CLASSIFICATION_TABLE

    def classify(self, kind: str | NovedadKind, constitutive: bool | None = None) -> Classification:
        parsed = NovedadKind.parse(kind)
        if parsed is None or parsed not in self.table:
            logger.warning("Unrecognized novedad kind %r excluded from payroll totals", kind)
            return UNRECOGNIZED

        side, default_constitutive = self.table[parsed]
        if side == NovedadSide.DEDUCTION:
            # Deductions never enter the contribution base
            return Classification(parsed, side, False)
        if constitutive is None:
            constitutive = default_constitutive
        return Classification(parsed, side, constitutive)

    def partition(self, novedades: Iterable[NovedadInput]) -> NovedadPartition:
        result = NovedadPartition()
        for novedad in novedades:
            classification = self.classify(novedad.kind, novedad.constitutive)
            if classification.is_earning:
                result.earnings.append(novedad)
                result.earnings_total += novedad.value
                if classification.constitutive:
                    result.constitutive_total += novedad.value
                if classification.kind == NovedadKind.INCAPACITY:
                    result.incapacity_days += novedad.days or 0
            elif classification.is_deduction:
                result.deductions.append(novedad)
                result.deductions_total += novedad.value
            else:
                result.excluded.append(novedad)
        return result

    def constitutive_total(self, novedades: Iterable[NovedadInput]) -> Decimal:
        return self.partition(novedades).constitutive_total
