"""Period invariants checked before every create, close and reopen.

Three independent checks, all run every time, so callers see every broken
rule at once:
- single open period per company (draft or reopened)
- no overlapping date ranges among non-cancelled periods
- at most one period starting strictly after today
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Iterable
from uuid import UUID

from nomina_engine.calculators.types import PeriodState
from nomina_engine.services.state_machine import PeriodStateMachine

if TYPE_CHECKING:
    from nomina_engine.models import PayrollPeriod


@dataclass(frozen=True)
class PeriodWindow:
    """The fields of a period the invariants look at."""

    period_id: UUID | None
    start_date: date
    end_date: date
    state: str

    @classmethod
    def from_model(cls, period: PayrollPeriod, state: str | None = None) -> PeriodWindow:
        return cls(period.period_id, period.start_date, period.end_date, state or period.state)

    @property
    def cancelled(self) -> bool:
        return self.state == PeriodState.CANCELLED

    def overlaps(self, other: PeriodWindow) -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date


def _others(candidate: PeriodWindow, periods: Iterable[PeriodWindow]) -> list[PeriodWindow]:
    return [
        p
        for p in periods
        if not p.cancelled and (candidate.period_id is None or p.period_id != candidate.period_id)
    ]


def check_single_open(candidate: PeriodWindow, periods: Iterable[PeriodWindow]) -> list[str]:
    if not PeriodStateMachine.is_open(candidate.state):
        return []
    open_periods = [p for p in _others(candidate, periods) if PeriodStateMachine.is_open(p.state)]
    return [
        f"Period {p.start_date} to {p.end_date} is already open ({p.state})" for p in open_periods
    ]


def check_overlap(candidate: PeriodWindow, periods: Iterable[PeriodWindow]) -> list[str]:
    if candidate.cancelled:
        return []
    return [
        f"Dates overlap period {p.start_date} to {p.end_date}"
        for p in _others(candidate, periods)
        if candidate.overlaps(p)
    ]


def check_future_limit(
    candidate: PeriodWindow, periods: Iterable[PeriodWindow], today: date
) -> list[str]:
    if candidate.cancelled or candidate.start_date <= today:
        return []
    future = [p for p in _others(candidate, periods) if p.start_date > today]
    if future:
        return [
            f"Only one future period is allowed; period starting {future[0].start_date} "
            "already exists"
        ]
    return []


def validate_period_invariants(
    candidate: PeriodWindow, periods: Iterable[PeriodWindow], today: date
) -> list[str]:
    """Run all three checks and return every violation found."""
    periods = list(periods)
    violations: list[str] = []
    violations.extend(check_single_open(candidate, periods))
    violations.extend(check_overlap(candidate, periods))
    violations.extend(check_future_limit(candidate, periods, today))
    return violations
