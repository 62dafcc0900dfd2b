"""Recalculation of stored incapacity values after a policy change."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.incapacity import IncapacityValueCalculator
from nomina_engine.calculators.money import round_pesos, to_decimal
from nomina_engine.calculators.types import (
    IncapacityPolicy,
    IncapacitySubtype,
    NovedadKind,
    covered_days,
)
from nomina_engine.config import Settings, get_settings
from nomina_engine.errors import NominaError, NotFoundError, ValidationError
from nomina_engine.models import Novedad, PayrollPeriod
from nomina_engine.repositories import (
    AuditEntry,
    AuditSink,
    EmployeeRepository,
    NovedadRepository,
    PeriodRepository,
    SqlAuditSink,
    SqlEmployeeRepository,
    SqlNovedadRepository,
    SqlPeriodRepository,
)
from nomina_engine.services.configuration_store import ConfigurationStore
from nomina_engine.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

FAILURE_RATIO_LIMIT = Decimal("0.5")


@dataclass(frozen=True)
class BackfillChange:
    novedad_id: UUID
    employee_id: UUID
    period_id: UUID
    old_value: Decimal
    new_value: Decimal

    @property
    def difference(self) -> Decimal:
        return self.new_value - self.old_value


@dataclass(frozen=True)
class BackfillFailure:
    novedad_id: UUID
    reason: str


@dataclass
class BackfillResult:
    """Counts and per-item outcomes of one backfill run."""

    policy: IncapacityPolicy
    dry_run: bool
    processed: int = 0
    updated: int = 0
    unchanged: int = 0
    changes: list[BackfillChange] = field(default_factory=list)
    failures: list[BackfillFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        """Fewer than half of the items failed (an empty run succeeds)."""
        if self.processed == 0:
            return True
        return Decimal(self.failed) / Decimal(self.processed) < FAILURE_RATIO_LIMIT


@dataclass(frozen=True)
class BackfillAnalysis:
    incapacity_count: int
    period_count: int
    employee_count: int
    period_ids: list[UUID]


class PolicyBackfillService:
    """Recomputes incapacity novedades of open periods under a new policy.

    Closed periods are never touched. A stored value is replaced only when
    it has no calculation trace or differs from the recomputed value by more
    than the configured tolerance, so a second run with the same policy
    changes nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        config_store: ConfigurationStore | None = None,
        settings: Settings | None = None,
        audit_sink: AuditSink | None = None,
        periods: PeriodRepository | None = None,
        novedades: NovedadRepository | None = None,
        employees: EmployeeRepository | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.config_store = config_store or ConfigurationStore(session)
        self.audit_sink = audit_sink or SqlAuditSink(session)
        self.periods = periods or SqlPeriodRepository(session)
        self.novedades = novedades or SqlNovedadRepository(session)
        self.employees = employees or SqlEmployeeRepository(session)
        self.calculator = IncapacityValueCalculator()

    async def analyze(self, company_id: UUID) -> BackfillAnalysis:
        """What a backfill for ``company_id`` would look at."""
        periods = await self._open_periods(company_id)
        incapacities = await self.novedades.get_by_periods_and_kind(
            [p.period_id for p in periods], NovedadKind.INCAPACITY.value
        )
        return BackfillAnalysis(
            incapacity_count=len(incapacities),
            period_count=len({n.period_id for n in incapacities}),
            employee_count=len({n.employee_id for n in incapacities}),
            period_ids=[p.period_id for p in periods],
        )

    async def backfill(
        self,
        company_id: UUID,
        policy: IncapacityPolicy | str,
        dry_run: bool = False,
        period_id: UUID | None = None,
        actor: str | None = None,
    ) -> BackfillResult:
        try:
            policy = IncapacityPolicy(policy)
        except ValueError:
            raise ValidationError(f"Unknown incapacity policy '{policy}'") from None

        if not dry_run:
            await self.config_store.set_policy(company_id, incapacity_policy=policy)

        periods = await self._open_periods(company_id, period_id)
        periods_by_id = {p.period_id: p for p in periods}
        incapacities = await self.novedades.get_by_periods_and_kind(
            list(periods_by_id), NovedadKind.INCAPACITY.value
        )

        result = BackfillResult(policy=policy, dry_run=dry_run)
        for novedad in incapacities:
            result.processed += 1
            try:
                change = await self._recalculate(
                    novedad, periods_by_id[novedad.period_id], policy, dry_run
                )
            except (NominaError, ValueError, ArithmeticError) as e:
                logger.warning("Backfill skipped novedad %s: %s", novedad.novedad_id, e)
                result.failures.append(BackfillFailure(novedad.novedad_id, str(e)))
                continue

            if change is None:
                result.unchanged += 1
                continue

            result.changes.append(change)
            result.updated += 1

        if not dry_run:
            await self.audit_sink.append(
                AuditEntry(
                    action="policy_backfill",
                    entity_type="company",
                    entity_id=company_id,
                    company_id=company_id,
                    actor=actor,
                    after={"incapacity_policy": policy.value},
                    details={
                        "processed": result.processed,
                        "updated": result.updated,
                        "unchanged": result.unchanged,
                        "failed": result.failed,
                        "period_id": str(period_id) if period_id else None,
                    },
                )
            )

        logger.info(
            "Backfill for company %s (%s, dry_run=%s): %s processed, %s updated, %s failed",
            company_id,
            policy.value,
            dry_run,
            result.processed,
            result.updated,
            result.failed,
        )
        return result

    async def _open_periods(
        self, company_id: UUID, period_id: UUID | None = None
    ) -> list[PayrollPeriod]:
        periods = await self.periods.list_for_company(company_id)
        editable = [p for p in periods if PeriodStateMachine.is_editable(p.state)]
        if period_id is not None:
            editable = [p for p in editable if p.period_id == period_id]
        return editable

    async def _recalculate(
        self,
        novedad: Novedad,
        period: PayrollPeriod,
        policy: IncapacityPolicy,
        dry_run: bool,
    ) -> BackfillChange | None:
        employee = await self.employees.get_employee(novedad.employee_id)
        if employee is None:
            raise NotFoundError("Employee", novedad.employee_id)
        salary = to_decimal(employee.base_salary)
        if salary <= 0:
            raise ValidationError(f"Employee {employee.employee_id} has no positive salary")

        days = covered_days(novedad.days, novedad.start_date, novedad.end_date)
        if days is None:
            raise ValidationError("Incapacity has no days to recalculate")

        config = await self.config_store.cached_configuration(period.start_date.year)
        calculation = self.calculator.calculate(
            salary, days, IncapacitySubtype(novedad.subtype or "general"), policy, config
        )

        old_value = round_pesos(to_decimal(novedad.value))
        new_value = calculation.value
        if (
            novedad.calculation_trace
            and abs(new_value - old_value) <= self.settings.backfill_tolerance
        ):
            return None

        change = BackfillChange(
            novedad_id=novedad.novedad_id,
            employee_id=novedad.employee_id,
            period_id=novedad.period_id,
            old_value=old_value,
            new_value=new_value,
        )
        if not dry_run:
            novedad.value = new_value
            novedad.days = days
            novedad.calculation_trace = calculation.to_trace()
            await self.novedades.save(novedad)
        return change
