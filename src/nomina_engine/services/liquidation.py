"""Liquidation orchestrator - turns a period into per-employee payroll records."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from itertools import chain
from typing import Iterator, Sequence, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.configuration import YearlyConfiguration
from nomina_engine.calculators.engine import (
    EmployeeLiquidation,
    LiquidationEngine,
    aggregate_totals,
)
from nomina_engine.calculators.types import (
    EmployeeSnapshot,
    NovedadInput,
    PeriodContext,
    PeriodTotals,
    PolicySnapshot,
)
from nomina_engine.config import Settings, get_settings
from nomina_engine.errors import NominaError, NotFoundError, PeriodNotEditable
from nomina_engine.models import PayrollPeriod, PayrollRecord
from nomina_engine.repositories import (
    EmployeeRepository,
    NovedadRepository,
    PayrollRecordRepository,
    SqlEmployeeRepository,
    SqlNovedadRepository,
    SqlPayrollRecordRepository,
)
from nomina_engine.services.configuration_store import ConfigurationStore
from nomina_engine.services.period_lifecycle import PeriodLifecycleManager
from nomina_engine.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EmployeeFailure:
    employee_id: UUID
    reasons: list[str]


@dataclass
class LiquidationResult:
    """Outcome of liquidating a whole period."""

    period_id: UUID
    liquidations: dict[UUID, EmployeeLiquidation] = field(default_factory=dict)
    failures: list[EmployeeFailure] = field(default_factory=list)
    totals: PeriodTotals = field(default_factory=PeriodTotals)
    records: list[PayrollRecord] = field(default_factory=list)
    closed: bool = False

    @property
    def processed(self) -> int:
        return len(self.liquidations)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> int:
        return self.processed - self.failed

    @property
    def fallback_count(self) -> int:
        return sum(1 for liq in self.liquidations.values() if liq.fallback is not None)


class LiquidationOrchestrator:
    """Produces one payroll record per active employee of a period.

    Operations:
    - preview: calculate without writing
    - liquidate: upsert records and refresh the draft totals
    - liquidate_and_close: upsert records and close the period as one unit;
      if the close fails every record written by the attempt is rolled back

    Employees are calculated independently, in batches of
    ``liquidation_batch_size`` run on worker threads with at most
    ``max_concurrent_batches`` in flight. A failure is recorded on that
    employee's record (status "error") and never aborts the batch. Writes go
    through the session one chunk at a time, and records of employees no
    longer liquidated are removed from the period.
    """

    def __init__(
        self,
        session: AsyncSession,
        config_store: ConfigurationStore | None = None,
        engine: LiquidationEngine | None = None,
        lifecycle: PeriodLifecycleManager | None = None,
        settings: Settings | None = None,
        employees: EmployeeRepository | None = None,
        novedades: NovedadRepository | None = None,
        records: PayrollRecordRepository | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.config_store = config_store or ConfigurationStore(session)
        self.engine = engine or LiquidationEngine()
        self.lifecycle = lifecycle or PeriodLifecycleManager(session, settings=self.settings)
        self.employees = employees or SqlEmployeeRepository(session)
        self.novedades = novedades or SqlNovedadRepository(session)
        self.records = records or SqlPayrollRecordRepository(session)

    def calculate_employee(
        self,
        employee: EmployeeSnapshot,
        period: PeriodContext,
        novedades: Sequence[NovedadInput],
        config: YearlyConfiguration,
        policy: PolicySnapshot | None = None,
    ) -> EmployeeLiquidation:
        """Pure calculation for one employee; no I/O."""
        return self.engine.calculate_employee(employee, period, novedades, config, policy)

    async def preview(self, period_id: UUID) -> LiquidationResult:
        period = await self._load_editable_period(period_id)
        return await self._calculate(period)

    async def liquidate(self, period_id: UUID, actor: str | None = None) -> LiquidationResult:
        """Calculate and store every employee record; the period stays open."""
        period = await self._load_editable_period(period_id)
        result = await self._calculate(period)

        async with self.session.begin_nested():
            result.records = await self._persist(period, result)
            result.totals = await self.lifecycle.refresh_totals(period)

        logger.info(
            "Liquidated period %s: %s processed, %s failed",
            period_id,
            result.processed,
            result.failed,
        )
        return result

    async def liquidate_and_close(
        self, period_id: UUID, actor: str | None = None
    ) -> LiquidationResult:
        """Write all records and close the period atomically."""
        period = await self._load_editable_period(period_id)
        result = await self._calculate(period)

        try:
            async with self.session.begin_nested():
                result.records = await self._persist(period, result)
                await self.lifecycle.close(period_id, actor=actor)
        except NominaError:
            logger.exception("Close of period %s failed; liquidation records rolled back", period_id)
            raise

        result.totals = PeriodTotals(
            gross_pay=period.gross_pay,
            total_deductions=period.total_deductions,
            net_pay=period.net_pay,
            employer_contributions=period.employer_contributions,
            employee_count=period.employee_count,
        )
        result.closed = True
        return result

    async def _calculate(self, period: PayrollPeriod) -> LiquidationResult:
        config = await self.config_store.cached_configuration(period.start_date.year)
        policy = await self.config_store.get_policy(period.company_id)
        context = PeriodContext.from_model(period)

        employees = await self.employees.get_active_employees(period.company_id)
        by_employee: dict[UUID, list[NovedadInput]] = defaultdict(list)
        for novedad in await self.novedades.get_by_period(period.period_id):
            by_employee[novedad.employee_id].append(NovedadInput.from_model(novedad))

        # Snapshots are taken on the event loop; worker threads never touch ORM state
        work = [
            (EmployeeSnapshot.from_model(employee), by_employee.get(employee.employee_id, []))
            for employee in employees
        ]
        gate = asyncio.Semaphore(self.settings.max_concurrent_batches)

        async def run_batch(batch: list[tuple[EmployeeSnapshot, list[NovedadInput]]]):
            async with gate:
                return await asyncio.to_thread(self._calculate_batch, batch, context, config, policy)

        batches = await asyncio.gather(
            *(run_batch(batch) for batch in _chunks(work, self.settings.liquidation_batch_size))
        )

        result = LiquidationResult(period_id=period.period_id)
        for liquidation in chain.from_iterable(batches):
            result.liquidations[liquidation.employee_id] = liquidation
            if not liquidation.success:
                result.failures.append(EmployeeFailure(liquidation.employee_id, liquidation.errors))

        result.totals = aggregate_totals(list(result.liquidations.values()))
        return result

    def _calculate_batch(
        self,
        batch: list[tuple[EmployeeSnapshot, list[NovedadInput]]],
        context: PeriodContext,
        config: YearlyConfiguration,
        policy: PolicySnapshot,
    ) -> list[EmployeeLiquidation]:
        liquidations: list[EmployeeLiquidation] = []
        for employee, novedades in batch:
            try:
                liquidation = self.engine.calculate_employee(
                    employee, context, novedades, config, policy
                )
            except Exception as e:
                # Catch unexpected errors so one employee never aborts the batch
                logger.exception("Liquidation failed for employee %s", employee.employee_id)
                liquidation = EmployeeLiquidation.failed(
                    employee.employee_id, [f"Unexpected error: {e}"], employee.base_salary
                )
            liquidation.breakdown["engine_version"] = self.settings.engine_version
            liquidations.append(liquidation)
        return liquidations

    async def _persist(
        self, period: PayrollPeriod, result: LiquidationResult
    ) -> list[PayrollRecord]:
        stale = await self.records.delete_missing(period.period_id, list(result.liquidations))
        if stale:
            logger.info("Removed %s stale record(s) from period %s", stale, period.period_id)

        records: list[PayrollRecord] = []
        for chunk in _chunks(list(result.liquidations.values()), self.settings.liquidation_batch_size):
            records.extend(await self.records.upsert(period, chunk))
        return records

    async def _load_editable_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.lifecycle.periods.get(period_id)
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        if not PeriodStateMachine.is_editable(period.state):
            raise PeriodNotEditable(period.period_id, period.state)
        return period


def _chunks(items: list[T], size: int) -> Iterator[list[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]
