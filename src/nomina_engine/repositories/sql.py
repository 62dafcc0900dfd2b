"""SQLAlchemy implementations of the repository interfaces."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.errors import ConcurrentModificationError, PersistenceFailure
from nomina_engine.models import (
    AuditEvent,
    CompanyPayrollPolicy,
    Employee,
    Novedad,
    PayrollPeriod,
    PayrollRecord,
    YearlyConfigurationRecord,
)
from nomina_engine.repositories.protocols import AuditEntry

if TYPE_CHECKING:
    from nomina_engine.calculators.engine import EmployeeLiquidation


async def _flush(session: AsyncSession, operation: str) -> None:
    try:
        await session.flush()
    except SQLAlchemyError as e:
        raise PersistenceFailure(operation, e) from e


class SqlEmployeeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_employees(self, company_id: UUID) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.company_id == company_id, Employee.status == "active")
            .order_by(Employee.last_name, Employee.first_name, Employee.employee_id)
        )
        return list(result.scalars().all())

    async def get_employee(self, employee_id: UUID) -> Employee | None:
        return await self.session.get(Employee, employee_id)


class SqlNovedadRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, novedad_id: UUID) -> Novedad | None:
        return await self.session.get(Novedad, novedad_id)

    async def get_by_employee_and_period(
        self, employee_id: UUID, period_id: UUID
    ) -> list[Novedad]:
        result = await self.session.execute(
            select(Novedad)
            .where(Novedad.employee_id == employee_id, Novedad.period_id == period_id)
            .order_by(Novedad.created_at, Novedad.novedad_id)
        )
        return list(result.scalars().all())

    async def get_by_period(self, period_id: UUID) -> list[Novedad]:
        result = await self.session.execute(
            select(Novedad)
            .where(Novedad.period_id == period_id)
            .order_by(Novedad.employee_id, Novedad.created_at, Novedad.novedad_id)
        )
        return list(result.scalars().all())

    async def get_by_periods_and_kind(
        self, period_ids: Sequence[UUID], kind: str
    ) -> list[Novedad]:
        if not period_ids:
            return []
        result = await self.session.execute(
            select(Novedad)
            .where(Novedad.period_id.in_(list(period_ids)), Novedad.kind == kind)
            .order_by(Novedad.period_id, Novedad.employee_id, Novedad.novedad_id)
        )
        return list(result.scalars().all())

    async def add(self, novedad: Novedad) -> Novedad:
        self.session.add(novedad)
        await _flush(self.session, "novedad insert")
        return novedad

    async def save(self, novedad: Novedad) -> Novedad:
        await _flush(self.session, "novedad update")
        return novedad

    async def delete(self, novedad: Novedad) -> None:
        await self.session.delete(novedad)
        await _flush(self.session, "novedad delete")


class SqlPeriodRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, period_id: UUID) -> PayrollPeriod | None:
        return await self.session.get(PayrollPeriod, period_id)

    async def list_for_company(self, company_id: UUID) -> list[PayrollPeriod]:
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(PayrollPeriod.company_id == company_id)
            .order_by(PayrollPeriod.start_date)
        )
        return list(result.scalars().all())

    async def add(self, period: PayrollPeriod) -> PayrollPeriod:
        self.session.add(period)
        await _flush(self.session, "period insert")
        return period

    async def save(self, period: PayrollPeriod) -> PayrollPeriod:
        await _flush(self.session, "period update")
        return period

    async def transition(
        self,
        period: PayrollPeriod,
        from_state: str,
        to_state: str,
        **values: Any,
    ) -> PayrollPeriod:
        """Conditional state update guarded by state and version.

        Raises ConcurrentModificationError when another writer moved the
        row since ``period`` was read.
        """
        await _flush(self.session, "period transition")
        expected_version = period.version
        try:
            result = await self.session.execute(
                update(PayrollPeriod)
                .where(
                    PayrollPeriod.period_id == period.period_id,
                    PayrollPeriod.state == from_state,
                    PayrollPeriod.version == expected_version,
                )
                .values(state=to_state, version=PayrollPeriod.version + 1, **values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure("period transition", e) from e

        if result.rowcount != 1:
            raise ConcurrentModificationError(period.period_id, expected_version)

        await self.session.refresh(period)
        return period


class SqlPayrollRecordRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_period(self, period_id: UUID) -> list[PayrollRecord]:
        result = await self.session.execute(
            select(PayrollRecord)
            .where(PayrollRecord.period_id == period_id)
            .order_by(PayrollRecord.employee_id)
        )
        return list(result.scalars().all())

    async def upsert(
        self, period: PayrollPeriod, liquidations: Sequence[EmployeeLiquidation]
    ) -> list[PayrollRecord]:
        """Insert or overwrite one record per (employee, period)."""
        if not liquidations:
            return []
        employee_ids = [liq.employee_id for liq in liquidations]
        result = await self.session.execute(
            select(PayrollRecord).where(
                PayrollRecord.period_id == period.period_id,
                PayrollRecord.employee_id.in_(employee_ids),
            )
        )
        existing = {r.employee_id: r for r in result.scalars().all()}
        now = datetime.now(timezone.utc)

        records: list[PayrollRecord] = []
        for liquidation in liquidations:
            values = liquidation.record_values()
            record = existing.get(liquidation.employee_id)
            if record is None:
                record = PayrollRecord(
                    period_id=period.period_id,
                    employee_id=liquidation.employee_id,
                    company_id=period.company_id,
                    **values,
                )
                self.session.add(record)
            else:
                for key, value in values.items():
                    setattr(record, key, value)
            record.calculated_at = now
            records.append(record)

        await _flush(self.session, "payroll record upsert")
        return records

    async def delete_for_period(self, period_id: UUID) -> int:
        try:
            result = await self.session.execute(
                delete(PayrollRecord)
                .where(PayrollRecord.period_id == period_id)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure("payroll record delete", e) from e
        return result.rowcount or 0

    async def delete_missing(self, period_id: UUID, keep_employee_ids: Sequence[UUID]) -> int:
        """Drop records of employees not in the latest liquidation of the period."""
        stmt = delete(PayrollRecord).where(PayrollRecord.period_id == period_id)
        if keep_employee_ids:
            stmt = stmt.where(PayrollRecord.employee_id.not_in(list(keep_employee_ids)))
        try:
            result = await self.session.execute(
                stmt.execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure("stale payroll record delete", e) from e
        return result.rowcount or 0


class SqlConfigurationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_latest(self, year: int) -> YearlyConfigurationRecord | None:
        result = await self.session.execute(
            select(YearlyConfigurationRecord)
            .where(YearlyConfigurationRecord.year == year)
            .order_by(YearlyConfigurationRecord.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_years(self) -> list[int]:
        result = await self.session.execute(
            select(YearlyConfigurationRecord.year).distinct().order_by(YearlyConfigurationRecord.year)
        )
        return list(result.scalars().all())

    async def insert_version(
        self, year: int, payload: dict[str, Any], created_by: str | None = None
    ) -> YearlyConfigurationRecord:
        current = await self.session.execute(
            select(func.max(YearlyConfigurationRecord.version)).where(
                YearlyConfigurationRecord.year == year
            )
        )
        next_version = (current.scalar() or 0) + 1
        record = YearlyConfigurationRecord(
            year=year,
            version=next_version,
            payload=payload,
            created_by=created_by,
        )
        self.session.add(record)
        await _flush(self.session, "configuration insert")
        return record

    async def get_policy(self, company_id: UUID) -> CompanyPayrollPolicy | None:
        return await self.session.get(CompanyPayrollPolicy, company_id)

    async def save_policy(
        self, company_id: UUID, ibc_mode: str, incapacity_policy: str
    ) -> CompanyPayrollPolicy:
        policy = await self.get_policy(company_id)
        if policy is None:
            policy = CompanyPayrollPolicy(company_id=company_id)
            self.session.add(policy)
        policy.ibc_mode = ibc_mode
        policy.incapacity_policy = incapacity_policy
        await _flush(self.session, "policy update")
        return policy


class SqlAuditSink:
    """Audit sink writing AuditEvent rows in the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, entry: AuditEntry) -> None:
        event = AuditEvent(
            company_id=entry.company_id,
            actor=entry.actor,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            action=entry.action,
            before_json=entry.before,
            after_json=entry.after,
            details_json=entry.details,
            created_at=entry.occurred_at,
        )
        self.session.add(event)
        await _flush(self.session, "audit append")

    async def list_for_entity(
        self, entity_id: UUID, action_prefix: str | None = None
    ) -> list[AuditEvent]:
        stmt = select(AuditEvent).where(AuditEvent.entity_id == entity_id)
        if action_prefix:
            stmt = stmt.where(AuditEvent.action.startswith(action_prefix))
        result = await self.session.execute(stmt.order_by(AuditEvent.created_at))
        return list(result.scalars().all())
