"""Repository interfaces the services depend on.

The SQLAlchemy implementations live in ``nomina_engine.repositories.sql``;
anything satisfying these protocols can be injected instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, Sequence
from uuid import UUID

if TYPE_CHECKING:
    from nomina_engine.calculators.engine import EmployeeLiquidation
    from nomina_engine.models import (
        CompanyPayrollPolicy,
        Employee,
        Novedad,
        PayrollPeriod,
        PayrollRecord,
        YearlyConfigurationRecord,
    )


class EmployeeRepository(Protocol):
    async def get_active_employees(self, company_id: UUID) -> list[Employee]: ...

    async def get_employee(self, employee_id: UUID) -> Employee | None: ...


class NovedadRepository(Protocol):
    async def get(self, novedad_id: UUID) -> Novedad | None: ...

    async def get_by_employee_and_period(
        self, employee_id: UUID, period_id: UUID
    ) -> list[Novedad]: ...

    async def get_by_period(self, period_id: UUID) -> list[Novedad]: ...

    async def get_by_periods_and_kind(
        self, period_ids: Sequence[UUID], kind: str
    ) -> list[Novedad]: ...

    async def add(self, novedad: Novedad) -> Novedad: ...

    async def save(self, novedad: Novedad) -> Novedad: ...

    async def delete(self, novedad: Novedad) -> None: ...


class PeriodRepository(Protocol):
    async def get(self, period_id: UUID) -> PayrollPeriod | None: ...

    async def list_for_company(self, company_id: UUID) -> list[PayrollPeriod]: ...

    async def add(self, period: PayrollPeriod) -> PayrollPeriod: ...

    async def transition(
        self,
        period: PayrollPeriod,
        from_state: str,
        to_state: str,
        **values: Any,
    ) -> PayrollPeriod: ...

    async def save(self, period: PayrollPeriod) -> PayrollPeriod: ...


class PayrollRecordRepository(Protocol):
    async def list_for_period(self, period_id: UUID) -> list[PayrollRecord]: ...

    async def upsert(
        self, period: PayrollPeriod, liquidations: Sequence[EmployeeLiquidation]
    ) -> list[PayrollRecord]: ...

    async def delete_for_period(self, period_id: UUID) -> int: ...

    async def delete_missing(self, period_id: UUID, keep_employee_ids: Sequence[UUID]) -> int: ...


class ConfigurationRepository(Protocol):
    async def get_latest(self, year: int) -> YearlyConfigurationRecord | None: ...

    async def list_years(self) -> list[int]: ...

    async def insert_version(
        self, year: int, payload: dict[str, Any], created_by: str | None = None
    ) -> YearlyConfigurationRecord: ...

    async def get_policy(self, company_id: UUID) -> CompanyPayrollPolicy | None: ...

    async def save_policy(
        self, company_id: UUID, ibc_mode: str, incapacity_policy: str
    ) -> CompanyPayrollPolicy: ...


@dataclass
class AuditEntry:
    """One append-only audit fact."""

    action: str
    entity_type: str
    entity_id: UUID
    company_id: UUID | None = None
    actor: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    details: dict[str, Any] | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(Protocol):
    async def append(self, entry: AuditEntry) -> None: ...
