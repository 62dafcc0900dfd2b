"""Novedad create/update/delete restricted by period editability."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.money import round_pesos, to_decimal
from nomina_engine.calculators.novedad_values import NovedadValueCalculator
from nomina_engine.calculators.types import (
    SUBTYPES_BY_KIND,
    NovedadKind,
    NovedadSource,
    PeriodState,
    covered_days,
)
from nomina_engine.errors import NotFoundError, PeriodNotEditable, ValidationError
from nomina_engine.models import Employee, Novedad, PayrollPeriod
from nomina_engine.repositories import (
    EmployeeRepository,
    NovedadRepository,
    PeriodRepository,
    SqlEmployeeRepository,
    SqlNovedadRepository,
    SqlPeriodRepository,
)
from nomina_engine.services.configuration_store import ConfigurationStore
from nomina_engine.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

# Fields that change a system-computed value when edited
_QUANTITY_FIELDS = {"subtype", "days", "hours", "start_date", "end_date"}
_EDITABLE_FIELDS = _QUANTITY_FIELDS | {"value", "constitutive", "observation"}


class NovedadService:
    """Creates and edits novedades while their period is draft or reopened.

    When no explicit value is given, the value is computed from the
    employee's salary and the novedad quantities and the computation is kept
    as the calculation trace. ``allow_closed`` is reserved for the closed
    period adjustment service.
    """

    def __init__(
        self,
        session: AsyncSession,
        config_store: ConfigurationStore | None = None,
        novedades: NovedadRepository | None = None,
        periods: PeriodRepository | None = None,
        employees: EmployeeRepository | None = None,
        value_calculator: NovedadValueCalculator | None = None,
    ):
        self.session = session
        self.config_store = config_store or ConfigurationStore(session)
        self.novedades = novedades or SqlNovedadRepository(session)
        self.periods = periods or SqlPeriodRepository(session)
        self.employees = employees or SqlEmployeeRepository(session)
        self.value_calculator = value_calculator or NovedadValueCalculator()

    async def create(
        self,
        employee_id: UUID,
        period_id: UUID,
        kind: NovedadKind | str,
        value: Decimal | int | str | None = None,
        subtype: str | None = None,
        days: int | None = None,
        hours: Decimal | int | str | None = None,
        constitutive: bool | None = None,
        observation: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        source: NovedadSource = NovedadSource.MANUAL,
        actor: str | None = None,
        allow_closed: bool = False,
    ) -> Novedad:
        period = await self._get_period(period_id)
        self._ensure_writable(period, allow_closed)
        employee = await self._get_employee(employee_id)
        if employee.company_id != period.company_id:
            raise ValidationError("Employee and period belong to different companies")

        parsed_kind = self._parse_kind(kind)
        hours_value = to_decimal(hours) if hours is not None else None
        explicit_value = to_decimal(value) if value is not None else None
        subtype = self._validate(
            parsed_kind, subtype, days, hours_value, explicit_value, start_date, end_date
        )
        if parsed_kind == NovedadKind.INCAPACITY:
            days = covered_days(days, start_date, end_date)

        amount, trace = await self._resolve_value(
            parsed_kind, employee, period, explicit_value, subtype, days, hours_value, start_date
        )

        novedad = Novedad(
            company_id=period.company_id,
            employee_id=employee_id,
            period_id=period_id,
            kind=parsed_kind.value,
            subtype=subtype,
            value=amount,
            days=days,
            hours=hours_value,
            constitutive=constitutive,
            observation=observation,
            start_date=start_date,
            end_date=end_date,
            calculation_trace=trace,
            source=NovedadSource(source).value,
            created_by=actor,
        )
        await self.novedades.add(novedad)
        logger.debug(
            "Created %s novedad %s for employee %s", parsed_kind.value, novedad.novedad_id, employee_id
        )
        return novedad

    async def update(self, novedad_id: UUID, **changes: Any) -> Novedad:
        """Edit a novedad; quantities changes recompute a system value."""
        novedad = await self._get_novedad(novedad_id)
        period = await self._get_period(novedad.period_id)
        self._ensure_writable(period, allow_closed=False)

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown novedad fields: {', '.join(sorted(unknown))}")

        kind = self._parse_kind(novedad.kind)
        subtype = changes.get("subtype", novedad.subtype)
        days = changes.get("days", novedad.days)
        hours = changes.get("hours", novedad.hours)
        hours = to_decimal(hours) if hours is not None else None
        start_date = changes.get("start_date", novedad.start_date)
        end_date = changes.get("end_date", novedad.end_date)
        explicit_value = to_decimal(changes["value"]) if changes.get("value") is not None else None
        subtype = self._validate(kind, subtype, days, hours, explicit_value, start_date, end_date)
        if kind == NovedadKind.INCAPACITY:
            days = covered_days(days, start_date, end_date)

        recompute = explicit_value is None and bool(_QUANTITY_FIELDS & set(changes)) and (
            self.value_calculator.can_compute(kind)
        )
        if explicit_value is not None or recompute:
            employee = await self._get_employee(novedad.employee_id)
            amount, trace = await self._resolve_value(
                kind, employee, period, explicit_value, subtype, days, hours, start_date
            )
            novedad.value = amount
            novedad.calculation_trace = trace

        novedad.subtype = subtype
        novedad.days = days
        novedad.hours = hours
        novedad.start_date = start_date
        novedad.end_date = end_date
        if "constitutive" in changes:
            novedad.constitutive = changes["constitutive"]
        if "observation" in changes:
            novedad.observation = changes["observation"]

        await self.novedades.save(novedad)
        return novedad

    async def delete(self, novedad_id: UUID) -> None:
        novedad = await self._get_novedad(novedad_id)
        period = await self._get_period(novedad.period_id)
        self._ensure_writable(period, allow_closed=False)
        await self.novedades.delete(novedad)

    async def list_for_employee_period(self, employee_id: UUID, period_id: UUID) -> list[Novedad]:
        return await self.novedades.get_by_employee_and_period(employee_id, period_id)

    async def _resolve_value(
        self,
        kind: NovedadKind,
        employee: Employee,
        period: PayrollPeriod,
        explicit_value: Decimal | None,
        subtype: str | None,
        days: int | None,
        hours: Decimal | None,
        start_date: date | None,
    ) -> tuple[Decimal, dict[str, Any]]:
        if explicit_value is not None:
            amount = round_pesos(explicit_value)
            return amount, {"method": "manual", "value": str(amount)}

        if not self.value_calculator.can_compute(kind):
            raise ValidationError(f"Novedad kind '{kind.value}' requires an explicit value")

        on = start_date or period.start_date
        config = await self.config_store.cached_configuration(on.year)
        policy = await self.config_store.get_policy(period.company_id)
        computed = self.value_calculator.calculate(
            kind,
            to_decimal(employee.base_salary),
            config,
            on,
            subtype=subtype,
            days=days,
            hours=hours,
            incapacity_policy=policy.incapacity_policy,
        )
        return computed.value, computed.trace

    @staticmethod
    def _parse_kind(kind: NovedadKind | str) -> NovedadKind:
        parsed = NovedadKind.parse(kind)
        if parsed is None:
            raise ValidationError(f"Unknown novedad kind '{kind}'")
        return parsed

    @staticmethod
    def _validate(
        kind: NovedadKind,
        subtype: str | None,
        days: int | None,
        hours: Decimal | None,
        value: Decimal | None,
        start_date: date | None,
        end_date: date | None,
    ) -> str | None:
        """Validate quantities and return the normalized subtype."""
        errors: list[str] = []
        if value is not None and value < 0:
            errors.append("Value cannot be negative")
        if days is not None and days < 0:
            errors.append("Days cannot be negative")
        if hours is not None and hours < 0:
            errors.append("Hours cannot be negative")
        if start_date and end_date and end_date < start_date:
            errors.append("End date cannot be before start date")
        if kind == NovedadKind.INCAPACITY and covered_days(days, start_date, end_date) is None:
            errors.append("Incapacity novedades require days or a start and end date")

        subtype_enum = SUBTYPES_BY_KIND.get(kind)
        if subtype_enum is None:
            if subtype is not None:
                errors.append(f"Novedad kind '{kind.value}' does not take a subtype")
        elif subtype is None:
            if kind == NovedadKind.INCAPACITY:
                errors.append("Incapacity novedades require a subtype (general or occupational)")
        else:
            try:
                subtype = subtype_enum(subtype).value
            except ValueError:
                allowed = ", ".join(s.value for s in subtype_enum)
                errors.append(f"Invalid subtype '{subtype}' for {kind.value} (allowed: {allowed})")

        if errors:
            raise ValidationError(errors)
        return subtype

    @staticmethod
    def _ensure_writable(period: PayrollPeriod, allow_closed: bool) -> None:
        if PeriodStateMachine.is_editable(period.state):
            return
        if allow_closed and period.state == PeriodState.CLOSED:
            return
        raise PeriodNotEditable(period.period_id, period.state)

    async def _get_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.periods.get(period_id)
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        return period

    async def _get_employee(self, employee_id: UUID) -> Employee:
        employee = await self.employees.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def _get_novedad(self, novedad_id: UUID) -> Novedad:
        novedad = await self.novedades.get(novedad_id)
        if novedad is None:
            raise NotFoundError("Novedad", novedad_id)
        return novedad
