"""Corrective and compensatory adjustments for closed periods."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.money import ZERO, round_pesos, to_decimal
from nomina_engine.calculators.types import (
    AdjustmentType,
    NovedadKind,
    NovedadSource,
    PeriodState,
)
from nomina_engine.errors import (
    AdjustmentAuditFailure,
    NoActivePeriodAvailable,
    NotFoundError,
    ValidationError,
)
from nomina_engine.models import AuditEvent, Novedad, PayrollPeriod
from nomina_engine.repositories import (
    AuditEntry,
    AuditSink,
    PeriodRepository,
    SqlAuditSink,
    SqlPeriodRepository,
)
from nomina_engine.services.novedad_service import NovedadService
from nomina_engine.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

CORRECTION_ACTION_PREFIX = "period_correction"


@dataclass(frozen=True)
class AdjustmentResult:
    adjustment_type: AdjustmentType
    novedad: Novedad
    original_period_id: UUID
    target_period_id: UUID
    audit_entry: AuditEntry


class ClosedPeriodAdjustmentService:
    """Applies adjustments for employees of an already-closed period.

    Corrective: the novedad goes into the closed period itself.
    Compensatory: the novedad goes into the company's open period (or the
    nearest future one) and the closed period is left untouched.

    A positive amount becomes a non-constitutive bonus; a negative amount a
    voluntary deduction of its absolute value. The novedad and its audit
    record are written inside one savepoint: no audit, no novedad.
    """

    def __init__(
        self,
        session: AsyncSession,
        novedad_service: NovedadService | None = None,
        audit_sink: AuditSink | None = None,
        periods: PeriodRepository | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.session = session
        self.novedad_service = novedad_service or NovedadService(session)
        self.audit_sink = audit_sink or SqlAuditSink(session)
        self.periods = periods or SqlPeriodRepository(session)
        self._today = today

    async def apply(
        self,
        adjustment_type: AdjustmentType | str,
        period_id: UUID,
        employee_id: UUID,
        amount: Decimal | int | str,
        justification: str,
        actor: str | None = None,
        concept: str | None = None,
        affected_novedad_id: UUID | None = None,
        previous_value: Decimal | None = None,
    ) -> AdjustmentResult:
        adjustment_type = AdjustmentType(adjustment_type)
        amount = round_pesos(to_decimal(amount))
        self._validate(amount, justification)

        original = await self._get_closed_period(period_id)
        if adjustment_type == AdjustmentType.CORRECTIVE:
            target = original
        else:
            target = await self._find_target_period(original)

        kind = NovedadKind.BONUS if amount > 0 else NovedadKind.VOLUNTARY_DEDUCTION
        source = (
            NovedadSource.CORRECTIVE_ADJUSTMENT
            if adjustment_type == AdjustmentType.CORRECTIVE
            else NovedadSource.COMPENSATORY_ADJUSTMENT
        )
        label = (
            "Corrective adjustment"
            if adjustment_type == AdjustmentType.CORRECTIVE
            else "Compensatory adjustment"
        )

        try:
            async with self.session.begin_nested():
                novedad = await self.novedad_service.create(
                    employee_id=employee_id,
                    period_id=target.period_id,
                    kind=kind,
                    value=abs(amount),
                    constitutive=False,
                    observation=f"{label}: {justification}",
                    source=source,
                    actor=actor,
                    allow_closed=adjustment_type == AdjustmentType.CORRECTIVE,
                )

                entry = AuditEntry(
                    action=f"{CORRECTION_ACTION_PREFIX}.{adjustment_type.value}",
                    entity_type="payroll_period",
                    entity_id=target.period_id,
                    company_id=original.company_id,
                    actor=actor,
                    before={"value": str(previous_value) if previous_value is not None else None},
                    after={
                        "value": str(
                            previous_value + amount if previous_value is not None else amount
                        )
                    },
                    details={
                        "adjustment_type": adjustment_type.value,
                        "concept": concept or kind.value,
                        "value_difference": str(amount),
                        "justification": justification,
                        "novedad_id": str(novedad.novedad_id),
                        "employee_id": str(employee_id),
                        "original_period_id": str(original.period_id),
                        "target_period_id": str(target.period_id),
                        "affected_novedad_id": str(affected_novedad_id) if affected_novedad_id else None,
                    },
                )
                try:
                    await self.audit_sink.append(entry)
                except Exception as e:
                    raise AdjustmentAuditFailure(original.period_id, e) from e
        except AdjustmentAuditFailure:
            logger.exception(
                "Adjustment for period %s rolled back: audit record not persisted", period_id
            )
            raise

        logger.info(
            "%s of %s for employee %s applied in period %s",
            label,
            amount,
            employee_id,
            target.period_id,
        )
        return AdjustmentResult(
            adjustment_type=adjustment_type,
            novedad=novedad,
            original_period_id=original.period_id,
            target_period_id=target.period_id,
            audit_entry=entry,
        )

    async def apply_corrective(
        self,
        period_id: UUID,
        employee_id: UUID,
        amount: Decimal | int | str,
        justification: str,
        actor: str | None = None,
        **kwargs,
    ) -> AdjustmentResult:
        return await self.apply(
            AdjustmentType.CORRECTIVE, period_id, employee_id, amount, justification, actor, **kwargs
        )

    async def apply_compensatory(
        self,
        period_id: UUID,
        employee_id: UUID,
        amount: Decimal | int | str,
        justification: str,
        actor: str | None = None,
        **kwargs,
    ) -> AdjustmentResult:
        return await self.apply(
            AdjustmentType.COMPENSATORY, period_id, employee_id, amount, justification, actor, **kwargs
        )

    async def get_correction_history(self, period_id: UUID) -> list[AuditEvent]:
        """Adjustment audit records whose target is ``period_id``."""
        return await SqlAuditSink(self.session).list_for_entity(period_id, CORRECTION_ACTION_PREFIX)

    async def _find_target_period(self, original: PayrollPeriod) -> PayrollPeriod:
        """Open period for the company, preferring one current or upcoming."""
        periods = await self.periods.list_for_company(original.company_id)
        candidates = [
            p
            for p in periods
            if PeriodStateMachine.is_editable(p.state) and p.period_id != original.period_id
        ]
        if not candidates:
            raise NoActivePeriodAvailable(original.company_id)

        today = self._today()
        current_or_future = [p for p in candidates if p.end_date >= today]
        return (current_or_future or candidates)[0]

    async def _get_closed_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.periods.get(period_id)
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        if period.state != PeriodState.CLOSED:
            raise ValidationError(
                f"Adjustments apply to closed periods only (period is '{period.state}')",
                period_id=period_id,
            )
        return period

    @staticmethod
    def _validate(amount: Decimal, justification: str) -> None:
        errors: list[str] = []
        if amount == ZERO:
            errors.append("Adjustment amount cannot be zero")
        if not justification or not justification.strip():
            errors.append("A justification is required")
        if errors:
            raise ValidationError(errors)
