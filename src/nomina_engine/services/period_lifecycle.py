"""Payroll period lifecycle: create, close, reopen, cancel, report."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators.engine import aggregate_totals
from nomina_engine.calculators.types import PeriodKind, PeriodState, PeriodTotals
from nomina_engine.config import Settings, get_settings
from nomina_engine.errors import (
    InvalidTransitionError,
    InvariantViolation,
    NotFoundError,
    PeriodNotEditable,
    ValidationError,
)
from nomina_engine.models import PayrollPeriod
from nomina_engine.repositories import (
    AuditEntry,
    AuditSink,
    PayrollRecordRepository,
    PeriodRepository,
    SqlAuditSink,
    SqlPayrollRecordRepository,
    SqlPeriodRepository,
)
from nomina_engine.services.locks import CompanyLockRegistry, get_lock_registry
from nomina_engine.services.period_validation import PeriodWindow, validate_period_invariants
from nomina_engine.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)


class PeriodLifecycleManager:
    """Service for managing payroll period state.

    Operations:
    - create: new draft period, subject to the period invariants
    - close: draft/reopened → closed, totals recomputed from records
    - reopen: closed → reopened, unless reported or another period is open
    - cancel: draft → cancelled, records discarded
    - mark_reported: flag a closed period as reported (immutable from then on)

    Transitions are serialized per company with an in-process lock and
    guarded by an optimistic version check on the period row.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        locks: CompanyLockRegistry | None = None,
        audit_sink: AuditSink | None = None,
        periods: PeriodRepository | None = None,
        records: PayrollRecordRepository | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.locks = locks or get_lock_registry()
        self.audit_sink = audit_sink or SqlAuditSink(session)
        self.periods = periods or SqlPeriodRepository(session)
        self.records = records or SqlPayrollRecordRepository(session)
        self._today = today

    async def get_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.periods.get(period_id)
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        return period

    async def get_open_period(self, company_id: UUID) -> PayrollPeriod | None:
        periods = await self.periods.list_for_company(company_id)
        open_periods = [p for p in periods if PeriodStateMachine.is_open(p.state)]
        return open_periods[0] if open_periods else None

    async def create(
        self,
        company_id: UUID,
        start_date: date,
        end_date: date,
        period_kind: PeriodKind | str = PeriodKind.MONTHLY,
        custom_worked_days: int | None = None,
        actor: str | None = None,
    ) -> PayrollPeriod:
        """Create a draft period.

        Raises ValidationError for malformed input and InvariantViolation
        (with every violation) when the period would break an invariant.
        """
        kind = self._validate_new_period(start_date, end_date, period_kind, custom_worked_days)

        async with self.locks.hold(company_id):
            existing = await self.periods.list_for_company(company_id)
            candidate = PeriodWindow(None, start_date, end_date, PeriodState.DRAFT)
            self._check_invariants("create", candidate, existing)

            period = PayrollPeriod(
                company_id=company_id,
                start_date=start_date,
                end_date=end_date,
                period_kind=kind.value,
                custom_worked_days=custom_worked_days,
                state=PeriodState.DRAFT.value,
            )
            await self.periods.add(period)
            await self._record_audit(period, "created", actor, after=self._snapshot(period))

        logger.info("Created period %s (%s to %s)", period.period_id, start_date, end_date)
        return period

    async def close(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        """Close a period after validating its records.

        Aggregate totals are recomputed from the stored records, never taken
        from previously cached totals.
        """
        period = await self.get_period(period_id)
        async with self.locks.hold(period.company_id):
            from_state = period.state
            records = await self.records.list_for_period(period_id)
            errors = PeriodStateMachine.validate_period_for_transition(
                period,
                PeriodState.CLOSED.value,
                records,
                require_vouchers=self.settings.require_vouchers_on_close,
            )
            if errors:
                raise InvalidTransitionError(
                    from_state, PeriodState.CLOSED.value, "; ".join(errors), errors
                )

            existing = await self.periods.list_for_company(period.company_id)
            self._check_invariants(
                "close", PeriodWindow.from_model(period, PeriodState.CLOSED), existing
            )

            before = self._snapshot(period)
            totals = aggregate_totals(records)
            await self.periods.transition(
                period,
                from_state,
                PeriodState.CLOSED.value,
                closed_at=datetime.now(timezone.utc),
                closed_by=actor,
                **totals.as_values(),
            )
            await self._record_audit(
                period, f"state_change:{from_state}:closed", actor, before, self._snapshot(period)
            )

        logger.info(
            "Closed period %s with %s employee(s), net %s",
            period.period_id,
            period.employee_count,
            period.net_pay,
        )
        return period

    async def reopen(
        self, period_id: UUID, actor: str | None = None, reason: str | None = None
    ) -> PayrollPeriod:
        """Reopen a closed period for edits."""
        period = await self.get_period(period_id)
        async with self.locks.hold(period.company_id):
            from_state = period.state
            if period.reported_at is not None:
                raise PeriodNotEditable(
                    period.period_id, period.state, "period was already reported"
                )

            errors = PeriodStateMachine.validate_period_for_transition(
                period, PeriodState.REOPENED.value
            )
            if errors:
                raise InvalidTransitionError(
                    from_state, PeriodState.REOPENED.value, "; ".join(errors), errors
                )

            existing = await self.periods.list_for_company(period.company_id)
            self._check_invariants(
                "reopen", PeriodWindow.from_model(period, PeriodState.REOPENED), existing
            )

            before = self._snapshot(period)
            await self.periods.transition(
                period,
                from_state,
                PeriodState.REOPENED.value,
                reopen_count=period.reopen_count + 1,
                reopened_at=datetime.now(timezone.utc),
            )
            await self._record_audit(
                period,
                f"state_change:{from_state}:reopened",
                actor,
                before,
                self._snapshot(period),
                details={"reason": reason} if reason else None,
            )

        logger.info("Reopened period %s (reopen #%s)", period.period_id, period.reopen_count)
        return period

    async def cancel(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        """Cancel a draft period and discard its records."""
        period = await self.get_period(period_id)
        async with self.locks.hold(period.company_id):
            from_state = period.state
            PeriodStateMachine.validate_transition(from_state, PeriodState.CANCELLED.value)

            before = self._snapshot(period)
            removed = await self.records.delete_for_period(period_id)
            await self.periods.transition(
                period,
                from_state,
                PeriodState.CANCELLED.value,
                **PeriodTotals().as_values(),
            )
            await self._record_audit(
                period,
                f"state_change:{from_state}:cancelled",
                actor,
                before,
                self._snapshot(period),
                details={"records_removed": removed},
            )

        logger.info("Cancelled period %s", period.period_id)
        return period

    async def mark_reported(
        self, period_id: UUID, reference: str | None = None, actor: str | None = None
    ) -> PayrollPeriod:
        """Flag a closed period as reported; it can no longer be reopened."""
        period = await self.get_period(period_id)
        async with self.locks.hold(period.company_id):
            if period.state != PeriodState.CLOSED:
                raise InvalidTransitionError(
                    period.state, "reported", "Only closed periods can be reported"
                )
            if period.reported_at is not None:
                return period

            period.reported_at = datetime.now(timezone.utc)
            period.report_reference = reference
            await self.periods.save(period)
            await self._record_audit(
                period, "reported", actor, details={"reference": reference}
            )
        return period

    async def refresh_totals(self, period: PayrollPeriod) -> PeriodTotals:
        """Recompute and store the totals of an editable period from its records."""
        if not PeriodStateMachine.is_editable(period.state):
            raise PeriodNotEditable(period.period_id, period.state)
        records = await self.records.list_for_period(period.period_id)
        totals = aggregate_totals(records)
        for key, value in totals.as_values().items():
            setattr(period, key, value)
        await self.periods.save(period)
        return totals

    def _validate_new_period(
        self,
        start_date: date,
        end_date: date,
        period_kind: PeriodKind | str,
        custom_worked_days: int | None,
    ) -> PeriodKind:
        errors: list[str] = []
        try:
            kind = PeriodKind(period_kind)
        except ValueError:
            raise ValidationError(f"Unknown period kind '{period_kind}'") from None

        if end_date < start_date:
            errors.append("End date cannot be before start date")
        if kind == PeriodKind.CUSTOM:
            if custom_worked_days is None:
                errors.append("Custom periods require custom_worked_days")
            elif not 0 < custom_worked_days <= 30:
                errors.append("custom_worked_days must be between 1 and 30")
        elif custom_worked_days is not None:
            errors.append("custom_worked_days only applies to custom periods")
        if errors:
            raise ValidationError(errors)
        return kind

    def _check_invariants(
        self, operation: str, candidate: PeriodWindow, existing: list[PayrollPeriod]
    ) -> None:
        windows = [PeriodWindow.from_model(p) for p in existing]
        violations = validate_period_invariants(candidate, windows, self._today())
        if violations:
            raise InvariantViolation(operation, violations)

    async def _record_audit(
        self,
        period: PayrollPeriod,
        action: str,
        actor: str | None,
        before: dict | None = None,
        after: dict | None = None,
        details: dict | None = None,
    ) -> None:
        await self.audit_sink.append(
            AuditEntry(
                action=action,
                entity_type="payroll_period",
                entity_id=period.period_id,
                company_id=period.company_id,
                actor=actor,
                before=before,
                after=after,
                details=details,
            )
        )

    @staticmethod
    def _snapshot(period: PayrollPeriod) -> dict:
        return {
            "state": period.state,
            "version": period.version,
            "gross_pay": str(period.gross_pay),
            "total_deductions": str(period.total_deductions),
            "net_pay": str(period.net_pay),
            "employee_count": period.employee_count,
        }
