"""Adjustments to employees of closed periods."""

from decimal import Decimal

import pytest

from nomina_engine.errors import AdjustmentAuditFailure, NoActivePeriodAvailable, ValidationError
from nomina_engine.services.adjustments import ClosedPeriodAdjustmentService

pytestmark = pytest.mark.asyncio


class BrokenAuditSink:
    async def append(self, entry):
        raise RuntimeError("audit store unavailable")


@pytest.fixture
def adjustments(session, novedad_service, today) -> ClosedPeriodAdjustmentService:
    return ClosedPeriodAdjustmentService(session, novedad_service=novedad_service, today=today)


class TestCorrective:
    async def test_negative_amount_becomes_voluntary_deduction(
        self, adjustments, novedad_service, february_closed, employees, audit_actions
    ):
        employee_id = employees[0].employee_id

        result = await adjustments.apply_corrective(
            february_closed.period_id, employee_id, -50000, "Double-paid bonus", actor="rrhh"
        )

        novedades = await novedad_service.list_for_employee_period(
            employee_id, february_closed.period_id
        )
        assert len(novedades) == 1
        novedad = novedades[0]
        assert novedad.kind == "voluntary_deduction"
        assert novedad.value == Decimal("50000")
        assert novedad.source == "corrective_adjustment"
        assert novedad.observation.startswith("Corrective adjustment:")
        assert result.target_period_id == february_closed.period_id
        assert result.audit_entry.details["value_difference"] == "-50000"
        assert await audit_actions(february_closed.period_id) == ["period_correction.corrective"]

    async def test_positive_amount_becomes_non_constitutive_bonus(
        self, adjustments, february_closed, employees
    ):
        result = await adjustments.apply_corrective(
            february_closed.period_id, employees[1].employee_id, 80000, "Missing commission"
        )

        assert result.novedad.kind == "bonus"
        assert result.novedad.value == Decimal("80000")
        assert result.novedad.constitutive is False

    async def test_closed_period_state_unchanged(self, adjustments, february_closed, employees):
        await adjustments.apply_corrective(
            february_closed.period_id, employees[0].employee_id, 1000, "Rounding"
        )
        assert february_closed.state == "closed"
        assert february_closed.version == 1


class TestCompensatory:
    async def test_lands_in_open_period(
        self, adjustments, novedad_service, february_closed, march_period, employees
    ):
        employee_id = employees[0].employee_id

        result = await adjustments.apply_compensatory(
            february_closed.period_id, employee_id, 120000, "Unpaid overtime from February"
        )

        assert result.original_period_id == february_closed.period_id
        assert result.target_period_id == march_period.period_id
        assert result.novedad.source == "compensatory_adjustment"
        assert await novedad_service.list_for_employee_period(
            employee_id, february_closed.period_id
        ) == []
        history = await adjustments.get_correction_history(march_period.period_id)
        assert len(history) == 1
        assert history[0].action == "period_correction.compensatory"

    async def test_no_open_period(self, adjustments, february_closed, employees):
        with pytest.raises(NoActivePeriodAvailable):
            await adjustments.apply_compensatory(
                february_closed.period_id, employees[0].employee_id, 1000, "Late bonus"
            )


class TestValidation:
    async def test_zero_amount_rejected(self, adjustments, february_closed, employees):
        with pytest.raises(ValidationError):
            await adjustments.apply_corrective(
                february_closed.period_id, employees[0].employee_id, 0, "Nothing"
            )

    async def test_justification_required(self, adjustments, february_closed, employees):
        with pytest.raises(ValidationError):
            await adjustments.apply_corrective(
                february_closed.period_id, employees[0].employee_id, 1000, "   "
            )

    async def test_only_closed_periods(self, adjustments, march_period, employees):
        with pytest.raises(ValidationError):
            await adjustments.apply_corrective(
                march_period.period_id, employees[0].employee_id, 1000, "Too early"
            )

    async def test_audit_failure_discards_novedad(
        self, session, novedad_service, today, february_closed, employees
    ):
        adjustments = ClosedPeriodAdjustmentService(
            session, novedad_service=novedad_service, audit_sink=BrokenAuditSink(), today=today
        )
        employee_id = employees[0].employee_id

        with pytest.raises(AdjustmentAuditFailure):
            await adjustments.apply_corrective(
                february_closed.period_id, employee_id, -50000, "Double-paid bonus"
            )

        assert await novedad_service.list_for_employee_period(
            employee_id, february_closed.period_id
        ) == []
