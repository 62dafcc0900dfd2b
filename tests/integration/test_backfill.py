"""Incapacity policy backfill over open periods."""

from decimal import Decimal

import pytest

from nomina_engine.calculators.types import IncapacityPolicy
from nomina_engine.errors import ValidationError
from nomina_engine.models import Novedad
from nomina_engine.services.backfill import PolicyBackfillService

pytestmark = pytest.mark.asyncio

FROM_DAY1 = IncapacityPolicy.FROM_DAY1_66_WITH_FLOOR


@pytest.fixture
def backfill_service(session, config_store, settings) -> PolicyBackfillService:
    return PolicyBackfillService(session, config_store=config_store, settings=settings)


@pytest.fixture
async def march_incapacity(novedad_service, march_period, employees) -> Novedad:
    """Five general-illness days for the higher earner, under the standard policy."""
    return await novedad_service.create(
        employees[1].employee_id, march_period.period_id, "incapacity", subtype="general", days=5
    )


async def raw_incapacity(session, period, employee, **values) -> Novedad:
    novedad = Novedad(
        company_id=period.company_id,
        employee_id=employee.employee_id,
        period_id=period.period_id,
        kind="incapacity",
        subtype="general",
        **values,
    )
    session.add(novedad)
    await session.flush()
    return novedad


class TestBackfill:
    async def test_recomputes_under_new_policy(
        self, backfill_service, config_store, company, march_incapacity, audit_actions
    ):
        assert march_incapacity.value == Decimal("949000")

        result = await backfill_service.backfill(company.company_id, FROM_DAY1, actor="admin")

        assert result.processed == 1
        assert result.updated == 1
        assert result.changes[0].old_value == Decimal("949000")
        assert result.changes[0].new_value == Decimal("790833")
        assert result.changes[0].difference == Decimal("-158167")
        assert march_incapacity.value == Decimal("790833")
        assert march_incapacity.calculation_trace["policy"] == FROM_DAY1.value
        assert (await config_store.get_policy(company.company_id)).incapacity_policy == FROM_DAY1
        assert await audit_actions(company.company_id) == ["policy_backfill"]

    async def test_second_run_changes_nothing(self, backfill_service, company, march_incapacity):
        await backfill_service.backfill(company.company_id, FROM_DAY1)

        again = await backfill_service.backfill(company.company_id, FROM_DAY1)

        assert again.updated == 0
        assert again.unchanged == 1
        assert again.success is True

    async def test_dry_run_writes_nothing(
        self, backfill_service, config_store, company, march_incapacity, audit_actions
    ):
        result = await backfill_service.backfill(company.company_id, FROM_DAY1, dry_run=True)

        assert result.dry_run is True
        assert result.updated == 1
        assert result.changes[0].new_value == Decimal("790833")
        assert march_incapacity.value == Decimal("949000")
        policy = await config_store.get_policy(company.company_id)
        assert policy.incapacity_policy == IncapacityPolicy.STANDARD_2D_100_REST_66
        assert await audit_actions(company.company_id) == []

    async def test_closed_periods_untouched(
        self, session, backfill_service, company, february_closed, march_incapacity, employees
    ):
        closed = await raw_incapacity(
            session,
            february_closed,
            employees[1],
            value=Decimal("949000"),
            days=5,
            calculation_trace={"method": "incapacity"},
        )

        result = await backfill_service.backfill(company.company_id, FROM_DAY1)

        assert result.processed == 1
        assert closed.value == Decimal("949000")

    async def test_missing_trace_forces_update(
        self, session, backfill_service, company, march_incapacity
    ):
        march_incapacity.calculation_trace = None
        await session.flush()

        result = await backfill_service.backfill(
            company.company_id, IncapacityPolicy.STANDARD_2D_100_REST_66
        )

        assert result.updated == 1
        assert result.changes[0].difference == Decimal("0")
        assert march_incapacity.calculation_trace is not None

    async def test_item_without_days_fails(
        self, session, backfill_service, company, march_period, employees
    ):
        await raw_incapacity(session, march_period, employees[0], value=Decimal("100000"))

        result = await backfill_service.backfill(company.company_id, FROM_DAY1)

        assert result.processed == 1
        assert result.failed == 1
        assert result.success is False

    async def test_restricted_to_one_period(
        self, backfill_service, company, march_incapacity
    ):
        result = await backfill_service.backfill(
            company.company_id, FROM_DAY1, period_id=march_incapacity.period_id
        )
        assert result.processed == 1

    async def test_unknown_policy_rejected(self, backfill_service, company):
        with pytest.raises(ValidationError):
            await backfill_service.backfill(company.company_id, "always_100")


class TestAnalyze:
    async def test_counts_open_period_incapacities(
        self, backfill_service, novedad_service, company, march_period, march_incapacity, employees
    ):
        await novedad_service.create(
            employees[0].employee_id, march_period.period_id, "incapacity", subtype="general", days=2
        )

        analysis = await backfill_service.analyze(company.company_id)

        assert analysis.incapacity_count == 2
        assert analysis.employee_count == 2
        assert analysis.period_count == 1
        assert analysis.period_ids == [march_period.period_id]
