"""Service-level fixtures on top of the in-memory database."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.models import AuditEvent, Employee, PayrollPeriod
from nomina_engine.services.liquidation import LiquidationOrchestrator
from nomina_engine.services.novedad_service import NovedadService

MARCH_START = date(2025, 3, 1)
MARCH_END = date(2025, 3, 31)
FEBRUARY_START = date(2025, 2, 1)
FEBRUARY_END = date(2025, 2, 28)


@pytest.fixture
async def march_period(lifecycle, company) -> PayrollPeriod:
    """The company's open period, created through the lifecycle manager."""
    return await lifecycle.create(company.company_id, MARCH_START, MARCH_END, actor="tester")


@pytest.fixture
async def february_closed(make_period) -> PayrollPeriod:
    return await make_period(FEBRUARY_START, FEBRUARY_END, state="closed")


@pytest.fixture
def novedad_service(session, config_store) -> NovedadService:
    return NovedadService(session, config_store=config_store)


@pytest.fixture
def orchestrator(session, config_store, lifecycle, settings) -> LiquidationOrchestrator:
    return LiquidationOrchestrator(
        session, config_store=config_store, lifecycle=lifecycle, settings=settings
    )


@pytest.fixture
async def unpaid_employee(session: AsyncSession, company) -> Employee:
    """An active employee whose salary makes liquidation fail."""
    employee = Employee(
        employee_id=uuid4(),
        company_id=company.company_id,
        first_name="Pedro",
        last_name="Sin Salario",
        document_number="100000099",
        base_salary=Decimal("0"),
    )
    session.add(employee)
    await session.flush()
    return employee


@pytest.fixture
def audit_actions(session: AsyncSession):
    """Audit actions recorded for an entity, oldest first."""

    async def _actions(entity_id) -> list[str]:
        result = await session.execute(
            select(AuditEvent.action)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at)
        )
        return list(result.scalars().all())

    return _actions
