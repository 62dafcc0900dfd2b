"""Pytest fixtures for payroll engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nomina_engine.calculators.configuration import DEFAULT_CONFIGURATIONS, ConfigurationCache
from nomina_engine.config import Settings
from nomina_engine.models import Base, Company, Employee, PayrollPeriod
from nomina_engine.services.configuration_store import ConfigurationStore
from nomina_engine.services.locks import CompanyLockRegistry
from nomina_engine.services.period_lifecycle import PeriodLifecycleManager

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TODAY = date(2025, 3, 15)


@pytest.fixture
def config_2025():
    return DEFAULT_CONFIGURATIONS[2025]


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url=TEST_DATABASE_URL, engine_version="test")


@pytest.fixture
def today() -> Callable[[], date]:
    return lambda: TODAY


@pytest.fixture
def lock_registry() -> CompanyLockRegistry:
    return CompanyLockRegistry()


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def config_store(session: AsyncSession) -> ConfigurationStore:
    return ConfigurationStore(session, cache=ConfigurationCache(ttl_seconds=300))


@pytest.fixture
def lifecycle(session, settings, lock_registry, today) -> PeriodLifecycleManager:
    return PeriodLifecycleManager(session, settings=settings, locks=lock_registry, today=today)


@pytest.fixture
async def company(session: AsyncSession) -> Company:
    """Create a test company."""
    company = Company(company_id=uuid4(), name="Comercializadora Andina SAS", nit="900123456-7")
    session.add(company)
    await session.flush()
    return company


@pytest.fixture
async def employees(session: AsyncSession, company: Company) -> list[Employee]:
    """Create two active employees: one at minimum wage, one at 5x minimum wage."""
    result = []
    for i, (first, last, salary, risk) in enumerate(
        [
            ("Ana", "Gomez", Decimal("1423500"), "I"),
            ("Luis", "Martinez", Decimal("7117500"), "II"),
        ],
        start=1,
    ):
        employee = Employee(
            employee_id=uuid4(),
            company_id=company.company_id,
            first_name=first,
            last_name=last,
            document_number=f"10000000{i}",
            base_salary=salary,
            health_insurer="EPS Sura",
            pension_fund="Porvenir",
            arl_insurer="ARL Sura",
            arl_risk_class=risk,
            status="active",
            hire_date=date(2023, 1, 1),
        )
        session.add(employee)
        result.append(employee)
    await session.flush()
    return result


@pytest.fixture
def make_period(
    session: AsyncSession, company: Company
) -> Callable[..., Awaitable[PayrollPeriod]]:
    """Insert a period row directly, bypassing the lifecycle invariants."""

    async def _make(
        start_date: date,
        end_date: date,
        state: str = "draft",
        period_kind: str = "monthly",
        **values,
    ) -> PayrollPeriod:
        period = PayrollPeriod(
            period_id=uuid4(),
            company_id=company.company_id,
            start_date=start_date,
            end_date=end_date,
            period_kind=period_kind,
            state=state,
            **values,
        )
        session.add(period)
        await session.flush()
        return period

    return _make
