"""Payroll period, novedad, payroll record and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nomina_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from nomina_engine.models.company import Company, Employee


MONEY = Numeric(18, 2)


class PayrollPeriod(Base, TimestampMixin):
    """Payroll period for one company.

    ``version`` is bumped on every state transition; transitions are
    conditional updates against the version read by the caller.
    """

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_kind: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    custom_worked_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    state: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    # Aggregate totals (written only by liquidation and close)
    gross_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    employer_contributions: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reopened_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reported_at: Mapped[datetime | None] = mapped_column(nullable=True)
    report_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "state IN ('draft', 'closed', 'reopened', 'cancelled')",
            name="payroll_period_state_check",
        ),
        CheckConstraint(
            "period_kind IN ('weekly', 'biweekly', 'monthly', 'custom')",
            name="payroll_period_kind_check",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="periods")
    records: Mapped[list[PayrollRecord]] = relationship(back_populates="period")

    @property
    def is_open(self) -> bool:
        return self.state in ("draft", "reopened")


class Novedad(Base, TimestampMixin):
    """Ad-hoc payroll event for one employee inside one period."""

    __tablename__ = "novedad"

    novedad_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String, nullable=False)
    subtype: Mapped[str | None] = mapped_column(String, nullable=True)
    value: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    constitutive: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    observation: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    calculation_trace: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True, onupdate=func.now())

    __table_args__ = (
        CheckConstraint("value >= 0", name="novedad_value_check"),
        CheckConstraint(
            "source IN ('manual', 'system', 'corrective_adjustment', 'compensatory_adjustment')",
            name="novedad_source_check",
        ),
    )

    employee: Mapped[Employee] = relationship()
    period: Mapped[PayrollPeriod] = relationship()


class PayrollRecord(Base, TimestampMixin):
    """Liquidation result for one employee in one period."""

    __tablename__ = "payroll_record"

    record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    base_salary_used: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    worked_days: Mapped[int] = mapped_column(Integer, nullable=False)
    prorated_salary: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    transport_allowance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    ibc: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    health_deduction: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    pension_deduction: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    solidarity_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    withholding_tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    novedad_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    novedad_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    employer_contributions: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    contributions_detail: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    provisions_detail: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="calculated")
    validation_errors: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    warnings: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    calculation_path: Mapped[str] = mapped_column(String, nullable=False, default="primary")
    voucher_id: Mapped[str | None] = mapped_column(String, nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "period_id", name="payroll_record_employee_period_unique"),
        CheckConstraint(
            "status IN ('calculated', 'error')",
            name="payroll_record_status_check",
        ),
        CheckConstraint(
            "calculation_path IN ('primary', 'fallback')",
            name="payroll_record_path_check",
        ),
    )

    period: Mapped[PayrollPeriod] = relationship(back_populates="records")
    employee: Mapped[Employee] = relationship()

    @property
    def has_errors(self) -> bool:
        return self.status == "error" or bool(self.validation_errors)


class YearlyConfigurationRecord(Base, TimestampMixin):
    """Persisted yearly legal parameters.

    Rows are never updated; a correction inserts the next version and the
    highest version of a year is the current one.
    """

    __tablename__ = "yearly_configuration"

    configuration_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("year", "version", name="yearly_configuration_year_version_unique"),
    )


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    actor: Mapped[str | None] = mapped_column(String, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
